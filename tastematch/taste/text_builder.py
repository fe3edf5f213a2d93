"""
Deterministic taste text rendering.

The strings produced here are the exact inputs to the embedding service, and
they are stored next to each embedding as provenance. Any change to wording or
ordering invalidates stored embeddings on the next rebuild, so keep edits
deliberate.
"""
from __future__ import annotations

from collections import Counter
from typing import Iterable, Sequence, assert_never

from .models import RestaurantRef, SignalKind, TasteProfile, TasteSignal

MIN_TASTE_TEXT_LENGTH = 10

MAX_IMPORTED_FAVORITES = 10
MAX_POSITIVE_CONTENTS = 15
MAX_NEGATIVE_CONTENTS = 10
MAX_LIKED_CUISINES = 5
MAX_AVOIDED_CUISINES = 3
AVOID_THRESHOLD = -2
MAX_FREQUENT_VISITS = 5

MAX_CHAT_SIGNALS = 20
MAX_ONBOARDING_CONTEXT_NAMES = 3

_CONTEXT_LISTS: tuple[tuple[str, str], ...] = (
    ("date_restaurants", "date"),
    ("friends_restaurants", "friends"),
    ("family_restaurants", "family"),
    ("solo_restaurants", "solo"),
    ("work_restaurants", "work/business"),
)


def has_enough_text(text: str | None) -> bool:
    """Guard used before calling the embedding service."""
    return bool(text) and len(text) >= MIN_TASTE_TEXT_LENGTH


def _names(restaurants: Iterable[RestaurantRef]) -> list[str]:
    return [r.name for r in restaurants if r.name]


def _is_visit(kind: SignalKind) -> bool:
    match kind:
        case SignalKind.review:
            return True
        case SignalKind.wishlist | SignalKind.chat | SignalKind.onboarding:
            return False
        case _:
            assert_never(kind)


def _cuisine_weight(signal: TasteSignal) -> int:
    kind = signal.kind
    match kind:
        case SignalKind.review | SignalKind.wishlist | SignalKind.chat | SignalKind.onboarding:
            base = signal.strength
        case _:
            assert_never(kind)
    return base if signal.is_positive else -base


# ---------------------------------------------------------------------------
# Signal aggregation
# ---------------------------------------------------------------------------


def aggregate_cuisines(signals: Sequence[TasteSignal]) -> dict[str, int]:
    """Net signed strength per cuisine tag, in first-seen order."""
    scores: dict[str, int] = {}
    for signal in signals:
        weight = _cuisine_weight(signal)
        for cuisine in signal.cuisines:
            scores[cuisine] = scores.get(cuisine, 0) + weight
    return scores


def liked_cuisines(scores: dict[str, int]) -> list[str]:
    ranked = sorted(
        ((c, s) for c, s in scores.items() if s > 0),
        key=lambda item: item[1],
        reverse=True,
    )
    return [c for c, _ in ranked[:MAX_LIKED_CUISINES]]


def avoided_cuisines(scores: dict[str, int]) -> list[str]:
    ranked = sorted(
        ((c, s) for c, s in scores.items() if s < AVOID_THRESHOLD),
        key=lambda item: item[1],
    )
    return [c for c, _ in ranked[:MAX_AVOIDED_CUISINES]]


def frequent_visits(signals: Sequence[TasteSignal]) -> list[str]:
    """Restaurants named by more than one review signal, first-seen order."""
    counts: Counter[str] = Counter()
    for signal in signals:
        if not _is_visit(signal.kind):
            continue
        if signal.restaurant and signal.restaurant.name:
            counts[signal.restaurant.name] += 1
    return [name for name, count in counts.items() if count > 1][:MAX_FREQUENT_VISITS]


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def build_taste_text(profile: TasteProfile | None, signals: Sequence[TasteSignal]) -> str:
    """
    Render the full taste summary for a profile and its signals.

    Sections appear in a fixed order, strongest filters first: dietary
    constraints, likes and dislikes, notes, favourites by context, restaurants
    to avoid, imported favourites, learned preferences from signals, and
    cuisine and visit patterns. Empty sections are omitted entirely.
    """
    parts: list[str] = []

    if profile is not None:
        if profile.is_kosher:
            parts.append("Only eats kosher food.")
        if profile.is_vegan:
            parts.append("Vegan diet - no animal products.")
        elif profile.is_vegetarian:
            parts.append("Vegetarian diet - no meat.")
        if profile.gluten_free:
            parts.append("Gluten-free diet.")

        if profile.likes:
            parts.append(f"Likes: {', '.join(profile.likes)}.")
        if profile.dislikes:
            parts.append(f"Dislikes: {', '.join(profile.dislikes)}.")

        if profile.free_text:
            parts.append(profile.free_text)

        for field, label in _CONTEXT_LISTS:
            names = _names(getattr(profile, field))
            if names:
                parts.append(f"Favorite {label} restaurants: {', '.join(names)}.")

        avoid = _names(profile.disliked_restaurants)
        if avoid:
            parts.append(f"Restaurants to avoid: {', '.join(avoid)}.")

        imported = _names(profile.imported_favorites[:MAX_IMPORTED_FAVORITES])
        if imported:
            parts.append(f"Google favorites: {', '.join(imported)}.")

    if signals:
        positive = [s.content for s in signals if s.is_positive and s.content]
        negative = [s.content for s in signals if not s.is_positive and s.content]

        if positive:
            parts.append(f"Learned preferences: {'. '.join(positive[:MAX_POSITIVE_CONTENTS])}.")
        if negative:
            parts.append(f"Things they dislike: {'. '.join(negative[:MAX_NEGATIVE_CONTENTS])}.")

        scores = aggregate_cuisines(signals)
        liked = liked_cuisines(scores)
        if liked:
            parts.append(f"Frequently enjoys: {', '.join(liked)}.")
        avoided = avoided_cuisines(scores)
        if avoided:
            parts.append(f"Tends to avoid: {', '.join(avoided)}.")

        visits = frequent_visits(signals)
        if visits:
            parts.append(f"Frequently visits: {', '.join(visits)}.")

    return " ".join(parts).strip()


def build_onboarding_text(profile: TasteProfile | None) -> str:
    if profile is None:
        return ""

    parts: list[str] = []

    dietary: list[str] = []
    if profile.is_kosher:
        dietary.append("kosher")
    if profile.is_vegetarian:
        dietary.append("vegetarian")
    if profile.is_vegan:
        dietary.append("vegan")
    if profile.gluten_free:
        dietary.append("gluten-free")
    if dietary:
        parts.append(f"Dietary requirements: {', '.join(dietary)}")

    if profile.likes:
        parts.append(f"Likes: {', '.join(profile.likes)}")
    if profile.dislikes:
        parts.append(f"Dislikes: {', '.join(profile.dislikes)}")
    if profile.free_text:
        parts.append(f"Notes: {profile.free_text}")

    for field, label in (
        ("date_restaurants", "Favorite date spots"),
        ("friends_restaurants", "Goes with friends to"),
        ("family_restaurants", "Family favorites"),
    ):
        names = _names(getattr(profile, field))[:MAX_ONBOARDING_CONTEXT_NAMES]
        if names:
            parts.append(f"{label}: {', '.join(names)}")

    return ". ".join(parts)


def build_chat_text(signals: Sequence[TasteSignal]) -> str:
    """Summarise the most recent chat signals. Expects newest-first order."""
    contents = [s.content for s in signals if s.kind is SignalKind.chat and s.content]
    contents = contents[:MAX_CHAT_SIGNALS]
    if not contents:
        return ""
    return f"Recent search preferences: {'. '.join(contents)}"
