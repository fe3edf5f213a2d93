from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any

from ..errors import InputError, NotFoundError
from .models import (
    PROFILE_FIELDS,
    EmbeddingSource,
    SignalKind,
    TasteProfile,
    TasteSignal,
)

_profiles: dict[str, TasteProfile] = {}
_signals: dict[str, list[TasteSignal]] = {}
_lock = threading.Lock()


# ── Profiles ─────────────────────────────────────────────────────────────


def get_profile(user_id: str) -> TasteProfile | None:
    with _lock:
        return _profiles.get(user_id)


def require_profile(user_id: str) -> TasteProfile:
    profile = get_profile(user_id)
    if profile is None:
        raise NotFoundError(f"No taste profile for user {user_id}")
    return profile


def save_profile(profile: TasteProfile) -> TasteProfile:
    with _lock:
        _profiles[profile.user_id] = profile
    return profile


def update_profile_fields(user_id: str, fields: dict[str, Any]) -> TasteProfile:
    """Apply a profile edit. Embedding fields are rejected, never silently dropped."""
    illegal = set(fields) - PROFILE_FIELDS
    if illegal:
        raise InputError(f"Fields not editable: {', '.join(sorted(illegal))}")

    with _lock:
        current = _profiles.get(user_id) or TasteProfile(user_id=user_id)
        # Revalidate so nested restaurant lists come back as models.
        updated = TasteProfile.model_validate({**current.model_dump(), **fields})
        _profiles[user_id] = updated
    return updated


def write_embeddings(
    user_id: str,
    embeddings: dict[EmbeddingSource, list[float]],
    texts: dict[EmbeddingSource, str],
) -> TasteProfile:
    """Store embedding vectors and their source texts. Other fields are untouched."""
    update: dict[str, Any] = {}
    for source, vector in embeddings.items():
        update[f"{source.value}_embedding"] = vector
    for source, text in texts.items():
        if source is EmbeddingSource.combined:
            raise InputError("The combined embedding has no source text")
        update[f"{source.value}_text"] = text
    update["embeddings_updated_at"] = datetime.now(timezone.utc)

    with _lock:
        current = _profiles.get(user_id)
        if current is None:
            raise NotFoundError(f"No taste profile for user {user_id}")
        updated = current.model_copy(update=update)
        _profiles[user_id] = updated
    return updated


# ── Signals (append-only) ────────────────────────────────────────────────


def append_signal(signal: TasteSignal) -> TasteSignal:
    with _lock:
        _signals.setdefault(signal.user_id, []).append(signal)
    return signal


def get_signals(
    user_id: str,
    limit: int | None = 50,
    kind: SignalKind | None = None,
) -> list[TasteSignal]:
    """Return a user's signals, newest first."""
    with _lock:
        signals = list(_signals.get(user_id, []))
    if kind is not None:
        signals = [s for s in signals if s.kind is kind]
    signals.sort(key=lambda s: s.created_at, reverse=True)
    if limit is not None:
        signals = signals[:limit]
    return signals


def count_signals(user_id: str, kind: SignalKind | None = None) -> int:
    return len(get_signals(user_id, limit=None, kind=kind))


def clear_taste_store() -> None:
    with _lock:
        _profiles.clear()
        _signals.clear()
