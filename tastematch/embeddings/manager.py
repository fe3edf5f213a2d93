from __future__ import annotations

import logging
from typing import Iterable, Sequence, assert_never

import numpy as np
from pydantic import BaseModel, Field

from ..errors import EmbeddingServiceError
from ..taste import store
from ..taste.models import TEXT_SOURCES, EmbeddingSource, TasteProfile, TasteSignal
from ..taste.text_builder import (
    build_chat_text,
    build_onboarding_text,
    build_taste_text,
    has_enough_text,
)
from .config import DEFAULT_EMBEDDING_CONFIG, EmbeddingConfig
from .encoder import embed_text

logger = logging.getLogger(__name__)

# Lookup order for the embedding used in scoring. Never averaged.
EMBEDDING_PRIORITY: tuple[EmbeddingSource, ...] = (
    EmbeddingSource.combined,
    EmbeddingSource.onboarding,
    EmbeddingSource.reviews,
)


class RebuildResult(BaseModel):
    updated: list[EmbeddingSource] = Field(default_factory=list)
    unchanged: list[EmbeddingSource] = Field(default_factory=list)
    skipped: list[EmbeddingSource] = Field(default_factory=list)
    failed: list[EmbeddingSource] = Field(default_factory=list)
    combined_updated: bool = False
    texts: dict[EmbeddingSource, str] = Field(default_factory=dict)
    signals_used: int = 0


class EmbeddingStatus(BaseModel):
    has_onboarding_embedding: bool
    has_chat_embedding: bool
    has_reviews_embedding: bool
    has_combined_embedding: bool
    onboarding_text: str | None = None
    chat_text: str | None = None
    reviews_text: str | None = None
    best_source: EmbeddingSource | None = None
    last_updated: str | None = None


# ---------------------------------------------------------------------------
# Priority resolution
# ---------------------------------------------------------------------------


def first_present(
    profile: TasteProfile | None,
    priority: Sequence[EmbeddingSource] = EMBEDDING_PRIORITY,
) -> tuple[EmbeddingSource, list[float]] | None:
    """Return the first non-empty embedding in priority order with its source."""
    if profile is None:
        return None
    for source in priority:
        vector = profile.get_embedding(source)
        if vector:
            return source, vector
    return None


def best_user_embedding(profile: TasteProfile | None) -> list[float] | None:
    found = first_present(profile)
    return found[1] if found else None


# ---------------------------------------------------------------------------
# Combination
# ---------------------------------------------------------------------------


def combine_embeddings(
    vectors: dict[EmbeddingSource, list[float]],
    config: EmbeddingConfig = DEFAULT_EMBEDDING_CONFIG,
) -> list[float] | None:
    """
    Weighted average of the present source vectors.

    Absent sources do not contribute weight. Vectors whose length differs
    from the first present one are ignored with a warning.
    """
    weighted_sum: np.ndarray | None = None
    total_weight = 0.0
    for source in TEXT_SOURCES:
        vector = vectors.get(source)
        if not vector:
            continue
        weight = config.combine_weights.get(source.value, 0.0)
        if weight <= 0:
            continue
        arr = np.asarray(vector, dtype=float)
        if weighted_sum is None:
            weighted_sum = np.zeros_like(arr)
        elif arr.shape != weighted_sum.shape:
            logger.warning(
                "Skipping %s embedding with dimension %d (expected %d)",
                source.value, arr.size, weighted_sum.size,
            )
            continue
        weighted_sum += weight * arr
        total_weight += weight

    if weighted_sum is None or total_weight == 0:
        return None
    return (weighted_sum / total_weight).tolist()


# ---------------------------------------------------------------------------
# Source text
# ---------------------------------------------------------------------------


def build_source_text(
    source: EmbeddingSource,
    profile: TasteProfile,
    signals: Sequence[TasteSignal],
) -> str:
    if source is EmbeddingSource.onboarding:
        return build_onboarding_text(profile)
    elif source is EmbeddingSource.chat:
        return build_chat_text(signals)
    elif source is EmbeddingSource.reviews:
        return build_taste_text(profile, signals)
    elif source is EmbeddingSource.combined:
        raise ValueError("The combined embedding is derived, not built from text")
    else:
        assert_never(source)


# ---------------------------------------------------------------------------
# Rebuild
# ---------------------------------------------------------------------------


def rebuild_embeddings(
    user_id: str,
    sources: Iterable[EmbeddingSource] = TEXT_SOURCES,
    force: bool = False,
    config: EmbeddingConfig = DEFAULT_EMBEDDING_CONFIG,
) -> RebuildResult:
    """
    Recompute the requested source embeddings for a user.

    Each source is handled independently: a failure is logged and recorded,
    and the remaining sources still run. Stored values of sources that are
    skipped or fail are left as they were. A source whose freshly built text
    matches its stored provenance text is not re-embedded unless ``force``.
    The combined embedding is recomputed whenever a source changed.

    Raises NotFoundError if the user has no taste profile.
    """
    profile = store.require_profile(user_id)
    signals = store.get_signals(user_id, limit=config.max_signals)

    requested = [s for s in dict.fromkeys(sources) if s is not EmbeddingSource.combined]
    result = RebuildResult(signals_used=len(signals))

    new_vectors: dict[EmbeddingSource, list[float]] = {}
    new_texts: dict[EmbeddingSource, str] = {}

    for source in requested:
        text = build_source_text(source, profile, signals)
        if not has_enough_text(text):
            logger.info("Not enough %s data for user %s, skipping", source.value, user_id)
            result.skipped.append(source)
            continue

        result.texts[source] = text
        if (
            not force
            and profile.get_embedding(source)
            and profile.get_source_text(source) == text
        ):
            result.unchanged.append(source)
            continue

        try:
            vector = embed_text(text, config)
        except EmbeddingServiceError:
            logger.warning(
                "Embedding service failed for %s source of user %s",
                source.value, user_id, exc_info=True,
            )
            result.failed.append(source)
            continue

        new_vectors[source] = vector
        new_texts[source] = text
        result.updated.append(source)
        logger.info(
            "Generated %s embedding for user %s from %d chars",
            source.value, user_id, len(text),
        )

    if not new_vectors:
        return result

    current = {s: profile.get_embedding(s) for s in TEXT_SOURCES}
    current.update(new_vectors)
    combined = combine_embeddings({s: v for s, v in current.items() if v}, config)
    if combined is not None:
        new_vectors[EmbeddingSource.combined] = combined
        result.combined_updated = True

    store.write_embeddings(user_id, new_vectors, new_texts)
    return result


def rebuild_in_background(
    user_id: str,
    sources: Iterable[EmbeddingSource] = TEXT_SOURCES,
    config: EmbeddingConfig = DEFAULT_EMBEDDING_CONFIG,
) -> None:
    """Fire-and-forget wrapper: failures are logged, never raised."""
    try:
        result = rebuild_embeddings(user_id, sources, config=config)
    except Exception:
        logger.warning("Background embedding rebuild failed for user %s", user_id, exc_info=True)
        return
    if result.failed:
        logger.warning(
            "Background rebuild for user %s failed for: %s",
            user_id, ", ".join(s.value for s in result.failed),
        )


def embedding_status(user_id: str) -> EmbeddingStatus:
    profile = store.require_profile(user_id)
    found = first_present(profile)
    return EmbeddingStatus(
        has_onboarding_embedding=bool(profile.onboarding_embedding),
        has_chat_embedding=bool(profile.chat_embedding),
        has_reviews_embedding=bool(profile.reviews_embedding),
        has_combined_embedding=bool(profile.combined_embedding),
        onboarding_text=profile.onboarding_text,
        chat_text=profile.chat_text,
        reviews_text=profile.reviews_text,
        best_source=found[0] if found else None,
        last_updated=(
            profile.embeddings_updated_at.isoformat()
            if profile.embeddings_updated_at
            else None
        ),
    )
