from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

import numpy as np
import pandas as pd

from .models import RelationalRestaurant, RestaurantCacheEntry

logger = logging.getLogger(__name__)

_PROCESSED_DIR = Path(__file__).resolve().parent.parent / "data" / "processed"
_CACHE_CSV = _PROCESSED_DIR / "restaurant_cache.csv"
_SUMMARY_NPY = _PROCESSED_DIR / "summary_embeddings.npy"
_REVIEWS_NPY = _PROCESSED_DIR / "reviews_embeddings.npy"

CACHE_COLUMNS: list[str] = [
    "id",
    "external_id",
    "name",
    "summary",
    "reviews_text",
    "external_rating",
    "updated_at",
]

_cache_by_id: dict[str, RestaurantCacheEntry] = {}
_cache_by_external_id: dict[str, RestaurantCacheEntry] = {}
_restaurants_by_id: dict[str, RelationalRestaurant] = {}
_restaurants_by_external_id: dict[str, RelationalRestaurant] = {}
_lock = threading.Lock()


# ── Restaurant cache (written by enrichment, read here) ─────────────────


def upsert_cache_entry(entry: RestaurantCacheEntry) -> None:
    """Insert or replace an entry. Keyed by external catalog id when present."""
    with _lock:
        if entry.external_id:
            previous = _cache_by_external_id.get(entry.external_id)
            if previous is not None and previous.id != entry.id:
                _cache_by_id.pop(previous.id, None)
            _cache_by_external_id[entry.external_id] = entry
        _cache_by_id[entry.id] = entry


def get_cache_by_ids(ids: Iterable[str]) -> dict[str, RestaurantCacheEntry]:
    with _lock:
        return {i: _cache_by_id[i] for i in ids if i in _cache_by_id}


def get_cache_by_external_ids(ids: Iterable[str]) -> dict[str, RestaurantCacheEntry]:
    with _lock:
        return {i: _cache_by_external_id[i] for i in ids if i in _cache_by_external_id}


def get_stale_entries(max_age_days: int = 7, now: datetime | None = None) -> list[RestaurantCacheEntry]:
    """Entries old enough to be handed back to enrichment."""
    with _lock:
        entries = list(_cache_by_id.values())
    return [e for e in entries if e.is_stale(max_age_days, now)]


# ── Relational restaurants ──────────────────────────────────────────────


def add_restaurant(restaurant: RelationalRestaurant) -> None:
    with _lock:
        _restaurants_by_id[restaurant.id] = restaurant
        if restaurant.external_id:
            _restaurants_by_external_id[restaurant.external_id] = restaurant


def get_restaurants_by_ids(ids: Iterable[str]) -> dict[str, RelationalRestaurant]:
    with _lock:
        return {i: _restaurants_by_id[i] for i in ids if i in _restaurants_by_id}


def get_restaurants_by_external_ids(ids: Iterable[str]) -> dict[str, RelationalRestaurant]:
    with _lock:
        return {
            i: _restaurants_by_external_id[i]
            for i in ids
            if i in _restaurants_by_external_id
        }


def clear_data_store() -> None:
    with _lock:
        _cache_by_id.clear()
        _cache_by_external_id.clear()
        _restaurants_by_id.clear()
        _restaurants_by_external_id.clear()


# ── Loading enrichment output ───────────────────────────────────────────


def _row_vector(matrix: np.ndarray | None, index: int) -> list[float] | None:
    if matrix is None or index >= len(matrix):
        return None
    row = matrix[index]
    if not np.all(np.isfinite(row)) or not np.any(row):
        return None
    return row.astype(float).tolist()


def _parse_timestamp(value) -> datetime:
    if pd.isna(value):
        return datetime.now(timezone.utc)
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.to_pydatetime()


def load_restaurant_cache(
    csv_path: Path = _CACHE_CSV,
    summary_path: Path = _SUMMARY_NPY,
    reviews_path: Path = _REVIEWS_NPY,
) -> int:
    """
    Load enrichment output into the cache store.

    The CSV holds one row per restaurant; the optional ``.npy`` matrices hold
    embeddings aligned by row. All-zero or non-finite rows mean "no
    embedding". Returns the number of entries loaded.
    """
    df = pd.read_csv(csv_path, dtype={"id": str, "external_id": str})
    missing = [c for c in CACHE_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Restaurant cache file is missing columns: {', '.join(missing)}")

    summary = np.load(summary_path) if summary_path.exists() else None
    reviews = np.load(reviews_path) if reviews_path.exists() else None

    count = 0
    for position, row in enumerate(df.itertuples(index=False)):
        rating = row.external_rating
        upsert_cache_entry(RestaurantCacheEntry(
            id=str(row.id),
            external_id=None if pd.isna(row.external_id) else str(row.external_id),
            name="" if pd.isna(row.name) else str(row.name),
            summary=None if pd.isna(row.summary) else str(row.summary),
            summary_embedding=_row_vector(summary, position),
            reviews_text=None if pd.isna(row.reviews_text) else str(row.reviews_text),
            reviews_embedding=_row_vector(reviews, position),
            external_rating=None if pd.isna(rating) else float(rating),
            updated_at=_parse_timestamp(row.updated_at),
        ))
        count += 1

    logger.info("Loaded %d restaurant cache entries from %s", count, csv_path)
    return count


def load_default_cache() -> int:
    """Load the processed cache files if enrichment has produced them."""
    if not _CACHE_CSV.exists():
        logger.info("No restaurant cache at %s, starting empty", _CACHE_CSV)
        return 0
    return load_restaurant_cache()
