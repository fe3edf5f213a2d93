from __future__ import annotations

import logging
import math
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Sequence, TypeVar

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity as _sk_cosine

from ..embeddings.manager import best_user_embedding
from ..errors import InputError
from ..taste import store as taste_store
from . import data_store, social_graph
from .config import DEFAULT_SCORING_CONFIG, ScoringConfig
from .models import RelationalRestaurant, RestaurantCacheEntry, RestaurantScore

logger = logging.getLogger(__name__)

T = TypeVar("T")

_fetch_pool = ThreadPoolExecutor(max_workers=8, thread_name_prefix="match-score")


def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """Cosine of two vectors; 0.0 for empty, mismatched or zero-norm input."""
    if a is None or b is None:
        return 0.0
    va = np.asarray(a, dtype=float).ravel()
    vb = np.asarray(b, dtype=float).ravel()
    if va.size == 0 or va.size != vb.size:
        return 0.0
    if not np.any(va) or not np.any(vb):
        return 0.0
    if not (np.all(np.isfinite(va)) and np.all(np.isfinite(vb))):
        return 0.0
    return float(_sk_cosine(va.reshape(1, -1), vb.reshape(1, -1))[0, 0])


def _clamp_score(raw: float) -> int:
    # Half-up rounding; round() would send 62.5 to 62.
    return max(0, min(100, math.floor(raw * 100 + 0.5)))


def _friends_score(
    restaurant: RelationalRestaurant | None,
    rating_sums: dict[str, int],
    config: ScoringConfig,
) -> float:
    if restaurant is None:
        return config.default_friends_score
    total = rating_sums.get(restaurant.id)
    if not total:
        return config.default_friends_score
    return min(total / config.friends_normalization, 1.0)


def score_restaurant(
    user_embedding: Sequence[float],
    cached: RestaurantCacheEntry | None,
    restaurant: RelationalRestaurant | None,
    rating_sums: dict[str, int],
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> int:
    """
    Score one restaurant for a user.

    With a cached summary embedding the score blends taste similarity, the
    external rating and the friends score. Without one, a relational
    restaurant row is scored on rating and friends alone. With neither the
    default score is returned.
    """
    friends = _friends_score(restaurant, rating_sums, config)

    if cached is not None and cached.summary_embedding:
        summary_sim = cosine_similarity(user_embedding, cached.summary_embedding)
        if cached.reviews_embedding:
            reviews_sim = cosine_similarity(user_embedding, cached.reviews_embedding)
            similarity = config.summary_share * summary_sim + config.reviews_share * reviews_sim
        else:
            similarity = summary_sim

        rating = cached.external_rating if cached.external_rating is not None else config.default_rating
        rating_score = rating / 5

        return _clamp_score(
            config.similarity_weight * similarity
            + config.rating_weight * rating_score
            + config.friends_weight * friends
        )

    if restaurant is not None:
        rating = restaurant.average_rating if restaurant.average_rating is not None else config.default_rating
        rating_score = rating / 5
        return _clamp_score(
            config.fallback_rating_weight * rating_score
            + config.fallback_friends_weight * friends
        )

    return config.default_score


def _defaults(restaurant_ids: Sequence[str], config: ScoringConfig) -> list[RestaurantScore]:
    return [
        RestaurantScore(restaurant_id=rid, match_score=config.default_score)
        for rid in restaurant_ids
    ]


def _await(future: Future, default: T, label: str, config: ScoringConfig) -> T:
    try:
        return future.result(timeout=config.fetch_timeout)
    except FutureTimeoutError:
        logger.warning("Fetch of %s timed out after %ss", label, config.fetch_timeout)
    except Exception:
        logger.warning("Fetch of %s failed", label, exc_info=True)
    return default


def calculate_match_scores(
    user_id: str | None,
    restaurant_ids: Sequence[str],
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> list[RestaurantScore]:
    """
    Score a batch of restaurants for a user.

    Ids may be internal cache ids or external catalog ids. The result keeps
    the request order and always has one entry per requested id; anything
    that cannot be resolved gets the default score. Only an empty id list is
    an error.
    """
    if not restaurant_ids:
        raise InputError("restaurant_ids must not be empty")

    if not user_id:
        return _defaults(restaurant_ids, config)

    user_embedding = best_user_embedding(taste_store.get_profile(user_id))
    if not user_embedding:
        logger.debug("User %s has no embedding yet, using default scores", user_id)
        return _defaults(restaurant_ids, config)

    ids = list(dict.fromkeys(restaurant_ids))

    by_id_f = _fetch_pool.submit(data_store.get_cache_by_ids, ids)
    by_external_f = _fetch_pool.submit(data_store.get_cache_by_external_ids, ids)
    rel_by_id_f = _fetch_pool.submit(data_store.get_restaurants_by_ids, ids)
    rel_by_external_f = _fetch_pool.submit(data_store.get_restaurants_by_external_ids, ids)
    followees_f = _fetch_pool.submit(social_graph.get_followee_ids, user_id)

    cached_by_id = _await(by_id_f, {}, "cache by id", config)
    cached_by_external = _await(by_external_f, {}, "cache by external id", config)
    rel_by_id = _await(rel_by_id_f, {}, "restaurants by id", config)
    rel_by_external = _await(rel_by_external_f, {}, "restaurants by external id", config)
    followee_ids = _await(followees_f, set(), "followees", config)

    cached_map: dict[str, RestaurantCacheEntry] = {}
    for entry in [*cached_by_id.values(), *cached_by_external.values()]:
        cached_map[entry.id] = entry
        if entry.external_id:
            cached_map[entry.external_id] = entry

    # Requested by internal cache id: reach the relational row through
    # the cache entry's external id.
    extra_external = [
        e.external_id
        for e in cached_map.values()
        if e.external_id and e.external_id not in rel_by_external
    ]
    if extra_external:
        rel_by_external = {
            **rel_by_external,
            **_await(
                _fetch_pool.submit(data_store.get_restaurants_by_external_ids, extra_external),
                {},
                "restaurants by cached external id",
                config,
            ),
        }

    relational: dict[str, RelationalRestaurant] = {}
    for rid in ids:
        cached = cached_map.get(rid)
        restaurant = rel_by_external.get(rid) or rel_by_id.get(rid)
        if restaurant is None and cached is not None and cached.external_id:
            restaurant = rel_by_external.get(cached.external_id)
        if restaurant is not None:
            relational[rid] = restaurant

    rating_sums: dict[str, int] = {}
    if followee_ids and relational:
        rating_sums = _await(
            _fetch_pool.submit(
                social_graph.friends_rating_sums,
                [r.id for r in relational.values()],
                followee_ids,
            ),
            {},
            "followee ratings",
            config,
        )

    return [
        RestaurantScore(
            restaurant_id=rid,
            match_score=score_restaurant(
                user_embedding,
                cached_map.get(rid),
                relational.get(rid),
                rating_sums,
                config,
            ),
        )
        for rid in restaurant_ids
    ]
