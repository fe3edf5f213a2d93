from __future__ import annotations

import threading
from typing import Iterable

_follows: dict[str, set[str]] = {}
# (user_id, restaurant_id) -> rating
_reviews: dict[tuple[str, str], int] = {}
_lock = threading.Lock()


def follow(follower_id: str, followee_id: str) -> None:
    if follower_id == followee_id:
        return
    with _lock:
        _follows.setdefault(follower_id, set()).add(followee_id)


def unfollow(follower_id: str, followee_id: str) -> None:
    with _lock:
        _follows.get(follower_id, set()).discard(followee_id)


def get_followee_ids(user_id: str) -> set[str]:
    with _lock:
        return set(_follows.get(user_id, set()))


def record_review(user_id: str, restaurant_id: str, rating: int) -> None:
    """Store a user's star rating for a relational restaurant. Latest wins."""
    if not 1 <= rating <= 5:
        raise ValueError("rating must be between 1 and 5")
    with _lock:
        _reviews[(user_id, restaurant_id)] = rating


def friends_rating_sums(
    restaurant_ids: Iterable[str],
    followee_ids: Iterable[str],
) -> dict[str, int]:
    """Sum of followee ratings per restaurant. Restaurants nobody rated are absent."""
    wanted = set(restaurant_ids)
    followees = set(followee_ids)
    if not wanted or not followees:
        return {}

    sums: dict[str, int] = {}
    with _lock:
        for (user_id, restaurant_id), rating in _reviews.items():
            if user_id in followees and restaurant_id in wanted:
                sums[restaurant_id] = sums.get(restaurant_id, 0) + rating
    return sums


def clear_social_graph() -> None:
    with _lock:
        _follows.clear()
        _reviews.clear()
