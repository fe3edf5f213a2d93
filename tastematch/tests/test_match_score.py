from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from tastematch.errors import InputError
from tastematch.recommendations import data_store, social_graph
from tastematch.recommendations.config import DEFAULT_MATCH_SCORE, ScoringConfig
from tastematch.recommendations.match_score import (
    calculate_match_scores,
    cosine_similarity,
    score_restaurant,
)
from tastematch.recommendations.models import RelationalRestaurant, RestaurantCacheEntry
from tastematch.taste import store
from tastematch.taste.models import TasteProfile


def _user(embedding: list[float] | None = None, user_id: str = "u1") -> None:
    store.save_profile(TasteProfile(user_id=user_id, combined_embedding=embedding))


def _scores(user_id: str | None, ids: list[str]) -> dict[str, int]:
    return {s.restaurant_id: s.match_score for s in calculate_match_scores(user_id, ids)}


# ── Cosine similarity ────────────────────────────────────────────────────


class TestCosine:
    def test_identical_vectors(self):
        assert cosine_similarity([0.3, 0.4, 0.5], [0.3, 0.4, 0.5]) == pytest.approx(1.0)

    def test_symmetric(self):
        a, b = [1.0, 2.0, 3.0], [-2.0, 0.5, 4.0]
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_opposite(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    @pytest.mark.parametrize(
        "a,b",
        [
            ([1.0, 0.0], [1.0, 0.0, 0.0]),
            ([0.0, 0.0], [1.0, 0.0]),
            ([], []),
            (None, [1.0]),
            ([float("nan"), 1.0], [1.0, 1.0]),
        ],
    )
    def test_degenerate_inputs_are_zero(self, a, b):
        assert cosine_similarity(a, b) == 0.0


# ── Single restaurant formula ────────────────────────────────────────────


class TestScoreRestaurant:
    config = ScoringConfig()

    def test_summary_only_uses_neutral_friends(self):
        # 87.5 rounds half-up
        cached = RestaurantCacheEntry(id="c1", summary_embedding=[1.0, 0.0], external_rating=5.0)
        assert score_restaurant([1.0, 0.0], cached, None, {}, self.config) == 88

    def test_reviews_embedding_blended(self):
        cached = RestaurantCacheEntry(
            id="c1",
            summary_embedding=[1.0, 0.0],
            reviews_embedding=[0.0, 1.0],
            external_rating=4.5,
        )
        assert score_restaurant([1.0, 0.0], cached, None, {}, self.config) == 70

    def test_missing_rating_uses_default(self):
        cached = RestaurantCacheEntry(id="c1", summary_embedding=[1.0, 0.0])
        # 0.5 + 0.25 * 0.7 + 0.125
        assert score_restaurant([1.0, 0.0], cached, None, {}, self.config) == 80

    def test_relational_fallback_without_embedding(self):
        restaurant = RelationalRestaurant(id="r1", average_rating=4.5)
        assert score_restaurant([1.0, 0.0], None, restaurant, {}, self.config) == 74

    def test_cache_entry_without_embedding_falls_back(self):
        cached = RestaurantCacheEntry(id="c1", external_rating=5.0)
        restaurant = RelationalRestaurant(id="r1", average_rating=4.5)
        assert score_restaurant([1.0, 0.0], cached, restaurant, {}, self.config) == 74

    def test_friends_sum_normalised(self):
        restaurant = RelationalRestaurant(id="r1", average_rating=4.0)
        assert score_restaurant([1.0], None, restaurant, {"r1": 10}, self.config) == 64

    def test_friends_score_capped_at_one(self):
        restaurant = RelationalRestaurant(id="r1", average_rating=5.0)
        assert score_restaurant([1.0], None, restaurant, {"r1": 400}, self.config) == 100

    def test_negative_similarity_clamped_to_zero(self):
        cached = RestaurantCacheEntry(id="c1", summary_embedding=[-1.0, 0.0], external_rating=0.0)
        assert score_restaurant([1.0, 0.0], cached, None, {}, self.config) == 0

    def test_nothing_known_is_default(self):
        assert score_restaurant([1.0], None, None, {}, self.config) == DEFAULT_MATCH_SCORE

    def test_friends_normalization_is_configurable(self):
        config = ScoringConfig(friends_normalization=10)
        restaurant = RelationalRestaurant(id="r1", average_rating=4.0)
        assert score_restaurant([1.0], None, restaurant, {"r1": 10}, config) == 88

    def test_random_vectors_stay_in_range(self):
        rng = random.Random(7)
        for _ in range(200):
            dim = rng.randint(1, 8)
            user = [rng.uniform(-1, 1) for _ in range(dim)]
            cached = RestaurantCacheEntry(
                id="c",
                summary_embedding=[rng.uniform(-1, 1) for _ in range(dim)],
                reviews_embedding=[rng.uniform(-1, 1) for _ in range(dim)],
                external_rating=rng.uniform(0, 5),
            )
            restaurant = RelationalRestaurant(id="r", average_rating=rng.uniform(0, 5))
            score = score_restaurant(user, cached, restaurant, {"r": rng.randint(0, 60)}, self.config)
            assert isinstance(score, int)
            assert 0 <= score <= 100


# ── Batch scoring ────────────────────────────────────────────────────────


class TestCalculateMatchScores:
    def test_empty_request_rejected(self):
        with pytest.raises(InputError):
            calculate_match_scores("u1", [])

    def test_anonymous_user_gets_defaults(self):
        data_store.upsert_cache_entry(
            RestaurantCacheEntry(id="c1", summary_embedding=[1.0, 0.0], external_rating=5.0)
        )
        assert _scores(None, ["c1", "c2"]) == {"c1": 75, "c2": 75}

    def test_user_without_embedding_gets_defaults(self):
        _user(None)
        data_store.upsert_cache_entry(
            RestaurantCacheEntry(id="c1", summary_embedding=[1.0, 0.0], external_rating=5.0)
        )
        assert _scores("u1", ["c1"]) == {"c1": 75}

    def test_unknown_user_gets_defaults(self):
        assert _scores("ghost", ["c1"]) == {"c1": 75}

    def test_request_order_and_duplicates_preserved(self):
        _user([1.0, 0.0])
        data_store.upsert_cache_entry(
            RestaurantCacheEntry(id="c1", summary_embedding=[1.0, 0.0], external_rating=5.0)
        )
        results = calculate_match_scores("u1", ["zz", "c1", "zz"])
        assert [r.restaurant_id for r in results] == ["zz", "c1", "zz"]
        assert [r.match_score for r in results] == [75, 88, 75]

    def test_lookup_by_external_id(self):
        _user([1.0, 0.0])
        data_store.upsert_cache_entry(RestaurantCacheEntry(
            id="c1", external_id="place-1", summary_embedding=[1.0, 0.0], external_rating=5.0,
        ))
        assert _scores("u1", ["place-1"]) == {"place-1": 88}

    def test_cache_id_reaches_relational_row_for_friends(self):
        _user([1.0, 0.0])
        data_store.upsert_cache_entry(RestaurantCacheEntry(
            id="c1", external_id="place-1", summary_embedding=[1.0, 0.0], external_rating=5.0,
        ))
        data_store.add_restaurant(RelationalRestaurant(id="r1", external_id="place-1", average_rating=4.0))
        for friend in ("f1", "f2", "f3", "f4", "f5"):
            social_graph.follow("u1", friend)
            social_graph.record_review(friend, "r1", 5)

        assert _scores("u1", ["c1"]) == {"c1": 100}

    def test_relational_only_restaurant(self):
        _user([1.0, 0.0])
        data_store.add_restaurant(RelationalRestaurant(id="r1", average_rating=4.0))
        social_graph.follow("u1", "f1")
        social_graph.follow("u1", "f2")
        social_graph.record_review("f1", "r1", 5)
        social_graph.record_review("f2", "r1", 5)
        # A stranger's review does not count.
        social_graph.record_review("stranger", "r1", 5)

        assert _scores("u1", ["r1"]) == {"r1": 64}

    def test_unfollowed_friend_no_longer_counts(self):
        _user([1.0, 0.0])
        data_store.add_restaurant(RelationalRestaurant(id="r1", average_rating=4.0))
        social_graph.follow("u1", "f1")
        social_graph.record_review("f1", "r1", 5)
        social_graph.unfollow("u1", "f1")

        # 0.6 * 0.8 + 0.4 * 0.5
        assert _scores("u1", ["r1"]) == {"r1": 68}

    def test_failed_fetch_degrades_to_default(self):
        _user([1.0, 0.0])
        data_store.upsert_cache_entry(
            RestaurantCacheEntry(id="c1", summary_embedding=[1.0, 0.0], external_rating=5.0)
        )
        with patch(
            "tastematch.recommendations.data_store.get_cache_by_ids",
            side_effect=RuntimeError("db down"),
        ):
            assert _scores("u1", ["c1"]) == {"c1": 75}

    def test_best_embedding_priority_used(self):
        store.save_profile(TasteProfile(
            user_id="u1",
            onboarding_embedding=[0.0, 1.0],
            reviews_embedding=[1.0, 0.0],
        ))
        data_store.upsert_cache_entry(
            RestaurantCacheEntry(id="c1", summary_embedding=[1.0, 0.0], external_rating=5.0)
        )
        # Onboarding outranks reviews, so similarity is 0.
        assert _scores("u1", ["c1"]) == {"c1": 38}


# ── Supporting stores ────────────────────────────────────────────────────


def test_stale_entries():
    now = datetime(2024, 5, 10, tzinfo=timezone.utc)
    data_store.upsert_cache_entry(RestaurantCacheEntry(id="old", updated_at=now - timedelta(days=7)))
    data_store.upsert_cache_entry(RestaurantCacheEntry(id="fresh", updated_at=now - timedelta(days=6)))
    assert [e.id for e in data_store.get_stale_entries(7, now)] == ["old"]


def test_self_follow_ignored():
    social_graph.follow("u1", "u1")
    assert social_graph.get_followee_ids("u1") == set()


def test_review_rating_bounds():
    with pytest.raises(ValueError):
        social_graph.record_review("u1", "r1", 6)


def test_latest_review_wins():
    social_graph.record_review("f1", "r1", 2)
    social_graph.record_review("f1", "r1", 4)
    assert social_graph.friends_rating_sums(["r1"], {"f1"}) == {"r1": 4}

