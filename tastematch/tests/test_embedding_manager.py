from __future__ import annotations

from unittest.mock import patch

import pytest

from tastematch.embeddings.config import EmbeddingConfig
from tastematch.embeddings.manager import (
    best_user_embedding,
    combine_embeddings,
    embedding_status,
    first_present,
    rebuild_embeddings,
    rebuild_in_background,
)
from tastematch.errors import EmbeddingServiceError, NotFoundError
from tastematch.taste import store
from tastematch.taste.models import EmbeddingSource, SignalKind, TasteProfile, TasteSignal

MANAGER = "tastematch.embeddings.manager.embed_text"


def _fake_embed(text: str, config=None) -> list[float]:
    return [float(len(text)), 1.0]


def _profile(**fields) -> TasteProfile:
    return store.save_profile(TasteProfile(user_id="u1", **fields))


# ── Priority resolution ──────────────────────────────────────────────────


class TestPriority:
    def test_combined_wins(self):
        profile = TasteProfile(
            user_id="u1",
            combined_embedding=[1.0],
            onboarding_embedding=[2.0],
            reviews_embedding=[3.0],
        )
        assert first_present(profile) == (EmbeddingSource.combined, [1.0])

    def test_onboarding_before_reviews(self):
        profile = TasteProfile(user_id="u1", onboarding_embedding=[2.0], reviews_embedding=[3.0])
        assert best_user_embedding(profile) == [2.0]

    def test_reviews_last(self):
        profile = TasteProfile(user_id="u1", reviews_embedding=[3.0])
        assert best_user_embedding(profile) == [3.0]

    def test_chat_alone_is_not_used(self):
        profile = TasteProfile(user_id="u1", chat_embedding=[4.0])
        assert best_user_embedding(profile) is None

    def test_missing_profile(self):
        assert best_user_embedding(None) is None


# ── Combination ──────────────────────────────────────────────────────────


def test_combine_weights_only_present_sources():
    combined = combine_embeddings({
        EmbeddingSource.onboarding: [1.0, 0.0],
        EmbeddingSource.chat: [0.0, 1.0],
    })
    # 0.3 and 0.4 renormalised over 0.7
    assert combined == pytest.approx([0.3 / 0.7, 0.4 / 0.7])


def test_combine_skips_mismatched_dimensions():
    combined = combine_embeddings({
        EmbeddingSource.onboarding: [1.0, 1.0],
        EmbeddingSource.reviews: [5.0, 5.0, 5.0],
    })
    assert combined == pytest.approx([1.0, 1.0])


def test_combine_nothing_present():
    assert combine_embeddings({}) is None


# ── Rebuild ──────────────────────────────────────────────────────────────


class TestRebuild:
    def test_missing_profile_raises(self):
        with pytest.raises(NotFoundError):
            rebuild_embeddings("nobody")

    @patch(MANAGER, side_effect=_fake_embed)
    def test_empty_profile_never_calls_embedding_service(self, mock_embed):
        _profile()
        result = rebuild_embeddings("u1")
        mock_embed.assert_not_called()
        assert set(result.skipped) == {
            EmbeddingSource.onboarding,
            EmbeddingSource.chat,
            EmbeddingSource.reviews,
        }
        assert store.get_profile("u1").combined_embedding is None

    @patch(MANAGER, side_effect=_fake_embed)
    def test_stores_vectors_with_their_source_text(self, mock_embed):
        _profile(likes=["spicy noodles"], is_kosher=True)

        result = rebuild_embeddings("u1")

        profile = store.get_profile("u1")
        assert result.updated == [EmbeddingSource.onboarding, EmbeddingSource.reviews]
        assert result.skipped == [EmbeddingSource.chat]
        assert profile.onboarding_text == "Dietary requirements: kosher. Likes: spicy noodles"
        assert profile.onboarding_embedding == [float(len(profile.onboarding_text)), 1.0]
        assert profile.reviews_text == "Only eats kosher food. Likes: spicy noodles."
        assert profile.combined_embedding is not None
        assert result.combined_updated
        assert profile.embeddings_updated_at is not None

    @patch(MANAGER, side_effect=_fake_embed)
    def test_unchanged_text_is_not_reembedded(self, mock_embed):
        _profile(likes=["spicy noodles"])
        rebuild_embeddings("u1")
        calls = mock_embed.call_count

        result = rebuild_embeddings("u1")

        assert mock_embed.call_count == calls
        assert set(result.unchanged) == {EmbeddingSource.onboarding, EmbeddingSource.reviews}
        assert not result.combined_updated

    @patch(MANAGER, side_effect=_fake_embed)
    def test_force_reembeds(self, mock_embed):
        _profile(likes=["spicy noodles"])
        rebuild_embeddings("u1")
        calls = mock_embed.call_count

        rebuild_embeddings("u1", force=True)

        assert mock_embed.call_count == calls + 2

    def test_one_failing_source_does_not_block_others(self):
        _profile(
            likes=["spicy noodles"],
            onboarding_embedding=[9.0, 9.0],
            onboarding_text="old onboarding text",
        )

        def flaky(text, config=None):
            if text == "Likes: spicy noodles":
                raise EmbeddingServiceError("timeout")
            return _fake_embed(text)

        store.append_signal(TasteSignal(
            user_id="u1", kind=SignalKind.chat, strength=3, content="late night tacos",
        ))
        with patch(MANAGER, side_effect=flaky):
            result = rebuild_embeddings("u1")

        profile = store.get_profile("u1")
        assert result.failed == [EmbeddingSource.onboarding]
        assert EmbeddingSource.chat in result.updated
        assert EmbeddingSource.reviews in result.updated
        assert profile.onboarding_embedding == [9.0, 9.0]
        assert profile.onboarding_text == "old onboarding text"
        assert profile.chat_text == "Recent search preferences: late night tacos"
        assert profile.combined_embedding is not None

    def test_all_sources_failing_writes_nothing(self):
        _profile(likes=["spicy noodles"])
        with patch(MANAGER, side_effect=EmbeddingServiceError("down")):
            result = rebuild_embeddings("u1")
        profile = store.get_profile("u1")
        assert len(result.failed) == 2
        assert profile.onboarding_embedding is None
        assert profile.embeddings_updated_at is None

    @patch(MANAGER, side_effect=_fake_embed)
    def test_rebuild_single_source(self, mock_embed):
        _profile(likes=["spicy noodles"])
        result = rebuild_embeddings("u1", [EmbeddingSource.reviews])
        assert result.updated == [EmbeddingSource.reviews]
        assert store.get_profile("u1").onboarding_embedding is None

    @patch(MANAGER, side_effect=_fake_embed)
    def test_profile_edit_keeps_embeddings(self, mock_embed):
        _profile(likes=["spicy noodles"])
        rebuild_embeddings("u1")
        before = store.get_profile("u1").combined_embedding

        store.update_profile_fields("u1", {"dislikes": ["olives"]})

        profile = store.get_profile("u1")
        assert profile.combined_embedding == before
        assert profile.dislikes == ["olives"]


def test_background_rebuild_swallows_errors():
    rebuild_in_background("nobody")


def test_background_rebuild_runs_for_known_user():
    _profile(likes=["spicy noodles"])
    with patch(MANAGER, side_effect=_fake_embed):
        rebuild_in_background("u1", config=EmbeddingConfig())
    assert store.get_profile("u1").combined_embedding is not None


def test_embedding_status_reports_slots():
    _profile(reviews_embedding=[1.0], reviews_text="some reviews text")
    status = embedding_status("u1")
    assert status.has_reviews_embedding
    assert not status.has_combined_embedding
    assert status.best_source is EmbeddingSource.reviews
    assert status.reviews_text == "some reviews text"


@patch(MANAGER, side_effect=_fake_embed)
def test_restaurant_lists_from_edit_feed_the_rebuild(mock_embed):
    store.update_profile_fields("u1", {"friends_restaurants": [{"name": "Mona"}, {"name": "Taizu"}]})

    result = rebuild_embeddings("u1")

    assert store.get_profile("u1").friends_restaurants[0].name == "Mona"
    assert result.texts[EmbeddingSource.onboarding] == "Goes with friends to: Mona, Taizu"
    assert result.texts[EmbeddingSource.reviews] == "Favorite friends restaurants: Mona, Taizu."
