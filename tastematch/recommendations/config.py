from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")

DEFAULT_MATCH_SCORE = 75


@dataclass(frozen=True)
class ScoringConfig:
    default_score: int = DEFAULT_MATCH_SCORE
    default_rating: float = 3.5
    default_friends_score: float = 0.5
    # Roughly five followees rating five stars each. A tuning knob, not a derived value.
    friends_normalization: float = float(os.getenv("FRIENDS_NORMALIZATION", "25"))

    similarity_weight: float = 0.50
    rating_weight: float = 0.25
    friends_weight: float = 0.25
    summary_share: float = 0.7
    reviews_share: float = 0.3

    fallback_rating_weight: float = 0.60
    fallback_friends_weight: float = 0.40

    fetch_timeout: float = float(os.getenv("SCORING_FETCH_TIMEOUT", "5.0"))
    stale_after_days: int = 7


DEFAULT_SCORING_CONFIG = ScoringConfig()
