from __future__ import annotations

from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, Field


class RestaurantCacheEntry(BaseModel):
    id: str
    external_id: str | None = None
    name: str = ""
    summary: str | None = None
    summary_embedding: list[float] | None = None
    reviews_text: str | None = None
    reviews_embedding: list[float] | None = None
    external_rating: float | None = Field(default=None, ge=0.0, le=5.0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def is_stale(self, max_age_days: int = 7, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now - self.updated_at >= timedelta(days=max_age_days)


class RelationalRestaurant(BaseModel):
    """A restaurant row owned by the app itself (reviews point at ``id``)."""

    id: str
    external_id: str | None = None
    name: str = ""
    average_rating: float | None = Field(default=None, ge=0.0, le=5.0)


class MatchScoreRequest(BaseModel):
    restaurant_ids: list[str] = Field(..., min_length=1)


class RestaurantScore(BaseModel):
    restaurant_id: str
    match_score: int = Field(..., ge=0, le=100)


class MatchScoreResponse(BaseModel):
    scores: list[RestaurantScore]


class StaleEntry(BaseModel):
    id: str
    external_id: str | None
    name: str
    updated_at: datetime


class LoginRequest(BaseModel):
    username: str
    password: str
