from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SignalKind(str, Enum):
    review = "review"
    wishlist = "wishlist"
    chat = "chat"
    onboarding = "onboarding"


class EmbeddingSource(str, Enum):
    onboarding = "onboarding"
    chat = "chat"
    reviews = "reviews"
    combined = "combined"


# Sources that are embedded from their own text; combined is derived from these.
TEXT_SOURCES: tuple[EmbeddingSource, ...] = (
    EmbeddingSource.onboarding,
    EmbeddingSource.chat,
    EmbeddingSource.reviews,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RestaurantRef(BaseModel):
    name: str | None = None
    restaurant_id: str | None = None
    external_id: str | None = None


class TasteSignal(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str
    kind: SignalKind
    is_positive: bool = True
    strength: int = Field(..., ge=1, le=5)
    restaurant: RestaurantRef | None = None
    cuisines: tuple[str, ...] = ()
    content: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class TasteProfile(BaseModel):
    user_id: str

    is_kosher: bool = False
    is_vegetarian: bool = False
    is_vegan: bool = False
    gluten_free: bool = False
    likes: list[str] = Field(default_factory=list)
    dislikes: list[str] = Field(default_factory=list)
    free_text: str | None = None

    date_restaurants: list[RestaurantRef] = Field(default_factory=list)
    friends_restaurants: list[RestaurantRef] = Field(default_factory=list)
    family_restaurants: list[RestaurantRef] = Field(default_factory=list)
    solo_restaurants: list[RestaurantRef] = Field(default_factory=list)
    work_restaurants: list[RestaurantRef] = Field(default_factory=list)
    disliked_restaurants: list[RestaurantRef] = Field(default_factory=list)
    imported_favorites: list[RestaurantRef] = Field(default_factory=list)
    onboarding_completed: bool = False

    # Written only by the embedding manager.
    onboarding_embedding: list[float] | None = None
    onboarding_text: str | None = None
    chat_embedding: list[float] | None = None
    chat_text: str | None = None
    reviews_embedding: list[float] | None = None
    reviews_text: str | None = None
    combined_embedding: list[float] | None = None
    embeddings_updated_at: datetime | None = None

    def get_embedding(self, source: EmbeddingSource) -> list[float] | None:
        return getattr(self, f"{source.value}_embedding")

    def get_source_text(self, source: EmbeddingSource) -> str | None:
        if source is EmbeddingSource.combined:
            return None
        return getattr(self, f"{source.value}_text")


# Fields a profile edit may change; everything else belongs to the embedding manager.
PROFILE_FIELDS: frozenset[str] = frozenset({
    "is_kosher",
    "is_vegetarian",
    "is_vegan",
    "gluten_free",
    "likes",
    "dislikes",
    "free_text",
    "date_restaurants",
    "friends_restaurants",
    "family_restaurants",
    "solo_restaurants",
    "work_restaurants",
    "disliked_restaurants",
    "imported_favorites",
    "onboarding_completed",
})


class TasteProfileUpdate(BaseModel):
    is_kosher: bool | None = None
    is_vegetarian: bool | None = None
    is_vegan: bool | None = None
    gluten_free: bool | None = None
    likes: list[str] | None = None
    dislikes: list[str] | None = None
    free_text: str | None = None
    date_restaurants: list[RestaurantRef] | None = None
    friends_restaurants: list[RestaurantRef] | None = None
    family_restaurants: list[RestaurantRef] | None = None
    solo_restaurants: list[RestaurantRef] | None = None
    work_restaurants: list[RestaurantRef] | None = None
    disliked_restaurants: list[RestaurantRef] | None = None
    imported_favorites: list[RestaurantRef] | None = None
    onboarding_completed: bool | None = None


class AddSignalRequest(BaseModel):
    kind: SignalKind
    strength: int = Field(..., ge=1, le=5)
    is_positive: bool = True
    restaurant: RestaurantRef | None = None
    cuisines: list[str] = Field(default_factory=list)
    content: str | None = Field(default=None, max_length=2000)


class SignalsResponse(BaseModel):
    signals: list[TasteSignal]
    total: int
