from __future__ import annotations

import os
from contextlib import asynccontextmanager
from functools import lru_cache

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query, Request
from starlette.middleware.sessions import SessionMiddleware

from .auth.dependencies import get_current_user_id, require_admin, require_user
from .auth.users import authenticate
from .embeddings.manager import (
    EmbeddingStatus,
    RebuildResult,
    embedding_status,
    rebuild_embeddings,
    rebuild_in_background,
)
from .errors import InputError, NotFoundError
from .recommendations.config import DEFAULT_SCORING_CONFIG
from .recommendations.data_store import get_stale_entries, load_default_cache
from .recommendations.match_score import calculate_match_scores
from .recommendations.models import (
    LoginRequest,
    MatchScoreRequest,
    MatchScoreResponse,
    StaleEntry,
)
from .taste import store as taste_store
from .taste.models import (
    TEXT_SOURCES,
    AddSignalRequest,
    EmbeddingSource,
    SignalKind,
    SignalsResponse,
    TasteProfile,
    TasteProfileUpdate,
    TasteSignal,
)
from .venues.models import ResolutionOutcome, VenueResolution
from .venues.resolver import resolve_venue
from .venues.web_search import WebSearchDiscovery


@asynccontextmanager
async def lifespan(app: FastAPI):
    load_default_cache()
    yield
    if get_web_search.cache_info().currsize:
        discovery = get_web_search()
        if discovery is not None:
            discovery.close()
        get_web_search.cache_clear()


app = FastAPI(title="Taste Match API", version="1.0.0", lifespan=lifespan)
app.add_middleware(
    SessionMiddleware,
    secret_key=os.environ.get("SESSION_SECRET", "tastematch-secret-change-in-production"),
)


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# ── Auth endpoints ───────────────────────────────────────────────────────


@app.post("/auth/login")
def login(body: LoginRequest, request: Request) -> dict:
    user = authenticate(body.username, body.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    request.session["user"] = user
    return {"status": "ok", "user": user}


@app.post("/auth/logout")
def logout(request: Request) -> dict:
    request.session.clear()
    return {"status": "logged_out"}


@app.get("/auth/me")
def auth_me(user: dict = Depends(require_user)) -> dict:
    return user


# ── Match scores ─────────────────────────────────────────────────────────


@app.post("/restaurants/match-score", response_model=MatchScoreResponse)
def match_score(
    body: MatchScoreRequest,
    user_id: str | None = Depends(get_current_user_id),
) -> MatchScoreResponse:
    # Anonymous callers get default scores rather than a 401.
    return MatchScoreResponse(scores=calculate_match_scores(user_id, body.restaurant_ids))


@app.get("/restaurants/match-score", response_model=MatchScoreResponse)
def match_score_single(
    restaurant_id: str = Query(..., min_length=1),
    user_id: str | None = Depends(get_current_user_id),
) -> MatchScoreResponse:
    return MatchScoreResponse(scores=calculate_match_scores(user_id, [restaurant_id]))


@app.get("/restaurants/stale", response_model=list[StaleEntry])
def stale_restaurants(user: dict = Depends(require_admin)) -> list[StaleEntry]:
    entries = get_stale_entries(DEFAULT_SCORING_CONFIG.stale_after_days)
    return [
        StaleEntry(id=e.id, external_id=e.external_id, name=e.name, updated_at=e.updated_at)
        for e in entries
    ]


# ── Taste profile & signals ──────────────────────────────────────────────


@app.get("/user/taste-profile", response_model=TasteProfile)
def get_taste_profile(user: dict = Depends(require_user)) -> TasteProfile:
    try:
        return taste_store.require_profile(user["user_id"])
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@app.put("/user/taste-profile", response_model=TasteProfile)
def update_taste_profile(
    body: TasteProfileUpdate,
    background_tasks: BackgroundTasks,
    user: dict = Depends(require_user),
) -> TasteProfile:
    fields = body.model_dump(exclude_unset=True)
    try:
        profile = taste_store.update_profile_fields(user["user_id"], fields)
    except InputError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    if fields.get("onboarding_completed"):
        background_tasks.add_task(rebuild_in_background, user["user_id"], TEXT_SOURCES)
    return profile


@app.get("/user/taste-signals", response_model=SignalsResponse)
def list_taste_signals(
    limit: int = Query(default=50, ge=1, le=200),
    kind: SignalKind | None = None,
    user: dict = Depends(require_user),
) -> SignalsResponse:
    signals = taste_store.get_signals(user["user_id"], limit=limit, kind=kind)
    return SignalsResponse(
        signals=signals,
        total=taste_store.count_signals(user["user_id"], kind=kind),
    )


@app.post("/user/taste-signals", response_model=TasteSignal)
def add_taste_signal(
    body: AddSignalRequest,
    background_tasks: BackgroundTasks,
    user: dict = Depends(require_user),
) -> TasteSignal:
    signal = taste_store.append_signal(TasteSignal(
        user_id=user["user_id"],
        kind=body.kind,
        strength=body.strength,
        is_positive=body.is_positive,
        restaurant=body.restaurant,
        cuisines=tuple(body.cuisines),
        content=body.content,
    ))

    if taste_store.get_profile(user["user_id"]) is not None:
        background_tasks.add_task(rebuild_in_background, user["user_id"], TEXT_SOURCES)
    return signal


# ── Embeddings ───────────────────────────────────────────────────────────


_EMBEDDING_TYPES: dict[str, tuple[EmbeddingSource, ...]] = {
    "onboarding": (EmbeddingSource.onboarding,),
    "chat": (EmbeddingSource.chat,),
    "reviews": (EmbeddingSource.reviews,),
    "all": TEXT_SOURCES,
}


@app.post("/user/taste-profile/rebuild-embedding", response_model=RebuildResult)
def rebuild_taste_embedding(user: dict = Depends(require_user)) -> RebuildResult:
    try:
        return rebuild_embeddings(user["user_id"], (EmbeddingSource.reviews,), force=True)
    except NotFoundError:
        raise HTTPException(
            status_code=404,
            detail="Taste profile not found. Please complete onboarding first.",
        )


@app.post("/user/embeddings", response_model=RebuildResult)
def generate_embeddings(
    type_: str = Query(default="all", alias="type"),
    force: bool = False,
    user: dict = Depends(require_user),
) -> RebuildResult:
    sources = _EMBEDDING_TYPES.get(type_)
    if sources is None:
        raise HTTPException(
            status_code=400,
            detail=f"type must be one of: {', '.join(_EMBEDDING_TYPES)}",
        )
    try:
        return rebuild_embeddings(user["user_id"], sources, force=force)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@app.get("/user/embeddings", response_model=EmbeddingStatus)
def get_embedding_status(user: dict = Depends(require_user)) -> EmbeddingStatus:
    try:
        return embedding_status(user["user_id"])
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


# ── Venue identity resolution ────────────────────────────────────────────


_RESOLUTION_STATUS = {
    ResolutionOutcome.no_results: 404,
    ResolutionOutcome.no_match: 404,
    ResolutionOutcome.upstream_error: 502,
}


@lru_cache(maxsize=1)
def get_web_search() -> WebSearchDiscovery | None:
    discovery = WebSearchDiscovery()
    if not discovery.enabled:
        discovery.close()
        return None
    return discovery


@app.get("/venues/resolve", response_model=VenueResolution)
def resolve(
    name: str = Query(..., min_length=1),
    city: str | None = None,
    address: str | None = None,
    web_search: WebSearchDiscovery | None = Depends(get_web_search),
) -> VenueResolution:
    try:
        result = resolve_venue(name, city=city, address=address, web_search=web_search)
    except InputError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    status = _RESOLUTION_STATUS.get(result.outcome)
    if status is not None:
        raise HTTPException(status_code=status, detail=result.model_dump(mode="json"))
    return result
