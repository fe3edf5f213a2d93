from __future__ import annotations

import logging
from typing import Sequence

from ..errors import CatalogError, InputError, QuotaExceededError, UpstreamUnavailableError
from .catalog import CatalogClient
from .config import DEFAULT_VENUE_CONFIG, VenueConfig
from .fuzzy import extract_city, similarity
from .models import CandidateVenue, ResolutionOutcome, VenueResolution
from .web_search import WebSearchDiscovery

logger = logging.getLogger(__name__)


def address_score(candidate_address: str | None, target_address: str | None) -> float:
    """Best of full-address and city similarity; 0 when either side is missing."""
    if not target_address or not candidate_address:
        return 0.0
    full = similarity(candidate_address, target_address)
    city = similarity(extract_city(target_address), extract_city(candidate_address))
    return max(full, city)


def find_best_match(
    candidates: Sequence[CandidateVenue],
    target_name: str,
    target_address: str | None = None,
    config: VenueConfig = DEFAULT_VENUE_CONFIG,
) -> CandidateVenue | None:
    """
    Pick the single confident candidate for a venue name, or None.

    A lone candidate only needs a name similarity of ``min_confidence``.
    With several, each is scored as a weighted blend of name and address
    similarity and the best total must reach ``min_confidence``. On equal
    totals the earliest candidate wins, so results depend on catalog order.
    """
    if not candidates:
        return None

    if len(candidates) == 1:
        only = candidates[0]
        name_score = similarity(only.title, target_name)
        logger.debug("Single result %r: name score %.1f", only.title, name_score)
        return only if name_score >= config.min_confidence else None

    best: CandidateVenue | None = None
    best_score = 0.0
    for candidate in candidates:
        name_score = similarity(candidate.title, target_name)
        addr_score = address_score(candidate.address, target_address)
        total = config.name_weight * name_score + config.address_weight * addr_score
        logger.debug(
            "%r: name=%.1f address=%.1f total=%.1f",
            candidate.title, name_score, addr_score, total,
        )
        if total > best_score:
            best_score = total
            best = candidate

    if best is None or best_score < config.min_confidence:
        logger.info("No confident match for %r, best score %.1f", target_name, best_score)
        return None
    return best


def _search_terms(name: str, city: str | None) -> str:
    return f"{name} {city}" if city else name


def resolve_from_catalog(
    catalog: CatalogClient,
    name: str,
    city: str | None = None,
    address: str | None = None,
    config: VenueConfig = DEFAULT_VENUE_CONFIG,
) -> VenueResolution:
    try:
        candidates = catalog.search(_search_terms(name, city))
    except CatalogError as exc:
        logger.warning("Catalog search failed for %r: %s", name, exc)
        return VenueResolution(outcome=ResolutionOutcome.upstream_error, detail=str(exc))

    if not candidates:
        return VenueResolution(outcome=ResolutionOutcome.no_results, detail="No catalog results")

    best = find_best_match(candidates, name, address, config)
    if best is None:
        return VenueResolution(
            outcome=ResolutionOutcome.no_match,
            detail="No confident match",
            candidates_count=len(candidates),
        )
    if not best.slug:
        return VenueResolution(
            outcome=ResolutionOutcome.upstream_error,
            detail="Matched venue has no slug",
            candidates_count=len(candidates),
        )

    try:
        profile = catalog.fetch_profile(best.slug, best.version)
    except CatalogError as exc:
        logger.warning("Profile fetch failed for venue %s: %s", best.slug, exc)
        return VenueResolution(
            outcome=ResolutionOutcome.upstream_error,
            venue_slug=best.slug,
            detail=str(exc),
            candidates_count=len(candidates),
        )

    page = next(
        (p for p in profile.pages if p.content_type == config.reservation_page_type),
        profile.pages[0] if profile.pages else None,
    )
    if page is None or not page.slug:
        return VenueResolution(
            outcome=ResolutionOutcome.no_match,
            venue_title=profile.title,
            venue_slug=best.slug,
            detail="Venue has no bookable page",
            candidates_count=len(candidates),
        )

    return VenueResolution(
        outcome=ResolutionOutcome.resolved,
        url=config.page_url(page.slug),
        venue_title=profile.title or best.title,
        venue_slug=best.slug,
        page_slug=page.slug,
        strategy="catalog",
        candidates_count=len(candidates),
    )


def resolve_venue(
    name: str,
    city: str | None = None,
    address: str | None = None,
    catalog: CatalogClient | None = None,
    web_search: WebSearchDiscovery | None = None,
    config: VenueConfig = DEFAULT_VENUE_CONFIG,
) -> VenueResolution:
    """
    Resolve a free-text venue reference to one canonical catalog page.

    Web search discovery runs first when configured. Nothing found, a quota
    refusal or any other web search failure falls through to fuzzy matching
    against the catalog, without retrying the search.
    """
    name = (name or "").strip()
    if not name:
        raise InputError("Venue name is required")
    city = (city or "").strip() or None
    address = (address or "").strip() or None

    if web_search is not None:
        try:
            found = web_search.discover(name, city)
        except QuotaExceededError:
            logger.info("Web search quota exhausted, falling back to catalog search")
            found = None
        except UpstreamUnavailableError as exc:
            logger.warning("Web search failed for %r: %s", name, exc)
            found = None
        if found is not None:
            return found

    owns_catalog = catalog is None
    catalog = catalog or CatalogClient(config)
    try:
        return resolve_from_catalog(catalog, name, city, address, config)
    finally:
        if owns_catalog:
            catalog.close()
