from __future__ import annotations

import logging
from typing import Any

import httpx

from ..errors import CatalogError
from .config import DEFAULT_VENUE_CONFIG, VenueConfig
from .models import CandidateVenue, VenuePage, VenueProfile

logger = logging.getLogger(__name__)


class CatalogClient:
    """
    Thin client for the venue catalog's search and profile endpoints.

    Every call is bounded by ``config.timeout``; transport failures, non-2xx
    responses and unparseable bodies all surface as ``CatalogError``. No
    retries happen here.
    """

    def __init__(
        self,
        config: VenueConfig = DEFAULT_VENUE_CONFIG,
        client: httpx.Client | None = None,
    ) -> None:
        self.config = config
        self._client = client or httpx.Client(
            timeout=config.timeout,
            headers={"Accept": "application/json"},
        )

    def _get_json(self, url: str, params: dict[str, str]) -> Any:
        try:
            response = self._client.get(url, params=params, timeout=self.config.timeout)
        except httpx.HTTPError as exc:
            raise CatalogError(f"Catalog request failed: {exc}") from exc

        if response.status_code >= 400:
            raise CatalogError(f"Catalog returned HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise CatalogError("Catalog returned invalid JSON") from exc

    def search(self, terms: str) -> list[CandidateVenue]:
        data = self._get_json(
            self.config.search_url,
            {
                "slug": self.config.catalog_search_slug,
                "version": self.config.catalog_version,
                "terms": terms,
                "locale": self.config.locale,
            },
        )
        if not isinstance(data, list):
            logger.info("Catalog search for %r returned a non-list body", terms)
            return []

        candidates: list[CandidateVenue] = []
        for item in data:
            if not isinstance(item, dict):
                continue
            candidates.append(CandidateVenue(
                title=str(item.get("title") or ""),
                address=item.get("address") or None,
                slug=_as_str(item.get("slug")),
                version=_as_str(item.get("version")),
            ))
        return candidates

    def fetch_profile(self, venue_slug: str, version: str | None) -> VenueProfile:
        params = {"slug": venue_slug, "locale": self.config.locale}
        if version:
            params["version"] = version
        data = self._get_json(self.config.profile_url, params)
        if not isinstance(data, dict):
            raise CatalogError("Catalog profile body is not an object")

        pages = [
            VenuePage(slug=_as_str(p.get("slug")), content_type=p.get("content_type"))
            for p in data.get("pages") or []
            if isinstance(p, dict)
        ]
        return VenueProfile(title=data.get("title"), pages=pages)

    def close(self) -> None:
        self._client.close()


def _as_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
