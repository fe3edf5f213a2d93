from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from ..errors import QuotaExceededError, UpstreamUnavailableError
from .config import DEFAULT_VENUE_CONFIG, VenueConfig
from .fuzzy import similarity
from .models import ResolutionOutcome, VenueResolution

logger = logging.getLogger(__name__)

_PAGE_LINK_RE = re.compile(
    r"^https?://(?:www\.)?ontopo\.com/(?:[a-z]{2}/[a-z]{2}/)?page/([A-Za-z0-9_-]+)",
    re.IGNORECASE,
)
_TITLE_SUFFIX_RE = re.compile(r"\s[|\-\u2013]\s")
_QUOTA_REASONS = {"dailyLimitExceeded", "rateLimitExceeded", "quotaExceeded", "userRateLimitExceeded"}


def _is_quota_error(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code != 403:
        return False
    try:
        body = response.json()
    except ValueError:
        return False
    if not isinstance(body, dict):
        return False
    errors = (body.get("error") or {}).get("errors") or []
    return any(e.get("reason") in _QUOTA_REASONS for e in errors if isinstance(e, dict))


class WebSearchDiscovery:
    """
    Finds an existing catalog page link through a web search engine.

    Cheaper and more precise than fuzzy matching the catalog when it hits,
    so the resolver asks it first. Raises ``QuotaExceededError`` when the
    provider refuses for quota reasons and ``UpstreamUnavailableError`` for
    any other failure.
    """

    name = "web_search"

    def __init__(
        self,
        config: VenueConfig = DEFAULT_VENUE_CONFIG,
        client: httpx.Client | None = None,
    ) -> None:
        self.config = config
        self._client = client or httpx.Client(timeout=config.timeout)

    @property
    def enabled(self) -> bool:
        return bool(
            self.config.web_search_enabled
            and self.config.web_search_api_key
            and self.config.web_search_cx
        )

    def close(self) -> None:
        self._client.close()

    def _query(self, name: str, city: str | None) -> str:
        terms = f"{name} {city}" if city else name
        return f"{terms} site:ontopo.com"

    def discover(self, name: str, city: str | None = None) -> VenueResolution | None:
        if not self.enabled:
            return None

        try:
            response = self._client.get(
                self.config.web_search_url,
                params={
                    "key": self.config.web_search_api_key,
                    "cx": self.config.web_search_cx,
                    "q": self._query(name, city),
                    "num": "5",
                },
                timeout=self.config.timeout,
            )
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(f"Web search failed: {exc}") from exc

        if _is_quota_error(response):
            raise QuotaExceededError("Web search quota exhausted")
        if response.status_code >= 400:
            raise UpstreamUnavailableError(f"Web search returned HTTP {response.status_code}")

        try:
            body: Any = response.json()
        except ValueError as exc:
            raise UpstreamUnavailableError("Web search returned invalid JSON") from exc
        if not isinstance(body, dict):
            logger.info("Web search for %r returned a non-object body", name)
            return None

        items = body.get("items")
        for item in items if isinstance(items, list) else []:
            if not isinstance(item, dict):
                continue
            link = str(item.get("link") or "")
            match = _PAGE_LINK_RE.match(link)
            if not match:
                continue
            title = str(item.get("title") or "")
            # Search result titles carry site suffixes, so compare on the leading part.
            head = _TITLE_SUFFIX_RE.split(title, maxsplit=1)[0]
            if similarity(head, name) < self.config.min_confidence:
                logger.debug("Ignoring web result %r for %r", title, name)
                continue
            page_slug = match.group(1)
            return VenueResolution(
                outcome=ResolutionOutcome.resolved,
                url=self.config.page_url(page_slug),
                venue_title=head or None,
                page_slug=page_slug,
                strategy=self.name,
            )
        return None
