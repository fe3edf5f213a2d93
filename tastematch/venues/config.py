from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class VenueConfig:
    catalog_base_url: str = os.getenv("CATALOG_BASE_URL", "https://ontopo.com")
    catalog_search_slug: str = "15171493"
    catalog_version: str = "410"
    locale: str = "he"
    country: str = "il"
    timeout: float = float(os.getenv("CATALOG_TIMEOUT", "5.0"))

    min_confidence: float = 40.0
    name_weight: float = 0.7
    address_weight: float = 0.3
    reservation_page_type: str = "reservation"

    web_search_api_key: str = os.getenv("WEB_SEARCH_API_KEY", "")
    web_search_cx: str = os.getenv("WEB_SEARCH_CX", "")
    web_search_url: str = "https://www.googleapis.com/customsearch/v1"
    web_search_enabled: bool = True

    @property
    def search_url(self) -> str:
        return f"{self.catalog_base_url}/api/venue_search"

    @property
    def profile_url(self) -> str:
        return f"{self.catalog_base_url}/api/venue_profile"

    def page_url(self, page_slug: str) -> str:
        return f"{self.catalog_base_url}/{self.locale}/{self.country}/page/{page_slug}"


DEFAULT_VENUE_CONFIG = VenueConfig()
