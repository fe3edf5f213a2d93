from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class CandidateVenue(BaseModel):
    title: str = ""
    address: str | None = None
    slug: str | None = None
    version: str | None = None


class VenuePage(BaseModel):
    slug: str | None = None
    content_type: str | None = None


class VenueProfile(BaseModel):
    title: str | None = None
    pages: list[VenuePage] = Field(default_factory=list)


class ResolutionOutcome(str, Enum):
    resolved = "resolved"
    no_results = "no_results"
    no_match = "no_match"
    upstream_error = "upstream_error"


class VenueResolution(BaseModel):
    outcome: ResolutionOutcome
    url: str | None = None
    venue_title: str | None = None
    venue_slug: str | None = None
    page_slug: str | None = None
    strategy: str | None = None
    detail: str | None = None
    candidates_count: int = 0

    @property
    def found(self) -> bool:
        return self.outcome is ResolutionOutcome.resolved
