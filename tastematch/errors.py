from __future__ import annotations


class TastematchError(Exception):
    """Base class for errors raised by the tastematch core."""


class InputError(TastematchError):
    """A required field is missing or invalid. No partial work is done."""


class NotFoundError(TastematchError):
    """A logically absent result: no profile, no confident venue match, no embedding."""


class UpstreamUnavailableError(TastematchError):
    """An outbound dependency failed or timed out."""


class EmbeddingServiceError(UpstreamUnavailableError):
    pass


class CatalogError(UpstreamUnavailableError):
    pass


class QuotaExceededError(UpstreamUnavailableError):
    """The web search provider refused the call because its quota is spent."""
