"""Error taxonomy for location resolution."""
from __future__ import annotations

from typing import Optional


class LocatorError(RuntimeError):
    pass


class UpstreamError(LocatorError):
    """An external data source failed or answered with a non-success status."""

    source = "upstream"

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class NearbyFetchError(UpstreamError):
    source = "nearby"


class GeocodeError(UpstreamError):
    source = "geocode"


class SearchTimeoutError(LocatorError):
    def __init__(self, timeout: float) -> None:
        super().__init__(f"Search exceeded {timeout:g}s")
        self.timeout = timeout


class QueryCancelledError(LocatorError):
    """The query's token was superseded; never shown to the user."""
