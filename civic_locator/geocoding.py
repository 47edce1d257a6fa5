"""Forward geocoding helpers using OpenStreetMap Nominatim.

Every request is bounded to the service area viewbox and country, so results
outside the city never come back. Calls observe a ``SearchToken``: once the
token is cancelled the call settles with ``QueryCancelledError`` and the
caller never sees its data.
"""
from __future__ import annotations

import asyncio
import logging
import os
import re
from typing import Any, Dict, List, Optional

import requests

from . import config
from .errors import GeocodeError, QueryCancelledError
from .geo import is_valid_coordinate, to_finite_float
from .http import HttpClient, RequestMetrics, status_of
from .models import Candidate, SourceKind
from .tokens import SearchToken

logger = logging.getLogger(__name__)

_logged_ua = False


def _redact_email(ua: str) -> str:
    if "@" not in ua:
        return ua
    return re.sub(r"\S+@\S+", "<redacted>", ua)


def nominatim_user_agent() -> str:
    ua = os.getenv("NOMINATIM_USER_AGENT")
    if not ua:
        logger.warning(
            "NOMINATIM_USER_AGENT not set in environment; using fallback UA. "
            "This may violate Nominatim usage policy."
        )
        return config.NOMINATIM_FALLBACK_USER_AGENT
    return ua


class GeocodingClient:
    def __init__(
        self,
        http_client: HttpClient,
        metrics: Optional[RequestMetrics] = None,
        url: str = config.NOMINATIM_SEARCH_URL,
    ) -> None:
        self.http = http_client
        self.metrics = metrics
        self.url = url

    async def search(self, text: str, token: SearchToken) -> List[Candidate]:
        global _logged_ua
        token.raise_if_cancelled()
        params = build_search_params(text)
        if not _logged_ua:
            logger.debug("Nominatim User-Agent: %s", _redact_email(self.http.user_agent))
            _logged_ua = True

        if self.metrics is not None:
            self.metrics.inc_network("geocode")
        fetch = asyncio.ensure_future(asyncio.to_thread(self.http.get_json, self.url, params))
        # The worker thread cannot be interrupted; an abandoned outcome is dropped here.
        fetch.add_done_callback(_retrieve_outcome)
        cancelled = asyncio.ensure_future(token.wait_cancelled())
        try:
            await asyncio.wait({fetch, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()

        if token.cancelled:
            raise QueryCancelledError(f"geocode for {text!r} was superseded")

        try:
            response = fetch.result()
        except requests.RequestException as exc:
            status = status_of(exc)
            logger.warning("Nominatim search failed for %r: %s", text, exc)
            raise GeocodeError(f"Geocoding failed: {exc}", status=status) from exc
        except ValueError as exc:
            logger.warning("Nominatim returned malformed JSON for %r", text)
            raise GeocodeError("Geocoding response was not JSON", status=200) from exc

        return parse_search_response(response)


def _retrieve_outcome(fut: "asyncio.Future[Any]") -> None:
    if not fut.cancelled() and fut.exception() is not None:
        logger.debug("Geocode request settled with %r", fut.exception())


def build_search_params(text: str) -> Dict[str, Any]:
    west, north, east, south = config.SERVICE_AREA_VIEWBOX
    return {
        "q": text.strip(),
        "format": "jsonv2",
        "viewbox": f"{west},{north},{east},{south}",
        "bounded": "1",
        "countrycodes": config.SERVICE_AREA_COUNTRY,
        "limit": str(config.GEOCODE_RESULT_LIMIT),
        "addressdetails": "1",
    }


# Adapter/mapper for Nominatim response fields

def parse_search_response(response: Any) -> List[Candidate]:
    if not isinstance(response, list):
        return []
    parsed: List[Candidate] = []
    for hit in response:
        if not isinstance(hit, dict):
            continue
        display = str(hit.get("display_name") or "").strip()
        if not display:
            continue
        lat = to_finite_float(hit.get("lat"))
        lng = to_finite_float(hit.get("lon"))
        if lat is None or lng is None or not is_valid_coordinate(lat, lng):
            continue
        head, _, rest = display.partition(",")
        name = head.strip()
        if not name:
            continue
        osm_id = hit.get("osm_id")
        parsed.append(
            Candidate(
                name=name,
                lat=lat,
                lng=lng,
                source_kind=SourceKind.GEOCODED,
                external_id=str(osm_id) if osm_id is not None else None,
                locality=rest.strip() or None,
            )
        )
    return parsed[: config.GEOCODE_RESULT_LIMIT]
