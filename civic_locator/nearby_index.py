"""Nearby-feature index backed by the Overpass API.

Fetches man-made points of interest around a coordinate, normalizes them into
``Candidate`` objects and keeps a short-lived bucketed cache. The most recent
result set stays resident so typed text can be matched against it instantly
without another network call.
"""
from __future__ import annotations

import asyncio
import logging
from typing import AbstractSet, Any, Dict, Iterable, List, Optional, Sequence

import requests

from . import config
from .cache import NearbyCache, make_bucket_key
from .errors import NearbyFetchError
from .geo import haversine_km, is_valid_coordinate, to_finite_float
from .http import HttpClient, RequestMetrics, status_of
from .models import Candidate, SourceKind

logger = logging.getLogger(__name__)


class NearbyFeatureIndex:
    def __init__(
        self,
        http_client: HttpClient,
        cache: Optional[NearbyCache] = None,
        metrics: Optional[RequestMetrics] = None,
        blocked_ids: Optional[AbstractSet[str]] = None,
        url: str = config.OVERPASS_INTERPRETER_URL,
    ) -> None:
        self.http = http_client
        self.cache = cache if cache is not None else NearbyCache()
        self.metrics = metrics
        self.blocked_ids = blocked_ids
        self.url = url
        self.loaded: List[Candidate] = []
        self._fetch_seq = 0

    def _blocked(self) -> AbstractSet[str]:
        return self.blocked_ids if self.blocked_ids is not None else config.BLOCKED_EXTERNAL_IDS

    async def fetch(
        self,
        lat: float,
        lng: float,
        radius: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Candidate]:
        if radius is None:
            radius = config.NEARBY_DEFAULT_RADIUS_M
        if limit is None:
            limit = config.NEARBY_DEFAULT_LIMIT
        if not is_valid_coordinate(lat, lng):
            raise ValueError(f"Invalid coordinate: {lat}, {lng}")
        self._fetch_seq += 1
        seq = self._fetch_seq

        key = make_bucket_key(lat, lng, radius)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Nearby cache hit %s", key)
            if self.metrics is not None:
                self.metrics.inc_cache_hit("nearby")
            return self._publish(seq, cached[: max(0, limit)])

        query = build_overpass_query(lat, lng, radius)
        if self.metrics is not None:
            self.metrics.inc_network("nearby")
        try:
            response = await asyncio.to_thread(self.http.post_form, self.url, {"data": query})
        except requests.RequestException as exc:
            status = status_of(exc)
            logger.warning("Overpass fetch failed near %.4f,%.4f: %s", lat, lng, exc)
            raise NearbyFetchError(f"Nearby feature fetch failed: {exc}", status=status) from exc
        except ValueError as exc:
            logger.warning("Overpass returned malformed JSON near %.4f,%.4f", lat, lng)
            raise NearbyFetchError("Nearby feature response was not JSON", status=200) from exc

        features = parse_overpass_response(response, self._blocked())
        features = sort_by_distance(features, lat, lng)
        self.cache.set(key, features)
        logger.info("Loaded %s nearby features around %.4f,%.4f (r=%sm)", len(features), lat, lng, radius)
        return self._publish(seq, features[: max(0, limit)])

    def _publish(self, seq: int, features: List[Candidate]) -> List[Candidate]:
        # An older fetch finishing late must not replace the resident set.
        if seq == self._fetch_seq:
            self.loaded = list(features)
        return features

    def match_loaded(self, query: str) -> List[Candidate]:
        """Case-insensitive substring match over the resident result set."""
        return match_features(self.loaded, query)


def match_features(features: Iterable[Candidate], query: str) -> List[Candidate]:
    needle = (query or "").strip().lower()
    if not needle:
        return []
    matches: List[Candidate] = []
    for feature in features:
        name = feature.name.lower()
        category = (feature.category or "").lower()
        if needle in name or needle in category or needle in category.replace("_", " "):
            matches.append(feature)
    return matches


def build_overpass_query(
    lat: float,
    lng: float,
    radius_m: int,
    tag_keys: Sequence[str] = config.NEARBY_TAG_KEYS,
    element_types: Sequence[str] = config.NEARBY_ELEMENT_TYPES,
    excluded_keys: Sequence[str] = config.NEARBY_EXCLUDED_TAG_KEYS,
) -> str:
    """Builds the Overpass QL query for points of interest around a point.

    This is a pure helper (no IO), designed for unit tests.
    """
    radius = int(radius_m)
    exclusions = "".join(f'[!"{key}"]' for key in excluded_keys)
    parts: List[str] = [f"[out:json][timeout:{config.NEARBY_QUERY_TIMEOUT_SECONDS}];("]
    for el_type in element_types:
        for key in tag_keys:
            parts.append(f'{el_type}(around:{radius},{lat:.6f},{lng:.6f})["{key}"]{exclusions};')
    parts.append(");out center tags;")
    return "".join(parts)


def _humanize(category: str) -> str:
    return category.replace("_", " ").capitalize()


def _element_category(tags: Dict[str, Any]) -> str:
    for key in config.NEARBY_TAG_KEYS:
        value = tags.get(key)
        if value:
            return str(value)
    return "other"


def parse_overpass_response(
    response: Dict[str, Any], blocked_ids: AbstractSet[str] = frozenset()
) -> List[Candidate]:
    elements = response.get("elements") if isinstance(response, dict) else None
    parsed: List[Candidate] = []
    for el in elements or []:
        if not isinstance(el, dict) or el.get("id") is None:
            continue
        external_id = str(el["id"])
        if external_id in blocked_ids:
            logger.debug("Dropping blocklisted feature %s", external_id)
            continue
        tags = el.get("tags") or {}
        if any(key in tags for key in config.NEARBY_EXCLUDED_TAG_KEYS):
            continue
        center = el.get("center") or {}
        lat = to_finite_float(el.get("lat", center.get("lat")))
        lng = to_finite_float(el.get("lon", center.get("lon")))
        if lat is None or lng is None or not is_valid_coordinate(lat, lng):
            continue
        category = _element_category(tags)
        name = (tags.get("name") or "").strip() or f"{_humanize(category)} #{external_id}"
        parsed.append(
            Candidate(
                name=name,
                lat=lat,
                lng=lng,
                source_kind=SourceKind.NEARBY_FEATURE,
                external_id=external_id,
                category=category,
            )
        )
    return parsed


def sort_by_distance(features: List[Candidate], lat: float, lng: float) -> List[Candidate]:
    return sorted(features, key=lambda f: haversine_km(lat, lng, f.lat, f.lng))
