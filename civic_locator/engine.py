"""Wiring: build a ready-to-use suggestion session from configuration."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from . import config
from .cache import NearbyCache
from .dispatcher import QueryDispatcher
from .geocoding import GeocodingClient, nominatim_user_agent
from .http import HttpClient, RequestMetrics
from .map_surface import MapSurface, RecordingMapSurface
from .nearby_index import NearbyFeatureIndex
from .recency import RecencyStore
from .session import SuggestionSession
from .storage import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore


@dataclass
class LocatorEngine:
    session: SuggestionSession
    dispatcher: QueryDispatcher
    geocoder: GeocodingClient
    nearby_index: NearbyFeatureIndex
    recency: RecencyStore
    map_surface: MapSurface
    metrics: RequestMetrics


def build_engine(
    state_path: Optional[str] = config.STATE_PATH,
    map_surface: Optional[MapSurface] = None,
    store: Optional[KeyValueStore] = None,
    http_client: Optional[HttpClient] = None,
    metrics: Optional[RequestMetrics] = None,
) -> LocatorEngine:
    if metrics is None:
        metrics = RequestMetrics()
    if http_client is None:
        http_client = HttpClient(
            user_agent=nominatim_user_agent(),
            timeout=config.HTTP_TIMEOUT_SECONDS,
            retry_max=config.HTTP_RETRY_MAX,
            backoff_base=config.HTTP_BACKOFF_BASE,
            backoff_max=config.HTTP_BACKOFF_MAX,
        )
    if store is None:
        store = JsonFileKeyValueStore(state_path) if state_path else MemoryKeyValueStore()
    if map_surface is None:
        map_surface = RecordingMapSurface()

    geocoder = GeocodingClient(http_client, metrics=metrics)
    nearby_index = NearbyFeatureIndex(
        http_client,
        cache=NearbyCache(
            ttl_seconds=config.NEARBY_CACHE_TTL_SECONDS,
            max_entries=config.NEARBY_CACHE_MAX_ENTRIES,
        ),
        metrics=metrics,
    )
    recency = RecencyStore(store)
    dispatcher = QueryDispatcher(geocoder, nearby_index)
    session = SuggestionSession(
        map_surface,
        recency,
        nearby_index,
        dispatcher,
        nearby_radius=config.NEARBY_DEFAULT_RADIUS_M,
        nearby_limit=config.NEARBY_DEFAULT_LIMIT,
        commit_zoom=config.COMMIT_ZOOM,
    )
    return LocatorEngine(
        session=session,
        dispatcher=dispatcher,
        geocoder=geocoder,
        nearby_index=nearby_index,
        recency=recency,
        map_surface=map_surface,
        metrics=metrics,
    )
