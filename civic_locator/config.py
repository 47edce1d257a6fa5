"""Project configuration.

Loads service-area overrides from locator_config.json when available,
falling back to sensible defaults. Keep API request shapes centralized here.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional, Tuple

_REPO_ROOT = Path(__file__).resolve().parent.parent

# --- API endpoints ---

NOMINATIM_SEARCH_URL = os.getenv("NOMINATIM_URL", "https://nominatim.openstreetmap.org/search")
OVERPASS_INTERPRETER_URL = os.getenv("OVERPASS_URL", "https://overpass-api.de/api/interpreter")

NOMINATIM_FALLBACK_USER_AGENT = "civic-locator/0.1 (Bengaluru civic issues hub)"

# --- Service area (Bengaluru) ---

SERVICE_AREA_NAME = "Bengaluru"
# Nominatim viewbox order: west, north, east, south
SERVICE_AREA_VIEWBOX: Tuple[float, float, float, float] = (77.4602, 13.1439, 77.7845, 12.8349)
SERVICE_AREA_COUNTRY = "in"
DEFAULT_CENTER: Tuple[float, float] = (12.9716, 77.5946)
DEFAULT_ZOOM = 13

# --- Geocoder ---

GEOCODE_RESULT_LIMIT = 10

# --- Nearby features (Overpass) ---

NEARBY_TAG_KEYS: Tuple[str, ...] = (
    "amenity",
    "shop",
    "tourism",
    "leisure",
    "healthcare",
    "office",
    "emergency",
    "public_transport",
)
NEARBY_ELEMENT_TYPES: Tuple[str, ...] = ("node", "way", "relation")
NEARBY_EXCLUDED_TAG_KEYS: Tuple[str, ...] = ("highway", "building")
NEARBY_QUERY_TIMEOUT_SECONDS = 25
NEARBY_DEFAULT_RADIUS_M = 500
NEARBY_DEFAULT_LIMIT = 20

NEARBY_CACHE_TTL_SECONDS = 5 * 60
NEARBY_CACHE_MAX_ENTRIES = 20
NEARBY_CACHE_DECIMALS = 4

# Upstream data artifacts, never surfaced.
BLOCKED_EXTERNAL_IDS: FrozenSet[str] = frozenset({"459471357"})

# --- Merge / presentation ---

DEDUP_DECIMALS = 3
SECTION_NEARBY = "Nearby Features"
SECTION_GEOCODED = f"{SERVICE_AREA_NAME} Locations"
SECTION_RECENT = "Recent Locations"
USE_MAP_LABEL = "Can't find it? Use the map to pin the location"
EMPTY_STATE_HINT = "No matching places found. Try another name or pin the spot on the map."

# --- Query dispatch ---

MIN_QUERY_LENGTH = 3
DEBOUNCE_SECONDS = 0.3
SEARCH_TIMEOUT_SECONDS = 5.0

TIMEOUT_MESSAGE = "Search timed out. Please try again."
NETWORK_ERROR_MESSAGE = "Search failed. Check your connection and try again."
NEARBY_ERROR_MESSAGE = "Could not load nearby places. Check your connection."

# --- Selection ---

COMMIT_ZOOM = 15
COORDINATE_INPUT_DECIMALS = 4

# --- Recency ---

RECENCY_STORAGE_KEY = "civic_locator.recent_locations"
RECENCY_MAX_ENTRIES = 5

# --- HTTP ---

HTTP_TIMEOUT_SECONDS = 10
HTTP_RETRY_MAX = 2
HTTP_BACKOFF_BASE = 0.25
HTTP_BACKOFF_MAX = 2.0

# --- Local state ---

STATE_PATH = "locator_state.json"


def _as_viewbox(raw: Any) -> Tuple[float, float, float, float]:
    if isinstance(raw, dict):
        values = (raw["west"], raw["north"], raw["east"], raw["south"])
    else:
        values = tuple(raw)
    if len(values) != 4:
        raise ValueError("viewbox must have exactly four values")
    return tuple(float(v) for v in values)  # type: ignore[return-value]


def load_locator_config(path: Optional[str] = None) -> bool:
    """Load service-area configuration from a JSON file.

    Updates module-level globals with values from the config file.
    Returns True if config was loaded, False if file not found.
    """
    if path is None:
        path = str(_REPO_ROOT / "locator_config.json")

    config_path = Path(path)
    if not config_path.exists():
        return False

    with open(config_path, "r", encoding="utf-8") as f:
        data: Dict[str, Any] = json.load(f)

    globals_ref = globals()

    area = data.get("service_area", {})
    if area.get("name"):
        globals_ref["SERVICE_AREA_NAME"] = str(area["name"])
        globals_ref["SECTION_GEOCODED"] = f"{area['name']} Locations"
    if area.get("viewbox") is not None:
        globals_ref["SERVICE_AREA_VIEWBOX"] = _as_viewbox(area["viewbox"])
    if area.get("country"):
        globals_ref["SERVICE_AREA_COUNTRY"] = str(area["country"]).lower()
    center = area.get("center")
    if center and center.get("lat") is not None and center.get("lng") is not None:
        globals_ref["DEFAULT_CENTER"] = (float(center["lat"]), float(center["lng"]))

    nearby = data.get("nearby", {})
    if nearby.get("radius_m") is not None:
        globals_ref["NEARBY_DEFAULT_RADIUS_M"] = int(nearby["radius_m"])
    if nearby.get("limit") is not None:
        globals_ref["NEARBY_DEFAULT_LIMIT"] = int(nearby["limit"])

    blocked = data.get("blocked_ids")
    if blocked:
        globals_ref["BLOCKED_EXTERNAL_IDS"] = frozenset(
            BLOCKED_EXTERNAL_IDS | {str(b) for b in blocked}
        )

    return True
