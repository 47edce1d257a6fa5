"""Geospatial helpers."""
from __future__ import annotations

import math
import re
from typing import Any, Optional, Tuple

_COORD_PAIR_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)\s*$")


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    r = 6371.0
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return r * c


def to_finite_float(value: Any) -> Optional[float]:
    """Coerce API coordinate values (often strings) to a finite float, else None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    return out if math.isfinite(out) else None


def is_valid_coordinate(lat: float, lng: float) -> bool:
    return (
        math.isfinite(lat)
        and math.isfinite(lng)
        and -90.0 <= lat <= 90.0
        and -180.0 <= lng <= 180.0
    )


def round_coord(value: float, decimals: int) -> float:
    return round(value, decimals)


def parse_coordinate_pair(text: str) -> Optional[Tuple[float, float]]:
    """Parse "lat, lng" as typed into the location field."""
    match = _COORD_PAIR_RE.match(text or "")
    if not match:
        return None
    lat = float(match.group(1))
    lng = float(match.group(2))
    if not is_valid_coordinate(lat, lng):
        return None
    return lat, lng


def format_coordinate_pair(lat: float, lng: float, decimals: int = 4) -> str:
    return f"{lat:.{decimals}f}, {lng:.{decimals}f}"


def wrap_longitude(lng: float) -> float:
    """Bring a longitude from a wrapped world copy back into [-180, 180)."""
    if -180.0 <= lng < 180.0:
        return lng
    return ((lng + 180.0) % 360.0) - 180.0
