"""Map display surface contract and an in-memory implementation."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Tuple

from . import config

logger = logging.getLogger(__name__)


class MapSurface(Protocol):
    def set_marker(self, lat: float, lng: float) -> None: ...

    def set_view(self, lat: float, lng: float, zoom: int) -> None: ...

    def add_highlight(self, lat: float, lng: float) -> None: ...

    def remove_highlight(self) -> None: ...


@dataclass
class RecordingMapSurface:
    """Keeps marker/view state and a call log; used by the CLI and tests."""

    marker: Tuple[float, float] = field(default_factory=lambda: config.DEFAULT_CENTER)
    center: Tuple[float, float] = field(default_factory=lambda: config.DEFAULT_CENTER)
    zoom: int = field(default_factory=lambda: config.DEFAULT_ZOOM)
    highlight: Optional[Tuple[float, float]] = None
    calls: List[Tuple[str, tuple]] = field(default_factory=list)

    def set_marker(self, lat: float, lng: float) -> None:
        self.calls.append(("set_marker", (lat, lng)))
        self.marker = (lat, lng)
        logger.debug("Marker moved to %.5f,%.5f", lat, lng)

    def set_view(self, lat: float, lng: float, zoom: int) -> None:
        self.calls.append(("set_view", (lat, lng, zoom)))
        self.center = (lat, lng)
        self.zoom = zoom

    def add_highlight(self, lat: float, lng: float) -> None:
        self.calls.append(("add_highlight", (lat, lng)))
        self.highlight = (lat, lng)

    def remove_highlight(self) -> None:
        self.calls.append(("remove_highlight", ()))
        self.highlight = None
