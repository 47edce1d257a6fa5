"""Shared data shapes: candidates, recency entries and suggestion payloads."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class SourceKind(str, Enum):
    NEARBY_FEATURE = "NearbyFeature"
    GEOCODED = "Geocoded"
    RECENT = "Recent"


@dataclass(frozen=True)
class Candidate:
    name: str
    lat: float
    lng: float
    source_kind: SourceKind
    external_id: Optional[str] = None
    category: Optional[str] = None
    locality: Optional[str] = None

    def __post_init__(self) -> None:
        if not (math.isfinite(self.lat) and math.isfinite(self.lng)):
            raise ValueError(f"Candidate {self.name!r} has non-finite coordinates")

    @property
    def coordinates(self) -> Tuple[float, float]:
        return (self.lat, self.lng)


@dataclass(frozen=True)
class RecencyEntry:
    name: str
    lat: float
    lng: float
    external_id: Optional[str]
    timestamp: str

    @property
    def coordinates(self) -> Tuple[float, float]:
        return (self.lat, self.lng)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "lat": self.lat,
            "lng": self.lng,
            "externalId": self.external_id,
            "timestamp": self.timestamp,
        }

    def to_candidate(self) -> Candidate:
        return Candidate(
            name=self.name,
            lat=self.lat,
            lng=self.lng,
            source_kind=SourceKind.RECENT,
            external_id=self.external_id,
        )


@dataclass(frozen=True)
class Section:
    title: str
    candidates: Tuple[Candidate, ...]


@dataclass(frozen=True)
class UseMapAffordance:
    label: str


@dataclass(frozen=True)
class EmptyState:
    hint: str


@dataclass(frozen=True)
class MergeResult:
    """Ordered suggestion payload handed to the session for rendering."""

    sections: Tuple[Section, ...]
    affordance: UseMapAffordance
    empty_state: Optional[EmptyState] = None

    @property
    def is_empty(self) -> bool:
        return self.empty_state is not None

    def selectable(self) -> List[Candidate]:
        return [c for section in self.sections for c in section.candidates]


@dataclass(frozen=True)
class ErrorNotice:
    """Transient, dismissible status message."""

    kind: str
    message: str
    detail: Optional[str] = field(default=None, compare=False)
