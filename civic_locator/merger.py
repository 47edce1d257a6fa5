"""Combine, deduplicate and rank candidates into suggestion sections."""
from __future__ import annotations

from typing import AbstractSet, Iterable, List, Optional, Sequence, Set, Tuple

from . import config
from .geo import round_coord
from .models import (
    Candidate,
    EmptyState,
    MergeResult,
    RecencyEntry,
    Section,
    UseMapAffordance,
)

DedupKey = Tuple[str, float, float]


def dedup_key(candidate: Candidate, decimals: int = config.DEDUP_DECIMALS) -> DedupKey:
    return (
        candidate.name.strip().lower(),
        round_coord(candidate.lat, decimals),
        round_coord(candidate.lng, decimals),
    )


def is_blocked(candidate: Candidate, blocked_ids: Optional[AbstractSet[str]] = None) -> bool:
    blocked = blocked_ids if blocked_ids is not None else config.BLOCKED_EXTERNAL_IDS
    return candidate.external_id is not None and candidate.external_id in blocked


def filter_blocked(
    candidates: Iterable[Candidate], blocked_ids: Optional[AbstractSet[str]] = None
) -> List[Candidate]:
    return [c for c in candidates if not is_blocked(c, blocked_ids)]


def _take_unique(candidates: Iterable[Candidate], seen: Set[DedupKey]) -> Tuple[Candidate, ...]:
    kept: List[Candidate] = []
    for candidate in candidates:
        key = dedup_key(candidate)
        if key in seen:
            continue
        seen.add(key)
        kept.append(candidate)
    return tuple(kept)


def _payload(sections: Sequence[Section]) -> MergeResult:
    non_empty = tuple(s for s in sections if s.candidates)
    affordance = UseMapAffordance(label=config.USE_MAP_LABEL)
    if not non_empty:
        return MergeResult(
            sections=(),
            affordance=affordance,
            empty_state=EmptyState(hint=config.EMPTY_STATE_HINT),
        )
    return MergeResult(sections=non_empty, affordance=affordance)


def merge(
    nearby_matches: Sequence[Candidate],
    geocoded_matches: Sequence[Candidate],
    blocked_ids: Optional[AbstractSet[str]] = None,
) -> MergeResult:
    """Pure: never mutates its inputs and performs no I/O.

    Nearby matches come first, so they win dedup ties against geocoder hits
    for the same place.
    """
    seen: Set[DedupKey] = set()
    nearby = _take_unique(filter_blocked(nearby_matches, blocked_ids), seen)
    geocoded = _take_unique(filter_blocked(geocoded_matches, blocked_ids), seen)
    return _payload(
        [
            Section(title=config.SECTION_NEARBY, candidates=nearby),
            Section(title=config.SECTION_GEOCODED, candidates=geocoded),
        ]
    )


def recent_result(
    entries: Sequence[RecencyEntry], blocked_ids: Optional[AbstractSet[str]] = None
) -> MergeResult:
    candidates = filter_blocked((e.to_candidate() for e in entries), blocked_ids)
    recent = _take_unique(candidates, set())
    return _payload([Section(title=config.SECTION_RECENT, candidates=recent)])
