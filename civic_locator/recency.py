"""Bounded, persisted list of previously chosen locations."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from . import config
from .geo import is_valid_coordinate, to_finite_float
from .models import Candidate, RecencyEntry
from .storage import KeyValueStore

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _entry_from_raw(raw: Any) -> Optional[RecencyEntry]:
    if not isinstance(raw, dict):
        return None
    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        return None
    lat = to_finite_float(raw.get("lat"))
    lng = to_finite_float(raw.get("lng"))
    if lat is None or lng is None or not is_valid_coordinate(lat, lng):
        return None
    external_id = raw.get("externalId")
    return RecencyEntry(
        name=name,
        lat=lat,
        lng=lng,
        external_id=str(external_id) if external_id is not None else None,
        timestamp=str(raw.get("timestamp") or ""),
    )


class RecencyStore:
    def __init__(
        self,
        store: KeyValueStore,
        key: str = config.RECENCY_STORAGE_KEY,
        max_entries: int = config.RECENCY_MAX_ENTRIES,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self.store = store
        self.key = key
        self.max_entries = max(1, int(max_entries))
        self.clock = clock

    def list(self) -> List[RecencyEntry]:
        """Entries most-recent-first; unreadable data degrades to an empty list."""
        try:
            raw = self.store.get(self.key)
        except Exception as exc:
            logger.warning("Recent locations unavailable: %s", exc)
            return []
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Discarding malformed recent locations under %s", self.key)
            return []
        if not isinstance(data, list):
            logger.warning("Discarding non-list recent locations under %s", self.key)
            return []
        entries: List[RecencyEntry] = []
        seen = set()
        for item in data:
            entry = _entry_from_raw(item)
            # List is newest-first, so the first copy of a name wins.
            if entry is None or entry.name in seen:
                continue
            seen.add(entry.name)
            entries.append(entry)
        return entries[: self.max_entries]

    def record(self, entry: RecencyEntry) -> List[RecencyEntry]:
        entries = [e for e in self.list() if e.name != entry.name]
        entries.insert(0, entry)
        entries = entries[: self.max_entries]
        self._write(entries)
        return entries

    def record_candidate(self, candidate: Candidate) -> List[RecencyEntry]:
        return self.record(
            RecencyEntry(
                name=candidate.name,
                lat=candidate.lat,
                lng=candidate.lng,
                external_id=candidate.external_id,
                timestamp=self.clock(),
            )
        )

    def as_candidates(self) -> List[Candidate]:
        return [e.to_candidate() for e in self.list()]

    def clear(self) -> None:
        try:
            self.store.remove(self.key)
        except Exception as exc:
            logger.warning("Could not clear recent locations: %s", exc)

    def _write(self, entries: List[RecencyEntry]) -> None:
        payload = json.dumps([e.to_dict() for e in entries], ensure_ascii=False)
        try:
            self.store.set(self.key, payload)
        except Exception as exc:
            logger.warning("Could not persist recent locations: %s", exc)
