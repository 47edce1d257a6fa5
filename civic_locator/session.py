"""Suggestion panel state machine: navigation, selection and commit."""
from __future__ import annotations

import logging
from enum import Enum
from typing import AbstractSet, List, Optional

from . import config
from .dispatcher import QueryDispatcher
from .errors import NearbyFetchError
from .geo import format_coordinate_pair, parse_coordinate_pair, wrap_longitude
from .map_surface import MapSurface
from .merger import is_blocked, recent_result
from .models import Candidate, ErrorNotice, MergeResult
from .nearby_index import NearbyFeatureIndex
from .recency import RecencyStore

logger = logging.getLogger(__name__)

ARROW_DOWN = "ArrowDown"
ARROW_UP = "ArrowUp"
ENTER = "Enter"
ESCAPE = "Escape"


class SessionState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"


class SuggestionSession:
    def __init__(
        self,
        map_surface: MapSurface,
        recency: RecencyStore,
        nearby_index: NearbyFeatureIndex,
        dispatcher: QueryDispatcher,
        blocked_ids: Optional[AbstractSet[str]] = None,
        nearby_radius: Optional[int] = None,
        nearby_limit: Optional[int] = None,
        commit_zoom: Optional[int] = None,
    ) -> None:
        self.map = map_surface
        self.recency = recency
        self.nearby_index = nearby_index
        self.dispatcher = dispatcher
        self.dispatcher.listener = self
        self.blocked_ids = blocked_ids
        # Resolved here, not at import, so config file overrides apply.
        self.nearby_radius = nearby_radius if nearby_radius is not None else config.NEARBY_DEFAULT_RADIUS_M
        self.nearby_limit = nearby_limit if nearby_limit is not None else config.NEARBY_DEFAULT_LIMIT
        self.commit_zoom = commit_zoom if commit_zoom is not None else config.COMMIT_ZOOM

        self.text = ""
        self.state = SessionState.CLOSED
        self.payload: Optional[MergeResult] = None
        self.selected_index = -1
        self.status: Optional[ErrorNotice] = None
        self.nearby_features: List[Candidate] = []
        self.committed: Optional[Candidate] = None
        self._nearby_seq = 0

    # --- listener hooks (called by the dispatcher) ---

    def on_results(self, query: str, payload: MergeResult) -> None:
        self._open(payload)

    def on_error(self, query: str, notice: ErrorNotice) -> None:
        self.status = notice
        self.close()

    def on_clear(self) -> None:
        self.close()

    # --- panel state ---

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN

    def selectable(self) -> List[Candidate]:
        if self.payload is None:
            return []
        return self.payload.selectable()

    @property
    def selected(self) -> Optional[Candidate]:
        items = self.selectable()
        if 0 <= self.selected_index < len(items):
            return items[self.selected_index]
        return None

    def _open(self, payload: MergeResult) -> None:
        self.payload = payload
        self.selected_index = -1
        self.state = SessionState.OPEN
        self.map.remove_highlight()

    def close(self) -> None:
        if self.state is SessionState.OPEN:
            self.map.remove_highlight()
        self.state = SessionState.CLOSED
        self.selected_index = -1

    def dismiss_status(self) -> None:
        self.status = None

    # --- user input ---

    def focus(self) -> None:
        """Show recent picks when the field is focused while empty."""
        if self.text.strip():
            return
        entries = self.recency.list()
        if entries:
            payload = recent_result(entries, self.blocked_ids)
            if not payload.is_empty:
                self._open(payload)

    async def type_text(self, text: str) -> None:
        self.text = text
        self.status = None
        coords = parse_coordinate_pair(text)
        if coords is not None:
            self.dispatcher.abort()
            self.close()
            lat, lng = coords
            self.map.set_marker(lat, lng)
            self.map.set_view(lat, lng, self.commit_zoom)
            await self.refresh_nearby(lat, lng)
            return
        self.dispatcher.on_input(text)

    def move(self, delta: int) -> None:
        items = self.selectable()
        if not self.is_open or not items:
            return
        if self.selected_index < 0:
            self.selected_index = 0 if delta > 0 else len(items) - 1
        else:
            self.selected_index = (self.selected_index + delta) % len(items)
        current = items[self.selected_index]
        self.map.remove_highlight()
        self.map.add_highlight(current.lat, current.lng)

    async def press(self, key: str) -> bool:
        """Handle a navigation key; returns True when the key was consumed."""
        if not self.is_open:
            return False
        if key == ARROW_DOWN:
            self.move(1)
            return True
        if key == ARROW_UP:
            self.move(-1)
            return True
        if key == ESCAPE:
            self.close()
            return True
        if key == ENTER:
            items = self.selectable()
            if self.selected is not None:
                await self.commit(self.selected)
            elif items:
                await self.commit(items[0])
            else:
                await self.dispatcher.search_now(self.text)
            return True
        return False

    def click_outside(self) -> None:
        self.close()

    async def click_item(self, index: int) -> bool:
        items = self.selectable()
        if not self.is_open or not 0 <= index < len(items):
            return False
        return await self.commit(items[index])

    def click_use_map(self) -> None:
        """The trailing affordance: leave the panel and pin the spot by hand."""
        self.dispatcher.abort()
        self.close()

    # --- commit and map events ---

    async def commit(self, candidate: Candidate) -> bool:
        if is_blocked(candidate, self.blocked_ids):
            logger.info("Ignoring commit of blocklisted place %s", candidate.external_id)
            return False
        self.dispatcher.abort()
        self.map.set_marker(candidate.lat, candidate.lng)
        self.map.set_view(candidate.lat, candidate.lng, self.commit_zoom)
        self.recency.record_candidate(candidate)
        self.committed = candidate
        self.text = candidate.name
        self.close()
        logger.info("Selected %s (%.5f, %.5f)", candidate.name, candidate.lat, candidate.lng)
        await self.refresh_nearby(candidate.lat, candidate.lng)
        return True

    async def pick_on_map(self, lat: float, lng: float) -> None:
        """Map click or marker drag: the point itself becomes the location."""
        lng = wrap_longitude(lng)
        self.dispatcher.abort()
        self.close()
        self.map.set_marker(lat, lng)
        self.text = format_coordinate_pair(lat, lng, config.COORDINATE_INPUT_DECIMALS)
        self.committed = None
        await self.refresh_nearby(lat, lng)

    async def refresh_nearby(self, lat: float, lng: float) -> List[Candidate]:
        self._nearby_seq += 1
        seq = self._nearby_seq
        try:
            features = await self.nearby_index.fetch(
                lat, lng, radius=self.nearby_radius, limit=self.nearby_limit
            )
        except NearbyFetchError as exc:
            if seq == self._nearby_seq:
                logger.warning("Nearby refresh failed: %s", exc)
                self.status = ErrorNotice(
                    kind="network", message=config.NEARBY_ERROR_MESSAGE, detail=str(exc)
                )
            return []
        if seq == self._nearby_seq:
            self.nearby_features = features
        return features
