"""Query dispatch: debounce, cancellation tokens and the timeout race.

One query is live at a time. Each debounced query gets a fresh token, which
cancels the previous one; whatever a superseded query eventually produces
(data or error) is dropped before it can reach the listener.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Sequence, Set

from . import config
from .errors import (
    GeocodeError,
    NearbyFetchError,
    QueryCancelledError,
    SearchTimeoutError,
)
from .models import Candidate, ErrorNotice, MergeResult
from .merger import merge
from .tokens import SearchToken, TokenSource

logger = logging.getLogger(__name__)


class DispatcherState(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    IN_FLIGHT = "in_flight"
    RENDERING = "rendering"


class SearchListener(Protocol):
    def on_results(self, query: str, payload: MergeResult) -> None: ...

    def on_error(self, query: str, notice: ErrorNotice) -> None: ...

    def on_clear(self) -> None: ...


class Geocoder(Protocol):
    async def search(self, text: str, token: SearchToken) -> List[Candidate]: ...


class LoadedMatcher(Protocol):
    def match_loaded(self, query: str) -> List[Candidate]: ...


async def gather_with_timeout(aws: Sequence[Awaitable[Any]], timeout: float) -> List[Any]:
    """Await all of ``aws`` unless the timer fires first.

    The timer has priority: if it completes in the same round as the last data
    result, the race still counts as timed out. The first branch to raise
    aborts the race with that error.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    timer = asyncio.ensure_future(asyncio.sleep(timeout))
    try:
        pending: Set["asyncio.Future[Any]"] = set(tasks)
        while pending:
            done, _ = await asyncio.wait(pending | {timer}, return_when=asyncio.FIRST_COMPLETED)
            if timer in done:
                raise SearchTimeoutError(timeout)
            for task in done:
                pending.discard(task)
                exc = task.exception()
                if exc is not None:
                    raise exc
        return [task.result() for task in tasks]
    finally:
        timer.cancel()
        for task in tasks:
            if not task.done():
                task.cancel()


def notice_for(exc: BaseException) -> ErrorNotice:
    if isinstance(exc, SearchTimeoutError):
        return ErrorNotice(kind="timeout", message=config.TIMEOUT_MESSAGE, detail=str(exc))
    return ErrorNotice(kind="network", message=config.NETWORK_ERROR_MESSAGE, detail=str(exc))


class QueryDispatcher:
    def __init__(
        self,
        geocoder: Geocoder,
        nearby: LoadedMatcher,
        listener: Optional[SearchListener] = None,
        debounce_seconds: float = config.DEBOUNCE_SECONDS,
        timeout_seconds: float = config.SEARCH_TIMEOUT_SECONDS,
        min_query_length: int = config.MIN_QUERY_LENGTH,
        merge_fn: Callable[[Sequence[Candidate], Sequence[Candidate]], MergeResult] = merge,
    ) -> None:
        self.geocoder = geocoder
        self.nearby = nearby
        self.listener = listener
        self.debounce_seconds = debounce_seconds
        self.timeout_seconds = timeout_seconds
        self.min_query_length = min_query_length
        self.merge_fn = merge_fn
        self.tokens = TokenSource()
        self.state = DispatcherState.IDLE
        self.dispatched = 0
        self._debounce: Optional[asyncio.TimerHandle] = None
        self._tasks: Set["asyncio.Task[Optional[MergeResult]]"] = set()

    def on_input(self, text: str) -> None:
        """Feed the current input value; must be called on the running loop."""
        self._cancel_debounce()
        query = (text or "").strip()
        if len(query) < self.min_query_length:
            self.tokens.invalidate()
            self.state = DispatcherState.IDLE
            if self.listener is not None:
                self.listener.on_clear()
            return
        loop = asyncio.get_running_loop()
        self.state = DispatcherState.DEBOUNCING
        self._debounce = loop.call_later(self.debounce_seconds, self._fire, query)

    def _fire(self, query: str) -> None:
        self._debounce = None
        task = asyncio.ensure_future(self.search_now(query))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_debounce(self) -> None:
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None

    def abort(self) -> None:
        """Drop the pending debounce and the live query, if any."""
        self._cancel_debounce()
        self.tokens.invalidate()
        self.state = DispatcherState.IDLE

    async def _match_nearby(self, query: str) -> List[Candidate]:
        return self.nearby.match_loaded(query)

    async def search_now(self, query: str) -> Optional[MergeResult]:
        """Run one query immediately; returns the rendered payload, or None."""
        token = self.tokens.issue(query)
        self.state = DispatcherState.IN_FLIGHT
        self.dispatched += 1
        logger.debug("Dispatching %r", token)
        try:
            nearby, geocoded = await gather_with_timeout(
                [self._match_nearby(query), self.geocoder.search(query, token)],
                self.timeout_seconds,
            )
        except QueryCancelledError:
            logger.debug("Query %r cancelled", query)
            return None
        except (SearchTimeoutError, GeocodeError, NearbyFetchError) as exc:
            if not self.tokens.is_live(token):
                logger.debug("Dropping error from superseded query %r: %s", query, exc)
                return None
            logger.warning("Search for %r failed: %s", query, exc)
            self.tokens.invalidate()
            self.state = DispatcherState.IDLE
            if self.listener is not None:
                self.listener.on_error(query, notice_for(exc))
            return None

        if not self.tokens.is_live(token):
            logger.debug("Dropping stale results for %r", query)
            return None

        self.state = DispatcherState.RENDERING
        payload = self.merge_fn(nearby, geocoded)
        logger.info(
            "Search %r: %s nearby, %s geocoded, %s shown",
            query,
            len(nearby),
            len(geocoded),
            len(payload.selectable()),
        )
        if self.listener is not None:
            self.listener.on_results(query, payload)
        self.state = DispatcherState.IDLE
        return payload

    @property
    def pending(self) -> bool:
        return self._debounce is not None or bool(self._tasks)

    async def drain(self) -> None:
        """Wait until no debounce timer or query task is outstanding."""
        while self.pending:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(self.debounce_seconds / 4)

    async def aclose(self) -> None:
        self.abort()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
