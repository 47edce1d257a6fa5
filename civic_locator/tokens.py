"""Cancellation tokens identifying one query generation."""
from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Optional

from .errors import QueryCancelledError

logger = logging.getLogger(__name__)

_token_ids = itertools.count(1)


class SearchToken:
    def __init__(self, query: str = "") -> None:
        self.id = next(_token_ids)
        self.query = query
        self._cancelled = asyncio.Event()

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "live"
        return f"SearchToken(id={self.id}, query={self.query!r}, {state})"

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        if not self._cancelled.is_set():
            logger.debug("Cancelled %r", self)
        self._cancelled.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise QueryCancelledError(f"query {self.query!r} was superseded")

    async def wait_cancelled(self) -> None:
        await self._cancelled.wait()


class TokenSource:
    """Hands out tokens; issuing a new one cancels the previous one."""

    def __init__(self) -> None:
        self._live: Optional[SearchToken] = None

    @property
    def live(self) -> Optional[SearchToken]:
        return self._live

    def issue(self, query: str = "") -> SearchToken:
        if self._live is not None:
            self._live.cancel()
        self._live = SearchToken(query)
        return self._live

    def is_live(self, token: SearchToken) -> bool:
        return token is self._live and not token.cancelled

    def invalidate(self) -> None:
        if self._live is not None:
            self._live.cancel()
        self._live = None
