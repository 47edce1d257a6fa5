"""HTTP client with retry/backoff and request metrics."""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


@dataclass
class RequestMetrics:
    network_nearby: int = 0
    network_geocode: int = 0
    cache_hits_nearby: int = 0

    def inc_network(self, kind: str) -> None:
        if kind == "nearby":
            self.network_nearby += 1
        elif kind == "geocode":
            self.network_geocode += 1
        else:
            raise ValueError(f"Unknown request kind: {kind}")

    def inc_cache_hit(self, kind: str) -> None:
        if kind == "nearby":
            self.cache_hits_nearby += 1
        else:
            raise ValueError(f"Unknown request kind: {kind}")


class HttpClient:
    def __init__(
        self,
        user_agent: str,
        timeout: float = 10,
        retry_max: int = 2,
        backoff_base: float = 0.25,
        backoff_max: float = 2.0,
    ) -> None:
        self.user_agent = user_agent
        self.timeout = timeout
        self.retry_max = max(1, int(retry_max))
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.session = requests.Session()

    def get_json(
        self,
        url: str,
        params: Dict[str, Any],
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return self._request("GET", url, params=params, extra_headers=extra_headers)

    def post_form(
        self,
        url: str,
        data: Dict[str, Any],
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return self._request("POST", url, data=data, extra_headers=extra_headers)

    def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/json",
        }
        if extra_headers:
            headers.update(extra_headers)

        last_attempt = self.retry_max
        for attempt in range(1, last_attempt + 1):
            try:
                resp = self.session.request(
                    method, url, params=params, data=data, headers=headers, timeout=self.timeout
                )
            except requests.RequestException as exc:
                if attempt == last_attempt:
                    raise
                logger.warning("%s %s failed: %s (attempt %s/%s)", method, url, exc, attempt, last_attempt)
                time.sleep(self._backoff_delay(attempt))
                continue

            if resp.status_code == 200:
                try:
                    return resp.json()
                except ValueError:
                    logger.error("%s %s returned a non-JSON body", method, url)
                    raise

            if resp.status_code not in RETRYABLE_STATUSES or attempt == last_attempt:
                logger.error("%s %s answered HTTP %s", method, url, resp.status_code)
                resp.raise_for_status()
                raise requests.HTTPError(f"HTTP {resp.status_code}", response=resp)

            delay = self._retry_after(resp)
            if delay is None:
                delay = self._backoff_delay(attempt)
            logger.warning(
                "%s %s answered HTTP %s, retrying in %.2fs (attempt %s/%s)",
                method,
                url,
                resp.status_code,
                delay,
                attempt,
                last_attempt,
            )
            time.sleep(delay)

        raise RuntimeError("Unexpected HTTP retry loop exit")

    def _backoff_delay(self, attempt: int) -> float:
        # Capped exponential backoff plus up to one base step of jitter.
        step = min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)
        return step + random.uniform(0, self.backoff_base)

    def _retry_after(self, resp: requests.Response) -> Optional[float]:
        """Server-requested delay in seconds (capped), or None when absent or not numeric."""
        raw = resp.headers.get("Retry-After")
        if not raw:
            return None
        try:
            seconds = float(raw)
        except ValueError:
            return None
        return max(0.0, min(seconds, self.backoff_max))


def status_of(exc: BaseException) -> Optional[int]:
    """Upstream HTTP status carried by a requests exception, if any."""
    response = getattr(exc, "response", None)
    if response is None:
        return None
    return getattr(response, "status_code", None)
