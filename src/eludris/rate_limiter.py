"""Per-route rate limit buckets for the REST client.

Bucket state comes from the server: every response may carry four
``X-RateLimit-*`` headers describing the quota of the route it was counted
against. The store only caches that state and answers "how long until this
route may go"; sleeping is the caller's job.

A missing bucket means "unconstrained". A bucket whose wait has been
honoured is discarded rather than reset, so the route stays unconstrained
until the next response refreshes it.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

logger = logging.getLogger("eludris.rate_limiter")

REQUEST_COUNT_HEADER = "X-RateLimit-Request-Count"
MAX_REQUESTS_HEADER = "X-RateLimit-Max"
LAST_RESET_HEADER = "X-RateLimit-Last-Reset"
RESET_AFTER_HEADER = "X-RateLimit-Reset"


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class RateLimitBucket:
    """Known quota for one route. ``reset_at`` is epoch milliseconds."""
    route: str
    remaining: int
    reset_at: int


class RateLimitStore:
    """Cache of RateLimitBucket by route id. No I/O, no locking.

    Owned by a single RESTClient. Under asyncio two overlapping calls to the
    same route can both read a bucket before either response refreshes it;
    the server stays authoritative and answers 429, which the client absorbs.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        """
        Args:
            clock: Returns the current time in epoch milliseconds.
        """
        self._clock = clock or _now_ms
        self._buckets: Dict[str, RateLimitBucket] = {}

    def get(self, route: str) -> Optional[RateLimitBucket]:
        return self._buckets.get(route)

    def is_exhausted(self, route: str) -> bool:
        bucket = self._buckets.get(route)
        return bucket is not None and bucket.remaining == 0

    def delay_for(self, route: str) -> float:
        """Seconds to wait before ``route`` may be called. 0 means go now."""
        bucket = self._buckets.get(route)
        if bucket is None or bucket.remaining > 0:
            return 0.0

        wait_ms = bucket.reset_at - self._clock()
        return wait_ms / 1000 if wait_ms > 0 else 0.0

    def discard(self, route: str) -> None:
        self._buckets.pop(route, None)

    def update(self, route: str, headers: Mapping[str, str]) -> Optional[RateLimitBucket]:
        """Refresh ``route`` from response headers.

        All four headers must be present and integral, otherwise the store
        is left untouched and None is returned.

        Args:
            route: Route id the response was counted against.
            headers: Response headers. httpx.Headers is case-insensitive;
                plain dicts must use the canonical header names.
        """
        values = []
        for name in (REQUEST_COUNT_HEADER, MAX_REQUESTS_HEADER, LAST_RESET_HEADER, RESET_AFTER_HEADER):
            raw = headers.get(name)
            if not raw:
                return None
            try:
                values.append(int(raw))
            except ValueError:
                logger.debug(f"Ignoring non-integer {name} header for {route}: {raw!r}")
                return None

        request_count, max_requests, last_reset, reset_after = values
        bucket = RateLimitBucket(
            route=route,
            remaining=max(max_requests - request_count, 0),
            reset_at=last_reset + reset_after,
        )
        self._buckets[route] = bucket
        return bucket

    def clear(self) -> None:
        self._buckets.clear()

    def __contains__(self, route: str) -> bool:
        return route in self._buckets

    def __len__(self) -> int:
        return len(self._buckets)
