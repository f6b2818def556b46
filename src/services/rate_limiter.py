"""
In-memory sliding window rate limiter.

Request timestamps are kept per client identifier for the lifetime of the
Lambda execution environment. The store is lost on cold start and is not
shared between concurrent environments, so the limit is only exact within a
single warm container.
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from domain.models import RateLimitDecision

logger = logging.getLogger(__name__)

MAX_REQUESTS_PER_WINDOW = 5
RATE_LIMIT_WINDOW_MS = 60 * 60 * 1000

UNKNOWN_CLIENT = 'unknown'


def _now_ms() -> int:
    return int(time.time() * 1000)


class SlidingWindowRateLimiter:
    """
    Admits at most ``max_requests`` per client identifier within the last
    ``window_ms`` milliseconds.

    An admitted request is recorded immediately and is never refunded, even
    if a later stage of the pipeline fails.
    """

    def __init__(
        self,
        max_requests: int = MAX_REQUESTS_PER_WINDOW,
        window_ms: int = RATE_LIMIT_WINDOW_MS,
        clock: Optional[Callable[[], int]] = None
    ):
        self.max_requests = max_requests
        self.window_ms = window_ms
        self._clock = clock or _now_ms
        self._store: Dict[str, List[int]] = {}
        self._lock = threading.Lock()

    def check(self, client_id: str) -> RateLimitDecision:
        """
        Check and record a request for ``client_id``.

        Args:
            client_id: Partition key, typically the client IP or "unknown"

        Returns:
            RateLimitDecision: allowed/remaining/reset_time (epoch ms)
        """
        with self._lock:
            now = self._clock()
            recent = [
                ts for ts in self._store.get(client_id, [])
                if now - ts < self.window_ms
            ]

            if len(recent) >= self.max_requests:
                self._store[client_id] = recent
                decision = RateLimitDecision(
                    allowed=False,
                    remaining=0,
                    reset_time=recent[0] + self.window_ms
                )
                logger.warning(
                    f"Rate limit exceeded for {client_id}: "
                    f"{len(recent)}/{self.max_requests}, resets at {decision.reset_time_iso}"
                )
                return decision

            recent.append(now)
            self._store[client_id] = recent

        return RateLimitDecision(
            allowed=True,
            remaining=self.max_requests - len(recent),
            reset_time=now + self.window_ms
        )

    def recorded(self, client_id: str) -> List[int]:
        """Timestamps currently stored for ``client_id`` (copy)."""
        with self._lock:
            return list(self._store.get(client_id, []))

    def reset(self) -> None:
        """Forget all recorded requests."""
        with self._lock:
            self._store.clear()
        logger.info("Rate limit store cleared")
