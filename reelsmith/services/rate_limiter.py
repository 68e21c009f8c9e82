"""Sliding-window rate limiter for the voice synthesis API.

Tracks admissions over the last 60 seconds and enforces both a request
budget and a token budget. Instances are created per API account and
injected wherever calls are made.
"""

import asyncio
import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable

from reelsmith.exceptions import RateLimitExceeded

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0
SAFETY_MARGIN_SECONDS = 0.1
CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


@dataclass
class AdmissionRecord:
    timestamp: float
    cost: int


class SlidingWindowRateLimiter:
    def __init__(
        self,
        requests_per_minute: int = 10,
        tokens_per_minute: int = 10000,
        *,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if requests_per_minute < 1 or tokens_per_minute < 1:
            raise ValueError("Rate limits must be positive")
        self.requests_per_minute = requests_per_minute
        self.tokens_per_minute = tokens_per_minute
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._records: deque[AdmissionRecord] = deque()
        self._lock = asyncio.Lock()

    def _prune(self) -> None:
        cutoff = self._clock() - WINDOW_SECONDS
        while self._records and self._records[0].timestamp <= cutoff:
            self._records.popleft()

    def _tokens_in_window(self) -> int:
        return sum(r.cost for r in self._records)

    def can_admit(self, cost: int) -> bool:
        self._prune()
        if not self._records:
            # An empty window always admits, even a single oversized request
            return True
        return (
            len(self._records) < self.requests_per_minute
            and self._tokens_in_window() + cost <= self.tokens_per_minute
        )

    def wait_time(self, cost: int) -> float:
        """Seconds until a request of this cost could be admitted (0 if now)."""
        if self.can_admit(cost):
            return 0.0
        now = self._clock()
        # Expire records oldest-first until the request would fit
        requests = len(self._records)
        tokens = self._tokens_in_window()
        for record in self._records:
            requests -= 1
            tokens -= record.cost
            if requests == 0 or (requests < self.requests_per_minute and tokens + cost <= self.tokens_per_minute):
                return max(0.0, record.timestamp + WINDOW_SECONDS - now) + SAFETY_MARGIN_SECONDS
        return SAFETY_MARGIN_SECONDS

    def record_admission(self, cost: int) -> None:
        self._records.append(AdmissionRecord(timestamp=self._clock(), cost=cost))

    def try_acquire(self, cost: int) -> None:
        """Admit and record immediately, or raise RateLimitExceeded with the wait."""
        if not self.can_admit(cost):
            raise RateLimitExceeded(retry_after=self.wait_time(cost))
        self.record_admission(cost)

    async def wait_and_record(self, cost: int) -> float:
        """Block until the request is admissible, then record it.

        Returns the total seconds spent waiting.
        """
        waited = 0.0
        async with self._lock:
            while True:
                try:
                    self.try_acquire(cost)
                    return waited
                except RateLimitExceeded as e:
                    logger.info(
                        f"[RATE] {self.name}: waiting {e.retry_after:.2f}s "
                        f"({len(self._records)}/{self.requests_per_minute} requests in window)"
                    )
                    await self._sleep(e.retry_after)
                    waited += e.retry_after

    def current_usage(self) -> dict[str, int]:
        self._prune()
        return {
            "requests": len(self._records),
            "tokens": self._tokens_in_window(),
            "requests_remaining": max(0, self.requests_per_minute - len(self._records)),
            "tokens_remaining": max(0, self.tokens_per_minute - self._tokens_in_window()),
        }

    def optimal_batch_size(self, tokens_per_request: int) -> int:
        """How many requests of this size fit in the window right now."""
        usage = self.current_usage()
        by_tokens = usage["tokens_remaining"] // max(1, tokens_per_request)
        return max(0, min(usage["requests_remaining"], by_tokens))

    def estimate_processing_time(self, request_count: int, tokens_per_request: int) -> float:
        """Rough seconds needed to push request_count requests through a fresh window."""
        if request_count <= 0:
            return 0.0
        per_window = min(
            self.requests_per_minute,
            max(1, self.tokens_per_minute // max(1, tokens_per_request)),
        )
        windows = math.ceil(request_count / per_window)
        return (windows - 1) * WINDOW_SECONDS

    def reset(self) -> None:
        self._records.clear()
