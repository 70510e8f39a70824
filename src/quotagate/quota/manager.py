"""
Quota manager: the admission controller behind a rate limiter.

Tracks how many operations are active and when recent operations
started, and decides whether one more may start right now.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Callable

from quotagate.quota.models import Quota

logger = logging.getLogger(__name__)


@dataclass
class QuotaStatus:
    """Point-in-time snapshot of a quota manager."""

    active: int
    """Operations started and not yet ended."""

    concurrency: int | None
    """Configured concurrency limit."""

    window_used: int
    """Admissions inside the current rate window."""

    rate: int | None
    """Configured admissions per window."""

    closed: bool
    """Whether the manager has been closed."""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class QuotaManager:
    """
    Admission controller built from a Quota.

    Enforces the concurrency limit with an active counter and the rate
    limit with a sliding window of admission timestamps. All methods are
    synchronous and must be called from the event loop thread.
    """

    def __init__(
        self,
        quota: Quota,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize quota manager.

        Args:
            quota: Throttling policy to enforce
            clock: Monotonic time source in seconds
        """
        self._quota = quota
        self._clock = clock
        self._active_count = 0
        self._history: deque[float] = deque()
        self._closed = False

    @property
    def quota(self) -> Quota:
        return self._quota

    @property
    def active_count(self) -> int:
        """Number of admitted operations that have not ended yet."""
        return self._active_count

    @property
    def max_delay(self) -> float:
        """Seconds a queued task may wait before timing out (0 = forever)."""
        return self._quota.max_delay

    @property
    def closed(self) -> bool:
        return self._closed

    def _clean_history(self, now: float) -> None:
        """Drop admission timestamps that fell out of the rate window."""
        cutoff = now - self._quota.interval
        while self._history and self._history[0] <= cutoff:
            self._history.popleft()

    def start(self) -> bool:
        """
        Try to admit one operation.

        Returns:
            True if admitted (active count incremented), False otherwise
        """
        if self._closed:
            return False

        concurrency = self._quota.concurrency
        if concurrency is not None and self._active_count >= concurrency:
            return False

        now = self._clock()
        if self._quota.has_rate_limit:
            self._clean_history(now)
            if len(self._history) >= self._quota.rate:
                return False
            self._history.append(now)

        self._active_count += 1
        return True

    def end(self) -> None:
        """Mark one admitted operation as finished."""
        if self._active_count == 0:
            logger.warning("QuotaManager.end() called without a matching start()")
            return
        self._active_count -= 1

    def close(self) -> None:
        """Stop admitting work. Irreversible."""
        if self._closed:
            return
        self._closed = True
        self._history.clear()
        logger.debug("Quota manager closed")

    def time_until_available(self) -> float:
        """
        Seconds until the rate window frees a slot.

        Returns:
            0.0 when the rate limit is not currently the bottleneck
        """
        if not self._quota.has_rate_limit:
            return 0.0

        now = self._clock()
        self._clean_history(now)
        if len(self._history) < self._quota.rate:
            return 0.0
        return max(0.0, self._history[0] + self._quota.interval - now)

    def status(self) -> QuotaStatus:
        """Get a snapshot of the current admission state."""
        if self._quota.has_rate_limit:
            self._clean_history(self._clock())

        return QuotaStatus(
            active=self._active_count,
            concurrency=self._quota.concurrency,
            window_used=len(self._history),
            rate=self._quota.rate,
            closed=self._closed,
        )
