"""
quotagate: in-process admission control for asyncio.

Throttles asynchronous work to a concurrency and rate quota, queueing
what cannot start yet and shedding tasks that wait too long.
"""

from quotagate.errors import AlreadyClosedError, QuotaGateError, RateLimitTimeoutError
from quotagate.limiter import LimiterStats, RateLimiter, TaskState, create_limiter
from quotagate.quota import Quota, QuotaManager, QuotaStatus

__version__ = "0.1.0"
__all__ = [
    "AlreadyClosedError",
    "LimiterStats",
    "Quota",
    "QuotaGateError",
    "QuotaManager",
    "QuotaStatus",
    "RateLimitTimeoutError",
    "RateLimiter",
    "TaskState",
    "create_limiter",
]
