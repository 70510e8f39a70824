"""
Quota policy definitions.

A Quota is an immutable description of how much work may run:
concurrently, and within a sliding time window.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from quotagate.config import Settings


@dataclass(frozen=True)
class Quota:
    """
    Throttling policy for a rate limiter.

    Leave a limit as None to disable it. Durations are in seconds.
    """

    concurrency: int | None = None
    """Maximum number of operations running at once."""

    rate: int | None = None
    """Maximum number of operations started per interval."""

    interval: float | None = None
    """Length of the sliding rate window in seconds."""

    max_delay: float = 0.0
    """Seconds a task may wait in the queue before timing out (0 = forever)."""

    def __post_init__(self) -> None:
        if self.concurrency is not None and self.concurrency < 1:
            raise ValueError(f"concurrency must be positive, got {self.concurrency}")
        if (self.rate is None) != (self.interval is None):
            raise ValueError("rate and interval must be specified together")
        if self.rate is not None and self.rate < 1:
            raise ValueError(f"rate must be positive, got {self.rate}")
        if self.interval is not None and self.interval <= 0:
            raise ValueError(f"interval must be positive, got {self.interval}")
        if self.max_delay < 0:
            raise ValueError(f"max_delay cannot be negative, got {self.max_delay}")

    @property
    def has_rate_limit(self) -> bool:
        """Whether admissions are bounded by a time window."""
        return self.rate is not None and self.interval is not None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Quota:
        return cls(
            concurrency=data.get("concurrency"),
            rate=data.get("rate"),
            interval=data.get("interval"),
            max_delay=data.get("max_delay", 0.0),
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> Quota:
        """Build the default quota from configuration."""
        if settings is None:
            from quotagate.config import get_settings

            settings = get_settings()

        return cls(
            concurrency=settings.default_concurrency,
            rate=settings.default_rate,
            interval=settings.default_interval,
            max_delay=settings.default_max_delay,
        )
