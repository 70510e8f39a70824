"""
Rate limiter: queues task factories and admits them as the quota allows.

A limiter owns one QuotaManager, a FIFO of pending tasks and at most one
fallback poll timer. Everything runs on a single event loop, so no locks
are involved; ordering between the drain loop, timer callbacks and task
completions is what matters.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from quotagate.config import get_settings
from quotagate.errors import AlreadyClosedError, RateLimitTimeoutError
from quotagate.quota.manager import QuotaManager
from quotagate.quota.models import Quota

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TaskState(str, Enum):
    """Lifecycle of a submitted task."""

    QUEUED = "queued"
    RUNNING = "running"
    SETTLED = "settled"
    ABANDONED = "abandoned"  # Timed out, cancelled or rejected while queued


@dataclass(eq=False)
class _PendingTask:
    """A queued task factory and the future handed back to the caller."""

    factory: Callable[[], Awaitable[Any]]
    future: asyncio.Future
    deadline: asyncio.TimerHandle | None = None
    state: TaskState = TaskState.QUEUED
    task: asyncio.Future | None = field(default=None, repr=False)

    def cancel_deadline(self) -> None:
        if self.deadline is not None:
            self.deadline.cancel()
            self.deadline = None


@dataclass
class LimiterStats:
    """Snapshot of a limiter's queue and admission state."""

    queued: int
    active: int
    closed: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class RateLimiter:
    """
    Admission-control gate for asynchronous work.

    Submitted task factories are queued and started in FIFO order whenever
    the quota manager admits one more operation. If the quota defines a
    max_delay, tasks still queued after that many seconds fail with
    RateLimitTimeoutError without their factory ever being called.

    Example:
        limiter = create_limiter(Quota(concurrency=2, rate=10, interval=1.0))
        result = await limiter.submit(lambda: client.get(url))
        await limiter.cleanup()
    """

    def __init__(
        self,
        manager: QuotaManager,
        poll_interval: float | None = None,
    ) -> None:
        """
        Initialize rate limiter.

        Args:
            manager: Admission controller (owned by this limiter)
            poll_interval: Seconds between admission re-checks while the
                queue is blocked and nothing is running
        """
        self._manager = manager
        self._poll_interval = (
            poll_interval if poll_interval is not None else get_settings().poll_interval
        )
        self._queue: deque[_PendingTask] = deque()
        self._poll_handle: asyncio.TimerHandle | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closed = False
        self._draining = False
        self._rerun = False

    @property
    def manager(self) -> QuotaManager:
        return self._manager

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, task_factory: Callable[[], Awaitable[T]]) -> asyncio.Future[T]:
        """
        Run a task under the limiter.

        The task is enqueued immediately; await the returned future for its
        outcome. Must be called from within a running event loop.

        Args:
            task_factory: Zero-argument callable returning an awaitable

        Returns:
            Future settled with the task's result or exception, or failed with
            AlreadyClosedError / RateLimitTimeoutError by the limiter
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()

        if self._closed:
            future.set_exception(
                AlreadyClosedError("Limiter has been closed and cannot be used")
            )
            return future

        self._loop = loop
        entry = _PendingTask(factory=task_factory, future=future)

        max_delay = self._manager.max_delay
        if max_delay:
            entry.deadline = loop.call_later(max_delay, self._expire, entry)

        future.add_done_callback(functools.partial(self._on_caller_done, entry))

        self._queue.append(entry)
        self._next()
        return future

    __call__ = submit

    def wrap(
        self, func: Callable[..., Awaitable[T]]
    ) -> Callable[..., Awaitable[T]]:
        """
        Decorate a coroutine function so every call goes through the limiter.

        Args:
            func: Coroutine function to throttle

        Returns:
            Coroutine function with the same signature
        """

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await self.submit(lambda: func(*args, **kwargs))

        return wrapper

    async def cleanup(self) -> None:
        """
        Close the limiter and its quota manager.

        Safe to call more than once. Tasks still waiting in the queue fail
        with AlreadyClosedError; tasks already running finish normally.
        """
        if self._closed:
            return

        self._closed = True
        self._manager.close()

        if self._poll_handle is not None:
            self._poll_handle.cancel()
            self._poll_handle = None

        rejected = 0
        while self._queue:
            entry = self._queue.popleft()
            entry.cancel_deadline()
            if entry.state is TaskState.QUEUED:
                entry.state = TaskState.ABANDONED
            if not entry.future.done():
                entry.future.set_exception(
                    AlreadyClosedError("Limiter was closed before the task started")
                )
                rejected += 1

        logger.info(f"Rate limiter closed ({rejected} queued tasks rejected)")

    def stats(self) -> LimiterStats:
        """Get queue and admission counts."""
        queued = sum(1 for entry in self._queue if entry.state is TaskState.QUEUED)
        return LimiterStats(
            queued=queued,
            active=self._manager.active_count,
            closed=self._closed,
        )

    async def __aenter__(self) -> RateLimiter:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.cleanup()

    # --- Scheduling loop ---

    def _next(self) -> None:
        """Admit as much queued work as the quota allows."""
        if self._draining:
            # Re-entered from a settlement inside the drain; let the outer
            # pass loop again instead of recursing.
            self._rerun = True
            return

        self._draining = True
        try:
            while True:
                self._rerun = False
                self._drain()
                if not self._rerun:
                    break
        finally:
            self._draining = False

        self._arm_poll()

    def _drain(self) -> None:
        while not self._closed and self._has_live_head():
            if not self._manager.start():
                break
            entry = self._queue.popleft()
            self._run(entry)

    def _has_live_head(self) -> bool:
        """Discard abandoned entries at the head; True if one is left."""
        queue = self._queue
        while queue and (
            queue[0].state is not TaskState.QUEUED or queue[0].future.done()
        ):
            entry = queue.popleft()
            entry.cancel_deadline()
            entry.state = TaskState.ABANDONED
        return bool(queue)

    def _arm_poll(self) -> None:
        """
        Schedule a re-check when the queue is blocked and nothing is active.

        Time-window quotas regain capacity by time passing alone; with no
        running task there is no completion to trigger the next drain.
        """
        if self._closed or self._poll_handle is not None:
            return
        if self._manager.active_count or not self._has_live_head():
            return

        self._poll_handle = self._loop.call_later(self._poll_interval, self._on_poll)
        logger.debug(f"Queue blocked, re-checking in {self._poll_interval}s")

    def _on_poll(self) -> None:
        self._poll_handle = None
        self._next()

    # --- Task lifecycle ---

    def _run(self, entry: _PendingTask) -> None:
        """Start an admitted task; the quota slot is already taken."""
        entry.cancel_deadline()
        entry.state = TaskState.RUNNING

        try:
            task = asyncio.ensure_future(entry.factory())
        except Exception as e:
            self._settle(entry, exc=e)
            return

        entry.task = task
        task.add_done_callback(functools.partial(self._on_task_done, entry))

    def _on_task_done(self, entry: _PendingTask, task: asyncio.Future) -> None:
        if task.cancelled():
            self._settle(entry, cancelled=True)
        elif task.exception() is not None:
            self._settle(entry, exc=task.exception())
        else:
            self._settle(entry, result=task.result())

    def _settle(
        self,
        entry: _PendingTask,
        result: Any = None,
        exc: BaseException | None = None,
        cancelled: bool = False,
    ) -> None:
        """Release the quota slot and hand the outcome to the caller."""
        entry.state = TaskState.SETTLED
        self._manager.end()

        future = entry.future
        if not future.done():
            if cancelled:
                future.cancel()
            elif exc is not None:
                future.set_exception(exc)
            else:
                future.set_result(result)

        self._next()

    def _expire(self, entry: _PendingTask) -> None:
        """Deadline callback: abandon the entry if it is still queued."""
        entry.deadline = None
        if entry.state is not TaskState.QUEUED:
            return

        entry.state = TaskState.ABANDONED
        if not entry.future.done():
            entry.future.set_exception(
                RateLimitTimeoutError("queue max_delay timeout exceeded")
            )
        logger.warning(
            f"Task abandoned after waiting {self._manager.max_delay}s in queue"
        )
        self._next()

    def _on_caller_done(self, entry: _PendingTask, future: asyncio.Future) -> None:
        """Propagate a caller-side cancellation to the entry."""
        if not future.cancelled():
            return

        if entry.state is TaskState.QUEUED:
            entry.cancel_deadline()
            entry.state = TaskState.ABANDONED
        elif entry.state is TaskState.RUNNING and entry.task is not None:
            entry.task.cancel()


def create_limiter(
    quota_or_manager: Quota | QuotaManager | None = None,
    *,
    poll_interval: float | None = None,
) -> RateLimiter:
    """
    Create a rate limiter.

    Args:
        quota_or_manager: Quota policy, or a pre-built manager to share or
            fake in tests (default quota from settings if None)
        poll_interval: Fallback admission re-check interval in seconds

    Returns:
        New, independent RateLimiter
    """
    if quota_or_manager is None:
        quota_or_manager = Quota.from_settings()

    if isinstance(quota_or_manager, Quota):
        manager = QuotaManager(quota_or_manager)
        logger.info(f"Rate limiter created: {quota_or_manager.to_dict()}")
    else:
        manager = quota_or_manager

    return RateLimiter(manager, poll_interval=poll_interval)
