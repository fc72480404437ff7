"""
Per-host admission queue.

Each host gets one ``HostQueue`` that lets at most ``max_concurrent`` tasks
run against the transport at once. Further tasks wait in a FIFO buffer and
are released head first as running tasks complete.
"""

from __future__ import annotations

import asyncio
import collections
import time
import typing as t
from dataclasses import dataclass, field

import structlog

from fetchgate.future import PendingCall

log = structlog.get_logger(__name__)

DEFAULT_MAX_CONCURRENT = 3


@dataclass(eq=False)
class Task:
    """
    One logical request waiting for, or holding, a host slot.

    Parameters
    ----------
    fingerprint : str
        Deduplication key of the request.
    url : str
        Request URL.
    options : typing.Any
        Request options forwarded to the worker.
    pending : PendingCall
        Shared future settled with the task outcome.
    cleanup : typing.Callable[[], None] | None
        Invoked right before settlement, on every path.
    """

    fingerprint: str
    url: str
    options: t.Any
    pending: PendingCall[t.Any]
    cleanup: t.Callable[[], None] | None = None
    enqueued_at: float = field(default_factory=time.monotonic)
    started_at: float | None = None
    settled: bool = False

    def _run_cleanup(self) -> None:
        if self.cleanup is not None:
            self.cleanup()

    def resolve(self, result: t.Any) -> None:
        if self.settled:
            return
        self.settled = True
        self._run_cleanup()
        self.pending.set_result(result)

    def reject(self, error: BaseException) -> None:
        if self.settled:
            return
        self.settled = True
        self._run_cleanup()
        self.pending.set_exception(error)

    def cancel(self) -> None:
        if self.settled:
            return
        self.settled = True
        self._run_cleanup()
        self.pending.cancel()


@dataclass(frozen=True)
class HostQueueStats:
    """Point-in-time view of a host queue."""

    host_key: str
    max_concurrent: int
    active: int
    waiting: int
    completed: int
    failed: int
    idle_since: float | None


Worker = t.Callable[[Task], t.Awaitable[t.Any]]


class HostQueue:
    """
    Bound concurrently executing tasks for one host.

    Parameters
    ----------
    host_key : str
        Host the queue serves.
    worker : Worker
        Coroutine function executing a task. Its return value resolves the
        task, any exception it raises rejects it.
    max_concurrent : int
        Maximum number of tasks executing at once. Fixed for the lifetime of
        the queue.
    """

    def __init__(
        self,
        *,
        host_key: str,
        worker: Worker,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
        self._host_key = host_key
        self._worker = worker
        self._max_concurrent = max_concurrent

        self._waiting: collections.deque[Task] = collections.deque()
        self._running: set[asyncio.Task[None]] = set()
        self._active = 0
        self._completed = 0
        self._failed = 0

        self._idle = asyncio.Event()
        self._idle.set()
        self._idle_since: float | None = time.monotonic()

    @property
    def host_key(self) -> str:
        return self._host_key

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def active(self) -> int:
        """Number of tasks holding a slot."""
        return self._active

    @property
    def waiting(self) -> int:
        """Number of buffered tasks."""
        return len(self._waiting)

    @property
    def idle_since(self) -> float | None:
        """Monotonic timestamp of the last transition to idle, ``None`` while busy."""
        return self._idle_since

    def is_idle(self) -> bool:
        return self._active == 0 and not self._waiting

    def submit(self, task: Task) -> None:
        """
        Start ``task`` now if a slot is free, otherwise buffer it.

        Parameters
        ----------
        task : Task
            Task to admit.
        """
        self._idle.clear()
        self._idle_since = None
        if self._active < self._max_concurrent:
            self._start(task=task)
            return
        self._waiting.append(task)
        log.debug(
            event="Queued request",
            url=task.url,
            host_key=self._host_key,
            active=self._active,
            waiting=len(self._waiting),
        )

    def cancel(self, task: Task) -> bool:
        """
        Cancel a buffered task.

        Parameters
        ----------
        task : Task
            Task to cancel.

        Returns
        -------
        bool
            ``True`` if the task was still buffered and got cancelled.
            Tasks already claimed by a slot are left running.
        """
        try:
            self._waiting.remove(task)
        except ValueError:
            return False
        task.cancel()
        log.debug(event="Cancelled queued request", url=task.url, host_key=self._host_key)
        self._mark_idle_if_drained()
        return True

    def cancel_waiting(self) -> int:
        """Cancel every buffered task and return how many were cancelled."""
        cancelled = 0
        while self._waiting:
            self._waiting.popleft().cancel()
            cancelled += 1
        self._mark_idle_if_drained()
        return cancelled

    async def wait_idle(self) -> None:
        """Wait until no task is running or buffered."""
        await self._idle.wait()

    def stats(self) -> HostQueueStats:
        return HostQueueStats(
            host_key=self._host_key,
            max_concurrent=self._max_concurrent,
            active=self._active,
            waiting=len(self._waiting),
            completed=self._completed,
            failed=self._failed,
            idle_since=self._idle_since,
        )

    def _start(self, *, task: Task) -> None:
        self._active += 1
        task.started_at = time.monotonic()
        runner = asyncio.create_task(
            coro=self._run(task=task),
            name=f"fetchgate_{self._host_key}_{task.fingerprint}",
        )
        self._running.add(runner)
        runner.add_done_callback(self._running.discard)

    async def _run(self, *, task: Task) -> None:
        try:
            log.debug(event="Starting request", url=task.url, host_key=self._host_key)
            try:
                result = await self._worker(task)
            except asyncio.CancelledError:
                task.cancel()
                raise
            except Exception as e:
                self._failed += 1
                log.error(
                    event="Request failed",
                    url=task.url,
                    host_key=self._host_key,
                    error=str(object=e),
                )
                task.reject(e)
            else:
                self._completed += 1
                log.debug(event="Request successful", url=task.url, host_key=self._host_key)
                task.resolve(result)
        finally:
            self._active -= 1
            log.debug(event="Task completed", url=task.url, host_key=self._host_key)
            self._release_next()

    def _release_next(self) -> None:
        while self._waiting and self._active < self._max_concurrent:
            self._start(task=self._waiting.popleft())
        self._mark_idle_if_drained()

    def _mark_idle_if_drained(self) -> None:
        if not self.is_idle() or self._idle.is_set():
            return
        self._idle_since = time.monotonic()
        self._idle.set()
        log.info(
            event="All tasks have been processed for host",
            host_key=self._host_key,
            completed=self._completed,
            failed=self._failed,
        )
