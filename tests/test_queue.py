"""
Tests for the per-host admission queue in fetchgate.queue.
"""

import asyncio
import typing as t

import pytest

from fetchgate.future import PendingCall
from fetchgate.queue import HostQueue, Task


class ControlledWorker:
    """Worker whose tasks complete only when the test releases them."""

    def __init__(self) -> None:
        self.started: list[str] = []
        self.running = 0
        self.peak = 0
        self.gates: dict[str, asyncio.Event] = {}
        self.failures: set[str] = set()

    def release(self, url: str) -> None:
        self.gates.setdefault(url, asyncio.Event()).set()

    async def __call__(self, task: Task) -> t.Any:
        self.started.append(task.url)
        self.running += 1
        self.peak = max(self.peak, self.running)
        try:
            await self.gates.setdefault(task.url, asyncio.Event()).wait()
            if task.url in self.failures:
                raise RuntimeError(f"failed {task.url}")
            return {"url": task.url}
        finally:
            self.running -= 1


def _task(url: str, cleaned: list[str] | None = None) -> Task:
    return Task(
        fingerprint=url,
        url=url,
        options=None,
        pending=PendingCall(),
        cleanup=(lambda: cleaned.append(url)) if cleaned is not None else None,
    )


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(delay=0)


@pytest.mark.asyncio
async def test_submit_starts_up_to_limit_and_buffers_rest():
    """Test that only max_concurrent tasks start, the rest wait."""
    worker = ControlledWorker()
    queue = HostQueue(host_key="https://a.test:443", worker=worker, max_concurrent=3)
    tasks = [_task(f"https://a.test/{i}") for i in range(5)]

    for task in tasks:
        queue.submit(task)
    await _settle()

    assert worker.started == [f"https://a.test/{i}" for i in range(3)]
    assert queue.active == 3
    assert queue.waiting == 2
    assert not queue.is_idle()

    for task in tasks:
        worker.release(task.url)
    results = await asyncio.gather(*(task.pending.wait() for task in tasks))

    assert [result["url"] for result in results] == [task.url for task in tasks]
    assert worker.peak == 3


@pytest.mark.asyncio
async def test_buffered_tasks_start_in_fifo_order():
    """Test that freed slots go to the oldest buffered task."""
    worker = ControlledWorker()
    queue = HostQueue(host_key="https://a.test:443", worker=worker, max_concurrent=2)
    urls = [f"https://a.test/{i}" for i in range(6)]
    tasks = [_task(url) for url in urls]
    for task in tasks:
        queue.submit(task)
    await _settle()

    # Finish the second running task first; the head of the buffer still goes next.
    worker.release(urls[1])
    await _settle()
    assert worker.started == urls[:3]

    worker.release(urls[0])
    await _settle()
    assert worker.started == urls[:4]

    for url in urls:
        worker.release(url)
    await asyncio.gather(*(task.pending.wait() for task in tasks))

    assert worker.started == urls
    assert worker.peak == 2


@pytest.mark.asyncio
async def test_failure_settles_only_its_task():
    """Test that a failing task neither blocks nor fails its siblings."""
    worker = ControlledWorker()
    worker.failures.add("https://a.test/bad")
    queue = HostQueue(host_key="https://a.test:443", worker=worker, max_concurrent=1)
    bad = _task("https://a.test/bad")
    good = _task("https://a.test/good")
    queue.submit(bad)
    queue.submit(good)

    worker.release(bad.url)
    worker.release(good.url)

    with pytest.raises(RuntimeError, match="failed https://a.test/bad"):
        await bad.pending.wait()
    assert await good.pending.wait() == {"url": good.url}

    stats = queue.stats()
    assert stats.completed == 1
    assert stats.failed == 1


@pytest.mark.asyncio
async def test_cleanup_runs_before_settlement():
    """Test that the cleanup hook runs on success and failure."""
    cleaned: list[str] = []
    worker = ControlledWorker()
    worker.failures.add("https://a.test/bad")
    queue = HostQueue(host_key="https://a.test:443", worker=worker, max_concurrent=2)
    ok = _task("https://a.test/ok", cleaned)
    bad = _task("https://a.test/bad", cleaned)
    queue.submit(ok)
    queue.submit(bad)
    worker.release(ok.url)
    worker.release(bad.url)

    await ok.pending.wait()
    with pytest.raises(RuntimeError):
        await bad.pending.wait()

    assert sorted(cleaned) == ["https://a.test/bad", "https://a.test/ok"]


@pytest.mark.asyncio
async def test_cancel_only_affects_buffered_tasks():
    """Test that buffered tasks can be cancelled but running ones cannot."""
    cleaned: list[str] = []
    worker = ControlledWorker()
    queue = HostQueue(host_key="https://a.test:443", worker=worker, max_concurrent=1)
    running = _task("https://a.test/running", cleaned)
    buffered = _task("https://a.test/buffered", cleaned)
    queue.submit(running)
    queue.submit(buffered)
    await _settle()

    assert queue.cancel(running) is False
    assert queue.cancel(buffered) is True
    assert queue.cancel(buffered) is False
    assert buffered.pending.cancelled()
    assert cleaned == ["https://a.test/buffered"]

    worker.release(running.url)
    await running.pending.wait()
    await _settle()

    assert worker.started == ["https://a.test/running"]
    assert queue.is_idle()


@pytest.mark.asyncio
async def test_wait_idle_and_idle_since():
    """Test that the queue reports when it has drained."""
    worker = ControlledWorker()
    queue = HostQueue(host_key="https://a.test:443", worker=worker, max_concurrent=1)
    assert queue.is_idle()

    task = _task("https://a.test/1")
    queue.submit(task)
    assert queue.idle_since is None

    waiter = asyncio.create_task(queue.wait_idle())
    await _settle()
    assert not waiter.done()

    worker.release(task.url)
    await asyncio.wait_for(waiter, timeout=1.0)

    assert queue.is_idle()
    assert queue.idle_since is not None


@pytest.mark.asyncio
async def test_cancel_waiting_drops_every_buffered_task():
    """Test that cancel_waiting empties the buffer and leaves running tasks alone."""
    worker = ControlledWorker()
    queue = HostQueue(host_key="https://a.test:443", worker=worker, max_concurrent=1)
    tasks = [_task(f"https://a.test/{i}") for i in range(4)]
    for task in tasks:
        queue.submit(task)
    await _settle()

    assert queue.cancel_waiting() == 3
    assert queue.waiting == 0
    assert all(task.pending.cancelled() for task in tasks[1:])

    worker.release(tasks[0].url)
    assert await tasks[0].pending.wait() == {"url": tasks[0].url}


def test_max_concurrent_must_be_positive():
    """Test that a zero limit is rejected."""

    async def worker(task: Task) -> None:
        return None

    with pytest.raises(ValueError, match="max_concurrent"):
        HostQueue(host_key="https://a.test:443", worker=worker, max_concurrent=0)
