"""
Request dispatcher combining deduplication and per-host admission.

Identical concurrent requests (same URL) share one transport call, and no
more than ``max_concurrent`` requests run against any host at once. Excess
requests wait per host and are released in arrival order.
"""

from __future__ import annotations

import functools
import time
import typing as t

import structlog

from fetchgate.config import DispatcherSettings
from fetchgate.dedup import Deduplicator
from fetchgate.exceptions import FetchGateError, InvalidURL, TransportError
from fetchgate.future import PendingCall
from fetchgate.hosts import derive_host_key
from fetchgate.logging import logging_context
from fetchgate.queue import DEFAULT_MAX_CONCURRENT, HostQueue, HostQueueStats, Task
from fetchgate.transport import HttpxTransport, RequestOptions, Transport, parse_response

log = structlog.get_logger(__name__)

Options = RequestOptions | t.Mapping[str, t.Any] | None


class Dispatcher:
    """
    Deduplicate requests by URL and bound concurrency per host.

    Parameters
    ----------
    transport : Transport | None, optional
        Collaborator performing the network call. Defaults to an
        ``HttpxTransport`` owned, and closed, by the dispatcher.
    max_concurrent : int, optional
        Maximum number of requests in flight per host.
    host_idle_ttl_seconds : float | None, optional
        Host queues idle for longer than this are evicted. ``None`` keeps
        them for the lifetime of the dispatcher.
    timeout_seconds : float, optional
        Timeout of the default transport.

    Notes
    -----
    Deduplication keys on the URL only: a call joining an in-flight request
    gets that request's result even if it passed different options.
    """

    def __init__(
        self,
        *,
        transport: Transport | None = None,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        host_idle_ttl_seconds: float | None = 300.0,
        timeout_seconds: float = 30.0,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
        self._owned_transport: HttpxTransport | None = None
        if transport is None:
            transport = self._owned_transport = HttpxTransport(timeout_seconds=timeout_seconds)
        self._transport: Transport = transport
        self._max_concurrent = max_concurrent
        self._host_idle_ttl_seconds = host_idle_ttl_seconds

        self._dedup = Deduplicator()
        self._queues: dict[str, HostQueue] = {}
        self._tasks: dict[str, tuple[HostQueue, Task]] = {}
        self._closed = False

        log.info(
            event="Initialized Dispatcher",
            max_concurrent=max_concurrent,
            host_idle_ttl_seconds=host_idle_ttl_seconds,
            transport=type(self._transport).__name__,
        )

    @classmethod
    def from_settings(
        cls,
        settings: DispatcherSettings,
        *,
        transport: Transport | None = None,
    ) -> Dispatcher:
        """
        Build a dispatcher from ``DispatcherSettings``.

        Parameters
        ----------
        settings : DispatcherSettings
            Validated settings.
        transport : Transport | None, optional
            Custom transport; the default one uses ``settings.timeout_seconds``.

        Returns
        -------
        Dispatcher
            New dispatcher.
        """
        return cls(
            transport=transport,
            max_concurrent=settings.max_concurrent,
            host_idle_ttl_seconds=settings.host_idle_ttl_seconds,
            timeout_seconds=settings.timeout_seconds,
        )

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def in_flight(self) -> int:
        """Number of distinct URLs currently queued or running."""
        return len(self._dedup)

    async def request(self, url: str, options: Options = None) -> t.Any:
        """
        GET ``url`` and return its decoded JSON body.

        Parameters
        ----------
        url : str
            Absolute URL, used verbatim as the deduplication key.
        options : RequestOptions | typing.Mapping[str, typing.Any] | None, optional
            Headers and timeout of the request.

        Returns
        -------
        typing.Any
            Decoded JSON body. Deduplicated callers receive the same object.

        Raises
        ------
        InvalidURL
            If no host key can be derived from ``url``.
        TransportError
            If the network call failed.
        HTTPStatusError
            If the response status is outside the 2xx range.
        DecodeError
            If the body is not valid JSON.
        """
        if self._closed:
            raise RuntimeError("Dispatcher is closed")
        request_options = RequestOptions.coerce(options)
        fingerprint = url

        pending, is_new = self._dedup.get_or_create(fingerprint, PendingCall)
        if not is_new:
            self._log_reuse(fingerprint=fingerprint, options=request_options)
            return await pending

        try:
            host_key = derive_host_key(url)
        except InvalidURL as e:
            self._dedup.remove(fingerprint)
            log.error(event="Rejected request", url=url, error=str(object=e))
            raise

        task = Task(
            fingerprint=fingerprint,
            url=url,
            options=request_options,
            pending=pending,
            cleanup=functools.partial(self._forget, fingerprint),
        )
        queue = self._get_queue(host_key=host_key)
        self._tasks[fingerprint] = (queue, task)
        with logging_context(host_key=host_key):
            queue.submit(task)
        return await pending

    def cancel(self, url: str) -> bool:
        """
        Cancel the request for ``url`` if it is still waiting for a slot.

        Parameters
        ----------
        url : str
            URL of the request.

        Returns
        -------
        bool
            ``True`` if a buffered request was cancelled. Running requests
            are not interrupted.
        """
        entry = self._tasks.get(url)
        if entry is None:
            return False
        queue, task = entry
        return queue.cancel(task)

    def host_stats(self) -> list[HostQueueStats]:
        return [queue.stats() for queue in self._queues.values()]

    def prune_idle_hosts(self, *, now: float | None = None) -> int:
        """
        Evict host queues idle for longer than ``host_idle_ttl_seconds``.

        Parameters
        ----------
        now : float | None, optional
            Monotonic reference time, defaults to ``time.monotonic()``.

        Returns
        -------
        int
            Number of evicted host queues.
        """
        if self._host_idle_ttl_seconds is None:
            return 0
        now = time.monotonic() if now is None else now
        expired = [
            host_key
            for host_key, queue in self._queues.items()
            if queue.is_idle()
            and queue.idle_since is not None
            and now - queue.idle_since >= self._host_idle_ttl_seconds
        ]
        for host_key in expired:
            del self._queues[host_key]
            log.debug(event="Evicted idle host queue", host_key=host_key)
        return len(expired)

    async def wait_idle(self) -> None:
        """Wait until every host queue has drained."""
        for queue in list(self._queues.values()):
            await queue.wait_idle()

    async def aclose(self) -> None:
        """
        Cancel buffered requests and close an owned transport.

        Requests already running are left to finish.
        """
        if self._closed:
            return
        self._closed = True
        cancelled = sum(queue.cancel_waiting() for queue in self._queues.values())
        if self._owned_transport is not None:
            await self.wait_idle()
            await self._owned_transport.aclose()
        log.info(event="Closed Dispatcher", cancelled=cancelled)

    async def __aenter__(self) -> Dispatcher:
        return self

    async def __aexit__(self, exc_type: t.Any, exc_val: t.Any, exc_tb: t.Any) -> None:
        await self.aclose()

    def _get_queue(self, *, host_key: str) -> HostQueue:
        queue = self._queues.get(host_key)
        if queue is not None:
            return queue
        self.prune_idle_hosts()
        queue = HostQueue(
            host_key=host_key,
            worker=self._execute,
            max_concurrent=self._max_concurrent,
        )
        self._queues[host_key] = queue
        log.debug(event="Created host queue", host_key=host_key, host_count=len(self._queues))
        return queue

    async def _execute(self, task: Task) -> t.Any:
        try:
            response = await self._transport.send(url=task.url, options=task.options)
        except FetchGateError:
            raise
        except Exception as e:
            raise TransportError(task.url, e) from e
        return parse_response(url=task.url, response=response)

    def _forget(self, fingerprint: str) -> None:
        self._tasks.pop(fingerprint, None)
        self._dedup.remove(fingerprint)

    def _log_reuse(self, *, fingerprint: str, options: RequestOptions) -> None:
        entry = self._tasks.get(fingerprint)
        if entry is not None and entry[1].options != options:
            log.warning(
                event="Reusing existing call with different options",
                url=fingerprint,
            )
            return
        log.debug(event="Reusing existing call", url=fingerprint)
