"""
Shared single-assignment result cell awaited by every caller of one URL.
"""

from __future__ import annotations

import asyncio
import typing as t

T = t.TypeVar(name="T")


def _mark_retrieved(future: asyncio.Future[t.Any]) -> None:
    # Silences "exception was never retrieved" when every waiter went away.
    if not future.cancelled():
        future.exception()


class PendingCall(t.Generic[T]):
    """
    Multi-waiter future for one in-flight request.

    The call settles exactly once, either with a value or with an exception.
    Every waiter receives the same object. Waiters are shielded: cancelling
    one awaiting coroutine leaves the call running for the others.
    """

    def __init__(self, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future[T] = loop.create_future()
        self._future.add_done_callback(_mark_retrieved)
        self._waiters = 0

    @property
    def waiters(self) -> int:
        """Number of coroutines currently awaiting the call."""
        return self._waiters

    def done(self) -> bool:
        return self._future.done()

    def cancelled(self) -> bool:
        return self._future.cancelled()

    def set_result(self, result: T) -> bool:
        """
        Settle the call with a value.

        Returns
        -------
        bool
            ``False`` when the call was already settled.
        """
        if self._future.done():
            return False
        self._future.set_result(result)
        return True

    def set_exception(self, error: BaseException) -> bool:
        """
        Settle the call with an error.

        Returns
        -------
        bool
            ``False`` when the call was already settled.
        """
        if self._future.done():
            return False
        self._future.set_exception(error)
        return True

    def cancel(self) -> bool:
        """Cancel an unsettled call; waiters get ``asyncio.CancelledError``."""
        return self._future.cancel()

    def result(self) -> T:
        return self._future.result()

    async def wait(self) -> T:
        """
        Await the settled value.

        Returns
        -------
        T
            The value the call settled with.

        Raises
        ------
        BaseException
            The exception the call settled with.
        """
        self._waiters += 1
        try:
            return await asyncio.shield(self._future)
        finally:
            self._waiters -= 1

    def __await__(self) -> t.Generator[t.Any, None, T]:
        return self.wait().__await__()

    def __repr__(self) -> str:
        if self._future.cancelled():
            state = "cancelled"
        elif self._future.done():
            state = "failed" if self._future.exception() else "resolved"
        else:
            state = "pending"
        return f"<PendingCall {state} waiters={self._waiters}>"
