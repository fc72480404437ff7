"""
In-flight request registry keyed by fingerprint.
"""

from __future__ import annotations

import typing as t

import structlog

from fetchgate.future import PendingCall

log = structlog.get_logger(__name__)


class Deduplicator:
    """
    Map a request fingerprint to the ``PendingCall`` serving it.

    Notes
    -----
    ``get_or_create`` contains no suspension point, so on a single event loop
    the check and the store happen as one indivisible step: two callers can
    never both observe a miss for the same fingerprint.
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, PendingCall[t.Any]] = {}

    def get_or_create(
        self,
        fingerprint: str,
        factory: t.Callable[[], PendingCall[t.Any]],
    ) -> tuple[PendingCall[t.Any], bool]:
        """
        Return the pending call for ``fingerprint``, creating it on a miss.

        Parameters
        ----------
        fingerprint : str
            Request fingerprint.
        factory : typing.Callable[[], PendingCall]
            Builds a fresh pending call when none is registered.

        Returns
        -------
        tuple[PendingCall, bool]
            The pending call and whether it was created by this call.
        """
        existing = self._in_flight.get(fingerprint)
        if existing is not None:
            return existing, False
        pending = factory()
        self._in_flight[fingerprint] = pending
        return pending, True

    def remove(self, fingerprint: str) -> None:
        """Forget ``fingerprint``. Removing an unknown fingerprint is a no-op."""
        if self._in_flight.pop(fingerprint, None) is not None:
            log.debug(event="Removed in-flight entry", fingerprint=fingerprint)

    def get(self, fingerprint: str) -> PendingCall[t.Any] | None:
        return self._in_flight.get(fingerprint)

    def __contains__(self, fingerprint: object) -> bool:
        return fingerprint in self._in_flight

    def __len__(self) -> int:
        return len(self._in_flight)
