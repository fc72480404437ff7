"""
Fetchgate error taxonomy.

Every failure surfaced by ``Dispatcher.request`` is a ``FetchGateError``.
All kinds except ``InvalidURL`` settle the shared future for a fingerprint
and therefore reach every deduplicated waiter as the same exception object.
"""

from __future__ import annotations


class FetchGateError(Exception):
    """
    Base class for dispatcher errors.

    Parameters
    ----------
    url : str
        Request URL the error relates to.
    message : str
        Human readable description.
    """

    def __init__(self, url: str, message: str) -> None:
        super().__init__(message)
        self.url = url


class InvalidURL(FetchGateError):
    """The URL could not be turned into a host key."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(url, f"Invalid URL {url!r}: {reason}")
        self.reason = reason


class TransportError(FetchGateError):
    """
    The underlying network call failed before a response was received.

    Parameters
    ----------
    url : str
        Request URL.
    cause : BaseException
        Exception raised by the transport.
    """

    def __init__(self, url: str, cause: BaseException) -> None:
        super().__init__(url, f"Request to {url} failed: {cause!r}")
        self.cause = cause


class HTTPStatusError(FetchGateError):
    """The transport answered with a status outside the 2xx range."""

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(url, f"HTTP Error: {status_code}")
        self.status_code = status_code


class DecodeError(FetchGateError):
    """The response body is not valid JSON."""

    def __init__(self, url: str, cause: BaseException) -> None:
        super().__init__(url, f"Could not decode response body from {url}: {cause}")
        self.cause = cause
