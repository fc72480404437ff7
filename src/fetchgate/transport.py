"""
Transport collaborator used by the dispatcher.

The dispatcher only needs ``send(url, options)`` returning a response that
exposes a status code and a JSON body. ``HttpxTransport`` is the default
implementation; anything satisfying ``Transport`` can be injected instead.
"""

from __future__ import annotations

import json
import typing as t

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

from fetchgate.exceptions import DecodeError, HTTPStatusError

log = structlog.get_logger(__name__)


class RequestOptions(BaseModel):
    """
    Per-request options. Requests are always ``GET`` without a body.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    headers: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float | None = Field(default=None, gt=0)

    @field_validator("headers", mode="before")
    @classmethod
    def normalize_headers(cls, value: t.Any) -> t.Any:
        if value is None:
            return {}
        if isinstance(value, httpx.Headers):
            return {
                _decode_header_value(value=key): _decode_header_value(value=header_value)
                for key, header_value in value.raw
            }
        return value

    @classmethod
    def coerce(cls, options: RequestOptions | t.Mapping[str, t.Any] | None) -> RequestOptions:
        """
        Build options from ``None``, a mapping, or an existing instance.

        Parameters
        ----------
        options : RequestOptions | typing.Mapping[str, typing.Any] | None
            Caller supplied options.

        Returns
        -------
        RequestOptions
            Validated options.
        """
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        return cls.model_validate(dict(options))


def _decode_header_value(*, value: bytes | str) -> str:
    if isinstance(value, bytes):
        return value.decode(encoding="latin1")
    return str(object=value)


@t.runtime_checkable
class Transport(t.Protocol):
    """Anything able to perform a GET request."""

    async def send(self, *, url: str, options: RequestOptions) -> httpx.Response: ...


class HttpxTransport:
    """
    ``Transport`` backed by a shared ``httpx.AsyncClient``.

    Parameters
    ----------
    timeout_seconds : float
        Default timeout applied when the request options carry none.
    client_factory : typing.Callable[[], httpx.AsyncClient] | None, optional
        Builds the underlying client on first use.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 30.0,
        client_factory: t.Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._client_factory = client_factory or (
            lambda: httpx.AsyncClient(timeout=self._timeout_seconds, follow_redirects=True)
        )
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = self._client_factory()
        return self._client

    async def send(self, *, url: str, options: RequestOptions) -> httpx.Response:
        """
        Perform a GET request.

        Parameters
        ----------
        url : str
            Request URL.
        options : RequestOptions
            Headers and timeout.

        Returns
        -------
        httpx.Response
            Fully read response.
        """
        timeout = options.timeout_seconds or self._timeout_seconds
        return await self._get_client().get(url=url, headers=options.headers, timeout=timeout)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def parse_response(*, url: str, response: httpx.Response) -> t.Any:
    """
    Turn a raw response into decoded JSON.

    Parameters
    ----------
    url : str
        Request URL, used for error reporting.
    response : httpx.Response
        Response returned by the transport.

    Returns
    -------
    typing.Any
        Decoded JSON body.

    Raises
    ------
    HTTPStatusError
        If the status code is outside the 2xx range.
    DecodeError
        If the body is not valid JSON.
    """
    if not response.is_success:
        raise HTTPStatusError(url, response.status_code)
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as error:
        raise DecodeError(url, error) from error
