"""
Host key derivation used to bucket per-host concurrency limits.
"""

from __future__ import annotations

import httpx

from fetchgate.exceptions import InvalidURL

DEFAULT_PORTS = {"http": 80, "https": 443}


def derive_host_key(url: str) -> str:
    """
    Derive the host key of ``url``.

    Parameters
    ----------
    url : str
        Absolute ``http`` or ``https`` URL.

    Returns
    -------
    str
        Key formatted as ``scheme://host:port`` with the scheme default port
        filled in when the URL omits it.

    Raises
    ------
    InvalidURL
        If the URL cannot be parsed, is relative, or uses another scheme.
    """
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as error:
        raise InvalidURL(url, str(object=error)) from error

    scheme = parsed.scheme
    if scheme not in DEFAULT_PORTS:
        raise InvalidURL(url, f"unsupported scheme {scheme!r}" if scheme else "missing scheme")
    if not parsed.host:
        raise InvalidURL(url, "missing host")

    port = parsed.port or DEFAULT_PORTS[scheme]
    return f"{scheme}://{parsed.host.lower()}:{port}"
