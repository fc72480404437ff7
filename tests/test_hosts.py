"""
Tests for host key derivation in fetchgate.hosts.
"""

import pytest

from fetchgate.exceptions import InvalidURL
from fetchgate.hosts import derive_host_key


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://httpbin.org/anything?test=1", "https://httpbin.org:443"),
        ("https://httpbin.org:443/anything", "https://httpbin.org:443"),
        ("http://httpbin.org/anything", "http://httpbin.org:80"),
        ("http://localhost:8080/items", "http://localhost:8080"),
        ("https://API.Example.com/v1", "https://api.example.com:443"),
    ],
)
def test_derive_host_key(url: str, expected: str):
    """Test that host keys carry scheme, host and effective port."""
    assert derive_host_key(url) == expected


def test_scheme_separates_hosts():
    """Test that http and https on the same host get different keys."""
    assert derive_host_key("http://a.test/x") != derive_host_key("https://a.test/x")


@pytest.mark.parametrize(
    "url",
    [
        "not a url",
        "/relative/path",
        "ftp://files.example.com/pub",
        "https://",
        "https://example.com:notaport/x",
    ],
)
def test_invalid_urls_raise(url: str):
    """Test that unusable URLs raise InvalidURL."""
    with pytest.raises(InvalidURL) as excinfo:
        derive_host_key(url)

    assert excinfo.value.url == url
