"""
Tests for the Deduplicator in fetchgate.dedup.
"""

import pytest

from fetchgate.dedup import Deduplicator
from fetchgate.future import PendingCall


@pytest.mark.asyncio
async def test_get_or_create_returns_same_call_until_removed():
    """Test that a fingerprint maps to one call between creation and removal."""
    dedup = Deduplicator()
    created: list[PendingCall] = []

    def factory() -> PendingCall:
        pending = PendingCall()
        created.append(pending)
        return pending

    first, first_is_new = dedup.get_or_create("https://a.test/x", factory)
    second, second_is_new = dedup.get_or_create("https://a.test/x", factory)

    assert first_is_new is True
    assert second_is_new is False
    assert first is second
    assert len(created) == 1
    assert "https://a.test/x" in dedup
    assert len(dedup) == 1

    dedup.remove("https://a.test/x")
    third, third_is_new = dedup.get_or_create("https://a.test/x", factory)

    assert third_is_new is True
    assert third is not first


@pytest.mark.asyncio
async def test_fingerprints_are_used_verbatim():
    """Test that no URL normalisation happens."""
    dedup = Deduplicator()

    _, first_is_new = dedup.get_or_create("https://a.test/x?a=1&b=2", PendingCall)
    _, second_is_new = dedup.get_or_create("https://a.test/x?b=2&a=1", PendingCall)
    _, third_is_new = dedup.get_or_create("https://a.test/x?a=1&b=2/", PendingCall)

    assert first_is_new and second_is_new and third_is_new
    assert len(dedup) == 3


def test_remove_is_idempotent():
    """Test that removing unknown fingerprints is a no-op."""
    dedup = Deduplicator()

    dedup.remove("https://a.test/missing")
    dedup.remove("https://a.test/missing")

    assert len(dedup) == 0
    assert dedup.get("https://a.test/missing") is None
