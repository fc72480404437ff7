import pytest

from fetchgate.dispatcher import Dispatcher
from tests.mocks.transports import FakeEchoAPI, RecordingTransport


@pytest.fixture(autouse=True)
def clear_fetchgate_env(monkeypatch):
    for name in (
        "FETCHGATE_MAX_CONCURRENT",
        "FETCHGATE_TIMEOUT_SECONDS",
        "FETCHGATE_HOST_IDLE_TTL_SECONDS",
        "FETCHGATE_LOG_LEVEL",
        "FETCHGATE_BASE_URL",
        "FETCHGATE_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def api() -> FakeEchoAPI:
    """Fake echo endpoint answering after 50 ms."""
    return FakeEchoAPI(delay=0.05)


@pytest.fixture
def dispatcher(api: FakeEchoAPI) -> Dispatcher:
    """Dispatcher limited to 3 requests per host, backed by the fake endpoint."""
    return Dispatcher(transport=RecordingTransport(api), max_concurrent=3)
