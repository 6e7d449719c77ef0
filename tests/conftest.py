import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from blog_api.config.settings import Settings
from blog_api.execution.cancellation import CancellationRegistry
from blog_api.execution.dispatcher import RequestDispatcher
from blog_api.execution.executor import RetryController
from blog_api.models.request import TransportResponse
from blog_api.storage.cache import CacheStore
from blog_api.storage.repository import JsonFileStore


# --- Mocks ---
@dataclass
class SentRequest:
    method: str
    url: str
    params: Optional[Dict[str, Any]] = None
    body: Any = None
    headers: Optional[Dict[str, str]] = None


@dataclass
class FakeTransport:
    """
    Транспорт-заглушка.
    script: очередь ответов (TransportResponse | Exception | asyncio.Event = "висеть до события").
    routes: ответ по URL (имеет приоритет над script).
    """
    script: List[Any] = field(default_factory=list)
    routes: Dict[str, Any] = field(default_factory=dict)
    default: TransportResponse = field(default_factory=lambda: TransportResponse(status=200, body={"ok": True}))
    calls: List[SentRequest] = field(default_factory=list)

    async def send(self, method, url, params=None, body=None, headers=None, signal=None):
        self.calls.append(SentRequest(method, url, params, body, headers))

        if url in self.routes:
            item = self.routes[url]
        elif self.script:
            item = self.script.pop(0)
        else:
            item = self.default

        if isinstance(item, asyncio.Event):
            if signal is not None:
                await signal.run(item.wait())
            else:
                await item.wait()
            return self.default
        if isinstance(item, BaseException):
            raise item
        return item


class FakeClock:
    """Управляемые monotonic-часы (секунды)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


def ok(body: Any = None, status: int = 200) -> TransportResponse:
    return TransportResponse(status=status, body=body)


def fail(status: int, body: Any = None) -> TransportResponse:
    return TransportResponse(status=status, body=body)


async def wait_until(predicate: Callable[[], Any], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not reached in time")
        await asyncio.sleep(0.001)


# --- Fixtures ---
@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        API_BASE_URL="http://api.test",
        STORAGE_DIR=tmp_path / "storage",
        REQUEST_TIMEOUT=2.0,
        RETRY_ENABLED=False,
        CACHE_ENABLED=False,
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def notifier():
    class RecordingNotifier:
        def __init__(self):
            self.events = []

        def notify(self, event):
            self.events.append(event)

    return RecordingNotifier()


@pytest.fixture
def store(tmp_path) -> JsonFileStore:
    return JsonFileStore(tmp_path / "store")


@pytest.fixture
def dispatcher(transport, settings, clock, sleep, notifier) -> RequestDispatcher:
    return RequestDispatcher(
        transport,
        settings,
        cache=CacheStore(clock=clock),
        registry=CancellationRegistry(),
        retry_controller=RetryController(sleep=sleep),
        notifier=notifier,
    )
