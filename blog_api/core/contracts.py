"""
Контракты внешних коллабораторов.
Ядро (dispatcher, очередь, монитор) зависит только от них, а не от httpx/файлов.
"""
from typing import Any, Awaitable, Dict, Optional, Protocol, TypeVar

from blog_api.models.common import Notification
from blog_api.models.request import TransportResponse

T = TypeVar("T")


class CancellationSignal(Protocol):
    @property
    def cancelled(self) -> bool: ...

    async def wait(self) -> None: ...

    async def run(self, coro: Awaitable[T]) -> T: ...


class Transport(Protocol):
    async def send(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        signal: Optional[CancellationSignal] = None,
    ) -> TransportResponse: ...


class PersistentStore(Protocol):
    def read(self, namespace: str) -> Any: ...

    def write(self, namespace: str, data: Any) -> None: ...

    def remove(self, namespace: str) -> None: ...


class Notifier(Protocol):
    def notify(self, event: Notification) -> None: ...
