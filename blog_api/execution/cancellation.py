import asyncio
import logging
from typing import Any, Awaitable, Dict, Optional, TypeVar

from blog_api.core.exceptions import RequestCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """
    Сигнал отмены одного запроса (аналог AbortSignal).
    Одноразовый: после cancel() обратно не сбрасывается.
    """

    def __init__(self, key: str):
        self.key = key
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    async def run(self, coro: Awaitable[T]) -> T:
        """
        Выполняет корутину наперегонки с отменой.
        Если токен сработал первым - задача отменяется, летит RequestCancelledError.
        """
        if self.cancelled:
            # Корутину не запускаем, но и не оставляем "never awaited"
            if asyncio.iscoroutine(coro):
                coro.close()
            raise RequestCancelledError(self.key)

        task = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        raise RequestCancelledError(self.key)


class CancellationRegistry:
    """
    Реестр активных запросов: один живой токен на ключ.
    Новая регистрация с тем же ключом НЕ отменяет старый токен, только занимает слот.
    """

    def __init__(self) -> None:
        self._tokens: Dict[str, CancellationToken] = {}

    def register(self, key: str) -> CancellationToken:
        token = CancellationToken(key)
        if key in self._tokens:
            logger.debug(f"Replacing in-flight registry entry: {key}")
        self._tokens[key] = token
        return token

    def release(self, key: str, token: Optional[CancellationToken] = None) -> None:
        """Снимает запись, только если она принадлежит этому токену."""
        current = self._tokens.get(key)
        if current is None:
            return
        if token is None or current is token:
            del self._tokens[key]

    def cancel(self, key: str) -> bool:
        token = self._tokens.pop(key, None)
        if token is None:
            return False
        token.cancel()
        logger.debug(f"Cancelled request: {key}")
        return True

    def cancel_all(self) -> int:
        tokens = list(self._tokens.values())
        self._tokens.clear()
        for token in tokens:
            token.cancel()
        if tokens:
            logger.info(f"Cancelled {len(tokens)} in-flight request(s)")
        return len(tokens)

    def get(self, key: str) -> Optional[CancellationToken]:
        return self._tokens.get(key)

    def __contains__(self, key: Any) -> bool:
        return key in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)
