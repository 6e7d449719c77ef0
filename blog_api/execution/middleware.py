import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from blog_api.core.contracts import PersistentStore
from blog_api.core.exceptions import AuthError, ClassifiedError
from blog_api.models.request import RequestDescriptor, TransportResponse

logger = logging.getLogger(__name__)

# Корутина обновления токена. Протокол обновления - не наша забота,
# от нее нужен только новый {"token": ..., "expires_at": <epoch ms | None>}.
RefreshFn = Callable[[], Awaitable[Dict[str, Any]]]


class RequestMiddleware:
    """
    Глобальный хук вокруг каждой попытки запроса.
    Все методы - no-op по умолчанию, переопределяются выборочно.
    """

    async def on_request(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        return descriptor

    async def on_response(self, response: TransportResponse) -> TransportResponse:
        return response

    async def on_error(self, error: ClassifiedError) -> Any:
        """Не-None результат "спасает" попытку и становится телом ответа."""
        return None


class TokenAuthMiddleware(RequestMiddleware):
    """
    Подставляет Authorization: Bearer <token> из персистентного хранилища.
    Просроченный токен обновляется ОДИН раз на все конкурентные запросы (single-flight).
    """

    def __init__(
        self,
        store: PersistentStore,
        namespace: str = "token",
        refresh: Optional[RefreshFn] = None,
        refresh_endpoint: str = "/auth/refresh-token",
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.namespace = namespace
        self.refresh = refresh
        self.refresh_endpoint = refresh_endpoint
        self._clock = clock
        self._lock = asyncio.Lock()

    def _load(self) -> Optional[Dict[str, Any]]:
        data = self.store.read(self.namespace)
        if not isinstance(data, dict) or not data.get("token"):
            return None
        return data

    def _is_expired(self, data: Dict[str, Any]) -> bool:
        expires_at = data.get("expires_at")
        if expires_at is None:
            return False
        return self._clock() * 1000 >= float(expires_at)

    async def _refresh(self) -> Dict[str, Any]:
        async with self._lock:
            # Пока ждали lock, другой запрос мог уже обновить токен
            current = self._load()
            if current is not None and not self._is_expired(current):
                return current

            logger.info("Access token expired, refreshing")
            try:
                fresh = await self.refresh()
            except Exception as e:
                # Обновление не удалось: сессия мертва, чистим токен
                self.store.remove(self.namespace)
                logger.warning(f"Token refresh failed: {e.__class__.__name__}")
                raise AuthError("Your session has expired. Please sign in again.", status=401) from e

            if not isinstance(fresh, dict) or not fresh.get("token"):
                self.store.remove(self.namespace)
                raise AuthError("Token refresh returned no token.", status=401)

            self.store.write(self.namespace, fresh)
            return fresh

    async def on_request(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        # Запрос самого refresh не трогаем, иначе рекурсия
        if descriptor.url.rstrip("/").endswith(self.refresh_endpoint.rstrip("/")):
            return descriptor

        data = self._load()
        if data is None:
            return descriptor

        if self._is_expired(data) and self.refresh is not None:
            data = await self._refresh()

        headers = {**descriptor.headers, "Authorization": f"Bearer {data['token']}"}
        return descriptor.model_copy(update={"headers": headers})
