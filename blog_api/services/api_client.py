import asyncio
import dataclasses
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from blog_api.config.settings import Settings, get_settings
from blog_api.core.contracts import Notifier, PersistentStore, Transport
from blog_api.core.exceptions import ClassifiedError, NetworkError
from blog_api.execution.cancellation import CancellationRegistry
from blog_api.execution.dispatcher import RequestDispatcher
from blog_api.execution.executor import RetryController
from blog_api.execution.http_client import HttpClientFactory, HttpxTransport
from blog_api.execution.middleware import RefreshFn, TokenAuthMiddleware
from blog_api.models.common import Notification, NotificationKind
from blog_api.models.request import DispatchOptions, QueuedResult, RequestDescriptor
from blog_api.services.network_monitor import NetworkMonitor
from blog_api.services.notifications import LoggingNotifier, build_error_notification, safe_notify
from blog_api.services.offline_queue import OfflineQueue
from blog_api.storage.cache import CacheStore
from blog_api.storage.repository import JsonFileStore

logger = logging.getLogger(__name__)


class ApiClient:
    """
    Сборка слоя запросов на процесс: один кэш, один реестр, один монитор, одна очередь.
    Зависимости внедряются (transport/store/notifier), по умолчанию - из Settings.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        transport: Optional[Transport] = None,
        store: Optional[PersistentStore] = None,
        notifier: Optional[Notifier] = None,
        refresh: Optional[RefreshFn] = None,
        initial_online: bool = True,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.transport = transport or HttpxTransport(factory=HttpClientFactory(self.settings))
        self.store = store or JsonFileStore(self.settings.STORAGE_DIR)
        self.notifier = notifier or LoggingNotifier()

        self.cache = CacheStore()
        self.registry = CancellationRegistry()
        self.dispatcher = RequestDispatcher(
            self.transport,
            self.settings,
            cache=self.cache,
            registry=self.registry,
            retry_controller=RetryController(sleep=sleep),
            notifier=self.notifier,
        )
        self.dispatcher.add_middleware(
            TokenAuthMiddleware(
                self.store,
                namespace=self.settings.TOKEN_NAMESPACE,
                refresh=refresh,
                refresh_endpoint=self.settings.REFRESH_ENDPOINT,
            )
        )

        self.monitor = NetworkMonitor.from_settings(self.transport, self.settings, initial_online=initial_online)
        self.queue = OfflineQueue(
            self.store,
            self.dispatcher,
            monitor=self.monitor,
            namespace=self.settings.OFFLINE_QUEUE_NAMESPACE,
        )

    # --- Lifecycle ---

    async def __aenter__(self) -> "ApiClient":
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def start(self) -> None:
        self.monitor.start()

    async def close(self) -> None:
        await self.monitor.stop()
        self.queue.close()
        self.dispatcher.abort_all()
        aclose = getattr(self.transport, "aclose", None)
        if aclose is not None:
            await aclose()

    # --- Reads / generic ---

    async def dispatch(self, descriptor: RequestDescriptor, options: Optional[DispatchOptions] = None) -> Any:
        return await self.dispatcher.dispatch(descriptor, options)

    async def get(self, url: str, *, params: Optional[Dict[str, Any]] = None, **kwargs: Any) -> Any:
        return await self.dispatcher.get(url, params=params, **kwargs)

    # --- Mutations with offline fallback ---

    def _queue(self, method: str, endpoint: str, payload: Any, action_type: str) -> QueuedResult:
        action = self.queue.enqueue(action_type, payload, endpoint, method)
        safe_notify(
            self.notifier,
            Notification(
                kind=NotificationKind.INFO,
                title="Saved offline",
                message="You are offline. The change will be sent when the connection returns.",
            ),
        )
        return QueuedResult(action_id=action.id)

    async def submit(
        self,
        method: str,
        endpoint: str,
        payload: Any = None,
        *,
        action_type: Optional[str] = None,
        offline_safe: bool = False,
        options: Optional[DispatchOptions] = None,
    ) -> Any:
        """
        Мутация. Offline -> в очередь (QueuedResult), а не ошибка.
        NETWORK-ошибка онлайн: проверяем сервер пробой; если он недоступен
        (или вызов помечен offline_safe) - тоже в очередь.
        """
        method = method.upper()
        action_type = action_type or f"{method} {endpoint}"

        if not self.monitor.is_online:
            return self._queue(method, endpoint, payload, action_type)

        options = options or DispatchOptions()
        # Уведомление об ошибке решаем здесь: отложенная мутация - не ошибка
        quiet = dataclasses.replace(options, suppress_notify=True)
        try:
            return await self.dispatcher.request(method, endpoint, body=payload, options=quiet)
        except NetworkError as error:
            if not offline_safe:
                await self.monitor.probe()
            if offline_safe or not self.monitor.is_online:
                logger.info(f"Diverting {action_type} to offline queue after network failure")
                return self._queue(method, endpoint, payload, action_type)
            if not options.suppress_notify:
                safe_notify(self.notifier, build_error_notification(error))
            raise
        except ClassifiedError as error:
            if not options.suppress_notify:
                safe_notify(self.notifier, build_error_notification(error))
            raise

    async def sync(self) -> bool:
        return await self.queue.sync()
