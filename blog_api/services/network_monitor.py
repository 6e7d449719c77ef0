import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from blog_api.config.headers import NO_CACHE_HEADERS
from blog_api.core.contracts import Transport
from blog_api.models.offline import NetworkEvent, NetworkState

logger = logging.getLogger(__name__)

Subscriber = Callable[[NetworkEvent], Any]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NetworkMonitor:
    """
    Автомат Online/Offline.
    Переходы: события платформы (сразу) + периодическая health-проба,
    которая ловит "платформа говорит online, а сервер недоступен" и обратное.
    Каждый реальный переход обновляет NetworkState и эмитит NetworkEvent подписчикам.
    """

    def __init__(
        self,
        transport: Transport,
        health_url: str,
        interval: float = 30.0,
        probe_timeout: float = 5.0,
        initial_online: bool = True,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.transport = transport
        self.health_url = health_url
        self.interval = interval
        self.probe_timeout = probe_timeout
        self._clock = clock

        now = clock()
        self._state = NetworkState(
            is_online=initial_online,
            last_online=now if initial_online else None,
            last_offline=None if initial_online else now,
        )
        self._subscribers: List[Subscriber] = []
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, transport: Transport, settings: Any, **kwargs: Any) -> "NetworkMonitor":
        return cls(
            transport,
            settings.health_url,
            interval=settings.HEALTH_PROBE_INTERVAL,
            probe_timeout=settings.HEALTH_PROBE_TIMEOUT,
            **kwargs,
        )

    @property
    def state(self) -> NetworkState:
        return self._state.model_copy()

    @property
    def is_online(self) -> bool:
        return self._state.is_online

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Подписка на переходы. Возвращает функцию отписки."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # --- Источники переходов ---

    async def handle_connectivity_change(self, is_online: bool) -> bool:
        """Событие платформы (online/offline). True, если состояние сменилось."""
        return await self._transition(is_online, source="platform")

    async def probe(self) -> bool:
        """
        Лёгкая HEAD-проба health endpoint.
        Любой не-2xx или сбой транспорта = Offline.
        """
        try:
            response = await asyncio.wait_for(
                self.transport.send("HEAD", self.health_url, headers=dict(NO_CACHE_HEADERS)),
                timeout=self.probe_timeout,
            )
            reachable = response.ok
            if not reachable:
                logger.debug(f"Health probe returned HTTP {response.status}")
        except Exception as e:
            logger.debug(f"Health probe failed: {e.__class__.__name__}: {e}")
            reachable = False

        await self._transition(reachable, source="probe")
        return reachable

    async def _transition(self, is_online: bool, source: str) -> bool:
        if is_online == self._state.is_online:
            return False

        previous = self._state
        now = self._clock()
        if is_online:
            current = previous.model_copy(update={"is_online": True, "last_online": now})
            logger.info(f"🌐 Back online (source: {source})")
        else:
            current = previous.model_copy(update={"is_online": False, "last_offline": now})
            logger.warning(f"📴 Went offline (source: {source})")

        self._state = current
        await self._emit(NetworkEvent(previous=previous, current=current))
        return True

    async def _emit(self, event: NetworkEvent) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                # Один сломанный подписчик не должен лишать событий остальных
                logger.error(f"Network subscriber {callback!r} failed: {e.__class__.__name__}: {e}")

    # --- Жизненный цикл пробы ---

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.probe()

    def start(self) -> None:
        """Запускает периодическую пробу. Вызывать внутри работающего event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug(f"Network monitor started (interval={self.interval}s, url={self.health_url})")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
