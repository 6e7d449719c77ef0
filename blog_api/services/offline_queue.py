import asyncio
import logging
from typing import Any, Callable, List, Optional, Tuple

from pydantic import ValidationError

from blog_api.core.contracts import PersistentStore
from blog_api.core.exceptions import ApiBaseError, StorageError
from blog_api.execution.dispatcher import RequestDispatcher
from blog_api.models.offline import NetworkEvent, OfflineAction
from blog_api.models.request import CachePolicy, DispatchOptions, RequestDescriptor
from blog_api.services.network_monitor import NetworkMonitor

logger = logging.getLogger(__name__)


class OfflineQueue:
    """
    Персистентная очередь мутаций, которые не удалось отправить.
    Обеспечивает:
    - Синхронную запись в хранилище на enqueue (перезагрузка ничего не теряет).
    - Replay через RequestDispatcher при переходе Offline -> Online.
    - Удаление действия ТОЛЬКО после подтвержденного успешного replay.

    Replay строго последовательный в порядке timestamp: "create" уходит раньше
    зависящего от него "update".
    """

    def __init__(
        self,
        store: PersistentStore,
        dispatcher: RequestDispatcher,
        monitor: Optional[NetworkMonitor] = None,
        namespace: str = "offline_actions",
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.monitor = monitor
        self.namespace = namespace

        # При старте поднимаем то, что пережило перезагрузку
        self._actions: List[OfflineAction] = self._load()
        self._sync_task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

        if monitor is not None:
            self._unsubscribe = monitor.subscribe(self._on_network_event)

    def _load(self) -> List[OfflineAction]:
        """Битые записи пропускаем с предупреждением, остальное поднимаем."""
        raw = self.store.read(self.namespace)
        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.warning(f"Offline queue namespace '{self.namespace}' is not a list. Ignoring it.")
            return []

        actions: List[OfflineAction] = []
        for index, item in enumerate(raw):
            try:
                actions.append(OfflineAction.model_validate(item))
            except ValidationError:
                logger.warning(f"Skipping corrupted offline action at index {index}")

        if actions:
            logger.info(f"Offline queue loaded: {len(actions)} pending action(s)")
        return actions

    def _persist(self) -> None:
        if not self._actions:
            self.store.remove(self.namespace)
            return
        self.store.write(self.namespace, [action.model_dump(mode="json") for action in self._actions])

    # --- Public API ---

    @property
    def pending(self) -> Tuple[OfflineAction, ...]:
        """Read-only проекция персистентного списка."""
        return tuple(self._actions)

    @property
    def is_syncing(self) -> bool:
        return self._sync_task is not None and not self._sync_task.done()

    @property
    def is_online(self) -> bool:
        return self.monitor.is_online if self.monitor is not None else True

    def __len__(self) -> int:
        return len(self._actions)

    def enqueue(self, action_type: str, payload: Any, endpoint: str, method: str = "POST") -> OfflineAction:
        action = OfflineAction(type=action_type, payload=payload, endpoint=endpoint, method=method.upper())
        self._actions.append(action)
        self._persist()
        logger.info(f"📥 Queued offline action {action.type} -> {action.method} {action.endpoint} ({action.id})")
        return action

    def clear(self) -> None:
        self._actions = []
        self.store.remove(self.namespace)

    async def sync(self) -> bool:
        """
        Отправляет все отложенные действия. True - только если ВСЕ прошли.
        No-op (False), если offline или очередь пуста.
        Параллельный вызов присоединяется к уже идущему sync, а не шлет повторно.
        """
        expected = {action.id for action in self._actions}

        if not self.is_syncing:
            if not self.is_online or not self._actions:
                return False
            self._start_sync()

        ok = await asyncio.shield(self._sync_task)

        # Присоединились к sync со старым снимком: наши действия еще ждут
        if ok and any(action.id in expected for action in self._actions):
            return await self.sync()
        return ok

    def _start_sync(self) -> asyncio.Task:
        self._sync_task = asyncio.ensure_future(self._replay())
        self._sync_task.add_done_callback(self._on_sync_done)
        return self._sync_task

    @staticmethod
    def _on_sync_done(task: asyncio.Task) -> None:
        if task.cancelled():
            logger.warning("Offline sync was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Offline sync crashed: {error.__class__.__name__}: {error}")

    async def _replay(self) -> bool:
        batch = sorted(self._actions, key=lambda action: action.timestamp)
        logger.info(f"🔄 Syncing {len(batch)} offline action(s)")

        failed = 0
        for position, action in enumerate(batch):
            if not self.is_online:
                # Сеть пропала посреди sync: остаток ждет следующего перехода
                remaining = len(batch) - position
                logger.warning(f"Connection lost during sync, {remaining} action(s) left for later")
                failed += remaining
                break

            descriptor = RequestDescriptor(url=action.endpoint, method=action.method, body=action.payload)
            try:
                await self.dispatcher.dispatch(
                    descriptor,
                    DispatchOptions(suppress_notify=True, cache=CachePolicy(enabled=False)),
                )
            except ApiBaseError as e:
                failed += 1
                logger.error(f"Failed to sync action {action.type} ({action.id}): {e}")
                continue

            # Подтвержденный успех -> сразу убираем и сохраняем (crash-safe)
            self._actions = [pending for pending in self._actions if pending.id != action.id]
            try:
                self._persist()
            except StorageError as e:
                # В хранилище действие осталось: после перезагрузки уйдет повторно
                failed += 1
                logger.error(f"Action {action.id} sent but queue was not persisted: {e}")

        if failed:
            logger.warning(f"Offline sync finished: {len(batch) - failed} ok, {failed} retained")
        else:
            logger.info(f"✅ Offline sync finished: {len(batch)} action(s) replayed")
        return failed == 0

    async def _on_network_event(self, event: NetworkEvent) -> None:
        # Не ждем replay: монитор должен продолжать пробы
        if event.went_online and self._actions and not self.is_syncing:
            self._start_sync()

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
