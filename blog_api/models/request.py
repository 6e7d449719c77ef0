import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Только "читающие" запросы участвуют в кэшировании
READ_METHODS: FrozenSet[str] = frozenset({"GET"})


def make_request_key(method: str, url: str, params: Optional[Dict[str, Any]] = None) -> str:
    """
    Ключ идентичности запроса: method:url:JSON(params).
    Параметры сортируются, чтобы {a, b} и {b, a} давали один ключ.
    """
    serialized = json.dumps(params or {}, sort_keys=True, default=str, ensure_ascii=False)
    return f"{method.lower()}:{url}:{serialized}"


class RequestDescriptor(BaseModel):
    """Один логический запрос. Создается на каждый вызов, не персистится."""
    url: str
    method: str = "GET"
    params: Optional[Dict[str, Any]] = None
    body: Any = None
    headers: Dict[str, str] = Field(default_factory=dict)

    # Кастомный ключ кэша (если не задан - равен ключу идентичности)
    cache_key: Optional[str] = None

    @model_validator(mode="after")
    def _normalize(self) -> "RequestDescriptor":
        self.method = self.method.upper()
        if not self.cache_key:
            self.cache_key = self.cancellation_key
        return self

    @property
    def cancellation_key(self) -> str:
        return make_request_key(self.method, self.url, self.params)

    @property
    def is_read(self) -> bool:
        return self.method in READ_METHODS


class CachePolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    ttl_ms: int = Field(5 * 60 * 1000, gt=0)
    key: Optional[str] = None


class RetryPolicy(BaseModel):
    """
    Политика повторов. Неизменяема в пределах одного вызова.
    max_attempts - ОБЩЕЕ число обращений к транспорту (включая первое).
    """
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    max_attempts: int = Field(3, ge=1)
    base_delay_ms: int = Field(300, ge=0)
    max_delay_ms: int = Field(10_000, ge=0)
    non_retryable_statuses: FrozenSet[int] = frozenset({401, 403})

    @classmethod
    def from_settings(cls, settings: Any) -> "RetryPolicy":
        return cls(
            enabled=settings.RETRY_ENABLED,
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            base_delay_ms=settings.RETRY_BASE_DELAY_MS,
            max_delay_ms=settings.RETRY_MAX_DELAY_MS,
            non_retryable_statuses=frozenset(settings.RETRY_NON_RETRYABLE_STATUSES),
        )


class TransportResponse(BaseModel):
    status: int
    body: Any = None
    headers: Dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class QueuedResult(BaseModel):
    """Ответ вместо ошибки: мутация отложена в офлайн-очередь"""
    queued: bool = True
    action_id: str


@dataclass
class DispatchOptions:
    """Опции одного вызова dispatch(). None означает "взять из настроек"."""
    cache: Optional[CachePolicy] = None
    retry: Optional[RetryPolicy] = None
    timeout: Optional[float] = None          # Потолок на ОДНУ попытку, секунды
    suppress_notify: bool = False
    notify_success: bool = False
    success_message: Optional[str] = None
    transform: Optional[Callable[[Any], Any]] = None
    on_error: Optional[Callable[[Exception], Any]] = None
    on_retry: Optional[Callable[[Exception, int], Any]] = None


# Фабрика попытки для RetryController
RequestFn = Callable[[], Awaitable[Any]]
