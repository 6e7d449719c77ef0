import logging
import time
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class _CacheMiss:
    def __repr__(self) -> str:
        return "CACHE_MISS"

    def __bool__(self) -> bool:
        return False


# Sentinel: None/0/"" - валидные закэшированные значения, промах - только он
CACHE_MISS: Any = _CacheMiss()


class CacheEntry(BaseModel):
    key: str
    value: Any = None
    expires_at: float  # по часам стора (monotonic), секунды

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class CacheStore:
    """
    Кэш ответов с TTL.
    Очистка только ленивая (при промахе по истечению) или явная - фонового sweep нет.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return CACHE_MISS

        if entry.is_expired(self._clock()):
            # Истекла -> промах + выселение
            del self._entries[key]
            logger.debug(f"Cache expired: {key}")
            return CACHE_MISS

        return entry.value

    def set(self, key: str, value: Any, ttl_ms: int) -> None:
        expires_at = self._clock() + ttl_ms / 1000.0
        self._entries[key] = CacheEntry(key=key, value=value, expires_at=expires_at)

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self, key: Optional[str] = None) -> None:
        if key is not None:
            self.invalidate(key)
            return
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        # Без выселения: только проверка видимости
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def __len__(self) -> int:
        return len(self._entries)
