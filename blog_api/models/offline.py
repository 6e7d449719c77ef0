import time
import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


def now_ms() -> int:
    return int(time.time() * 1000)


class OfflineAction(BaseModel):
    """Мутация, которую не удалось отправить. Живет в хранилище до успешного replay."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: str = Field(..., description="Бизнес-тип действия (CREATE_POST, ADD_COMMENT...)")
    payload: Any = None
    endpoint: str
    method: str = "POST"
    timestamp: int = Field(default_factory=now_ms, description="Epoch, миллисекунды")


class NetworkState(BaseModel):
    is_online: bool = True
    last_online: Optional[datetime] = None
    last_offline: Optional[datetime] = None


class NetworkEvent(BaseModel):
    """Переход состояния сети (эмитится только при реальной смене состояния)"""
    previous: NetworkState
    current: NetworkState

    @property
    def went_online(self) -> bool:
        return not self.previous.is_online and self.current.is_online

    @property
    def went_offline(self) -> bool:
        return self.previous.is_online and not self.current.is_online
