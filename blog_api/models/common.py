from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    """Закрытая таксономия ошибок API (решает: Retry или показать пользователю)"""
    AUTH = "auth"                 # 401 / 403
    VALIDATION = "validation"     # 400, есть ошибки по полям формы
    NOT_FOUND = "notFound"        # 404
    SERVER = "server"             # 500 / 502 / 503 / 504
    NETWORK = "network"           # Ответа нет вообще (DNS, обрыв, таймаут)
    UNKNOWN = "unknown"           # Всё остальное


class ValidationErrorItem(BaseModel):
    """Ошибка одного поля формы (для биндинга в UI)"""
    field: str
    message: str


class ErrorDetail(BaseModel):
    """Сериализуемая проекция ClassifiedError (для логов и UI)"""
    kind: ErrorKind
    message: str
    status: Optional[int] = None
    retryable: bool = False
    validation_errors: List[ValidationErrorItem] = Field(default_factory=list)
    details: Optional[Dict[str, Any]] = Field(default=None, description="Сырое тело ответа сервера")


class NotificationKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    WARNING = "warning"


class Notification(BaseModel):
    """Событие для внешнего слоя уведомлений (toast и т.п.)"""
    kind: NotificationKind
    title: Optional[str] = None
    message: str
