import logging
from typing import Dict, Optional

from blog_api.core.contracts import Notifier
from blog_api.core.exceptions import ClassifiedError
from blog_api.models.common import ErrorKind, Notification, NotificationKind

logger = logging.getLogger(__name__)

ERROR_TITLES: Dict[ErrorKind, str] = {
    ErrorKind.AUTH: "Authentication failed",
    ErrorKind.VALIDATION: "Form validation failed",
    ErrorKind.NOT_FOUND: "Resource not found",
    ErrorKind.NETWORK: "Network error",
    ErrorKind.SERVER: "Server error",
    ErrorKind.UNKNOWN: "Request failed",
}

# Детали 5xx пользователю не показываем
SERVER_ERROR_MESSAGE = "The server failed to process the request. Please try again later."


def build_error_notification(error: ClassifiedError) -> Notification:
    """Человекочитаемое уведомление по типу ошибки."""
    message = error.message
    if error.kind == ErrorKind.VALIDATION and error.validation_errors:
        message = "\n".join(f"{item.field}: {item.message}" for item in error.validation_errors)
    elif error.kind == ErrorKind.SERVER:
        message = SERVER_ERROR_MESSAGE

    return Notification(
        kind=NotificationKind.ERROR,
        title=ERROR_TITLES.get(error.kind, ERROR_TITLES[ErrorKind.UNKNOWN]),
        message=message,
    )


def build_success_notification(message: Optional[str] = None) -> Notification:
    return Notification(
        kind=NotificationKind.SUCCESS,
        title="Success",
        message=message or "Request completed successfully",
    )


def safe_notify(notifier: Optional[Notifier], event: Notification) -> None:
    """
    Fire-and-forget: сбой слоя уведомлений не должен ломать запрос.
    Ошибка логируется и дальше не идет.
    """
    if notifier is None:
        return
    try:
        notifier.notify(event)
    except Exception as e:
        logger.warning(f"Notifier failed for {event.kind.value} event: {e.__class__.__name__}: {e}")


class LoggingNotifier:
    """Нотификатор по умолчанию: пишет события в лог (UI нет - есть лог)."""

    _LEVELS = {
        NotificationKind.SUCCESS: logging.INFO,
        NotificationKind.INFO: logging.INFO,
        NotificationKind.WARNING: logging.WARNING,
        NotificationKind.ERROR: logging.ERROR,
    }

    def notify(self, event: Notification) -> None:
        title = f"{event.title}: " if event.title else ""
        logger.log(self._LEVELS[event.kind], f"[{event.kind.value}] {title}{event.message}")
