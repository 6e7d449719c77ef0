import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from blog_api.core.exceptions import ClassifiedError, TransportError
from blog_api.models.common import ErrorKind, ValidationErrorItem

logger = logging.getLogger(__name__)

# Статус -> тип ошибки. Всё, чего нет в таблице, - UNKNOWN.
STATUS_KIND_MAP: Dict[int, ErrorKind] = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.AUTH,
    403: ErrorKind.AUTH,
    404: ErrorKind.NOT_FOUND,
    500: ErrorKind.SERVER,
    502: ErrorKind.SERVER,
    503: ErrorKind.SERVER,
    504: ErrorKind.SERVER,
}

# Человекочитаемые сообщения по умолчанию (если сервер не прислал message)
DEFAULT_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.AUTH: "Authentication required or session is no longer valid.",
    ErrorKind.VALIDATION: "The submitted data is invalid.",
    ErrorKind.NOT_FOUND: "The requested resource was not found.",
    ErrorKind.SERVER: "The server failed to process the request. Please try again later.",
    ErrorKind.NETWORK: "Network connection failed. Please check your connection.",
    ErrorKind.UNKNOWN: "The request failed. Please try again later.",
}

# Ошибки "ответа нет" -> NETWORK
_NETWORK_EXCEPTIONS = (
    httpx.RequestError,   # включает TimeoutException, ConnectError, ProxyError...
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
    OSError,
    TransportError,
)


def _parse_validation_errors(raw: Any) -> List[ValidationErrorItem]:
    """Битые элементы errors[] пропускаем, а не валим классификацию."""
    if not isinstance(raw, list):
        return []
    items: List[ValidationErrorItem] = []
    for entry in raw:
        try:
            items.append(ValidationErrorItem.model_validate(entry))
        except PydanticValidationError:
            logger.debug(f"Skipping malformed validation error entry: {entry!r}")
    return items


def classify_status(status: int, body: Any = None) -> ClassifiedError:
    """
    Классификация по HTTP статусу и (опционально) структурированному телу
    вида {"message": ..., "errors": [{"field": ..., "message": ...}]}.
    """
    kind = STATUS_KIND_MAP.get(status, ErrorKind.UNKNOWN)
    data = body if isinstance(body, dict) else None

    message = None
    if data is not None and isinstance(data.get("message"), str) and data["message"]:
        message = data["message"]

    validation_errors: List[ValidationErrorItem] = []
    if kind == ErrorKind.VALIDATION and data is not None:
        validation_errors = _parse_validation_errors(data.get("errors"))

    error_cls = ClassifiedError.for_kind(kind)
    return error_cls(
        message or DEFAULT_MESSAGES[kind],
        status=status,
        validation_errors=validation_errors,
        details=data,
    )


def _response_body(response: httpx.Response) -> Optional[Any]:
    try:
        return response.json()
    except ValueError:
        return None


def classify_error(error: BaseException) -> ClassifiedError:
    """
    Классификатор ошибок. Чистая функция: без побочных эффектов,
    повторный вызов на уже классифицированной ошибке возвращает ее же.
    """
    # 0. Уже классифицирована
    if isinstance(error, ClassifiedError):
        return error

    # 1. Ответ получен, но статус не 2xx
    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        return classify_status(response.status_code, _response_body(response))

    # 2. Ответа нет вообще -> NETWORK (всегда retryable)
    if isinstance(error, _NETWORK_EXCEPTIONS):
        kind = ErrorKind.NETWORK
        detail = str(error) or error.__class__.__name__
        return ClassifiedError.for_kind(kind)(
            DEFAULT_MESSAGES[kind],
            details={"error": detail, "error_class": error.__class__.__name__},
        )

    # 3. Всё прочее
    return ClassifiedError.for_kind(ErrorKind.UNKNOWN)(
        str(error) or DEFAULT_MESSAGES[ErrorKind.UNKNOWN],
        details={"error_class": error.__class__.__name__},
    )
