from typing import Any, ClassVar, Dict, List, Optional, Type

from blog_api.models.common import ErrorDetail, ErrorKind, ValidationErrorItem


class ApiBaseError(Exception):
    """Базовый класс ошибок."""
    pass


class TransportError(ApiBaseError):
    """Транспорт не смог выполнить запрос (ответа нет)."""
    pass


class StorageError(ApiBaseError):
    """Персистентное хранилище недоступно для записи."""
    pass


class RequestCancelledError(ApiBaseError):
    """
    Запрос отменен по ключу (или abort_all).
    НЕ классифицируется и НЕ ретраится.
    """
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Request cancelled: {key}")


class ClassifiedError(ApiBaseError):
    """
    Ошибка после классификации. Единственный тип ошибки, который видит вызывающий код.
    Конкретный kind задается подклассом, retryable - тоже.
    """
    kind: ClassVar[ErrorKind] = ErrorKind.UNKNOWN
    retryable: ClassVar[bool] = False

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        validation_errors: Optional[List[ValidationErrorItem]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status = status
        self.validation_errors = list(validation_errors or [])
        self.details = details
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(kind={self.kind.value!r}, status={self.status!r}, message={self.message!r})"

    def to_detail(self) -> ErrorDetail:
        return ErrorDetail(
            kind=self.kind,
            message=self.message,
            status=self.status,
            retryable=self.retryable,
            validation_errors=self.validation_errors,
            details=self.details,
        )

    @staticmethod
    def for_kind(kind: ErrorKind) -> Type["ClassifiedError"]:
        return _ERRORS_BY_KIND[kind]


class AuthError(ClassifiedError):
    """401/403. Никогда не ретраим."""
    kind = ErrorKind.AUTH


class RequestValidationError(ClassifiedError):
    """400. Несет ошибки по полям для биндинга в форму."""
    kind = ErrorKind.VALIDATION


class NotFoundError(ClassifiedError):
    kind = ErrorKind.NOT_FOUND


class ServerError(ClassifiedError):
    """5xx. Временный сбой, Retry Controller повторит."""
    kind = ErrorKind.SERVER
    retryable = True


class NetworkError(ClassifiedError):
    """Ответа нет (DNS, обрыв соединения, таймаут попытки)."""
    kind = ErrorKind.NETWORK
    retryable = True


class UnknownApiError(ClassifiedError):
    kind = ErrorKind.UNKNOWN


_ERRORS_BY_KIND: Dict[ErrorKind, Type[ClassifiedError]] = {
    ErrorKind.AUTH: AuthError,
    ErrorKind.VALIDATION: RequestValidationError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.SERVER: ServerError,
    ErrorKind.NETWORK: NetworkError,
    ErrorKind.UNKNOWN: UnknownApiError,
}
