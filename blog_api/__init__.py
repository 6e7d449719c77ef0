from typing import Final

from blog_api.core.exceptions import (
    ApiBaseError,
    AuthError,
    ClassifiedError,
    NetworkError,
    NotFoundError,
    RequestCancelledError,
    RequestValidationError,
    ServerError,
    UnknownApiError,
)
from blog_api.execution.dispatcher import RequestDispatcher
from blog_api.models import CachePolicy, DispatchOptions, RequestDescriptor, RetryPolicy
from blog_api.services.api_client import ApiClient

__version__: Final[str] = "0.1.0"

__all__ = [
    "ApiClient",
    "RequestDispatcher",
    "RequestDescriptor",
    "DispatchOptions",
    "CachePolicy",
    "RetryPolicy",
    "ApiBaseError",
    "ClassifiedError",
    "AuthError",
    "RequestValidationError",
    "NotFoundError",
    "ServerError",
    "NetworkError",
    "UnknownApiError",
    "RequestCancelledError",
]
