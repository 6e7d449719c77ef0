from blog_api.models.common import ErrorKind, ValidationErrorItem, ErrorDetail, Notification, NotificationKind
from blog_api.models.request import (
    RequestDescriptor,
    CachePolicy,
    RetryPolicy,
    DispatchOptions,
    TransportResponse,
    QueuedResult,
    make_request_key,
)
from blog_api.models.offline import OfflineAction, NetworkState, NetworkEvent

__all__ = [
    "ErrorKind",
    "ValidationErrorItem",
    "ErrorDetail",
    "Notification",
    "NotificationKind",
    "RequestDescriptor",
    "CachePolicy",
    "RetryPolicy",
    "DispatchOptions",
    "TransportResponse",
    "QueuedResult",
    "make_request_key",
    "OfflineAction",
    "NetworkState",
    "NetworkEvent",
]
