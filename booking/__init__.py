"""预约排期与订单对账引擎"""
from .adapters import CallerIdentity, DispatchResult, NotificationDispatcher
from .errors import (
    BookingError, ConflictError, ErrorCode, ErrorKind, NotFoundError,
    PermissionDeniedError, ValidationError
)
from .service import AppointmentChanges, BookingResult, BookingService

__all__ = [
    "AppointmentChanges",
    "BookingError",
    "BookingResult",
    "BookingService",
    "CallerIdentity",
    "ConflictError",
    "DispatchResult",
    "ErrorCode",
    "ErrorKind",
    "NotFoundError",
    "NotificationDispatcher",
    "PermissionDeniedError",
    "ValidationError",
]
