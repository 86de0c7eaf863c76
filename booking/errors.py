"""预约与订单引擎的错误类型

所有业务失败都以 BookingError（或其子类）抛出，携带一个稳定的错误码。
错误码按类别（kind）划分：
- validation: 请求本身不合法
- not_found: 引用的实体不存在（或属于其他租户）
- conflict: 与当前数据状态冲突（时间重叠、状态不允许等）
- forbidden: 权限不足

调用方（如 HTTP 层）只需要根据 kind 映射响应状态即可。
"""
from enum import Enum
from typing import FrozenSet


class ErrorKind(Enum):
    """错误类别"""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    FORBIDDEN = "forbidden"


class ErrorCode(str, Enum):
    """稳定的业务错误码"""
    # 预约
    AT_LEAST_ONE_SERVICE_REQUIRED = "AT_LEAST_ONE_SERVICE_REQUIRED"
    INVALID_START_DATE = "INVALID_START_DATE"
    START_MUST_BE_IN_FUTURE = "START_MUST_BE_IN_FUTURE"
    CLIENT_NOT_FOUND = "CLIENT_NOT_FOUND"
    COLLABORATOR_NOT_FOUND = "COLLABORATOR_NOT_FOUND"
    INVALID_SERVICE_IDS = "INVALID_SERVICE_IDS"
    OVERLAPPING_APPOINTMENT = "OVERLAPPING_APPOINTMENT"
    NOT_EDITABLE = "NOT_EDITABLE"
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    INVALID_STATUS = "INVALID_STATUS"
    INVALID_ORIGIN = "INVALID_ORIGIN"
    APPOINTMENT_NOT_FOUND = "APPOINTMENT_NOT_FOUND"
    # 订单
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    ORDER_NOT_OPEN = "ORDER_NOT_OPEN"
    ORDER_NOT_CLOSED = "ORDER_NOT_CLOSED"
    ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
    INVALID_ITEM_TYPE = "INVALID_ITEM_TYPE"
    SERVICE_ID_REQUIRED = "SERVICE_ID_REQUIRED"
    PRODUCT_ID_REQUIRED = "PRODUCT_ID_REQUIRED"
    SERVICE_NOT_FOUND = "SERVICE_NOT_FOUND"
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    # 提成
    NO_PENDING_COMMISSIONS = "NO_PENDING_COMMISSIONS"
    INVALID_COMMISSION_RATE = "INVALID_COMMISSION_RATE"
    # 到店排队
    ALREADY_IN_QUEUE = "ALREADY_IN_QUEUE"
    NO_PROFESSIONAL_AVAILABLE = "NO_PROFESSIONAL_AVAILABLE"
    QUEUE_ENTRY_NOT_FOUND = "QUEUE_ENTRY_NOT_FOUND"
    # 权限
    PERMISSION_DENIED = "PERMISSION_DENIED"


_NOT_FOUND_CODES = frozenset({
    ErrorCode.CLIENT_NOT_FOUND,
    ErrorCode.COLLABORATOR_NOT_FOUND,
    ErrorCode.APPOINTMENT_NOT_FOUND,
    ErrorCode.ORDER_NOT_FOUND,
    ErrorCode.ITEM_NOT_FOUND,
    ErrorCode.SERVICE_NOT_FOUND,
    ErrorCode.PRODUCT_NOT_FOUND,
    ErrorCode.QUEUE_ENTRY_NOT_FOUND,
})

_CONFLICT_CODES = frozenset({
    ErrorCode.OVERLAPPING_APPOINTMENT,
    ErrorCode.NOT_EDITABLE,
    ErrorCode.ILLEGAL_TRANSITION,
    ErrorCode.ORDER_NOT_OPEN,
    ErrorCode.ORDER_NOT_CLOSED,
    ErrorCode.NO_PENDING_COMMISSIONS,
    ErrorCode.ALREADY_IN_QUEUE,
    ErrorCode.NO_PROFESSIONAL_AVAILABLE,
})


def kind_of(code: ErrorCode) -> ErrorKind:
    """返回错误码所属的类别。"""
    if code in _NOT_FOUND_CODES:
        return ErrorKind.NOT_FOUND
    if code in _CONFLICT_CODES:
        return ErrorKind.CONFLICT
    if code is ErrorCode.PERMISSION_DENIED:
        return ErrorKind.FORBIDDEN
    return ErrorKind.VALIDATION


class BookingError(Exception):
    """业务错误基类

    Attributes:
        code: 错误码
        message: 人类可读的描述
    """

    def __init__(self, code: ErrorCode, message: str = ""):
        self.code = code
        self.message = message or code.value
        super().__init__(f"{code.value}: {self.message}")

    @property
    def kind(self) -> ErrorKind:
        return kind_of(self.code)


class ValidationError(BookingError):
    """请求参数不合法"""


class NotFoundError(BookingError):
    """引用的实体不存在"""


class ConflictError(BookingError):
    """与当前数据状态冲突"""


class PermissionDeniedError(BookingError):
    """权限不足"""

    def __init__(self, message: str = ""):
        super().__init__(ErrorCode.PERMISSION_DENIED, message)


# 各操作可能抛出的错误码（闭集）
CREATE_APPOINTMENT_ERRORS: FrozenSet[ErrorCode] = frozenset({
    ErrorCode.AT_LEAST_ONE_SERVICE_REQUIRED,
    ErrorCode.INVALID_ORIGIN,
    ErrorCode.INVALID_START_DATE,
    ErrorCode.START_MUST_BE_IN_FUTURE,
    ErrorCode.CLIENT_NOT_FOUND,
    ErrorCode.COLLABORATOR_NOT_FOUND,
    ErrorCode.INVALID_SERVICE_IDS,
    ErrorCode.OVERLAPPING_APPOINTMENT,
})

EDIT_APPOINTMENT_ERRORS: FrozenSet[ErrorCode] = CREATE_APPOINTMENT_ERRORS | {
    ErrorCode.APPOINTMENT_NOT_FOUND,
    ErrorCode.NOT_EDITABLE,
}

TRANSITION_ERRORS: FrozenSet[ErrorCode] = frozenset({
    ErrorCode.APPOINTMENT_NOT_FOUND,
    ErrorCode.ILLEGAL_TRANSITION,
})

ENSURE_ORDER_ERRORS: FrozenSet[ErrorCode] = frozenset({
    ErrorCode.APPOINTMENT_NOT_FOUND,
})

ADD_ITEM_ERRORS: FrozenSet[ErrorCode] = frozenset({
    ErrorCode.ORDER_NOT_FOUND,
    ErrorCode.ORDER_NOT_OPEN,
    ErrorCode.INVALID_ITEM_TYPE,
    ErrorCode.SERVICE_ID_REQUIRED,
    ErrorCode.PRODUCT_ID_REQUIRED,
    ErrorCode.SERVICE_NOT_FOUND,
    ErrorCode.PRODUCT_NOT_FOUND,
    ErrorCode.COLLABORATOR_NOT_FOUND,
})

REMOVE_ITEM_ERRORS: FrozenSet[ErrorCode] = frozenset({
    ErrorCode.ORDER_NOT_FOUND,
    ErrorCode.ORDER_NOT_OPEN,
    ErrorCode.ITEM_NOT_FOUND,
})

CLOSE_ORDER_ERRORS: FrozenSet[ErrorCode] = frozenset({
    ErrorCode.ORDER_NOT_FOUND,
    ErrorCode.ORDER_NOT_OPEN,
})

PAY_ORDER_ERRORS: FrozenSet[ErrorCode] = frozenset({
    ErrorCode.ORDER_NOT_FOUND,
    ErrorCode.ORDER_NOT_CLOSED,
})

PAY_COMMISSIONS_ERRORS: FrozenSet[ErrorCode] = frozenset({
    ErrorCode.NO_PENDING_COMMISSIONS,
})

QUEUE_ERRORS: FrozenSet[ErrorCode] = frozenset({
    ErrorCode.CLIENT_NOT_FOUND,
    ErrorCode.ALREADY_IN_QUEUE,
    ErrorCode.NO_PROFESSIONAL_AVAILABLE,
    ErrorCode.QUEUE_ENTRY_NOT_FOUND,
    ErrorCode.OVERLAPPING_APPOINTMENT,
    ErrorCode.ILLEGAL_TRANSITION,
})

UPDATE_ORDER_ERRORS: FrozenSet[ErrorCode] = frozenset({
    ErrorCode.ORDER_NOT_FOUND,
    ErrorCode.ORDER_NOT_OPEN,
    ErrorCode.CLIENT_NOT_FOUND,
})

LIST_ORDERS_ERRORS: FrozenSet[ErrorCode] = frozenset({
    ErrorCode.INVALID_STATUS,
})

COMMISSION_RATE_ERRORS: FrozenSet[ErrorCode] = frozenset({
    ErrorCode.PERMISSION_DENIED,
    ErrorCode.COLLABORATOR_NOT_FOUND,
    ErrorCode.INVALID_COMMISSION_RATE,
})
