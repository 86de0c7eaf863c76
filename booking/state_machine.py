"""预约状态机

允许的状态流转：

    pending     → in_progress / canceled / no_show
    in_progress → completed / not_paid
    completed   → not_paid
    canceled、no_show、not_paid 为终态

状态只能通过 transition 修改；流转不重新做时间冲突检查。
预约的内容（顾客、员工、服务、开始时间）只有在 pending 状态下可以编辑。
"""
from typing import Dict, FrozenSet

from loguru import logger

from database.models import Appointment, AppointmentStatus
from .errors import ConflictError, ErrorCode

S = AppointmentStatus

TRANSITIONS: Dict[str, FrozenSet[str]] = {
    S.PENDING.value: frozenset({S.IN_PROGRESS.value, S.CANCELED.value, S.NO_SHOW.value}),
    S.IN_PROGRESS.value: frozenset({S.COMPLETED.value, S.NOT_PAID.value}),
    S.COMPLETED.value: frozenset({S.NOT_PAID.value}),
    S.CANCELED.value: frozenset(),
    S.NO_SHOW.value: frozenset(),
    S.NOT_PAID.value: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)


def _status_value(status) -> str:
    return status.value if isinstance(status, AppointmentStatus) else str(status)


def can_transition(current, target) -> bool:
    """current → target 是否是允许的流转。未知状态一律不允许。"""
    return _status_value(target) in TRANSITIONS.get(_status_value(current), frozenset())


class AppointmentStateMachine:
    """预约状态机"""

    def transition(self, appointment: Appointment, target) -> str:
        """把预约流转到目标状态。

        调用方负责在事务内调用并提交。

        Args:
            appointment: 预约对象
            target: 目标状态（AppointmentStatus 或字符串）

        Returns:
            流转前的状态

        Raises:
            ConflictError: ILLEGAL_TRANSITION，包括未知状态和原地流转
        """
        current = appointment.status
        target_value = _status_value(target)
        if not can_transition(current, target_value):
            raise ConflictError(
                ErrorCode.ILLEGAL_TRANSITION,
                f"Cannot move appointment from {current} to {target_value}",
            )
        appointment.status = target_value
        logger.info(f"Appointment {appointment.id}: {current} -> {target_value}")
        return current

    def assert_editable(self, appointment: Appointment) -> None:
        """只有 pending 的预约可以修改内容。

        Raises:
            ConflictError: NOT_EDITABLE
        """
        if appointment.status != S.PENDING.value:
            raise ConflictError(
                ErrorCode.NOT_EDITABLE,
                f"Appointment {appointment.id} is {appointment.status} and can no longer be edited",
            )
