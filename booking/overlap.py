"""员工时间冲突检查

同一员工的两个"占用中"的预约不能在时间上重叠。
占用中的状态：pending / in_progress / completed / not_paid；
canceled 与 no_show 释放时间段。

区间按左闭右开处理：一个预约在 10:30 结束、另一个在 10:30 开始不算冲突。
检查与写入必须在同一个员工锁和事务内完成。
"""
from datetime import datetime
from typing import Optional

from loguru import logger
from sqlalchemy.orm import Session

from database.business_repos import AppointmentRepository
from database.models import Appointment, AppointmentStatus
from .errors import ConflictError, ErrorCode

BLOCKING_STATUSES = frozenset({
    AppointmentStatus.PENDING.value,
    AppointmentStatus.IN_PROGRESS.value,
    AppointmentStatus.COMPLETED.value,
    AppointmentStatus.NOT_PAID.value,
})


def intervals_overlap(start_a: datetime, end_a: datetime,
                      start_b: datetime, end_b: datetime) -> bool:
    """两个左闭右开区间是否重叠。"""
    return start_a < end_b and end_a > start_b


class OverlapChecker:
    """员工时间冲突检查器"""

    def __init__(self, appointments: AppointmentRepository):
        self.appointments = appointments

    def find_conflict(self, session: Session, tenant_id: int, collaborator_id: int,
                      start: datetime, end: datetime,
                      exclude_appointment_id: Optional[int] = None) -> Optional[Appointment]:
        """返回第一条冲突的预约，没有冲突时返回 None。"""
        return self.appointments.find_overlapping(
            session, tenant_id, collaborator_id, start, end,
            statuses=BLOCKING_STATUSES,
            exclude_id=exclude_appointment_id,
        )

    def has_conflict(self, session: Session, tenant_id: int, collaborator_id: int,
                     start: datetime, end: datetime,
                     exclude_appointment_id: Optional[int] = None) -> bool:
        return self.find_conflict(
            session, tenant_id, collaborator_id, start, end, exclude_appointment_id
        ) is not None

    def ensure_free(self, session: Session, tenant_id: int, collaborator_id: int,
                    start: datetime, end: datetime,
                    exclude_appointment_id: Optional[int] = None) -> None:
        """时间段被占用时抛出 OVERLAPPING_APPOINTMENT。"""
        conflict = self.find_conflict(
            session, tenant_id, collaborator_id, start, end, exclude_appointment_id
        )
        if conflict is not None:
            logger.warning(
                f"Rejected overlapping slot for collaborator {collaborator_id}: "
                f"{start:%Y-%m-%d %H:%M}-{end:%H:%M} conflicts with appointment {conflict.id}"
            )
            raise ConflictError(ErrorCode.OVERLAPPING_APPOINTMENT,
                                "Collaborator already has an appointment in this interval")
