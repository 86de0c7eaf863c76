"""到店排队（Walk-in）

没有预约直接到店的顾客进入当天的排队列表，系统自动：
1. 选择当天分配人数最少的在职专业人员（人数相同时按姓名取第一个）
2. 把开始时间取整到下一个 15 分钟，并顺延到该员工空闲的时间段
3. 创建一个 reception 来源的 pending 预约，以及一条排队记录

排队记录只是"顾客 → 预约"的元数据，真正占用时间段的是预约本身，
因此最终写入前仍然要经过时间冲突检查。轮询分配只是启发式策略，不保证负载绝对均衡。
"""
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from loguru import logger
from sqlalchemy.orm import Session

from database.business_repos import AppointmentRepository, QueueRepository
from database.connection import DatabaseConnection
from database.entity_repos import ClientRepository, CollaboratorRepository
from database.models import AppointmentOrigin, AppointmentStatus, Collaborator, QueueEntry
from .adapters import Clock, system_clock
from .errors import ConflictError, ErrorCode, NotFoundError
from .overlap import BLOCKING_STATUSES, OverlapChecker
from .state_machine import AppointmentStateMachine

QUEUE_NOTE_PREFIX = "[Fila]"
DEFAULT_QUEUE_NOTE = "Agendamento por ordem de chegada"

# 这些状态的预约不再算"排队中"
_FINISHED_STATUSES = frozenset({
    AppointmentStatus.CANCELED.value,
    AppointmentStatus.COMPLETED.value,
    AppointmentStatus.NO_SHOW.value,
})


def day_bounds(now: datetime) -> Tuple[datetime, datetime]:
    """返回 now 所在自然日（UTC）的 [开始, 结束)。"""
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return day_start, day_start + timedelta(days=1)


def round_up(now: datetime, minutes: int) -> datetime:
    """向上取整到下一个 minutes 分钟整点；正好落在整点上时不变。"""
    base = now.replace(second=0, microsecond=0)
    if base == now and now.minute % minutes == 0:
        return base
    remainder = base.minute % minutes
    return base + timedelta(minutes=minutes - remainder)


class WalkInQueue:
    """到店排队管理"""

    def __init__(self, conn: DatabaseConnection, clients: ClientRepository,
                 collaborators: CollaboratorRepository,
                 appointments: AppointmentRepository, queue: QueueRepository,
                 overlap: OverlapChecker, state_machine: AppointmentStateMachine,
                 slot_minutes: int = 30, rounding_minutes: int = 15,
                 clock: Optional[Clock] = None):
        self.conn = conn
        self.clients = clients
        self.collaborators = collaborators
        self.appointments = appointments
        self.queue = queue
        self.overlap = overlap
        self.state_machine = state_machine
        self.slot_minutes = slot_minutes
        self.rounding_minutes = rounding_minutes
        self.clock = clock or system_clock

    def _ensure_not_queued(self, session: Session, tenant_id: int, client_id: int,
                           day_start: datetime, day_end: datetime) -> None:
        for entry in self.queue.list_between(tenant_id, day_start, day_end, session=session):
            if entry.client_id == client_id and entry.appointment.status not in _FINISHED_STATUSES:
                raise ConflictError(ErrorCode.ALREADY_IN_QUEUE,
                                    f"Client {client_id} is already in today's queue")

    def pick_collaborator(self, session: Session, tenant_id: int,
                          day_start: datetime, day_end: datetime) -> Collaborator:
        """选出当天分配人数最少的专业人员，人数相同时取姓名排序靠前的。

        Raises:
            ConflictError: NO_PROFESSIONAL_AVAILABLE
        """
        candidates = self.collaborators.list_active_professionals(tenant_id, session=session)
        if not candidates:
            raise ConflictError(ErrorCode.NO_PROFESSIONAL_AVAILABLE,
                                "No professional available right now")
        assignments = self.queue.count_assignments(session, tenant_id, day_start, day_end)
        selected = candidates[0]
        fewest = assignments.get(selected.id, 0)
        for candidate in candidates:
            count = assignments.get(candidate.id, 0)
            if count < fewest:
                selected, fewest = candidate, count
        return selected

    def next_free_slot(self, session: Session, tenant_id: int, collaborator_id: int,
                       now: datetime) -> Tuple[datetime, datetime]:
        """从取整后的当前时间开始，顺延过员工所有占用中的预约。"""
        start = round_up(now, self.rounding_minutes)
        duration = timedelta(minutes=self.slot_minutes)
        busy = self.appointments.list_for_collaborator_after(
            session, tenant_id, collaborator_id, start, BLOCKING_STATUSES
        )
        for appointment in busy:
            if start < appointment.end and start + duration > appointment.start:
                start = appointment.end
        return start, start + duration

    def add(self, tenant_id: int, client_id: int,
            notes: Optional[str] = None) -> QueueEntry:
        """顾客到店排队。

        Args:
            tenant_id: 租户ID
            client_id: 顾客ID
            notes: 备注（可选）

        Returns:
            排队记录（带预约）

        Raises:
            NotFoundError: CLIENT_NOT_FOUND
            ConflictError: ALREADY_IN_QUEUE / NO_PROFESSIONAL_AVAILABLE /
                OVERLAPPING_APPOINTMENT
        """
        now = self.clock()
        day_start, day_end = day_bounds(now)

        with self.conn.transaction() as session:
            if self.clients.get_active(tenant_id, client_id, session=session) is None:
                raise NotFoundError(ErrorCode.CLIENT_NOT_FOUND, f"Client {client_id} not found")
            self._ensure_not_queued(session, tenant_id, client_id, day_start, day_end)
            collaborator = self.pick_collaborator(session, tenant_id, day_start, day_end)
            collaborator_id = collaborator.id

        with self.conn.staff_lock(tenant_id, collaborator_id):
            with self.conn.transaction() as session:
                self.collaborators.lock_for_update(tenant_id, collaborator_id, session)
                self._ensure_not_queued(session, tenant_id, client_id, day_start, day_end)
                start, end = self.next_free_slot(session, tenant_id, collaborator_id, now)
                self.overlap.ensure_free(session, tenant_id, collaborator_id, start, end)

                appointment = self.appointments.add(
                    session, tenant_id, client_id, collaborator_id,
                    service_ids=[], start=start, end=end,
                    origin=AppointmentOrigin.RECEPTION.value,
                    notes=f"{QUEUE_NOTE_PREFIX} {notes or DEFAULT_QUEUE_NOTE}",
                )
                position = self.queue.next_position(session, tenant_id, day_start, day_end)
                entry = self.queue.add(
                    session, tenant_id, client_id, collaborator_id, appointment.id,
                    position=position, arrived_at=now, notes=notes,
                )
                session.refresh(entry)

        logger.info(f"Queue #{entry.position}: client {client_id} -> collaborator "
                    f"{collaborator_id} at {start:%H:%M} (appointment {entry.appointment_id})")
        return entry

    def remove(self, tenant_id: int, entry_id: int) -> QueueEntry:
        """移除排队记录，并取消关联的预约。

        已经取消的预约不会重复流转；其他不允许取消的状态（如进行中）会抛出
        ILLEGAL_TRANSITION，排队记录保持不变。

        Raises:
            NotFoundError: QUEUE_ENTRY_NOT_FOUND
            ConflictError: ILLEGAL_TRANSITION
        """
        with self.conn.transaction() as session:
            entry = self.queue.get(tenant_id, entry_id, session=session)
            if entry is None:
                raise NotFoundError(ErrorCode.QUEUE_ENTRY_NOT_FOUND,
                                    f"Queue entry {entry_id} not found")
            appointment = entry.appointment
            if appointment.status != AppointmentStatus.CANCELED.value:
                self.state_machine.transition(appointment, AppointmentStatus.CANCELED)
            self.queue.delete(session, entry)

        logger.info(f"Queue entry {entry_id} removed, appointment {entry.appointment_id} canceled")
        return entry

    def list_today(self, tenant_id: int) -> List[QueueEntry]:
        """当天的排队列表，按序号升序。"""
        day_start, day_end = day_bounds(self.clock())
        return self.queue.list_between(tenant_id, day_start, day_end)
