"""领域事件 Outbox 与派发

预约创建时在同一个事务内写入一条 ``appointment.created`` 事件；
事务提交、所有锁释放之后，再由 OutboxRelay 调用通知派发器。
派发失败（返回失败或抛出异常）只记录在事件上并返回一条告警，
绝不影响已经提交的预约。

失败或未派发的事件由 dispatch_pending 重试（见 booking/scheduler.py）。
"""
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy.orm import Session

from database.models import Appointment, OutboxEvent
from database.system_repos import OutboxRepository
from .adapters import DispatchResult, NotificationDispatcher

APPOINTMENT_CREATED = "appointment.created"


def appointment_payload(appointment: Appointment) -> Dict[str, Any]:
    return {
        "appointment_id": appointment.id,
        "client_id": appointment.client_id,
        "collaborator_id": appointment.collaborator_id,
        "service_ids": appointment.service_ids,
        "start": appointment.start.isoformat(),
        "end": appointment.end.isoformat(),
        "origin": appointment.origin,
    }


class OutboxRelay:
    """Outbox 事件派发器

    Attributes:
        outbox: Outbox 仓库
        dispatcher: 通知派发器（为 None 时事件保持 pending，等待之后重试）
        max_attempts: 单个事件的最大派发次数
        batch_size: dispatch_pending 每次处理的事件数
    """

    def __init__(self, outbox: OutboxRepository,
                 dispatcher: Optional[NotificationDispatcher] = None,
                 max_attempts: int = 5, batch_size: int = 50):
        self.outbox = outbox
        self.dispatcher = dispatcher
        self.max_attempts = max_attempts
        self.batch_size = batch_size

    def record_appointment_created(self, session: Session,
                                   appointment: Appointment) -> OutboxEvent:
        """在预约事务内写入 appointment.created 事件。"""
        return self.outbox.add(
            session, appointment.tenant_id, APPOINTMENT_CREATED,
            appointment.id, appointment_payload(appointment),
        )

    def dispatch(self, event_id: int) -> Optional[str]:
        """派发一条事件。

        必须在业务事务提交之后、且不持有任何员工锁时调用。

        Args:
            event_id: 事件ID

        Returns:
            派发失败时返回告警文本，成功或无需派发时返回 None
        """
        if self.dispatcher is None:
            return None
        event = self.outbox.get(event_id)
        if event is None or event.status == "sent":
            return None

        try:
            result = self.dispatcher.notify(event.tenant_id, event.aggregate_id)
        except Exception as e:
            result = DispatchResult(success=False, error=f"{type(e).__name__}: {e}")

        if result is not None and result.success:
            self.outbox.mark_sent(event.id)
            return None

        error = (result.error if result is not None else None) or "dispatcher reported failure"
        self.outbox.mark_failed(event.id, error)
        logger.warning(f"Notification for {event.topic} #{event.aggregate_id} failed: {error}")
        return f"Notification not sent: {error}"

    def dispatch_pending(self, limit: Optional[int] = None) -> Dict[str, int]:
        """重试所有 pending / failed 且未超过最大次数的事件。

        Returns:
            {"sent": 成功数, "failed": 失败数}
        """
        stats = {"sent": 0, "failed": 0}
        if self.dispatcher is None:
            return stats

        events = self.outbox.fetch_due(self.max_attempts, limit or self.batch_size)
        for event in events:
            if self.dispatch(event.id) is None:
                stats["sent"] += 1
            else:
                stats["failed"] += 1
        if events:
            logger.info(f"Outbox relay: {stats['sent']} sent, {stats['failed']} failed")
        return stats
