"""系统数据仓库 - 辅助数据的数据访问层。

管理系统运行中产生的辅助数据：
- Outbox 领域事件（事务内写入，提交后派发）
- 消息发送日志
- 审计日志
"""
from datetime import datetime
from typing import Optional, List, Dict, Any
from sqlalchemy import or_
from sqlalchemy.orm import Session
from loguru import logger

from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .models import OutboxEvent, MessageLog, AuditLog, utc_now


class OutboxRepository(BaseCRUD):
    """Outbox 事件 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def add(self, session: Session, tenant_id: int, topic: str,
            aggregate_id: int, payload: Dict[str, Any]) -> OutboxEvent:
        """在调用方事务内写入一条待派发事件。

        Args:
            session: 调用方事务的会话。
            tenant_id: 租户ID。
            topic: 事件主题。
            aggregate_id: 聚合根ID。
            payload: 事件数据（需可 JSON 序列化）。

        Returns:
            OutboxEvent 对象。
        """
        event = OutboxEvent(
            tenant_id=tenant_id,
            topic=topic,
            aggregate_id=aggregate_id,
            payload=payload,
            status="pending",
            attempts=0,
        )
        session.add(event)
        session.flush()
        return event

    def get(self, event_id: int,
            session: Optional[Session] = None) -> Optional[OutboxEvent]:
        return self.get_by_id(OutboxEvent, event_id, session=session)

    def fetch_due(self, max_attempts: int, limit: int,
                  session: Optional[Session] = None) -> List[OutboxEvent]:
        """获取需要（重新）派发的事件：pending 或 failed 且未超过最大次数，按创建顺序。"""
        def _query(sess):
            return sess.query(OutboxEvent).filter(
                or_(OutboxEvent.status == "pending", OutboxEvent.status == "failed"),
                OutboxEvent.attempts < max_attempts,
            ).order_by(OutboxEvent.created_at, OutboxEvent.id).limit(limit).all()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

    def mark_sent(self, event_id: int,
                  when: Optional[datetime] = None) -> Optional[OutboxEvent]:
        """标记事件派发成功。"""
        def _do(sess):
            event = sess.get(OutboxEvent, event_id)
            if event is None:
                return None
            event.attempts = (event.attempts or 0) + 1
            event.status = "sent"
            event.last_error = None
            event.dispatched_at = when or utc_now()
            return event

        with self._get_session() as sess:
            event = _do(sess)
            sess.commit()
            return event

    def mark_failed(self, event_id: int, error: str) -> Optional[OutboxEvent]:
        """记录一次派发失败。"""
        def _do(sess):
            event = sess.get(OutboxEvent, event_id)
            if event is None:
                return None
            event.attempts = (event.attempts or 0) + 1
            event.status = "failed"
            event.last_error = error
            return event

        with self._get_session() as sess:
            event = _do(sess)
            sess.commit()
            return event


class MessageLogRepository(BaseCRUD):
    """消息发送日志 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def add_pending(self, tenant_id: int, channel: str, content: str,
                    appointment_id: Optional[int] = None,
                    client_id: Optional[int] = None) -> MessageLog:
        """写入一条待发送的消息日志。"""
        return self.create(
            MessageLog,
            tenant_id=tenant_id,
            appointment_id=appointment_id,
            client_id=client_id,
            channel=channel,
            content=content,
            status="pending",
        )

    def mark_sent(self, log_id: int,
                  when: Optional[datetime] = None) -> Optional[MessageLog]:
        return self.update_by_id(MessageLog, log_id, status="sent",
                                 sent_at=when or utc_now(), error_message=None)

    def mark_failed(self, log_id: int, error: str) -> Optional[MessageLog]:
        return self.update_by_id(MessageLog, log_id, status="failed",
                                 error_message=error)

    def list_for_appointment(self, tenant_id: int, appointment_id: int,
                             session: Optional[Session] = None) -> List[MessageLog]:
        return self.get_all(
            MessageLog,
            filters={"tenant_id": tenant_id, "appointment_id": appointment_id},
            session=session,
        )


class AuditRepository(BaseCRUD):
    """审计日志 仓库。

    审计是旁路副作用：写入失败只记录日志，绝不影响主业务。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def record(self, tenant_id: int, table_name: str, record_id: int, action: str,
               user_id: Optional[int] = None,
               old_value: Optional[Dict[str, Any]] = None,
               new_value: Optional[Dict[str, Any]] = None) -> Optional[AuditLog]:
        """写入一条审计日志。

        Args:
            tenant_id: 租户ID。
            table_name: 表名。
            record_id: 记录ID。
            action: INSERT / UPDATE / DELETE。
            user_id: 操作人（可选）。
            old_value: 修改前的数据（可选）。
            new_value: 修改后的数据（可选）。

        Returns:
            AuditLog 对象，写入失败时返回 None。
        """
        try:
            return self.create(
                AuditLog,
                tenant_id=tenant_id,
                user_id=user_id,
                table_name=table_name,
                record_id=record_id,
                action=action,
                old_value=old_value,
                new_value=new_value,
            )
        except Exception as e:
            logger.warning(f"Audit log write failed for {table_name}#{record_id}: {e}")
            return None

    def list_for_record(self, tenant_id: int, table_name: str, record_id: int,
                        session: Optional[Session] = None) -> List[AuditLog]:
        return self.get_all(
            AuditLog,
            filters={"tenant_id": tenant_id, "table_name": table_name, "record_id": record_id},
            session=session,
        )
