"""业务记录仓库 - 核心业务数据的数据访问层。

管理系统中的核心业务记录（预约、订单与明细、提成、到店排队），
这些记录是日常经营活动产生的交易数据。

仓库只负责读写，不做业务校验：状态流转、重叠检查、总额计算等规则
都在 booking 包中实现，并通过外部会话在同一事务内调用这里的方法。
"""
from datetime import datetime
from typing import Optional, List, Sequence, Dict, Any
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .models import (
    Appointment, AppointmentService, Order, OrderItem,
    CommissionRecord, CommissionPayment, QueueEntry
)


class AppointmentRepository(BaseCRUD):
    """预约 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def add(self, session: Session, tenant_id: int, client_id: int,
            collaborator_id: int, service_ids: Sequence[int],
            start: datetime, end: datetime, origin: str,
            notes: Optional[str] = None) -> Appointment:
        """新增预约（pending 状态）及其有序服务列表。

        Args:
            session: 调用方事务的会话。
            tenant_id: 租户ID。
            client_id: 顾客ID。
            collaborator_id: 员工ID。
            service_ids: 有序的服务ID列表。
            start: 开始时间。
            end: 结束时间。
            origin: 预约来源。
            notes: 备注（可选）。

        Returns:
            新建的 Appointment 对象。
        """
        appointment = Appointment(
            tenant_id=tenant_id,
            client_id=client_id,
            collaborator_id=collaborator_id,
            start=start,
            end=end,
            origin=origin,
            notes=notes,
        )
        appointment.services = [
            AppointmentService(service_id=service_id, position=position)
            for position, service_id in enumerate(service_ids)
        ]
        session.add(appointment)
        session.flush()
        session.refresh(appointment)
        return appointment

    def replace_services(self, session: Session, appointment: Appointment,
                         service_ids: Sequence[int]) -> None:
        """用新的有序服务列表替换预约的服务。"""
        appointment.services = [
            AppointmentService(service_id=service_id, position=position)
            for position, service_id in enumerate(service_ids)
        ]
        session.flush()

    def get(self, tenant_id: int, appointment_id: int,
            session: Optional[Session] = None) -> Optional[Appointment]:
        return self.get_for_tenant(Appointment, tenant_id, appointment_id, session=session)

    def find_overlapping(self, session: Session, tenant_id: int, collaborator_id: int,
                         start: datetime, end: datetime, statuses: Sequence[str],
                         exclude_id: Optional[int] = None) -> Optional[Appointment]:
        """查找与 [start, end) 区间重叠的第一条预约。

        Args:
            session: 会话。
            tenant_id: 租户ID。
            collaborator_id: 员工ID。
            start: 候选开始时间。
            end: 候选结束时间。
            statuses: 参与冲突判断的预约状态。
            exclude_id: 排除的预约ID（编辑时排除自身）。

        Returns:
            冲突的 Appointment，没有冲突时返回 None。
        """
        query = session.query(Appointment).filter(
            Appointment.tenant_id == tenant_id,
            Appointment.collaborator_id == collaborator_id,
            Appointment.status.in_(list(statuses)),
            Appointment.start < end,
            Appointment.end > start,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.order_by(Appointment.start).first()

    def list_for_collaborator_after(self, session: Session, tenant_id: int,
                                    collaborator_id: int, after: datetime,
                                    statuses: Sequence[str]) -> List[Appointment]:
        """按开始时间升序返回员工在 after 之后仍未结束的预约。"""
        return session.query(Appointment).filter(
            Appointment.tenant_id == tenant_id,
            Appointment.collaborator_id == collaborator_id,
            Appointment.status.in_(list(statuses)),
            Appointment.end > after,
        ).order_by(Appointment.start).all()

    def search(self, tenant_id: int,
               start_from: Optional[datetime] = None,
               start_to: Optional[datetime] = None,
               collaborator_id: Optional[int] = None,
               client_id: Optional[int] = None,
               status: Optional[str] = None,
               session: Optional[Session] = None) -> List[Appointment]:
        """按条件查询预约，按开始时间升序。

        Args:
            tenant_id: 租户ID。
            start_from: 开始时间下限（含）。
            start_to: 开始时间上限（不含）。
            collaborator_id: 员工ID（可选）。
            client_id: 顾客ID（可选）。
            status: 状态（可选）。

        Returns:
            预约列表。
        """
        def _query(sess):
            query = sess.query(Appointment).filter(Appointment.tenant_id == tenant_id)
            if start_from is not None:
                query = query.filter(Appointment.start >= start_from)
            if start_to is not None:
                query = query.filter(Appointment.start < start_to)
            if collaborator_id is not None:
                query = query.filter(Appointment.collaborator_id == collaborator_id)
            if client_id is not None:
                query = query.filter(Appointment.client_id == client_id)
            if status is not None:
                query = query.filter(Appointment.status == status)
            return query.order_by(Appointment.start, Appointment.id).all()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)


class OrderRepository(BaseCRUD):
    """订单与订单明细 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def add(self, session: Session, tenant_id: int, client_id: int,
            created_by_user_id: Optional[int] = None,
            created_at: Optional[datetime] = None) -> Order:
        """新建一张 open 状态、总额为 0 的订单。"""
        order = Order(
            tenant_id=tenant_id,
            client_id=client_id,
            status="open",
            final_value=0,
            created_by_user_id=created_by_user_id,
        )
        if created_at is not None:
            order.created_at = created_at
        session.add(order)
        session.flush()
        session.refresh(order)
        return order

    def get(self, tenant_id: int, order_id: int,
            session: Optional[Session] = None) -> Optional[Order]:
        return self.get_for_tenant(Order, tenant_id, order_id, session=session)

    def lock(self, session: Session, tenant_id: int, order_id: int) -> Optional[Order]:
        """在当前事务中锁定订单行。"""
        return session.query(Order).filter(
            Order.id == order_id,
            Order.tenant_id == tenant_id,
        ).with_for_update().first()

    def find_open_without_appointment(self, session: Session, tenant_id: int,
                                      client_id: int) -> Optional[Order]:
        """查找顾客最早的、尚未关联预约的 open 订单。"""
        linked = select(Appointment.order_id).where(
            Appointment.tenant_id == tenant_id,
            Appointment.order_id.isnot(None),
        )
        return session.query(Order).filter(
            Order.tenant_id == tenant_id,
            Order.client_id == client_id,
            Order.status == "open",
            Order.id.notin_(linked),
        ).order_by(Order.created_at, Order.id).first()

    def add_item(self, session: Session, order: Order, item_type: str,
                 price: Any, quantity: int = 1,
                 service_id: Optional[int] = None,
                 product_id: Optional[int] = None,
                 collaborator_id: Optional[int] = None) -> OrderItem:
        """向订单追加一条明细（不重新计算总额）。"""
        item = OrderItem(
            tenant_id=order.tenant_id,
            type=item_type,
            service_id=service_id,
            product_id=product_id,
            collaborator_id=collaborator_id,
            quantity=quantity,
            price=price,
            commission=0,
        )
        order.items.append(item)
        session.flush()
        return item

    def get_item(self, session: Session, tenant_id: int, order_id: int,
                 item_id: int) -> Optional[OrderItem]:
        return session.query(OrderItem).filter(
            OrderItem.id == item_id,
            OrderItem.order_id == order_id,
            OrderItem.tenant_id == tenant_id,
        ).first()

    def search(self, tenant_id: int, status: Optional[str] = None,
               client_id: Optional[int] = None,
               created_from: Optional[datetime] = None,
               created_to: Optional[datetime] = None,
               client_ids: Optional[Sequence[int]] = None,
               session: Optional[Session] = None) -> List[Order]:
        """按状态、顾客、创建时间查询订单，最新的在前。

        Args:
            tenant_id: 租户ID。
            status: 订单状态（可选）。
            client_id: 顾客ID（可选）。
            created_from: 创建时间下界，包含（可选）。
            created_to: 创建时间上界，包含（可选）。
            client_ids: 限定的顾客ID集合（可选，空集合不返回任何订单）。

        Returns:
            订单列表。
        """
        def _query(sess):
            query = sess.query(Order).filter(Order.tenant_id == tenant_id)
            if status is not None:
                query = query.filter(Order.status == status)
            if client_id is not None:
                query = query.filter(Order.client_id == client_id)
            if created_from is not None:
                query = query.filter(Order.created_at >= created_from)
            if created_to is not None:
                query = query.filter(Order.created_at <= created_to)
            if client_ids is not None:
                query = query.filter(Order.client_id.in_(list(client_ids)))
            return query.order_by(Order.created_at.desc(), Order.id.desc()).all()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)


class CommissionRepository(BaseCRUD):
    """提成记录与发放批次 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def add_record(self, session: Session, item: OrderItem, order: Order,
                   amount: Any) -> CommissionRecord:
        """为一条订单明细写入提成记录。"""
        record = CommissionRecord(
            tenant_id=order.tenant_id,
            collaborator_id=item.collaborator_id,
            order_id=order.id,
            order_item_id=item.id,
            amount=amount,
            paid=False,
            period_start=order.created_at,
            period_end=order.closed_at,
        )
        session.add(record)
        session.flush()
        return record

    def find_records(self, tenant_id: int,
                     collaborator_id: Optional[int] = None,
                     paid: Optional[bool] = None,
                     order_created_from: Optional[datetime] = None,
                     order_created_to: Optional[datetime] = None,
                     record_ids: Optional[Sequence[int]] = None,
                     session: Optional[Session] = None) -> List[CommissionRecord]:
        """按条件查询提成记录，按订单创建时间倒序。

        日期范围作用于所属订单的创建时间（两端都包含）。
        """
        def _query(sess):
            query = sess.query(CommissionRecord).join(
                Order, CommissionRecord.order_id == Order.id
            ).filter(CommissionRecord.tenant_id == tenant_id)
            if collaborator_id is not None:
                query = query.filter(CommissionRecord.collaborator_id == collaborator_id)
            if paid is not None:
                query = query.filter(CommissionRecord.paid == paid)
            if order_created_from is not None:
                query = query.filter(Order.created_at >= order_created_from)
            if order_created_to is not None:
                query = query.filter(Order.created_at <= order_created_to)
            if record_ids:
                query = query.filter(CommissionRecord.id.in_(list(record_ids)))
            return query.order_by(Order.created_at.desc(), CommissionRecord.id.desc()).all()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

    def add_payment(self, session: Session, tenant_id: int, collaborator_id: int,
                    amount: Any, period_start: datetime, period_end: datetime,
                    paid_at: datetime, notes: Optional[str] = None) -> CommissionPayment:
        payment = CommissionPayment(
            tenant_id=tenant_id,
            collaborator_id=collaborator_id,
            amount=amount,
            period_start=period_start,
            period_end=period_end,
            paid_at=paid_at,
            notes=notes,
        )
        session.add(payment)
        session.flush()
        session.refresh(payment)
        return payment

    def payment_history(self, tenant_id: int, collaborator_id: Optional[int] = None,
                        limit: int = 20,
                        session: Optional[Session] = None) -> List[CommissionPayment]:
        """返回提成发放批次，最新的在前。"""
        filters: Dict[str, Any] = {"tenant_id": tenant_id}
        if collaborator_id is not None:
            filters["collaborator_id"] = collaborator_id
        return self.get_all(CommissionPayment, filters=filters,
                            order_by=CommissionPayment.paid_at.desc(),
                            limit=limit, session=session)


class QueueRepository(BaseCRUD):
    """到店排队 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def add(self, session: Session, tenant_id: int, client_id: int,
            collaborator_id: int, appointment_id: int, position: int,
            arrived_at: datetime, notes: Optional[str] = None) -> QueueEntry:
        entry = QueueEntry(
            tenant_id=tenant_id,
            client_id=client_id,
            collaborator_id=collaborator_id,
            appointment_id=appointment_id,
            position=position,
            notes=notes,
            arrived_at=arrived_at,
        )
        session.add(entry)
        session.flush()
        session.refresh(entry)
        return entry

    def get(self, tenant_id: int, entry_id: int,
            session: Optional[Session] = None) -> Optional[QueueEntry]:
        return self.get_for_tenant(QueueEntry, tenant_id, entry_id, session=session)

    def list_between(self, tenant_id: int, day_start: datetime, day_end: datetime,
                     session: Optional[Session] = None) -> List[QueueEntry]:
        """返回 [day_start, day_end) 内到店的排队记录，按排队序号升序。"""
        def _query(sess):
            return sess.query(QueueEntry).filter(
                QueueEntry.tenant_id == tenant_id,
                QueueEntry.arrived_at >= day_start,
                QueueEntry.arrived_at < day_end,
            ).order_by(QueueEntry.position, QueueEntry.id).all()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

    def next_position(self, session: Session, tenant_id: int,
                      day_start: datetime, day_end: datetime) -> int:
        current = session.query(func.max(QueueEntry.position)).filter(
            QueueEntry.tenant_id == tenant_id,
            QueueEntry.arrived_at >= day_start,
            QueueEntry.arrived_at < day_end,
        ).scalar()
        return (current or 0) + 1

    def count_assignments(self, session: Session, tenant_id: int,
                          day_start: datetime, day_end: datetime) -> Dict[int, int]:
        """统计当天每位员工分配到的排队顾客数。"""
        rows = session.query(QueueEntry.collaborator_id, func.count(QueueEntry.id)).filter(
            QueueEntry.tenant_id == tenant_id,
            QueueEntry.arrived_at >= day_start,
            QueueEntry.arrived_at < day_end,
        ).group_by(QueueEntry.collaborator_id).all()
        return {collaborator_id: count for collaborator_id, count in rows}

    def delete(self, session: Session, entry: QueueEntry) -> None:
        session.delete(entry)
        session.flush()

