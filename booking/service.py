"""预约与订单引擎 - 对外服务接口

BookingService 组合了解析器、冲突检查、状态机、订单对账、提成台账、
到店排队与 Outbox 派发，对外提供完整的业务操作。

每个方法的第一个参数都是已认证的调用方身份（CallerIdentity），
所有读写都限定在调用方的租户内。

并发约定：
- 涉及员工时间线的写操作（创建、编辑、状态流转、排队）先取 staff_lock，
  再在同一个事务内完成冲突检查和写入
- 订单与提成的写操作取 ledger_lock；两者同时需要时先 staff 后 ledger
- 通知派发与审计日志在事务提交、锁释放之后执行，失败只产生告警
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from loguru import logger
from sqlalchemy.orm import Session

from config.settings import Settings, settings as default_settings
from database.manager import DatabaseManager
from database.models import (
    Appointment, AppointmentOrigin, AppointmentStatus, AuditLog, Collaborator,
    CommissionPayment, CommissionRecord, MessageLog, Order, OrderStatus,
    QueueEntry, Service
)
from .adapters import (
    CallerIdentity, Clock, DispatchResult, NotificationDispatcher,
    PermissionOracle, RolePermissionOracle, system_clock
)
from .commissions import CommissionLedger, PaymentSummary, PendingCommissions
from .errors import ErrorCode, NotFoundError, PermissionDeniedError, ValidationError
from .events import OutboxRelay
from .overlap import OverlapChecker
from .reconciliation import OrderReconciler
from .resolver import ServiceTimeResolver, window_end
from .state_machine import AppointmentStateMachine
from .walkin_queue import WalkInQueue

T = TypeVar("T")


@dataclass
class AppointmentChanges:
    """预约编辑请求，字段为 None 表示不修改

    Attributes:
        client_id: 新的顾客
        collaborator_id: 新的员工
        service_ids: 新的有序服务列表（空列表视为非法）
        start: 新的开始时间（datetime 或 ISO 字符串）
        notes: 新的备注
        origin: 新的来源
    """
    client_id: Optional[int] = None
    collaborator_id: Optional[int] = None
    service_ids: Optional[Sequence[int]] = None
    start: Optional[Any] = None
    notes: Optional[str] = None
    origin: Optional[str] = None


@dataclass
class BookingResult:
    """创建预约的结果

    Attributes:
        appointment: 新建的预约
        order: 自动对账的订单（未启用 ensure_order_on_booking 时为 None）
        warnings: 不影响预约成功的告警（如通知发送失败）
    """
    appointment: Appointment
    order: Optional[Order] = None
    warnings: List[str] = field(default_factory=list)


def _origin_value(origin) -> str:
    if isinstance(origin, AppointmentOrigin):
        return origin.value
    try:
        return AppointmentOrigin(origin).value
    except ValueError:
        raise ValidationError(ErrorCode.INVALID_ORIGIN, f"Unknown origin {origin!r}")


def _snapshot(appointment: Appointment) -> Dict[str, Any]:
    return {
        "client_id": appointment.client_id,
        "collaborator_id": appointment.collaborator_id,
        "service_ids": appointment.service_ids,
        "start": appointment.start.isoformat() if appointment.start else None,
        "end": appointment.end.isoformat() if appointment.end else None,
        "status": appointment.status,
        "notes": appointment.notes,
    }


class BookingService:
    """预约与订单引擎的统一入口

    使用方式：
        ```python
        db = DatabaseManager("sqlite:///data/salon.db")
        service = BookingService(db, dispatcher=NotificationManager(db))
        caller = CallerIdentity(tenant_id=1, user_id=7, role="receptionist")

        result = service.create_appointment(
            caller, client_id=3, collaborator_id=2,
            service_ids=[1, 4], start="2030-05-01T14:00:00Z",
        )
        order = service.ensure_order(caller, result.appointment.id)
        service.close_order(caller, order.id)
        ```
    """

    def __init__(self, db: DatabaseManager,
                 dispatcher: Optional[NotificationDispatcher] = None,
                 permissions: Optional[PermissionOracle] = None,
                 clock: Optional[Clock] = None,
                 config: Optional[Settings] = None):
        """
        Args:
            db: 数据库管理器（注入的连接与仓库）
            dispatcher: 通知派发器（可选）
            permissions: 权限判断（可选，默认按角色表）
            clock: 时钟（可选，默认系统 UTC 时间）
            config: 配置（可选，默认全局 settings）
        """
        self.db = db
        self.conn = db.conn
        self.config = config or default_settings
        self.clock = clock or system_clock
        self.permissions = permissions or RolePermissionOracle()

        self.resolver = ServiceTimeResolver(db.services, clock=self.clock)
        self.overlap = OverlapChecker(db.appointments)
        self.state_machine = AppointmentStateMachine()
        self.reconciler = OrderReconciler(
            db.orders, db.commissions, db.clients, db.collaborators,
            db.services, db.products, clock=self.clock,
        )
        self.ledger = CommissionLedger(db.commissions, db.collaborators, clock=self.clock)
        self.queue = WalkInQueue(
            self.conn, db.clients, db.collaborators, db.appointments, db.queue,
            self.overlap, self.state_machine,
            slot_minutes=self.config.queue_slot_minutes,
            rounding_minutes=self.config.queue_rounding_minutes,
            clock=self.clock,
        )
        self.relay = OutboxRelay(
            db.outbox,
            dispatcher if self.config.notifications_enabled else None,
            max_attempts=self.config.outbox_max_attempts,
            batch_size=self.config.outbox_batch_size,
        )
        self.dispatcher = dispatcher

    def close(self) -> None:
        """释放数据库连接。"""
        self.db.close()

    # ================================================================
    # 内部工具
    # ================================================================

    def _audit(self, caller: CallerIdentity, table_name: str, record_id: int, action: str,
               old_value: Optional[Dict[str, Any]] = None,
               new_value: Optional[Dict[str, Any]] = None) -> None:
        self.db.audit.record(caller.tenant_id, table_name, record_id, action,
                             user_id=caller.user_id, old_value=old_value, new_value=new_value)

    def _appointment(self, session: Session, tenant_id: int, appointment_id: int) -> Appointment:
        appointment = self.db.appointments.get(tenant_id, appointment_id, session=session)
        if appointment is None:
            raise NotFoundError(ErrorCode.APPOINTMENT_NOT_FOUND,
                                f"Appointment {appointment_id} not found")
        return appointment

    def _check_client(self, session: Session, tenant_id: int, client_id: int) -> None:
        if self.db.clients.get_active(tenant_id, client_id, session=session) is None:
            raise NotFoundError(ErrorCode.CLIENT_NOT_FOUND, f"Client {client_id} not found")

    def _lock_collaborator(self, session: Session, tenant_id: int, collaborator_id: int) -> None:
        collaborator = self.db.collaborators.lock_for_update(tenant_id, collaborator_id, session)
        if collaborator is None or collaborator.status != "active":
            raise NotFoundError(ErrorCode.COLLABORATOR_NOT_FOUND,
                                f"Collaborator {collaborator_id} not found")

    def _under_appointment_lock(self, caller: CallerIdentity, appointment_id: int,
                                work: Callable[[Session, Appointment], T],
                                extra_staff: Optional[int] = None) -> T:
        """在预约所属员工（以及 extra_staff）的锁内执行 work。

        取锁前读到的员工可能在取锁期间被其他编辑改掉，此时重新取锁。
        """
        tenant_id = caller.tenant_id
        while True:
            with self.conn.transaction() as session:
                staff_id = self._appointment(session, tenant_id, appointment_id).collaborator_id
            locked = [staff_id] if extra_staff is None else [staff_id, extra_staff]
            with self.conn.staff_lock(tenant_id, *locked):
                with self.conn.transaction() as session:
                    appointment = self._appointment(session, tenant_id, appointment_id)
                    if appointment.collaborator_id == staff_id:
                        return work(session, appointment)
            logger.debug(f"Appointment {appointment_id} changed staff while locking, retrying")

    # ================================================================
    # 预约
    # ================================================================

    def create_appointment(self, caller: CallerIdentity, client_id: int, collaborator_id: int,
                           service_ids: Sequence[int], start: Any,
                           origin: Any = AppointmentOrigin.APP,
                           notes: Optional[str] = None) -> BookingResult:
        """创建预约。

        校验顺序固定：服务列表 → 开始时间 → 是否在未来 → 顾客 → 员工 →
        服务目录 → 时间冲突。任何一步失败都不会留下数据。

        Args:
            caller: 调用方身份
            client_id: 顾客ID
            collaborator_id: 员工ID
            service_ids: 有序的服务ID列表
            start: 开始时间（datetime 或 ISO 字符串）
            origin: 预约来源，默认 app
            notes: 备注

        Returns:
            BookingResult，包含预约、可选的订单和告警

        Raises:
            ValidationError / NotFoundError / ConflictError:
                见 errors.CREATE_APPOINTMENT_ERRORS
        """
        tenant_id = caller.tenant_id
        origin_value = _origin_value(origin)
        parsed_start = self.resolver.check_request(service_ids, start)

        order = None
        with self.conn.staff_lock(tenant_id, collaborator_id):
            with self.conn.transaction() as session:
                self._check_client(session, tenant_id, client_id)
                self._lock_collaborator(session, tenant_id, collaborator_id)
                services = self.resolver.load_services(session, tenant_id, service_ids)
                end = window_end(parsed_start, services)
                self.overlap.ensure_free(session, tenant_id, collaborator_id, parsed_start, end)

                appointment = self.db.appointments.add(
                    session, tenant_id, client_id, collaborator_id,
                    service_ids=[s.id for s in services], start=parsed_start, end=end,
                    origin=origin_value, notes=notes,
                )
                event = self.relay.record_appointment_created(session, appointment)
                if self.config.ensure_order_on_booking:
                    with self.conn.ledger_lock(tenant_id):
                        order = self.reconciler.ensure_order_for_appointment(
                            session, appointment, created_by_user_id=caller.user_id
                        )
                event_id = event.id

        logger.info(f"Appointment {appointment.id} booked: client {client_id} with "
                    f"collaborator {collaborator_id} {parsed_start:%Y-%m-%d %H:%M}-{end:%H:%M}")

        result = BookingResult(appointment=appointment, order=order)
        warning = self.relay.dispatch(event_id)
        if warning:
            result.warnings.append(warning)
        self._audit(caller, "appointments", appointment.id, "INSERT",
                    new_value=_snapshot(appointment))
        return result

    def edit_appointment(self, caller: CallerIdentity, appointment_id: int,
                         changes: AppointmentChanges) -> Appointment:
        """编辑 pending 状态的预约。

        未修改的字段取原值，合并后的结果按创建时的规则完整校验一遍
        （包括开始时间必须在未来），冲突检查排除预约自身。

        Raises:
            NotFoundError: APPOINTMENT_NOT_FOUND 以及创建时的 not_found 错误
            ConflictError: NOT_EDITABLE / OVERLAPPING_APPOINTMENT
            ValidationError: 创建时的 validation 错误
        """
        tenant_id = caller.tenant_id
        origin_value = _origin_value(changes.origin) if changes.origin is not None else None
        before: Dict[str, Any] = {}

        def _edit(session: Session, appointment: Appointment) -> Appointment:
            self.state_machine.assert_editable(appointment)
            before.update(_snapshot(appointment))

            client_id = changes.client_id if changes.client_id is not None else appointment.client_id
            collaborator_id = (changes.collaborator_id if changes.collaborator_id is not None
                               else appointment.collaborator_id)
            service_ids = (list(changes.service_ids) if changes.service_ids is not None
                           else appointment.service_ids)
            start = changes.start if changes.start is not None else appointment.start

            parsed_start = self.resolver.check_request(service_ids, start)
            self._check_client(session, tenant_id, client_id)
            self._lock_collaborator(session, tenant_id, collaborator_id)
            services = self.resolver.load_services(session, tenant_id, service_ids)
            end = window_end(parsed_start, services)
            self.overlap.ensure_free(session, tenant_id, collaborator_id, parsed_start, end,
                                     exclude_appointment_id=appointment.id)

            appointment.client_id = client_id
            appointment.collaborator_id = collaborator_id
            appointment.start = parsed_start
            appointment.end = end
            if changes.notes is not None:
                appointment.notes = changes.notes
            if origin_value is not None:
                appointment.origin = origin_value
            if [s.id for s in services] != appointment.service_ids:
                self.db.appointments.replace_services(session, appointment, [s.id for s in services])
            session.flush()
            session.refresh(appointment)
            return appointment

        appointment = self._under_appointment_lock(
            caller, appointment_id, _edit, extra_staff=changes.collaborator_id
        )
        logger.info(f"Appointment {appointment.id} edited")
        self._audit(caller, "appointments", appointment.id, "UPDATE",
                    old_value=before, new_value=_snapshot(appointment))
        return appointment

    def transition_status(self, caller: CallerIdentity, appointment_id: int,
                          status: Any) -> Appointment:
        """流转预约状态。

        Raises:
            NotFoundError: APPOINTMENT_NOT_FOUND
            ConflictError: ILLEGAL_TRANSITION
        """
        previous: Dict[str, Any] = {}

        def _transition(session: Session, appointment: Appointment) -> Appointment:
            previous["status"] = self.state_machine.transition(appointment, status)
            session.flush()
            return appointment

        appointment = self._under_appointment_lock(caller, appointment_id, _transition)
        self._audit(caller, "appointments", appointment.id, "UPDATE",
                    old_value=previous, new_value={"status": appointment.status})
        return appointment

    def get_appointment(self, caller: CallerIdentity, appointment_id: int) -> Appointment:
        """Raises: NotFoundError: APPOINTMENT_NOT_FOUND"""
        with self.conn.transaction() as session:
            return self._appointment(session, caller.tenant_id, appointment_id)

    def list_appointments(self, caller: CallerIdentity,
                          start_from: Optional[datetime] = None,
                          start_to: Optional[datetime] = None,
                          collaborator_id: Optional[int] = None,
                          client_id: Optional[int] = None,
                          status: Optional[str] = None) -> List[Appointment]:
        """按开始时间区间 [start_from, start_to)、员工、顾客、状态查询预约。

        Raises:
            ValidationError: INVALID_STATUS
        """
        if status is not None:
            try:
                status = AppointmentStatus(status).value
            except ValueError:
                raise ValidationError(ErrorCode.INVALID_STATUS, f"Unknown status {status!r}")
        return self.db.appointments.search(
            caller.tenant_id, start_from=start_from, start_to=start_to,
            collaborator_id=collaborator_id, client_id=client_id, status=status,
        )

    def resend_confirmation(self, caller: CallerIdentity, appointment_id: int) -> DispatchResult:
        """重新发送预约确认，直接返回派发结果。

        Raises:
            NotFoundError: APPOINTMENT_NOT_FOUND
        """
        appointment = self.get_appointment(caller, appointment_id)
        if self.dispatcher is None:
            return DispatchResult(success=False, error="No notification dispatcher configured")
        try:
            return self.dispatcher.notify(caller.tenant_id, appointment.id)
        except Exception as e:
            logger.warning(f"Resend confirmation for appointment {appointment.id} failed: {e}")
            return DispatchResult(success=False, error=str(e))

    def message_logs(self, caller: CallerIdentity, appointment_id: int) -> List[MessageLog]:
        """预约的确认消息发送记录。

        Raises:
            NotFoundError: APPOINTMENT_NOT_FOUND
        """
        with self.conn.transaction() as session:
            self._appointment(session, caller.tenant_id, appointment_id)
            return self.db.message_logs.list_for_appointment(
                caller.tenant_id, appointment_id, session=session
            )

    # ================================================================
    # 订单
    # ================================================================

    def ensure_order(self, caller: CallerIdentity, appointment_id: int) -> Order:
        """幂等地为预约准备订单，详见 OrderReconciler.ensure_order_for_appointment。

        Raises:
            NotFoundError: APPOINTMENT_NOT_FOUND
        """
        def _ensure(session: Session, appointment: Appointment) -> Order:
            with self.conn.ledger_lock(caller.tenant_id):
                return self.reconciler.ensure_order_for_appointment(
                    session, appointment, created_by_user_id=caller.user_id
                )

        return self._under_appointment_lock(caller, appointment_id, _ensure)

    def create_order(self, caller: CallerIdentity, client_id: int) -> Order:
        """Raises: NotFoundError: CLIENT_NOT_FOUND"""
        with self.conn.ledger_lock(caller.tenant_id):
            with self.conn.transaction() as session:
                order = self.reconciler.create_order(
                    session, caller.tenant_id, client_id, created_by_user_id=caller.user_id
                )
        self._audit(caller, "orders", order.id, "INSERT", new_value={"client_id": client_id})
        return order

    def get_order(self, caller: CallerIdentity, order_id: int) -> Order:
        """Raises: NotFoundError: ORDER_NOT_FOUND"""
        order = self.db.orders.get(caller.tenant_id, order_id)
        if order is None:
            raise NotFoundError(ErrorCode.ORDER_NOT_FOUND, f"Order {order_id} not found")
        return order

    def list_orders(self, caller: CallerIdentity,
                    status: Optional[str] = None,
                    client_id: Optional[int] = None,
                    date_from: Optional[datetime] = None,
                    date_to: Optional[datetime] = None,
                    search: Optional[str] = None) -> List[Order]:
        """按状态、顾客、创建时间区间 [date_from, date_to] 查询订单，最新的在前。

        search 按顾客姓名或电话做模糊匹配。

        Raises:
            ValidationError: INVALID_STATUS
        """
        if status is not None:
            try:
                status = OrderStatus(status).value
            except ValueError:
                raise ValidationError(ErrorCode.INVALID_STATUS, f"Unknown order status {status!r}")
        with self.conn.transaction() as session:
            client_ids = None
            if search:
                client_ids = [c.id for c in self.db.clients.search(
                    caller.tenant_id, search, session=session)]
            return self.db.orders.search(
                caller.tenant_id, status=status, client_id=client_id,
                created_from=date_from, created_to=date_to, client_ids=client_ids,
                session=session,
            )

    def update_order_client(self, caller: CallerIdentity, order_id: int,
                            client_id: int) -> Order:
        """更换 open 订单的顾客。

        Raises:
            NotFoundError: ORDER_NOT_FOUND / CLIENT_NOT_FOUND
            ConflictError: ORDER_NOT_OPEN
        """
        previous: Dict[str, Any] = {}

        def _change(session: Session) -> Order:
            current = self.db.orders.get(caller.tenant_id, order_id, session=session)
            if current is not None:
                previous["client_id"] = current.client_id
            return self.reconciler.change_client(session, caller.tenant_id, order_id, client_id)

        order = self._ledger_write(caller, _change)
        if previous.get("client_id") != order.client_id:
            self._audit(caller, "orders", order.id, "UPDATE",
                        old_value=previous, new_value={"client_id": order.client_id})
        return order

    def _ledger_write(self, caller: CallerIdentity, work: Callable[[Session], T]) -> T:
        with self.conn.ledger_lock(caller.tenant_id):
            with self.conn.transaction() as session:
                return work(session)

    def add_order_item(self, caller: CallerIdentity, order_id: int, item_type: str,
                       service_id: Optional[int] = None, product_id: Optional[int] = None,
                       collaborator_id: Optional[int] = None,
                       quantity: Optional[int] = None) -> Order:
        """Raises: 见 errors.ADD_ITEM_ERRORS"""
        return self._ledger_write(caller, lambda session: self.reconciler.add_item(
            session, caller.tenant_id, order_id, item_type,
            service_id=service_id, product_id=product_id,
            collaborator_id=collaborator_id, quantity=quantity,
        ))

    def remove_order_item(self, caller: CallerIdentity, order_id: int, item_id: int) -> Order:
        """Raises: 见 errors.REMOVE_ITEM_ERRORS"""
        order = self._ledger_write(caller, lambda session: self.reconciler.remove_item(
            session, caller.tenant_id, order_id, item_id
        ))
        self._audit(caller, "order_items", item_id, "DELETE")
        return order

    def close_order(self, caller: CallerIdentity, order_id: int) -> Order:
        """Raises: 见 errors.CLOSE_ORDER_ERRORS"""
        order = self._ledger_write(caller, lambda session: self.reconciler.close(
            session, caller.tenant_id, order_id
        ))
        self._audit(caller, "orders", order.id, "UPDATE",
                    old_value={"status": "open"}, new_value={"status": order.status})
        return order

    def pay_order(self, caller: CallerIdentity, order_id: int) -> Order:
        """Raises: 见 errors.PAY_ORDER_ERRORS"""
        order = self._ledger_write(caller, lambda session: self.reconciler.pay(
            session, caller.tenant_id, order_id
        ))
        self._audit(caller, "orders", order.id, "UPDATE",
                    old_value={"status": "closed"}, new_value={"status": order.status})
        return order

    # ================================================================
    # 提成
    # ================================================================

    def pending_commissions(self, caller: CallerIdentity,
                            start: Optional[datetime] = None,
                            end: Optional[datetime] = None) -> List[PendingCommissions]:
        with self.conn.transaction() as session:
            return self.ledger.pending_by_collaborator(session, caller.tenant_id, start, end)

    def pay_commissions(self, caller: CallerIdentity, collaborator_id: int,
                        record_ids: Optional[Sequence[int]] = None,
                        period_start: Optional[datetime] = None,
                        period_end: Optional[datetime] = None,
                        notes: Optional[str] = None) -> CommissionPayment:
        """Raises: ConflictError: NO_PENDING_COMMISSIONS"""
        payment = self._ledger_write(caller, lambda session: self.ledger.pay(
            session, caller.tenant_id, collaborator_id, record_ids=record_ids,
            period_start=period_start, period_end=period_end, notes=notes,
        ))
        self._audit(caller, "commission_payments", payment.id, "INSERT",
                    new_value={"collaborator_id": collaborator_id, "amount": str(payment.amount)})
        return payment

    def commission_records(self, caller: CallerIdentity,
                           collaborator_id: Optional[int] = None,
                           paid: Optional[bool] = None,
                           start: Optional[datetime] = None,
                           end: Optional[datetime] = None) -> List[CommissionRecord]:
        with self.conn.transaction() as session:
            return self.ledger.list_records(session, caller.tenant_id, collaborator_id,
                                            paid, start, end)

    def commission_history(self, caller: CallerIdentity,
                           collaborator_id: Optional[int] = None,
                           limit: Optional[int] = None) -> List[PaymentSummary]:
        with self.conn.transaction() as session:
            return self.ledger.payment_history(
                session, caller.tenant_id, collaborator_id,
                limit=limit or self.config.default_commission_history_limit,
            )

    def set_commission_rate(self, caller: CallerIdentity, collaborator_id: int,
                            rate: Any) -> Collaborator:
        """修改员工提成率（需要 collaborators.update 权限）。

        已生成的提成记录不受影响，新费率只作用于之后结单的订单。

        Raises:
            PermissionDeniedError: PERMISSION_DENIED
            ValidationError: INVALID_COMMISSION_RATE
            NotFoundError: COLLABORATOR_NOT_FOUND
        """
        if not self.permissions.allowed(caller.role, "collaborators.update"):
            raise PermissionDeniedError(f"Role {caller.role!r} cannot update collaborators")
        try:
            value = float(rate)
        except (TypeError, ValueError):
            value = None
        if value is None or not 0 <= value <= 1:
            raise ValidationError(ErrorCode.INVALID_COMMISSION_RATE,
                                  f"Commission rate must be between 0 and 1, got {rate!r}")

        with self.conn.ledger_lock(caller.tenant_id):
            with self.conn.transaction() as session:
                current = self.db.collaborators.get(caller.tenant_id, collaborator_id,
                                                    session=session)
                if current is None:
                    raise NotFoundError(ErrorCode.COLLABORATOR_NOT_FOUND,
                                        f"Collaborator {collaborator_id} not found")
                previous = str(current.commission_rate)
                collaborator = self.db.collaborators.set_commission_rate(
                    caller.tenant_id, collaborator_id, value, session=session
                )
        logger.info(f"Collaborator {collaborator_id} commission rate set to {value}")
        self._audit(caller, "collaborators", collaborator_id, "UPDATE",
                    old_value={"commission_rate": previous},
                    new_value={"commission_rate": str(value)})
        return collaborator

    # ================================================================
    # 到店排队
    # ================================================================

    def add_to_queue(self, caller: CallerIdentity, client_id: int,
                     notes: Optional[str] = None) -> QueueEntry:
        """Raises: 见 errors.QUEUE_ERRORS"""
        entry = self.queue.add(caller.tenant_id, client_id, notes)
        self._audit(caller, "queue_entries", entry.id, "INSERT",
                    new_value={"client_id": client_id, "collaborator_id": entry.collaborator_id,
                               "position": entry.position})
        return entry

    def remove_from_queue(self, caller: CallerIdentity, entry_id: int) -> QueueEntry:
        """Raises: 见 errors.QUEUE_ERRORS"""
        entry = self.queue.remove(caller.tenant_id, entry_id)
        self._audit(caller, "queue_entries", entry_id, "DELETE")
        return entry

    def list_queue(self, caller: CallerIdentity) -> List[QueueEntry]:
        return self.queue.list_today(caller.tenant_id)

    # ================================================================
    # 目录
    # ================================================================

    def deactivate_service(self, caller: CallerIdentity, service_id: int) -> Service:
        """停用服务（需要 services.delete 权限）。

        Raises:
            PermissionDeniedError: PERMISSION_DENIED
            NotFoundError: SERVICE_NOT_FOUND
        """
        if not self.permissions.allowed(caller.role, "services.delete"):
            raise PermissionDeniedError(f"Role {caller.role!r} cannot delete services")
        service = self.db.services.deactivate(caller.tenant_id, service_id)
        if service is None:
            raise NotFoundError(ErrorCode.SERVICE_NOT_FOUND, f"Service {service_id} not found")
        self._audit(caller, "services", service.id, "UPDATE",
                    old_value={"is_active": True}, new_value={"is_active": False})
        return service

    def audit_trail(self, caller: CallerIdentity, table_name: str,
                    record_id: int) -> List[AuditLog]:
        """某条记录的审计日志（需要 audit.read 权限）。

        Raises:
            PermissionDeniedError: PERMISSION_DENIED
        """
        if not self.permissions.allowed(caller.role, "audit.read"):
            raise PermissionDeniedError(f"Role {caller.role!r} cannot read audit logs")
        return self.db.audit.list_for_record(caller.tenant_id, table_name, record_id)
