"""SQLAlchemy ORM 模型定义。

本模块定义了所有数据库表的ORM模型，包括：
- 租户、顾客、员工（协作者）、服务、商品等基础实体
- 预约、订单、订单明细等核心业务记录
- 提成记录与提成发放批次
- 到店排队、Outbox 事件、消息日志、审计日志等辅助数据

所有业务表都带 tenant_id，查询时必须显式按租户过滤。
时间统一存储为不带时区的 UTC 时间。
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime,
    DECIMAL, ForeignKey, JSON, Index
)
from sqlalchemy.orm import declarative_base, relationship, validates

# SQLAlchemy declarative base，所有模型都继承自此类
Base = declarative_base()

# 允许使用旧式类型注解（非 Mapped[] 形式）
Base.__allow_unmapped__ = True


def utc_now() -> datetime:
    """当前 UTC 时间（不带时区信息）。"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AppointmentStatus(str, Enum):
    """预约状态"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELED = "canceled"
    NO_SHOW = "no_show"
    NOT_PAID = "not_paid"


class AppointmentOrigin(str, Enum):
    """预约来源渠道"""
    WHATSAPP = "whatsapp"
    APP = "app"
    TOTEM = "totem"
    RECEPTION = "reception"


class OrderStatus(str, Enum):
    """订单状态：open → closed → paid，只能单向流转"""
    OPEN = "open"
    CLOSED = "closed"
    PAID = "paid"


class OrderItemType(str, Enum):
    """订单明细类型"""
    SERVICE = "service"
    PRODUCT = "product"


class Tenant(Base):
    """租户（门店）表模型。

    Attributes:
        id: 主键。
        slug: 唯一短标识。
        name: 门店名称。
        created_at: 创建时间。
    """
    __tablename__ = "tenants"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    slug: str = Column(String(80), nullable=False, unique=True)
    name: str = Column(String(120), nullable=False)
    created_at: datetime = Column(DateTime, default=utc_now)


class Client(Base):
    """顾客表模型。

    Attributes:
        id: 主键。
        tenant_id: 所属租户。
        name: 顾客姓名。
        phone: 联系电话（用于发送预约确认）。
        is_active: 是否有效，停用的顾客不能预约。
        created_at: 创建时间。
    """
    __tablename__ = "clients"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id: int = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name: str = Column(String(120), nullable=False)
    phone: Optional[str] = Column(String(40))
    is_active: bool = Column(Boolean, default=True)
    created_at: datetime = Column(DateTime, default=utc_now)


class Collaborator(Base):
    """员工/协作者表模型。

    Attributes:
        id: 主键。
        tenant_id: 所属租户。
        name: 姓名。
        role: 角色，admin / manager / receptionist / professional。
        status: active / inactive。
        phone: 联系电话（可选）。
        commission_rate: 提成率，取值 0-1 的小数（如 0.4 表示 40%）。
        created_at: 创建时间。
    """
    __tablename__ = "collaborators"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id: int = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name: str = Column(String(120), nullable=False)
    role: str = Column(String(20), default="professional")  # admin / manager / receptionist / professional
    status: str = Column(String(20), default="active")  # active / inactive
    phone: Optional[str] = Column(String(40))
    commission_rate: float = Column(DECIMAL(5, 4), default=0)
    created_at: datetime = Column(DateTime, default=utc_now)


class Service(Base):
    """服务目录表模型。

    Attributes:
        id: 主键。
        tenant_id: 所属租户。
        name: 服务名称。
        duration: 时长（分钟），必须大于 0。
        price: 当前价格。订单明细创建时会拍下快照，之后不随目录变化。
        is_active: 是否可预约。
    """
    __tablename__ = "services"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id: int = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name: str = Column(String(120), nullable=False)
    duration: int = Column(Integer, nullable=False)
    price: float = Column(DECIMAL(10, 2), nullable=False, default=0)
    is_active: bool = Column(Boolean, default=True)
    created_at: datetime = Column(DateTime, default=utc_now)


class Product(Base):
    """商品目录表模型。"""
    __tablename__ = "products"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id: int = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name: str = Column(String(120), nullable=False)
    price: float = Column(DECIMAL(10, 2), nullable=False, default=0)
    is_active: bool = Column(Boolean, default=True)
    created_at: datetime = Column(DateTime, default=utc_now)


class Appointment(Base):
    """预约表模型（核心业务表）。

    end 由服务时长推导，不接受外部输入。预约从不物理删除，只能取消。
    状态只能通过 AppointmentStateMachine 修改；order_id 只由订单对账引擎回写。

    Attributes:
        id: 主键。
        tenant_id: 所属租户。
        client_id: 顾客ID。
        collaborator_id: 服务员工ID。
        start: 开始时间（UTC）。
        end: 结束时间（UTC），等于 start 加上全部服务时长之和。
        status: 预约状态，见 AppointmentStatus。
        origin: 预约来源，见 AppointmentOrigin。
        notes: 备注。
        order_id: 关联订单ID（可选，唯一）。
        created_at: 创建时间。
        updated_at: 更新时间。

    Relationships:
        services: 按预约顺序排列的服务关联行。
        order: 关联的订单。
    """
    __tablename__ = "appointments"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id: int = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    client_id: int = Column(Integer, ForeignKey("clients.id"), nullable=False)
    collaborator_id: int = Column(Integer, ForeignKey("collaborators.id"), nullable=False)
    start: datetime = Column(DateTime, nullable=False)
    end: datetime = Column(DateTime, nullable=False)
    status: str = Column(String(20), nullable=False, default=AppointmentStatus.PENDING.value)
    origin: str = Column(String(20), nullable=False, default=AppointmentOrigin.APP.value)
    notes: Optional[str] = Column(Text)
    order_id: Optional[int] = Column(Integer, ForeignKey("orders.id"), unique=True)
    created_at: datetime = Column(DateTime, default=utc_now)
    updated_at: datetime = Column(DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    client: "Client" = relationship("Client")
    collaborator: "Collaborator" = relationship("Collaborator")
    services: List["AppointmentService"] = relationship(
        "AppointmentService",
        back_populates="appointment",
        order_by="AppointmentService.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    order: Optional["Order"] = relationship(
        "Order", back_populates="appointment", lazy="selectin"
    )

    __table_args__ = (
        Index("ix_appointments_staff_window", "tenant_id", "collaborator_id", "start"),
    )

    @property
    def service_ids(self) -> List[int]:
        """按顺序返回预约的服务ID。"""
        return [s.service_id for s in self.services]


class AppointmentService(Base):
    """预约-服务关联表，position 保存顾客选择的顺序。"""
    __tablename__ = "appointment_services"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    appointment_id: int = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    service_id: int = Column(Integer, ForeignKey("services.id"), nullable=False)
    position: int = Column(Integer, nullable=False, default=0)

    appointment: "Appointment" = relationship("Appointment", back_populates="services")


class Order(Base):
    """订单表模型。

    final_value 永远由未删除明细重新计算得出（Σ price × quantity），不允许手工设置。
    一个订单最多关联一个预约（通过 Appointment.order_id 反向关联）。

    Attributes:
        id: 主键。
        tenant_id: 所属租户。
        client_id: 顾客ID。
        status: open / closed / paid。
        final_value: 订单总额。
        created_by_user_id: 创建人（可选）。
        created_at: 创建时间。
        closed_at: 结单时间。
        paid_at: 付款时间。
        updated_at: 更新时间。

    Relationships:
        items: 全部明细（包含已软删除的，用于审计）。
        appointment: 关联的预约（可选）。
    """
    __tablename__ = "orders"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id: int = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    client_id: int = Column(Integer, ForeignKey("clients.id"), nullable=False)
    status: str = Column(String(20), nullable=False, default=OrderStatus.OPEN.value)
    final_value: float = Column(DECIMAL(10, 2), nullable=False, default=0)
    created_by_user_id: Optional[int] = Column(Integer)
    created_at: datetime = Column(DateTime, default=utc_now)
    closed_at: Optional[datetime] = Column(DateTime)
    paid_at: Optional[datetime] = Column(DateTime)
    updated_at: datetime = Column(DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    client: "Client" = relationship("Client")
    items: List["OrderItem"] = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    appointment: Optional["Appointment"] = relationship(
        "Appointment", back_populates="order", uselist=False, lazy="selectin"
    )

    @property
    def active_items(self) -> List["OrderItem"]:
        """未软删除的明细。"""
        return [item for item in self.items if item.deleted_at is None]


class OrderItem(Base):
    """订单明细表模型。

    price 是创建时的价格快照。软删除只写 deleted_at，不删除行。

    Attributes:
        id: 主键。
        tenant_id: 所属租户。
        order_id: 所属订单。
        type: service / product。
        service_id: 服务ID（type=service 时填写）。
        product_id: 商品ID（type=product 时填写）。
        collaborator_id: 服务员工（可选）。
        quantity: 数量，至少为 1。
        price: 单价快照。
        commission: 结单时计算出的提成金额。
        created_at: 创建时间。
        deleted_at: 软删除时间。
    """
    __tablename__ = "order_items"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id: int = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    order_id: int = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    type: str = Column(String(20), nullable=False)  # service / product
    service_id: Optional[int] = Column(Integer, ForeignKey("services.id"))
    product_id: Optional[int] = Column(Integer, ForeignKey("products.id"))
    collaborator_id: Optional[int] = Column(Integer, ForeignKey("collaborators.id"))
    quantity: int = Column(Integer, nullable=False, default=1)
    price: float = Column(DECIMAL(10, 2), nullable=False)
    commission: float = Column(DECIMAL(10, 2), nullable=False, default=0)
    created_at: datetime = Column(DateTime, default=utc_now)
    deleted_at: Optional[datetime] = Column(DateTime)

    order: "Order" = relationship("Order", back_populates="items")


class CommissionPayment(Base):
    """提成发放批次表模型。"""
    __tablename__ = "commission_payments"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id: int = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    collaborator_id: int = Column(Integer, ForeignKey("collaborators.id"), nullable=False)
    amount: float = Column(DECIMAL(10, 2), nullable=False)
    period_start: datetime = Column(DateTime, nullable=False)
    period_end: datetime = Column(DateTime, nullable=False)
    paid_at: datetime = Column(DateTime, default=utc_now)
    notes: Optional[str] = Column(Text)

    records: List["CommissionRecord"] = relationship(
        "CommissionRecord", back_populates="payment"
    )


class CommissionRecord(Base):
    """提成记录表模型。

    每条记录对应一笔已结单的订单明细应付给员工的提成。
    paid 置为 True 之后，amount 和统计周期不可再修改；
    每条记录只能被一个 CommissionPayment 批次发放。

    Attributes:
        id: 主键。
        tenant_id: 所属租户。
        collaborator_id: 员工ID。
        order_id: 订单ID。
        order_item_id: 订单明细ID。
        amount: 提成金额。
        paid: 是否已发放。
        payment_date: 发放时间。
        period_start: 统计周期开始。
        period_end: 统计周期结束。
        commission_payment_id: 发放批次ID。
    """
    __tablename__ = "commission_records"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id: int = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    collaborator_id: int = Column(Integer, ForeignKey("collaborators.id"), nullable=False, index=True)
    order_id: int = Column(Integer, ForeignKey("orders.id"), nullable=False)
    order_item_id: int = Column(Integer, ForeignKey("order_items.id"), nullable=False)
    amount: float = Column(DECIMAL(10, 2), nullable=False)
    paid: bool = Column(Boolean, nullable=False, default=False)
    payment_date: Optional[datetime] = Column(DateTime)
    period_start: Optional[datetime] = Column(DateTime)
    period_end: Optional[datetime] = Column(DateTime)
    commission_payment_id: Optional[int] = Column(Integer, ForeignKey("commission_payments.id"))
    created_at: datetime = Column(DateTime, default=utc_now)

    # Relationships
    collaborator: "Collaborator" = relationship("Collaborator")
    order: "Order" = relationship("Order")
    payment: Optional["CommissionPayment"] = relationship(
        "CommissionPayment", back_populates="records"
    )

    @validates("amount", "period_start", "period_end")
    def _freeze_when_paid(self, key, value):
        if self.paid and getattr(self, key) != value:
            raise ValueError(f"Commission record {self.id} is paid; {key} is immutable")
        return value


class QueueEntry(Base):
    """到店排队表模型。

    只保存顾客 → 预约的关联元数据，真正占用时间段的是关联的预约。
    """
    __tablename__ = "queue_entries"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id: int = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    client_id: int = Column(Integer, ForeignKey("clients.id"), nullable=False)
    collaborator_id: int = Column(Integer, ForeignKey("collaborators.id"), nullable=False)
    appointment_id: int = Column(Integer, ForeignKey("appointments.id"), nullable=False)
    position: int = Column(Integer, nullable=False)
    notes: Optional[str] = Column(Text)
    arrived_at: datetime = Column(DateTime, default=utc_now, index=True)
    created_at: datetime = Column(DateTime, default=utc_now)

    appointment: "Appointment" = relationship("Appointment", lazy="selectin")


class OutboxEvent(Base):
    """Outbox 领域事件表模型。

    在业务事务内写入，事务提交后由 OutboxRelay 派发给外部消费方（如通知）。

    Attributes:
        topic: 事件主题，如 appointment.created。
        aggregate_id: 聚合根ID（如预约ID）。
        payload: 事件数据。
        status: pending / sent / failed。
        attempts: 已派发次数。
        last_error: 最近一次失败原因。
    """
    __tablename__ = "outbox_events"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id: int = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    topic: str = Column(String(80), nullable=False)
    aggregate_id: int = Column(Integer, nullable=False)
    payload: Dict[str, Any] = Column(JSON, default={})
    status: str = Column(String(20), nullable=False, default="pending")  # pending / sent / failed
    attempts: int = Column(Integer, nullable=False, default=0)
    last_error: Optional[str] = Column(Text)
    created_at: datetime = Column(DateTime, default=utc_now, index=True)
    dispatched_at: Optional[datetime] = Column(DateTime)


class MessageLog(Base):
    """消息发送日志表模型。"""
    __tablename__ = "message_logs"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id: int = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    appointment_id: Optional[int] = Column(Integer, ForeignKey("appointments.id"))
    client_id: Optional[int] = Column(Integer, ForeignKey("clients.id"))
    channel: str = Column(String(30), nullable=False)
    content: str = Column(Text, nullable=False)
    status: str = Column(String(20), nullable=False, default="pending")  # pending / sent / failed
    error_message: Optional[str] = Column(Text)
    sent_at: Optional[datetime] = Column(DateTime)
    created_at: datetime = Column(DateTime, default=utc_now)


class AuditLog(Base):
    """审计日志表模型。

    记录对业务数据的增删改，用于追溯。写入失败不影响主业务。
    """
    __tablename__ = "audit_logs"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id: int = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    user_id: Optional[int] = Column(Integer)
    table_name: str = Column(String(50), nullable=False)
    record_id: int = Column(Integer, nullable=False)
    action: str = Column(String(10), nullable=False)  # INSERT / UPDATE / DELETE
    old_value: Optional[Dict[str, Any]] = Column(JSON)
    new_value: Optional[Dict[str, Any]] = Column(JSON)
    created_at: datetime = Column(DateTime, default=utc_now, index=True)
