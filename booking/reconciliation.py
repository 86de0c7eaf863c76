"""订单对账引擎

负责预约 → 订单的关联，以及订单明细、总额、结单/付款的全部写操作：

- ensure_order_for_appointment: 幂等地为预约找到或创建订单，并补齐服务明细
- add_item / remove_item: open 订单的明细增删（删除为软删除）
- close: open → closed，并按员工提成率生成提成记录
- pay: closed → paid

订单总额永远在明细变化后由未删除明细重新计算（Σ price × quantity）。
所有方法都在调用方的事务内执行，调用方负责提交。
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Optional

from loguru import logger
from sqlalchemy.orm import Session

from database.business_repos import OrderRepository, CommissionRepository
from database.entity_repos import (
    ClientRepository, CollaboratorRepository, ServiceRepository, ProductRepository
)
from database.models import Appointment, Order, OrderItem, OrderItemType, OrderStatus
from .adapters import Clock, system_clock
from .errors import ConflictError, ErrorCode, NotFoundError, ValidationError

CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """转换为两位小数的金额（四舍五入，0.5 进位）。"""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def order_total(items: Iterable[OrderItem]) -> Decimal:
    """未删除明细的 Σ price × quantity。"""
    total = Decimal("0")
    for item in items:
        if item.deleted_at is None:
            total += to_money(item.price) * (item.quantity or 1)
    return to_money(total)


class OrderReconciler:
    """订单对账引擎"""

    def __init__(self, orders: OrderRepository, commissions: CommissionRepository,
                 clients: ClientRepository, collaborators: CollaboratorRepository,
                 services: ServiceRepository, products: ProductRepository,
                 clock: Optional[Clock] = None):
        self.orders = orders
        self.commissions = commissions
        self.clients = clients
        self.collaborators = collaborators
        self.services = services
        self.products = products
        self.clock = clock or system_clock

    # ================================================================
    # 预约 → 订单
    # ================================================================

    def resolve_order(self, session: Session, appointment: Appointment,
                      created_by_user_id: Optional[int] = None) -> Order:
        """按固定顺序为预约找到订单：

        1. 预约已关联的订单
        2. appointment.order_id 指向的订单
        3. 同一顾客最早的、未关联预约的 open 订单
        4. 新建 open 订单
        """
        order = appointment.order
        if order is None and appointment.order_id is not None:
            order = self.orders.get(appointment.tenant_id, appointment.order_id, session=session)
        if order is None:
            order = self.orders.find_open_without_appointment(
                session, appointment.tenant_id, appointment.client_id
            )
            if order is not None:
                logger.info(f"Merging appointment {appointment.id} into open order {order.id}")
        if order is None:
            order = self.orders.add(
                session, appointment.tenant_id, appointment.client_id,
                created_by_user_id=created_by_user_id, created_at=self.clock(),
            )
            logger.info(f"Created order {order.id} for appointment {appointment.id}")
        return order

    def ensure_order_for_appointment(self, session: Session, appointment: Appointment,
                                     created_by_user_id: Optional[int] = None) -> Order:
        """幂等地为预约准备订单。

        关联订单后，为预约中每个（服务, 预约员工）组合补齐一条明细
        （数量 1，价格取当前服务价格快照），已存在的组合不会重复创建；
        目录中已不存在的服务被跳过。只有 open 订单会补齐明细，
        closed / paid 订单原样返回。

        Args:
            session: 调用方事务的会话
            appointment: 预约
            created_by_user_id: 新建订单时记录的创建人

        Returns:
            带明细的订单
        """
        order = self.resolve_order(session, appointment, created_by_user_id)
        if appointment.order_id != order.id:
            appointment.order = order
            session.flush()

        if order.status != OrderStatus.OPEN.value:
            return order

        existing = {
            (item.service_id, item.collaborator_id)
            for item in order.active_items
            if item.type == OrderItemType.SERVICE.value
        }
        catalog = self.services.get_by_ids(appointment.tenant_id, appointment.service_ids,
                                           session=session)
        added = 0
        for service in catalog:
            key = (service.id, appointment.collaborator_id)
            if key in existing:
                continue
            self.orders.add_item(
                session, order, OrderItemType.SERVICE.value,
                price=to_money(service.price), quantity=1,
                service_id=service.id, collaborator_id=appointment.collaborator_id,
            )
            existing.add(key)
            added += 1

        order.final_value = order_total(order.items)
        session.flush()
        if added:
            logger.info(f"Order {order.id}: materialized {added} service item(s) "
                        f"from appointment {appointment.id}")
        return order

    # ================================================================
    # 订单明细
    # ================================================================

    def create_order(self, session: Session, tenant_id: int, client_id: int,
                     created_by_user_id: Optional[int] = None) -> Order:
        """为顾客新建一张空的 open 订单。

        Raises:
            NotFoundError: CLIENT_NOT_FOUND
        """
        if self.clients.get_active(tenant_id, client_id, session=session) is None:
            raise NotFoundError(ErrorCode.CLIENT_NOT_FOUND, f"Client {client_id} not found")
        return self.orders.add(session, tenant_id, client_id,
                               created_by_user_id=created_by_user_id, created_at=self.clock())

    def _load(self, session: Session, tenant_id: int, order_id: int) -> Order:
        order = self.orders.lock(session, tenant_id, order_id)
        if order is None:
            raise NotFoundError(ErrorCode.ORDER_NOT_FOUND, f"Order {order_id} not found")
        return order

    def _load_open(self, session: Session, tenant_id: int, order_id: int) -> Order:
        order = self._load(session, tenant_id, order_id)
        if order.status != OrderStatus.OPEN.value:
            raise ConflictError(ErrorCode.ORDER_NOT_OPEN,
                                f"Order {order_id} is {order.status}; only open orders can change")
        return order

    def change_client(self, session: Session, tenant_id: int, order_id: int,
                      client_id: int) -> Order:
        """更换 open 订单的顾客，顾客不变时原样返回。

        Raises:
            NotFoundError: ORDER_NOT_FOUND / CLIENT_NOT_FOUND
            ConflictError: ORDER_NOT_OPEN
        """
        order = self._load_open(session, tenant_id, order_id)
        if order.client_id == client_id:
            return order
        if self.clients.get_active(tenant_id, client_id, session=session) is None:
            raise NotFoundError(ErrorCode.CLIENT_NOT_FOUND, f"Client {client_id} not found")
        order.client_id = client_id
        session.flush()
        logger.info(f"Order {order.id} moved to client {client_id}")
        return order

    def add_item(self, session: Session, tenant_id: int, order_id: int, item_type: str,
                 service_id: Optional[int] = None, product_id: Optional[int] = None,
                 collaborator_id: Optional[int] = None,
                 quantity: Optional[int] = None) -> Order:
        """向 open 订单追加一条明细，价格取目录当前价格快照。

        quantity 为空或不大于 0 时按 1 处理。

        Returns:
            更新后的订单

        Raises:
            NotFoundError: ORDER_NOT_FOUND / SERVICE_NOT_FOUND / PRODUCT_NOT_FOUND /
                COLLABORATOR_NOT_FOUND
            ConflictError: ORDER_NOT_OPEN
            ValidationError: INVALID_ITEM_TYPE / SERVICE_ID_REQUIRED / PRODUCT_ID_REQUIRED
        """
        order = self._load_open(session, tenant_id, order_id)

        item_type = item_type.value if isinstance(item_type, OrderItemType) else item_type
        if item_type == OrderItemType.SERVICE.value:
            if not service_id:
                raise ValidationError(ErrorCode.SERVICE_ID_REQUIRED,
                                      "service_id is required for service items")
            service = self.services.get(tenant_id, service_id, session=session)
            if service is None:
                raise NotFoundError(ErrorCode.SERVICE_NOT_FOUND, f"Service {service_id} not found")
            price = service.price
            product_id = None
        elif item_type == OrderItemType.PRODUCT.value:
            if not product_id:
                raise ValidationError(ErrorCode.PRODUCT_ID_REQUIRED,
                                      "product_id is required for product items")
            product = self.products.get_active(tenant_id, product_id, session=session)
            if product is None:
                raise NotFoundError(ErrorCode.PRODUCT_NOT_FOUND, f"Product {product_id} not found")
            price = product.price
            service_id = None
        else:
            raise ValidationError(ErrorCode.INVALID_ITEM_TYPE,
                                  f"Item type must be 'service' or 'product', got {item_type!r}")

        if collaborator_id is not None:
            if self.collaborators.get(tenant_id, collaborator_id, session=session) is None:
                raise NotFoundError(ErrorCode.COLLABORATOR_NOT_FOUND,
                                    f"Collaborator {collaborator_id} not found")

        qty = quantity if quantity is not None and quantity > 0 else 1
        self.orders.add_item(
            session, order, item_type, price=to_money(price), quantity=qty,
            service_id=service_id, product_id=product_id, collaborator_id=collaborator_id,
        )
        order.final_value = order_total(order.items)
        session.flush()
        return order

    def remove_item(self, session: Session, tenant_id: int, order_id: int,
                    item_id: int) -> Order:
        """软删除 open 订单中的一条明细并重新计算总额。

        Raises:
            NotFoundError: ORDER_NOT_FOUND / ITEM_NOT_FOUND
            ConflictError: ORDER_NOT_OPEN
        """
        order = self._load_open(session, tenant_id, order_id)
        item = self.orders.get_item(session, tenant_id, order_id, item_id)
        if item is None or item.deleted_at is not None:
            raise NotFoundError(ErrorCode.ITEM_NOT_FOUND, f"Item {item_id} not found")
        item.deleted_at = self.clock()
        order.final_value = order_total(order.items)
        session.flush()
        return order

    # ================================================================
    # 结单 / 付款
    # ================================================================

    def close(self, session: Session, tenant_id: int, order_id: int) -> Order:
        """结单：open → closed，记录 closed_at 并生成提成记录。

        每条指定了员工的未删除明细，提成 = price × quantity × 员工提成率
        （四舍五入到分），写入明细的 commission 字段；金额大于 0 时
        另写一条未发放的提成记录。

        Raises:
            NotFoundError: ORDER_NOT_FOUND
            ConflictError: ORDER_NOT_OPEN
        """
        order = self._load_open(session, tenant_id, order_id)
        order.status = OrderStatus.CLOSED.value
        order.closed_at = self.clock()
        order.final_value = order_total(order.items)
        session.flush()

        recorded = 0
        for item in order.active_items:
            if item.collaborator_id is None:
                continue
            collaborator = self.collaborators.get(tenant_id, item.collaborator_id, session=session)
            rate = Decimal(str(collaborator.commission_rate or 0)) if collaborator else Decimal("0")
            amount = to_money(to_money(item.price) * (item.quantity or 1) * rate)
            item.commission = amount
            if amount > 0:
                self.commissions.add_record(session, item, order, amount)
                recorded += 1
        session.flush()
        logger.info(f"Order {order.id} closed: total={order.final_value}, "
                    f"{recorded} commission record(s)")
        return order

    def pay(self, session: Session, tenant_id: int, order_id: int) -> Order:
        """付款：closed → paid，记录 paid_at，closed_at 保持不变。

        Raises:
            NotFoundError: ORDER_NOT_FOUND
            ConflictError: ORDER_NOT_CLOSED
        """
        order = self._load(session, tenant_id, order_id)
        if order.status != OrderStatus.CLOSED.value:
            raise ConflictError(ErrorCode.ORDER_NOT_CLOSED,
                                f"Order {order_id} is {order.status}; only closed orders can be paid")
        order.status = OrderStatus.PAID.value
        order.paid_at = self.clock()
        session.flush()
        logger.info(f"Order {order.id} paid: total={order.final_value}")
        return order
