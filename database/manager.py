"""数据库管理器 - 统一门面（Facade）。

DatabaseManager 是 database 模块的统一入口，组合了所有子仓库，
提供两套 API：

1. **子仓库访问**（细粒度）：
   通过 ``db.appointments``、``db.orders`` 等属性直接访问子仓库，
   返回 ORM 对象，供 booking 包在同一事务内组合使用。

2. **便捷方法**（粗粒度）：
   提供扁平化的方法（如 ``seed_catalog()``、``get_staff_list()``），
   返回字典/基本类型，适合脚本和运维调用。
"""
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Session

from config.business_config import BusinessConfig
from .connection import DatabaseConnection
from .entity_repos import (
    TenantRepository, ClientRepository, CollaboratorRepository,
    ServiceRepository, ProductRepository
)
from .business_repos import (
    AppointmentRepository, OrderRepository, CommissionRepository, QueueRepository
)
from .system_repos import (
    OutboxRepository, MessageLogRepository, AuditRepository
)
from .models import Collaborator, Service, Product


class DatabaseManager:
    """数据库管理器 - 统一门面。

    组合了所有子仓库，提供统一的数据库访问接口。

    Attributes:
        conn: 数据库连接管理器。
        tenants: 租户仓库。
        clients: 顾客仓库。
        collaborators: 员工仓库。
        services: 服务目录仓库。
        products: 商品仓库。
        appointments: 预约仓库。
        orders: 订单仓库。
        commissions: 提成仓库。
        queue: 到店排队仓库。
        outbox: Outbox 事件仓库。
        message_logs: 消息日志仓库。
        audit: 审计日志仓库。

    Example::

        db = DatabaseManager("sqlite:///data/salon.db")
        db.create_tables()

        tenant = db.tenants.get_or_create("salao-central", "Salão Central")
        staff = db.get_staff_list(tenant.id)
    """

    def __init__(self, database_url: Optional[str] = None,
                 conn: Optional[DatabaseConnection] = None) -> None:
        """初始化数据库管理器。

        Args:
            database_url: 数据库连接URL。如果为None则使用settings配置。
            conn: 已创建的数据库连接（可选，优先于 database_url）。
        """
        # 基础设施层
        self.conn = conn or DatabaseConnection(database_url)

        # 实体仓库
        self.tenants = TenantRepository(self.conn)
        self.clients = ClientRepository(self.conn)
        self.collaborators = CollaboratorRepository(self.conn)
        self.services = ServiceRepository(self.conn)
        self.products = ProductRepository(self.conn)

        # 业务记录仓库
        self.appointments = AppointmentRepository(self.conn)
        self.orders = OrderRepository(self.conn)
        self.commissions = CommissionRepository(self.conn)
        self.queue = QueueRepository(self.conn)

        # 系统数据仓库
        self.outbox = OutboxRepository(self.conn)
        self.message_logs = MessageLogRepository(self.conn)
        self.audit = AuditRepository(self.conn)

    # ================================================================
    # 基础设施方法
    # ================================================================

    def create_tables(self) -> None:
        """创建所有数据库表（幂等操作）。"""
        self.conn.create_tables()

    def get_session(self) -> Session:
        """获取数据库会话。"""
        return self.conn.get_session()

    def transaction(self):
        """开启一个事务作用域，详见 DatabaseConnection.transaction。"""
        return self.conn.transaction()

    @property
    def database_url(self) -> str:
        """数据库连接URL。"""
        return self.conn.database_url

    @property
    def engine(self):
        """SQLAlchemy 引擎对象。"""
        return self.conn.engine

    def execute_raw_sql(self, sql: str,
                        params: Optional[dict] = None) -> Any:
        """执行原始 SQL 语句。

        注意：应优先使用 ORM 方法，仅在必要时使用原始 SQL。
        """
        return self.conn.execute_raw_sql(sql, params)

    def close(self) -> None:
        """关闭数据库连接，释放所有资源。"""
        self.conn.close()

    # ================================================================
    # 便捷写入方法
    # ================================================================

    def seed_catalog(self, config: BusinessConfig) -> int:
        """按业务配置初始化租户、服务目录、商品与员工（幂等）。

        已存在同名的服务、商品、员工不会重复创建。

        Args:
            config: 业务配置。

        Returns:
            租户 ID。
        """
        tenant_info = config.get_tenant()
        with self.transaction() as session:
            tenant = self.tenants.get_or_create(
                tenant_info["slug"], tenant_info.get("name"), session=session
            )
            existing_services = {
                s.name for s in self.services.get_all(
                    Service, filters={"tenant_id": tenant.id}, session=session)
            }
            for service in config.get_services():
                if service["name"] not in existing_services:
                    self.services.add(tenant.id, service["name"], service["duration"],
                                      service["price"], session=session)

            existing_products = {
                p.name for p in self.products.get_all(
                    Product, filters={"tenant_id": tenant.id}, session=session)
            }
            for product in config.get_products():
                if product["name"] not in existing_products:
                    self.products.add(tenant.id, product["name"], product["price"],
                                      session=session)

            existing_staff = {
                c.name for c in self.collaborators.get_all(
                    Collaborator, filters={"tenant_id": tenant.id}, session=session)
            }
            for collaborator in config.get_collaborators():
                if collaborator["name"] not in existing_staff:
                    self.collaborators.add(
                        tenant.id, collaborator["name"],
                        role=collaborator.get("role", "professional"),
                        commission_rate=collaborator.get("commission_rate", 0),
                        session=session,
                    )
            return tenant.id

    # ================================================================
    # 便捷查询方法
    # ================================================================

    def get_staff_list(self, tenant_id: int, active_only: bool = True
                       ) -> List[Dict[str, Any]]:
        """获取员工列表。

        Args:
            tenant_id: 租户ID。
            active_only: 是否只返回在职员工，默认 True。

        Returns:
            员工信息字典列表。
        """
        filters: Dict[str, Any] = {"tenant_id": tenant_id}
        if active_only:
            filters["status"] = "active"
        collaborators = self.collaborators.get_all(
            Collaborator, filters=filters, order_by=Collaborator.name
        )
        return [
            {
                "id": c.id,
                "name": c.name,
                "role": c.role,
                "commission_rate": (
                    float(c.commission_rate) if c.commission_rate else 0
                ),
                "status": c.status,
            }
            for c in collaborators
        ]

    def get_service_catalog(self, tenant_id: int) -> List[Dict[str, Any]]:
        """获取可预约的服务目录。"""
        return [
            {
                "id": s.id,
                "name": s.name,
                "duration": s.duration,
                "price": float(s.price),
            }
            for s in self.services.list_active(tenant_id)
        ]
