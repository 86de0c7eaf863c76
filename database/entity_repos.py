"""实体仓库 - 基础实体的数据访问层。

管理系统中的基础实体（租户、顾客、员工、服务目录、商品）。
所有查询都必须带 tenant_id；跨租户的记录一律视为不存在。

每个仓库继承 BaseCRUD 获得通用能力，并添加领域特定的查询方法。
"""
from typing import Optional, List, Sequence
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .models import Tenant, Client, Collaborator, Service, Product


class TenantRepository(BaseCRUD):
    """租户 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def get_or_create(self, slug: str, name: Optional[str] = None,
                      session: Optional[Session] = None) -> Tenant:
        """获取或创建租户（按 slug 匹配）。

        Args:
            slug: 租户短标识。
            name: 租户名称（可选，默认等于 slug）。
            session: 外部会话（可选）。

        Returns:
            Tenant 对象。
        """
        def _do(sess):
            tenant = sess.query(Tenant).filter(Tenant.slug == slug).first()
            if not tenant:
                tenant = Tenant(slug=slug, name=name or slug)
                sess.add(tenant)
                sess.flush()
                sess.refresh(tenant)
            return tenant

        if session:
            return _do(session)

        with self._get_session() as sess:
            tenant = _do(sess)
            sess.commit()
            return tenant


class ClientRepository(BaseCRUD):
    """顾客 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def add(self, tenant_id: int, name: str, phone: Optional[str] = None,
            session: Optional[Session] = None) -> Client:
        """新增顾客。

        Args:
            tenant_id: 租户ID。
            name: 顾客姓名。
            phone: 联系电话（可选）。
            session: 外部会话（可选）。

        Returns:
            Client 对象。
        """
        return self.create(Client, session=session,
                           tenant_id=tenant_id, name=name, phone=phone)

    def get_active(self, tenant_id: int, client_id: int,
                   session: Optional[Session] = None) -> Optional[Client]:
        """获取本租户下的有效顾客，不存在或已停用时返回 None。"""
        client = self.get_for_tenant(Client, tenant_id, client_id, session=session)
        if client is None or not client.is_active:
            return None
        return client

    def deactivate(self, tenant_id: int, client_id: int,
                   session: Optional[Session] = None) -> Optional[Client]:
        """停用顾客。"""
        if self.get_for_tenant(Client, tenant_id, client_id, session=session) is None:
            return None
        return self.update_by_id(Client, client_id, session=session, is_active=False)

    def search(self, tenant_id: int, keyword: str,
               session: Optional[Session] = None) -> List[Client]:
        """按姓名或电话搜索顾客。

        Args:
            tenant_id: 租户ID。
            keyword: 搜索关键词。

        Returns:
            匹配的顾客列表。
        """
        def _query(sess):
            return sess.query(Client).filter(
                Client.tenant_id == tenant_id,
                or_(
                    Client.name.contains(keyword),
                    Client.phone.contains(keyword)
                )
            ).order_by(Client.name).all()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)


class CollaboratorRepository(BaseCRUD):
    """员工/协作者 仓库。

    professional 角色的员工可以被预约，其他角色（前台、经理）只操作系统。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def add(self, tenant_id: int, name: str, role: str = "professional",
            commission_rate: float = 0, phone: Optional[str] = None,
            session: Optional[Session] = None) -> Collaborator:
        """新增员工。

        Args:
            tenant_id: 租户ID。
            name: 姓名。
            role: 角色。
            commission_rate: 提成率（0-1）。
            phone: 联系电话（可选）。
            session: 外部会话（可选）。

        Returns:
            Collaborator 对象。

        Raises:
            ValueError: 提成率不在 0-1 范围内。
        """
        if not 0 <= float(commission_rate) <= 1:
            raise ValueError(f"Commission rate must be between 0 and 1, got {commission_rate}")
        return self.create(Collaborator, session=session,
                           tenant_id=tenant_id, name=name, role=role,
                           commission_rate=commission_rate, phone=phone)

    def get(self, tenant_id: int, collaborator_id: int,
            session: Optional[Session] = None) -> Optional[Collaborator]:
        return self.get_for_tenant(Collaborator, tenant_id, collaborator_id, session=session)

    def get_active(self, tenant_id: int, collaborator_id: int,
                   session: Optional[Session] = None) -> Optional[Collaborator]:
        """获取本租户下在职的员工，不存在或已停用时返回 None。"""
        collaborator = self.get(tenant_id, collaborator_id, session=session)
        if collaborator is None or collaborator.status != "active":
            return None
        return collaborator

    def lock_for_update(self, tenant_id: int, collaborator_id: int,
                        session: Session) -> Optional[Collaborator]:
        """在当前事务中锁定员工行（SELECT ... FOR UPDATE）。

        支持行锁的数据库会串行化同一员工的并发写入；SQLite 忽略该子句。
        """
        return session.query(Collaborator).filter(
            Collaborator.id == collaborator_id,
            Collaborator.tenant_id == tenant_id,
        ).with_for_update().first()

    def list_active_professionals(self, tenant_id: int,
                                  session: Optional[Session] = None) -> List[Collaborator]:
        """按姓名排序返回在职的专业服务人员。"""
        def _query(sess):
            return sess.query(Collaborator).filter(
                Collaborator.tenant_id == tenant_id,
                Collaborator.status == "active",
                Collaborator.role == "professional",
            ).order_by(Collaborator.name, Collaborator.id).all()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

    def set_commission_rate(self, tenant_id: int, collaborator_id: int, rate: float,
                            session: Optional[Session] = None) -> Optional[Collaborator]:
        """修改员工提成率。只影响之后结单的订单。"""
        if not 0 <= float(rate) <= 1:
            raise ValueError(f"Commission rate must be between 0 and 1, got {rate}")
        if self.get(tenant_id, collaborator_id, session=session) is None:
            return None
        return self.update_by_id(Collaborator, collaborator_id, session=session,
                                 commission_rate=rate)

    def deactivate(self, tenant_id: int, collaborator_id: int,
                   session: Optional[Session] = None) -> Optional[Collaborator]:
        """停用员工。"""
        if self.get(tenant_id, collaborator_id, session=session) is None:
            return None
        return self.update_by_id(Collaborator, collaborator_id, session=session,
                                 status="inactive")


class ServiceRepository(BaseCRUD):
    """服务目录 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def add(self, tenant_id: int, name: str, duration: int, price: float,
            session: Optional[Session] = None) -> Service:
        """新增服务。

        Raises:
            ValueError: 时长不是正数。
        """
        if duration <= 0:
            raise ValueError(f"Service duration must be positive, got {duration}")
        return self.create(Service, session=session, tenant_id=tenant_id,
                           name=name, duration=duration, price=price)

    def get(self, tenant_id: int, service_id: int,
            session: Optional[Session] = None) -> Optional[Service]:
        return self.get_for_tenant(Service, tenant_id, service_id, session=session)

    def get_active_by_ids(self, tenant_id: int, service_ids: Sequence[int],
                          session: Optional[Session] = None) -> List[Service]:
        """按ID批量获取本租户下可预约的服务。

        返回结果按 service_ids 中的顺序排列，缺失或已停用的服务不会出现在结果中。
        """
        return [s for s in self.get_by_ids(tenant_id, service_ids, session=session)
                if s.is_active]

    def get_by_ids(self, tenant_id: int, service_ids: Sequence[int],
                   session: Optional[Session] = None) -> List[Service]:
        """按ID批量获取本租户下的服务（包含已停用的）。"""
        def _query(sess):
            if not service_ids:
                return []
            found = sess.query(Service).filter(
                Service.tenant_id == tenant_id,
                Service.id.in_(list(service_ids)),
            ).all()
            by_id = {s.id: s for s in found}
            ordered = []
            for service_id in dict.fromkeys(service_ids):
                if service_id in by_id:
                    ordered.append(by_id[service_id])
            return ordered

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

    def list_active(self, tenant_id: int,
                    session: Optional[Session] = None) -> List[Service]:
        return self.get_all(Service, filters={"tenant_id": tenant_id, "is_active": True},
                            order_by=Service.name, session=session)

    def deactivate(self, tenant_id: int, service_id: int,
                   session: Optional[Session] = None) -> Optional[Service]:
        """停用服务，历史预约与订单不受影响。"""
        if self.get(tenant_id, service_id, session=session) is None:
            return None
        return self.update_by_id(Service, service_id, session=session, is_active=False)


class ProductRepository(BaseCRUD):
    """商品 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def add(self, tenant_id: int, name: str, price: float,
            session: Optional[Session] = None) -> Product:
        return self.create(Product, session=session, tenant_id=tenant_id,
                           name=name, price=price)

    def get_active(self, tenant_id: int, product_id: int,
                   session: Optional[Session] = None) -> Optional[Product]:
        """获取本租户下在售的商品。"""
        product = self.get_for_tenant(Product, tenant_id, product_id, session=session)
        if product is None or not product.is_active:
            return None
        return product
