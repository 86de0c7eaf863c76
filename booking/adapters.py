"""外部协作方接口

引擎依赖但不实现的能力都在这里定义为抽象基类：
- IdentityResolver: 由传输层把凭证解析为 CallerIdentity
- PermissionOracle: 判断角色是否允许某个动作
- NotificationDispatcher: 发送预约确认通知

新的部署只需要实现这些接口，就可以替换对应能力，
而不需要修改 booking 包的核心代码。
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, Optional

from database.models import utc_now

# 时钟：返回当前 UTC 时间（不带时区）。测试中可以注入固定时钟。
Clock = Callable[[], datetime]

system_clock: Clock = utc_now


@dataclass(frozen=True)
class CallerIdentity:
    """已认证的调用方身份

    Attributes:
        tenant_id: 调用方所属租户，所有操作都限定在该租户内
        user_id: 用户ID
        role: 角色（admin / manager / receptionist / professional）
    """
    tenant_id: int
    user_id: Optional[int] = None
    role: str = "receptionist"


@dataclass
class DispatchResult:
    """通知派发结果"""
    success: bool
    error: Optional[str] = None


class IdentityResolver(ABC):
    """凭证 → 身份 解析器（由传输层实现）"""

    @abstractmethod
    def resolve(self, credential: Any) -> CallerIdentity:
        """解析凭证

        Args:
            credential: 传输层携带的凭证（如 token）

        Returns:
            调用方身份
        """
        pass


class PermissionOracle(ABC):
    """权限判断接口"""

    @abstractmethod
    def allowed(self, role: str, action: str) -> bool:
        """判断角色是否允许执行动作

        Args:
            role: 角色
            action: 动作名，如 ``services.delete``

        Returns:
            是否允许
        """
        pass


class RolePermissionOracle(PermissionOracle):
    """基于静态角色表的权限判断

    动作表中的 ``*`` 表示允许所有动作，``orders.*`` 表示允许 orders 下的所有动作。
    """

    DEFAULT_GRANTS: Dict[str, FrozenSet[str]] = {
        "admin": frozenset({"*"}),
        "manager": frozenset({
            "appointments.*", "orders.*", "commissions.*", "services.*", "queue.*",
            "collaborators.*", "audit.read",
        }),
        "receptionist": frozenset({"appointments.*", "orders.*", "queue.*"}),
        "professional": frozenset({"appointments.read", "appointments.update"}),
    }

    def __init__(self, grants: Optional[Dict[str, FrozenSet[str]]] = None):
        self.grants = grants if grants is not None else self.DEFAULT_GRANTS

    def allowed(self, role: str, action: str) -> bool:
        granted = self.grants.get(role, frozenset())
        if "*" in granted or action in granted:
            return True
        namespace = action.split(".", 1)[0]
        return f"{namespace}.*" in granted


class NotificationDispatcher(ABC):
    """预约确认通知派发接口

    实现方负责把通知投递到具体渠道（WhatsApp、短信等）。
    派发失败应返回 ``DispatchResult(success=False, ...)``；
    即使抛出异常，引擎也只会记录告警，不会让预约失败。
    """

    @abstractmethod
    def notify(self, tenant_id: int, appointment_id: int) -> DispatchResult:
        """发送预约确认

        Args:
            tenant_id: 租户ID
            appointment_id: 预约ID

        Returns:
            派发结果
        """
        pass
