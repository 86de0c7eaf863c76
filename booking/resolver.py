"""时间与服务解析

把（服务ID列表, 开始时间）解析为具体的预约时间窗口 [start, end)：
end = start + 所选服务时长之和。

校验分为两步：
- check_request: 纯输入校验（服务列表非空、开始时间可解析且在未来），不访问数据库
- resolve: 在 check_request 基础上读取服务目录，校验服务全部存在且可预约

预约流程在两步之间插入顾客、员工校验，保证错误的先后顺序固定。
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Sequence

from sqlalchemy.orm import Session

from database.entity_repos import ServiceRepository
from database.models import Service
from .adapters import Clock, system_clock
from .errors import ErrorCode, ValidationError


@dataclass
class ResolvedWindow:
    """解析后的预约时间窗口

    Attributes:
        start: 开始时间（UTC，不带时区）
        end: 结束时间
        services: 按请求顺序排列的服务
    """
    start: datetime
    end: datetime
    services: List[Service]

    @property
    def duration_minutes(self) -> int:
        return sum(s.duration for s in self.services)


def parse_start(value: Any) -> datetime:
    """把开始时间解析为不带时区的 UTC 时间。

    支持 datetime 对象和 ISO-8601 字符串（允许 ``Z`` 结尾）。
    带时区的时间会先转换为 UTC；不带时区的时间视为 UTC。

    Raises:
        ValidationError: INVALID_START_DATE
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(ErrorCode.INVALID_START_DATE,
                                  f"Cannot parse start date: {value!r}")
    else:
        raise ValidationError(ErrorCode.INVALID_START_DATE,
                              f"Cannot parse start date: {value!r}")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def window_end(start: datetime, services: Sequence[Service]) -> datetime:
    """计算结束时间：start 加上全部服务时长之和。"""
    return start + timedelta(minutes=sum(s.duration for s in services))


class ServiceTimeResolver:
    """时间与服务解析器"""

    def __init__(self, services: ServiceRepository, clock: Optional[Clock] = None):
        self.services = services
        self.clock = clock or system_clock

    def check_request(self, service_ids: Optional[Sequence[int]], start: Any) -> datetime:
        """校验请求本身（不访问数据库）。

        Args:
            service_ids: 服务ID列表
            start: 开始时间（datetime 或 ISO 字符串）

        Returns:
            解析后的开始时间

        Raises:
            ValidationError: AT_LEAST_ONE_SERVICE_REQUIRED / INVALID_START_DATE /
                START_MUST_BE_IN_FUTURE
        """
        if not service_ids:
            raise ValidationError(ErrorCode.AT_LEAST_ONE_SERVICE_REQUIRED,
                                  "At least one service is required")
        parsed = parse_start(start)
        if parsed <= self.clock():
            raise ValidationError(ErrorCode.START_MUST_BE_IN_FUTURE,
                                  "Start date must be in the future")
        return parsed

    def load_services(self, session: Session, tenant_id: int,
                      service_ids: Sequence[int]) -> List[Service]:
        """读取本租户下可预约的服务，要求每个ID都能对应一个服务。

        重复的ID只会匹配到一个服务，因此同样会失败。

        Raises:
            ValidationError: INVALID_SERVICE_IDS
        """
        found = self.services.get_active_by_ids(tenant_id, service_ids, session=session)
        if len(found) != len(service_ids):
            raise ValidationError(ErrorCode.INVALID_SERVICE_IDS,
                                  "Some services are invalid or inactive")
        return found

    def resolve(self, session: Session, tenant_id: int,
                service_ids: Optional[Sequence[int]], start: Any) -> ResolvedWindow:
        """完整解析：输入校验 + 服务目录校验 + 计算结束时间。"""
        parsed = self.check_request(service_ids, start)
        services = self.load_services(session, tenant_id, service_ids)
        return ResolvedWindow(start=parsed, end=window_end(parsed, services), services=services)
