"""提成台账

提成记录在订单结单时生成（见 reconciliation.OrderReconciler.close），
本模块负责查询与发放：

- pending_by_collaborator: 按员工汇总未发放的提成，金额高的在前
- pay: 把选中的未发放记录打包成一个发放批次
- list_records / payment_history: 明细与发放历史查询

日期范围都作用在所属订单的创建时间上，两端包含。
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from loguru import logger
from sqlalchemy.orm import Session

from database.business_repos import CommissionRepository
from database.entity_repos import CollaboratorRepository
from database.models import CommissionPayment, CommissionRecord
from .adapters import Clock, system_clock
from .errors import ConflictError, ErrorCode
from .reconciliation import to_money


@dataclass
class PendingRecord:
    """待发放的单条提成"""
    id: int
    amount: Decimal
    order_id: int
    order_date: Optional[datetime]


@dataclass
class PendingCommissions:
    """单个员工的待发放提成汇总"""
    collaborator_id: int
    collaborator_name: str
    total_amount: Decimal = Decimal("0.00")
    record_count: int = 0
    records: List[PendingRecord] = field(default_factory=list)


@dataclass
class PaymentSummary:
    """提成发放批次摘要"""
    id: int
    collaborator_id: int
    collaborator_name: str
    amount: Decimal
    period_start: datetime
    period_end: datetime
    paid_at: datetime
    notes: Optional[str] = None


class CommissionLedger:
    """提成台账"""

    UNKNOWN_COLLABORATOR = "Unknown"

    def __init__(self, commissions: CommissionRepository,
                 collaborators: CollaboratorRepository,
                 clock: Optional[Clock] = None):
        self.commissions = commissions
        self.collaborators = collaborators
        self.clock = clock or system_clock

    def _names(self, session: Session, tenant_id: int,
               collaborator_ids: Sequence[int]) -> Dict[int, str]:
        names = {}
        for collaborator_id in set(collaborator_ids):
            collaborator = self.collaborators.get(tenant_id, collaborator_id, session=session)
            names[collaborator_id] = collaborator.name if collaborator else self.UNKNOWN_COLLABORATOR
        return names

    def pending_by_collaborator(self, session: Session, tenant_id: int,
                                start: Optional[datetime] = None,
                                end: Optional[datetime] = None) -> List[PendingCommissions]:
        """按员工汇总未发放提成。

        Args:
            session: 会话
            tenant_id: 租户ID
            start: 订单创建时间下限（可选，含）
            end: 订单创建时间上限（可选，含）

        Returns:
            按总额降序排列的汇总列表
        """
        records = self.commissions.find_records(
            tenant_id, paid=False, order_created_from=start, order_created_to=end,
            session=session,
        )
        names = self._names(session, tenant_id, [r.collaborator_id for r in records])

        groups: Dict[int, PendingCommissions] = {}
        for record in records:
            group = groups.get(record.collaborator_id)
            if group is None:
                group = PendingCommissions(
                    collaborator_id=record.collaborator_id,
                    collaborator_name=names[record.collaborator_id],
                )
                groups[record.collaborator_id] = group
            amount = to_money(record.amount)
            group.total_amount = to_money(group.total_amount + amount)
            group.record_count += 1
            group.records.append(PendingRecord(
                id=record.id,
                amount=amount,
                order_id=record.order_id,
                order_date=record.order.created_at if record.order else None,
            ))

        return sorted(groups.values(), key=lambda g: g.total_amount, reverse=True)

    def pay(self, session: Session, tenant_id: int, collaborator_id: int,
            record_ids: Optional[Sequence[int]] = None,
            period_start: Optional[datetime] = None,
            period_end: Optional[datetime] = None,
            notes: Optional[str] = None) -> CommissionPayment:
        """发放提成。

        不指定 record_ids 时发放该员工全部未发放记录；指定时只发放其中
        属于该员工且未发放的记录。

        Args:
            session: 调用方事务的会话
            tenant_id: 租户ID
            collaborator_id: 员工ID
            record_ids: 要发放的记录ID（可选）
            period_start: 统计周期开始（默认取最早一条记录的周期开始）
            period_end: 统计周期结束（默认当前时间）
            notes: 备注

        Returns:
            新建的发放批次

        Raises:
            ConflictError: NO_PENDING_COMMISSIONS
        """
        records = self.commissions.find_records(
            tenant_id, collaborator_id=collaborator_id, paid=False,
            record_ids=record_ids, session=session,
        )
        if not records:
            raise ConflictError(ErrorCode.NO_PENDING_COMMISSIONS,
                                f"No pending commissions for collaborator {collaborator_id}")

        now = self.clock()
        total = to_money(sum((to_money(r.amount) for r in records), Decimal("0")))
        payment = self.commissions.add_payment(
            session, tenant_id, collaborator_id, total,
            period_start=period_start or records[-1].period_start or now,
            period_end=period_end or now,
            paid_at=now,
            notes=notes,
        )
        for record in records:
            record.paid = True
            record.payment_date = now
            record.commission_payment_id = payment.id
        session.flush()
        logger.info(f"Paid {len(records)} commission record(s) to collaborator "
                    f"{collaborator_id}: {total}")
        return payment

    def list_records(self, session: Session, tenant_id: int,
                     collaborator_id: Optional[int] = None,
                     paid: Optional[bool] = None,
                     start: Optional[datetime] = None,
                     end: Optional[datetime] = None) -> List[CommissionRecord]:
        """查询提成记录，按订单创建时间倒序。"""
        return self.commissions.find_records(
            tenant_id, collaborator_id=collaborator_id, paid=paid,
            order_created_from=start, order_created_to=end, session=session,
        )

    def payment_history(self, session: Session, tenant_id: int,
                        collaborator_id: Optional[int] = None,
                        limit: int = 20) -> List[PaymentSummary]:
        """发放历史，最新的在前。"""
        payments = self.commissions.payment_history(
            tenant_id, collaborator_id=collaborator_id, limit=limit, session=session
        )
        names = self._names(session, tenant_id, [p.collaborator_id for p in payments])
        return [
            PaymentSummary(
                id=p.id,
                collaborator_id=p.collaborator_id,
                collaborator_name=names[p.collaborator_id],
                amount=to_money(p.amount),
                period_start=p.period_start,
                period_end=p.period_end,
                paid_at=p.paid_at,
                notes=p.notes,
            )
            for p in payments
        ]
