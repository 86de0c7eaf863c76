"""Commission ledger tests.

Tests for:
- Pending commissions grouped per collaborator
- Paying all or selected records in one batch
- Paid records are excluded afterwards and frozen
- Payment history and record listings
- Commission rate changes only affect later closes
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from booking import CallerIdentity
from booking.errors import (
    ConflictError, ErrorCode, NotFoundError, PermissionDeniedError, ValidationError
)
from booking.reconciliation import to_money


@pytest.fixture
def closed_orders(service, caller, salon, clock):
    """Close two orders: Ana earns 40 + 20, Bruno earns 15."""
    first = service.create_order(caller, salon.maria.id)
    service.add_order_item(caller, first.id, "service", service_id=salon.cut.id,
                           collaborator_id=salon.ana.id)
    service.add_order_item(caller, first.id, "service", service_id=salon.brush.id,
                           collaborator_id=salon.bruno.id)
    service.close_order(caller, first.id)

    clock.advance(days=1)
    second = service.create_order(caller, salon.joao.id)
    service.add_order_item(caller, second.id, "service", service_id=salon.brush.id,
                           collaborator_id=salon.ana.id)
    service.close_order(caller, second.id)
    return first, second


class TestPendingCommissions:
    """pending_commissions groups unpaid records."""

    def test_grouped_and_sorted_by_total(self, service, caller, salon, closed_orders):
        pending = service.pending_commissions(caller)
        assert [(p.collaborator_name, p.total_amount, p.record_count) for p in pending] == [
            ("Ana", Decimal("60.00"), 2),
            ("Bruno", Decimal("15.00"), 1),
        ]
        ana = pending[0]
        assert {r.order_id for r in ana.records} == {o.id for o in closed_orders}

    def test_date_range_uses_order_creation(self, service, caller, salon, closed_orders, clock):
        first_day = clock() - timedelta(days=1)
        pending = service.pending_commissions(caller, start=first_day,
                                              end=first_day + timedelta(hours=1))
        totals = {p.collaborator_name: p.total_amount for p in pending}
        assert totals == {"Ana": Decimal("40.00"), "Bruno": Decimal("15.00")}

    def test_empty(self, service, caller):
        assert service.pending_commissions(caller) == []


class TestPayCommissions:
    """pay_commissions bundles unpaid records."""

    def test_pay_all(self, db, service, caller, salon, closed_orders, clock):
        payment = service.pay_commissions(caller, salon.ana.id, notes="janeiro")

        assert to_money(payment.amount) == Decimal("60.00")
        assert payment.paid_at == clock()
        assert payment.period_end == clock()
        assert payment.period_start == closed_orders[0].created_at
        assert payment.notes == "janeiro"

        records = db.commissions.find_records(salon.tenant.id, collaborator_id=salon.ana.id)
        assert all(r.paid and r.commission_payment_id == payment.id for r in records)
        assert all(r.payment_date == clock() for r in records)
        assert [p.collaborator_name for p in service.pending_commissions(caller)] == ["Bruno"]

    def test_pay_selected_records(self, service, caller, salon, closed_orders):
        ana = service.pending_commissions(caller)[0]
        chosen = next(r for r in ana.records if r.amount == Decimal("20.00"))

        payment = service.pay_commissions(caller, salon.ana.id, record_ids=[chosen.id])
        assert to_money(payment.amount) == Decimal("20.00")

        remaining = {p.collaborator_name: p.total_amount
                     for p in service.pending_commissions(caller)}
        assert remaining["Ana"] == Decimal("40.00")

    def test_foreign_record_ids_are_ignored(self, service, caller, salon, closed_orders):
        bruno_record = service.pending_commissions(caller)[1].records[0]
        with pytest.raises(ConflictError) as exc:
            service.pay_commissions(caller, salon.ana.id, record_ids=[bruno_record.id])
        assert exc.value.code == ErrorCode.NO_PENDING_COMMISSIONS

    def test_nothing_pending(self, service, caller, salon, closed_orders):
        service.pay_commissions(caller, salon.ana.id)
        with pytest.raises(ConflictError) as exc:
            service.pay_commissions(caller, salon.ana.id)
        assert exc.value.code == ErrorCode.NO_PENDING_COMMISSIONS

    def test_explicit_period(self, service, caller, salon, closed_orders):
        start, end = datetime(2029, 12, 1), datetime(2029, 12, 31)
        payment = service.pay_commissions(caller, salon.bruno.id,
                                          period_start=start, period_end=end)
        assert (payment.period_start, payment.period_end) == (start, end)

    def test_paid_record_amount_is_frozen(self, db, service, caller, salon, closed_orders):
        service.pay_commissions(caller, salon.bruno.id)
        with db.transaction() as session:
            record = db.commissions.find_records(salon.tenant.id, collaborator_id=salon.bruno.id,
                                                 session=session)[0]
            with pytest.raises(ValueError):
                record.amount = Decimal("99.00")

    def test_payment_is_audited(self, db, service, caller, salon, closed_orders):
        payment = service.pay_commissions(caller, salon.ana.id)
        logs = db.audit.list_for_record(salon.tenant.id, "commission_payments", payment.id)
        assert logs[0].new_value == {"collaborator_id": salon.ana.id, "amount": "60.00"}
        assert logs[0].user_id == caller.user_id


class TestHistory:
    """Record listings and payment history."""

    def test_records_filter(self, service, caller, salon, closed_orders):
        service.pay_commissions(caller, salon.bruno.id)
        assert len(service.commission_records(caller)) == 3
        assert len(service.commission_records(caller, paid=True)) == 1
        ana = service.commission_records(caller, collaborator_id=salon.ana.id)
        assert [r.order_id for r in ana] == [closed_orders[1].id, closed_orders[0].id]

    def test_payment_history_newest_first(self, service, caller, salon, closed_orders, clock):
        first = service.pay_commissions(caller, salon.bruno.id)
        clock.advance(hours=1)
        second = service.pay_commissions(caller, salon.ana.id)

        history = service.commission_history(caller)
        assert [h.id for h in history] == [second.id, first.id]
        assert history[0].collaborator_name == "Ana"
        assert history[0].amount == Decimal("60.00")

        assert [h.id for h in service.commission_history(caller, salon.bruno.id)] == [first.id]
        assert len(service.commission_history(caller, limit=1)) == 1


class TestCommissionRate:
    """set_commission_rate."""

    def test_new_rate_applies_to_later_closes(self, db, service, caller, salon, closed_orders):
        updated = service.set_commission_rate(caller, salon.bruno.id, 0.5)
        assert to_money(updated.commission_rate) == Decimal("0.50")

        order = service.create_order(caller, salon.pedro.id)
        service.add_order_item(caller, order.id, "service", service_id=salon.brush.id,
                               collaborator_id=salon.bruno.id)
        service.close_order(caller, order.id)

        amounts = sorted(r.amount for r in db.commissions.find_records(
            salon.tenant.id, collaborator_id=salon.bruno.id))
        assert [to_money(a) for a in amounts] == [Decimal("15.00"), Decimal("25.00")]

    def test_change_is_audited(self, db, service, caller, salon):
        service.set_commission_rate(caller, salon.ana.id, 0.45)
        log = db.audit.list_for_record(salon.tenant.id, "collaborators", salon.ana.id)[-1]
        assert log.action == "UPDATE"
        assert log.new_value == {"commission_rate": "0.45"}

    @pytest.mark.parametrize("rate", [-0.1, 1.5, "abc", None])
    def test_invalid_rate(self, service, caller, salon, rate):
        with pytest.raises(ValidationError) as exc:
            service.set_commission_rate(caller, salon.ana.id, rate)
        assert exc.value.code == ErrorCode.INVALID_COMMISSION_RATE

    def test_unknown_collaborator(self, db, service, caller, salon):
        outsider = db.collaborators.add(salon.other_tenant.id, "Externo")
        for collaborator_id in (9999, outsider.id):
            with pytest.raises(NotFoundError) as exc:
                service.set_commission_rate(caller, collaborator_id, 0.2)
            assert exc.value.code == ErrorCode.COLLABORATOR_NOT_FOUND

    def test_receptionist_cannot_change_rate(self, service, salon):
        receptionist = CallerIdentity(tenant_id=salon.tenant.id, role="receptionist")
        with pytest.raises(PermissionDeniedError):
            service.set_commission_rate(receptionist, salon.ana.id, 0.9)
