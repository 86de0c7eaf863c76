"""Entity repository tests.

Tests for:
- TenantRepository: get_or_create idempotency
- ClientRepository: add, get_active, deactivate, search
- CollaboratorRepository: commission validation, active lookups, ordering
- ServiceRepository: duration validation, ordered batch lookups
- ProductRepository: active lookups
- Tenant isolation across every lookup
"""
from decimal import Decimal

import pytest


class TestTenantRepository:
    """Tests for TenantRepository."""

    def test_get_or_create_is_idempotent(self, temp_db):
        first = temp_db.tenants.get_or_create("salao-a", "Salão A")
        second = temp_db.tenants.get_or_create("salao-a", "Other name")
        assert first.id == second.id
        assert second.name == "Salão A"

    def test_name_defaults_to_slug(self, temp_db):
        tenant = temp_db.tenants.get_or_create("salao-b")
        assert tenant.name == "salao-b"


class TestClientRepository:
    """Tests for ClientRepository."""

    def test_add_and_get_active(self, temp_db, tenant):
        client = temp_db.clients.add(tenant.id, "Maria Silva", phone="11999990000")
        found = temp_db.clients.get_active(tenant.id, client.id)
        assert found is not None
        assert found.name == "Maria Silva"

    def test_deactivated_client_is_not_active(self, temp_db, tenant):
        client = temp_db.clients.add(tenant.id, "Maria")
        temp_db.clients.deactivate(tenant.id, client.id)
        assert temp_db.clients.get_active(tenant.id, client.id) is None

    def test_deactivate_other_tenant_client_returns_none(self, temp_db, tenant, other_tenant):
        client = temp_db.clients.add(other_tenant.id, "Maria")
        assert temp_db.clients.deactivate(tenant.id, client.id) is None
        assert temp_db.clients.get_active(other_tenant.id, client.id) is not None

    def test_other_tenant_client_is_invisible(self, temp_db, tenant, other_tenant):
        client = temp_db.clients.add(other_tenant.id, "João")
        assert temp_db.clients.get_active(tenant.id, client.id) is None

    def test_search_by_name_and_phone(self, temp_db, tenant, other_tenant):
        temp_db.clients.add(tenant.id, "Maria Souza", phone="11911112222")
        temp_db.clients.add(tenant.id, "Pedro", phone="11933334444")
        temp_db.clients.add(other_tenant.id, "Maria Costa")

        by_name = temp_db.clients.search(tenant.id, "Maria")
        assert [c.name for c in by_name] == ["Maria Souza"]

        by_phone = temp_db.clients.search(tenant.id, "3333")
        assert [c.name for c in by_phone] == ["Pedro"]


class TestCollaboratorRepository:
    """Tests for CollaboratorRepository."""

    def test_add_with_commission(self, temp_db, tenant):
        staff = temp_db.collaborators.add(tenant.id, "Ana", commission_rate=0.4)
        assert staff.role == "professional"
        assert Decimal(str(staff.commission_rate)) == Decimal("0.4")

    @pytest.mark.parametrize("rate", [-0.1, 1.5])
    def test_commission_rate_out_of_range(self, temp_db, tenant, rate):
        with pytest.raises(ValueError):
            temp_db.collaborators.add(tenant.id, "Ana", commission_rate=rate)

    def test_set_commission_rate(self, temp_db, tenant):
        staff = temp_db.collaborators.add(tenant.id, "Ana", commission_rate=0.4)
        updated = temp_db.collaborators.set_commission_rate(tenant.id, staff.id, 0.5)
        assert float(updated.commission_rate) == 0.5
        with pytest.raises(ValueError):
            temp_db.collaborators.set_commission_rate(tenant.id, staff.id, 2)

    def test_get_active_skips_inactive(self, temp_db, tenant):
        staff = temp_db.collaborators.add(tenant.id, "Ana")
        assert temp_db.collaborators.get_active(tenant.id, staff.id) is not None
        temp_db.collaborators.deactivate(tenant.id, staff.id)
        assert temp_db.collaborators.get_active(tenant.id, staff.id) is None
        assert temp_db.collaborators.get(tenant.id, staff.id).status == "inactive"

    def test_list_active_professionals(self, temp_db, tenant):
        temp_db.collaborators.add(tenant.id, "Carla", role="receptionist")
        temp_db.collaborators.add(tenant.id, "Bruno")
        ana = temp_db.collaborators.add(tenant.id, "Ana")
        dani = temp_db.collaborators.add(tenant.id, "Dani")
        temp_db.collaborators.deactivate(tenant.id, dani.id)

        names = [c.name for c in temp_db.collaborators.list_active_professionals(tenant.id)]
        assert names == ["Ana", "Bruno"]
        assert ana.id is not None

    def test_lock_for_update_respects_tenant(self, temp_db, tenant, other_tenant):
        staff = temp_db.collaborators.add(tenant.id, "Ana")
        with temp_db.transaction() as session:
            assert temp_db.collaborators.lock_for_update(tenant.id, staff.id, session) is not None
            assert temp_db.collaborators.lock_for_update(other_tenant.id, staff.id, session) is None


class TestServiceRepository:
    """Tests for ServiceRepository."""

    def test_duration_must_be_positive(self, temp_db, tenant):
        with pytest.raises(ValueError):
            temp_db.services.add(tenant.id, "Corte", 0, 50)

    def test_get_active_by_ids_keeps_request_order(self, temp_db, tenant):
        cut = temp_db.services.add(tenant.id, "Corte", 30, 50)
        dye = temp_db.services.add(tenant.id, "Coloração", 90, 180)
        found = temp_db.services.get_active_by_ids(tenant.id, [dye.id, cut.id])
        assert [s.id for s in found] == [dye.id, cut.id]

    def test_get_active_by_ids_drops_missing_inactive_and_foreign(
            self, temp_db, tenant, other_tenant):
        cut = temp_db.services.add(tenant.id, "Corte", 30, 50)
        old = temp_db.services.add(tenant.id, "Antigo", 30, 50)
        foreign = temp_db.services.add(other_tenant.id, "Corte", 30, 50)
        temp_db.services.deactivate(tenant.id, old.id)

        found = temp_db.services.get_active_by_ids(
            tenant.id, [cut.id, old.id, foreign.id, 9999])
        assert [s.id for s in found] == [cut.id]

    def test_duplicate_ids_collapse(self, temp_db, tenant):
        cut = temp_db.services.add(tenant.id, "Corte", 30, 50)
        found = temp_db.services.get_active_by_ids(tenant.id, [cut.id, cut.id])
        assert len(found) == 1

    def test_get_by_ids_includes_inactive(self, temp_db, tenant):
        old = temp_db.services.add(tenant.id, "Antigo", 30, 50)
        temp_db.services.deactivate(tenant.id, old.id)
        assert [s.id for s in temp_db.services.get_by_ids(tenant.id, [old.id])] == [old.id]

    def test_get_by_ids_empty(self, temp_db, tenant):
        assert temp_db.services.get_by_ids(tenant.id, []) == []

    def test_list_active_sorted_by_name(self, temp_db, tenant):
        temp_db.services.add(tenant.id, "Escova", 30, 45)
        temp_db.services.add(tenant.id, "Corte", 30, 50)
        hidden = temp_db.services.add(tenant.id, "Antigo", 30, 50)
        temp_db.services.deactivate(tenant.id, hidden.id)
        assert [s.name for s in temp_db.services.list_active(tenant.id)] == ["Corte", "Escova"]


class TestProductRepository:
    """Tests for ProductRepository."""

    def test_get_active(self, temp_db, tenant, other_tenant):
        shampoo = temp_db.products.add(tenant.id, "Shampoo", 35)
        assert temp_db.products.get_active(tenant.id, shampoo.id).name == "Shampoo"
        assert temp_db.products.get_active(other_tenant.id, shampoo.id) is None

    def test_inactive_product(self, temp_db, tenant):
        from database.models import Product
        shampoo = temp_db.products.add(tenant.id, "Shampoo", 35)
        temp_db.products.update_by_id(Product, shampoo.id, is_active=False)
        assert temp_db.products.get_active(tenant.id, shampoo.id) is None
