"""Shared fixtures for engine-level tests.

Provides a fresh temp-file database, a seeded salon (two tenants, clients,
collaborators, services, a product), a controllable clock, a recording
notification dispatcher and a wired BookingService.
"""
import os
import shutil
import tempfile
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from booking import BookingService, CallerIdentity, DispatchResult, NotificationDispatcher
from config.settings import Settings
from database import DatabaseManager

NOW = datetime(2030, 1, 1, 9, 0)


class FakeClock:
    """Clock returning a fixed, manually advanced UTC time."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingDispatcher(NotificationDispatcher):
    """Dispatcher that records calls and can be told to fail."""

    def __init__(self):
        self.calls = []
        self.fail = False
        self.raise_error = None

    def notify(self, tenant_id, appointment_id):
        self.calls.append((tenant_id, appointment_id))
        if self.raise_error is not None:
            raise self.raise_error
        if self.fail:
            return DispatchResult(success=False, error="gateway unavailable")
        return DispatchResult(success=True)


@pytest.fixture
def db():
    """Yield a fresh DatabaseManager bound to a temp SQLite database."""
    temp_dir = tempfile.mkdtemp(prefix="salon-tests-")
    manager = DatabaseManager(database_url=f"sqlite:///{os.path.join(temp_dir, 'test.db')}")
    manager.create_tables()

    try:
        yield manager
    finally:
        manager.close()
        shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def salon(db):
    """Seed a salon tenant plus a foreign tenant for isolation checks."""
    tenant = db.tenants.get_or_create("salao-central", "Salão Central")
    other = db.tenants.get_or_create("outro-salao", "Outro Salão")
    return SimpleNamespace(
        tenant=tenant,
        other_tenant=other,
        maria=db.clients.add(tenant.id, "Maria", phone="11999990000"),
        joao=db.clients.add(tenant.id, "João", phone="11988880000"),
        pedro=db.clients.add(tenant.id, "Pedro"),
        ana=db.collaborators.add(tenant.id, "Ana", commission_rate=0.4),
        bruno=db.collaborators.add(tenant.id, "Bruno", commission_rate=0.3),
        carla=db.collaborators.add(tenant.id, "Carla", role="receptionist"),
        cut=db.services.add(tenant.id, "Corte", 45, 100),
        brush=db.services.add(tenant.id, "Escova", 30, 50),
        shampoo=db.products.add(tenant.id, "Shampoo", 20),
        foreign_client=db.clients.add(other.id, "Cliente Externo"),
        foreign_service=db.services.add(other.id, "Corte", 30, 80),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def config():
    """Settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        ensure_order_on_booking=False,
        notifications_enabled=True,
        outbox_max_attempts=3,
        queue_slot_minutes=30,
        queue_rounding_minutes=15,
    )


@pytest.fixture
def service(db, dispatcher, clock, config):
    return BookingService(db, dispatcher=dispatcher, clock=clock, config=config)


@pytest.fixture
def caller(salon):
    return CallerIdentity(tenant_id=salon.tenant.id, user_id=7, role="manager")


@pytest.fixture
def book(service, caller, salon):
    """Book an appointment for Maria with Ana by default."""
    def _book(start, collaborator=None, services=None, client=None, who=None):
        return service.create_appointment(
            who or caller,
            client_id=(client or salon.maria).id,
            collaborator_id=(collaborator or salon.ana).id,
            service_ids=[s.id for s in (services or [salon.cut])],
            start=start,
        )
    return _book
