"""Fixtures for isolated database module tests.

Provides reusable fixtures for all database test modules, including
a fresh temp-file SQLite DatabaseManager for each test.
"""
import os
import shutil
import tempfile
from datetime import datetime

import pytest

from database import DatabaseManager
from database.base_crud import BaseCRUD


@pytest.fixture
def temp_db():
    """Yield a fresh DatabaseManager bound to a temp SQLite database."""
    temp_dir = tempfile.mkdtemp(prefix="db-tests-")
    db_path = os.path.join(temp_dir, "test.db")
    manager = DatabaseManager(database_url=f"sqlite:///{db_path}")
    manager.create_tables()

    try:
        yield manager
    finally:
        manager.close()
        shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def db_conn(temp_db):
    """Yield a DatabaseConnection from the temp_db manager."""
    return temp_db.conn


@pytest.fixture
def base_crud(db_conn):
    """Yield a BaseCRUD instance."""
    return BaseCRUD(db_conn)


@pytest.fixture
def tenant(temp_db):
    """A tenant row to scope every other record to."""
    return temp_db.tenants.get_or_create("salao-teste", "Salão Teste")


@pytest.fixture
def other_tenant(temp_db):
    """A second tenant for isolation checks."""
    return temp_db.tenants.get_or_create("outro-salao", "Outro Salão")


@pytest.fixture
def sample_datetime():
    """Stable datetime value for deterministic tests."""
    return datetime(2030, 1, 15, 10, 0, 0)


def make_appointment(db, tenant_id, client_id, collaborator_id, start, minutes=30,
                     status="pending", service_ids=()):
    """Helper: insert an appointment directly and return it."""
    from datetime import timedelta
    with db.transaction() as session:
        appointment = db.appointments.add(
            session, tenant_id, client_id, collaborator_id,
            service_ids=list(service_ids), start=start,
            end=start + timedelta(minutes=minutes), origin="app",
        )
        appointment.status = status
    return appointment
