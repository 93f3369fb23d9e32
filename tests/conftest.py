"""
Shared fixtures.

Every store-backed test runs twice: against the in-memory store and
against SQLite in memory through SQLAlchemy. Both must behave the same.
"""

from datetime import date
from decimal import Decimal

import pytest

from expense_tracker.audit import AuditLogger
from expense_tracker.config import AppSettings, AuthSettings, DatabaseSettings
from expense_tracker.models.records import (
    Expense,
    ExpenseStatus,
    Project,
    ProjectStatus,
    Role,
    User,
)
from expense_tracker.services.storage import (
    InMemoryAuditStorage,
    InMemoryTrackerStorage,
    SQLDatabase,
    SQLTrackerStorage,
)
from expense_tracker.validation import RecordValidator


TODAY = date(2024, 6, 15)


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    """A fresh, initialized store."""
    if request.param == "memory":
        storage = InMemoryTrackerStorage()
        storage.initialize()
        yield storage
    else:
        database = SQLDatabase(DatabaseSettings(url="sqlite://"))
        storage = SQLTrackerStorage(database)
        storage.initialize()
        yield storage
        database.dispose()


@pytest.fixture
def app_settings():
    return AppSettings(
        app_environment="test",
        annual_summary_years=5,
        future_expense_tolerance_days=0,
        max_expense_amount=10000.0,
    )


@pytest.fixture
def auth_settings():
    return AuthSettings(
        default_admin_name="Seed Admin",
        default_admin_email="seed@projecttracker.com",
        default_admin_password="seedpass",
        min_password_length=6,
    )


@pytest.fixture
def validator(app_settings):
    return RecordValidator(app_settings, today=lambda: TODAY)


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


def _add_user(store, email: str, role: Role = Role.ADMIN, name: str = "User") -> User:
    return store.save_user(User(
        name=name,
        email=email,
        password_hash="not-a-real-hash",
        role=role,
    ))


@pytest.fixture
def admin(store):
    return _add_user(store, "admin@projecttracker.com", Role.ADMIN, "Alice Admin")


@pytest.fixture
def other_admin(store):
    return _add_user(store, "second@projecttracker.com", Role.ADMIN, "Bob Admin")


@pytest.fixture
def viewer(store):
    return _add_user(store, "viewer@projecttracker.com", Role.VIEWER, "Vera Viewer")


def _add_project(store, owner: User, **overrides) -> Project:
    fields = {
        "name": "Bridge Renovation",
        "start_date": date(2024, 1, 1),
        "total_budget": Decimal("1000.00"),
        "status": ProjectStatus.ACTIVE,
        "created_by": owner.id,
    }
    fields.update(overrides)
    return store.save_project(Project(**fields))


def _add_expense(store, project: Project, amount: str, **overrides) -> Expense:
    fields = {
        "date": date(2024, 3, 15),
        "amount": Decimal(amount),
        "category": "travel",
        "status": ExpenseStatus.APPROVED,
        "project_id": project.id,
        "added_by": project.created_by,
    }
    fields.update(overrides)
    return store.save_expense(Expense(**fields))


@pytest.fixture
def make_user(store):
    return lambda email, role=Role.VIEWER, name="User": _add_user(store, email, role, name)


@pytest.fixture
def make_project(store):
    return lambda owner, **overrides: _add_project(store, owner, **overrides)


@pytest.fixture
def make_expense(store):
    return lambda project, amount, **overrides: _add_expense(store, project, amount, **overrides)
