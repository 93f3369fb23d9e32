"""
Integration tests for the flows.

Each flow runs against both stores with an in-memory audit log, so
every test can also check what was audited.
"""

import pytest
from datetime import date
from decimal import Decimal

from expense_tracker.config import AppSettings, Settings
from expense_tracker.errors import (
    ConflictError,
    Forbidden,
    NotAuthorized,
    NotFound,
    ValidationError,
    http_status_for,
)
from expense_tracker.models.audit import AuditEventType
from expense_tracker.models.records import (
    ExpenseStatus,
    Principal,
    ProjectStatus,
    Role,
)
from expense_tracker.orchestrator import (
    AccountFlow,
    ExpenseFlow,
    ProjectFlow,
    ReportFlow,
    create_app_components,
)
from expense_tracker.reports import ExpenseAggregator
from expense_tracker.services.storage import InMemoryAuditStorage, InMemoryTrackerStorage


@pytest.fixture
def admin_principal(admin):
    return admin.to_principal()


@pytest.fixture
def viewer_principal(viewer):
    return viewer.to_principal()


@pytest.fixture
def project_flow(store, validator, audit_logger):
    return ProjectFlow(store, validator, audit_logger)


@pytest.fixture
def expense_flow(store, validator, audit_logger):
    return ExpenseFlow(store, validator, audit_logger)


@pytest.fixture
def account_flow(store, audit_logger, auth_settings):
    return AccountFlow(store, audit_logger, auth_settings)


@pytest.fixture
def report_flow(store):
    return ReportFlow(store, ExpenseAggregator(store, today=lambda: date(2024, 6, 15)))


def _event_types(audit_storage):
    return [e.event_type for e in audit_storage.get_recent_events()]


PROJECT_DATA = {
    "name": "Harbour Wall",
    "description": "Phase 1",
    "start_date": "2024-01-01",
    "end_date": "2024-12-31",
    "total_budget": "1000.00",
}


class TestProjectFlow:
    """Project mutations."""

    def test_create_sets_owner_and_defaults(self, project_flow, admin_principal, audit_storage):
        project = project_flow.create_project(admin_principal, PROJECT_DATA)
        assert project.id is not None
        assert project.created_by == admin_principal.id
        assert project.status == ProjectStatus.ACTIVE
        assert project.total_budget == Decimal("1000.00")
        assert AuditEventType.PROJECT_CREATED in _event_types(audit_storage)

    def test_viewer_cannot_create(self, project_flow, viewer_principal, audit_storage):
        with pytest.raises(Forbidden):
            project_flow.create_project(viewer_principal, PROJECT_DATA)
        assert _event_types(audit_storage) == [AuditEventType.ACCESS_DENIED]

    def test_anonymous_cannot_create(self, project_flow):
        with pytest.raises(Forbidden):
            project_flow.create_project(None, PROJECT_DATA)

    def test_missing_name_is_validation_error(self, project_flow, admin_principal):
        with pytest.raises(ValidationError) as exc_info:
            project_flow.create_project(admin_principal, {"start_date": "2024-01-01"})
        assert exc_info.value.issues[0]["field"] == "name"

    def test_negative_budget_is_validation_error(self, project_flow, admin_principal):
        with pytest.raises(ValidationError):
            project_flow.create_project(admin_principal, {**PROJECT_DATA, "total_budget": "-5"})

    def test_end_before_start_is_validation_error(self, project_flow, admin_principal):
        with pytest.raises(ValidationError, match="End date cannot be before start date"):
            project_flow.create_project(admin_principal, {**PROJECT_DATA, "end_date": "2023-01-01"})

    def test_partial_update(self, project_flow, admin_principal):
        project = project_flow.create_project(admin_principal, PROJECT_DATA)
        updated = project_flow.update_project(admin_principal, project.id, {"name": "Harbour Wall II"})
        assert updated.name == "Harbour Wall II"
        assert updated.total_budget == Decimal("1000.00")
        assert updated.description == "Phase 1"

    def test_update_can_clear_budget(self, project_flow, admin_principal):
        project = project_flow.create_project(admin_principal, PROJECT_DATA)
        updated = project_flow.update_project(admin_principal, project.id, {"total_budget": None})
        assert updated.total_budget is None

    def test_update_merged_dates_are_checked(self, project_flow, admin_principal):
        project = project_flow.create_project(admin_principal, PROJECT_DATA)
        with pytest.raises(ValidationError):
            project_flow.update_project(admin_principal, project.id, {"end_date": "2023-06-01"})

    def test_update_missing_project(self, project_flow, admin_principal):
        with pytest.raises(NotFound):
            project_flow.update_project(admin_principal, 999, {"name": "x"})

    def test_viewer_update_is_forbidden_even_for_missing_project(self, project_flow, viewer_principal):
        with pytest.raises(Forbidden):
            project_flow.update_project(viewer_principal, 999, {"name": "x"})

    @pytest.mark.parametrize("start,target", [
        (ProjectStatus.ACTIVE, ProjectStatus.CANCELLED),
        (ProjectStatus.CANCELLED, ProjectStatus.ACTIVE),
        (ProjectStatus.COMPLETED, ProjectStatus.ON_HOLD),
        (ProjectStatus.ON_HOLD, ProjectStatus.COMPLETED),
    ])
    def test_any_status_reachable(self, project_flow, admin_principal, audit_storage, start, target):
        project = project_flow.create_project(admin_principal, {**PROJECT_DATA, "status": start.value})
        updated = project_flow.set_status(admin_principal, project.id, target.value)
        assert updated.status == target
        assert AuditEventType.PROJECT_STATUS_CHANGED in _event_types(audit_storage)

    def test_invalid_status(self, project_flow, admin_principal):
        project = project_flow.create_project(admin_principal, PROJECT_DATA)
        with pytest.raises(ValidationError):
            project_flow.set_status(admin_principal, project.id, "archived")

    def test_viewer_cannot_set_status(self, project_flow, admin_principal, viewer_principal):
        project = project_flow.create_project(admin_principal, PROJECT_DATA)
        with pytest.raises(Forbidden):
            project_flow.set_status(viewer_principal, project.id, "completed")

    def test_delete_cascades(self, store, project_flow, expense_flow, admin_principal):
        project = project_flow.create_project(admin_principal, PROJECT_DATA)
        expense_flow.create_expense(admin_principal, {
            "project_id": project.id,
            "date": "2024-03-15",
            "amount": "100.00",
            "category": "travel",
        })

        project_flow.delete_project(admin_principal, project.id)

        assert store.get_project(project.id) is None
        assert all(e.project_id != project.id for e in store.list_expenses())

    def test_delete_missing_project(self, project_flow, admin_principal):
        with pytest.raises(NotFound):
            project_flow.delete_project(admin_principal, 999)


class TestExpenseFlow:
    """Expense mutations."""

    @pytest.fixture
    def project(self, project_flow, admin_principal):
        return project_flow.create_project(admin_principal, PROJECT_DATA)

    def _data(self, project, **overrides):
        data = {
            "project_id": project.id,
            "date": "2024-03-15",
            "amount": "300.00",
            "category": "travel",
        }
        data.update(overrides)
        return data

    def test_create(self, expense_flow, admin_principal, project, audit_storage):
        expense = expense_flow.create_expense(admin_principal, self._data(project))
        assert expense.added_by == admin_principal.id
        assert expense.status == ExpenseStatus.PENDING
        assert expense.amount == Decimal("300.00")
        assert AuditEventType.EXPENSE_CREATED in _event_types(audit_storage)

    def test_missing_project_is_not_found(self, expense_flow, admin_principal):
        with pytest.raises(NotFound):
            expense_flow.create_expense(admin_principal, {
                "project_id": 999,
                "date": "2024-03-15",
                "amount": "10.00",
                "category": "travel",
            })

    @pytest.mark.parametrize("amount", ["0", "-10"])
    def test_non_positive_amount(self, expense_flow, admin_principal, project, amount):
        with pytest.raises(ValidationError):
            expense_flow.create_expense(admin_principal, self._data(project, amount=amount))

    def test_future_date_rejected(self, expense_flow, admin_principal, project):
        # validator's clock is pinned to 2024-06-15
        with pytest.raises(ValidationError, match="in the future"):
            expense_flow.create_expense(admin_principal, self._data(project, date="2024-06-16"))

    def test_today_accepted(self, expense_flow, admin_principal, project):
        expense = expense_flow.create_expense(admin_principal, self._data(project, date="2024-06-15"))
        assert expense.date == date(2024, 6, 15)

    def test_large_amount_is_only_a_warning(self, expense_flow, admin_principal, project):
        expense = expense_flow.create_expense(admin_principal, self._data(project, amount="50000.00"))
        assert expense.amount == Decimal("50000.00")

    def test_viewer_cannot_create(self, expense_flow, viewer_principal, project):
        with pytest.raises(Forbidden):
            expense_flow.create_expense(viewer_principal, self._data(project))

    def test_update_and_move(self, expense_flow, project_flow, admin_principal, project):
        other = project_flow.create_project(admin_principal, {**PROJECT_DATA, "name": "Other"})
        expense = expense_flow.create_expense(admin_principal, self._data(project))

        updated = expense_flow.update_expense(admin_principal, expense.id, {
            "project_id": other.id,
            "category": "lodging",
        })
        assert updated.project_id == other.id
        assert updated.category == "lodging"
        assert updated.amount == Decimal("300.00")

    def test_move_to_missing_project(self, expense_flow, admin_principal, project):
        expense = expense_flow.create_expense(admin_principal, self._data(project))
        with pytest.raises(NotFound):
            expense_flow.update_expense(admin_principal, expense.id, {"project_id": 999})

    @pytest.mark.parametrize("start,target", [
        (ExpenseStatus.PENDING, ExpenseStatus.APPROVED),
        (ExpenseStatus.PENDING, ExpenseStatus.REJECTED),
        (ExpenseStatus.REJECTED, ExpenseStatus.APPROVED),
        (ExpenseStatus.APPROVED, ExpenseStatus.PENDING),
    ])
    def test_any_status_reachable(self, expense_flow, admin_principal, project, start, target):
        expense = expense_flow.create_expense(admin_principal, self._data(project, status=start.value))
        assert expense_flow.set_status(admin_principal, expense.id, target).status == target

    def test_viewer_cannot_approve(self, expense_flow, admin_principal, viewer_principal, project):
        expense = expense_flow.create_expense(admin_principal, self._data(project))
        with pytest.raises(Forbidden):
            expense_flow.set_status(viewer_principal, expense.id, "approved")

    def test_delete(self, store, expense_flow, admin_principal, project):
        expense = expense_flow.create_expense(admin_principal, self._data(project))
        expense_flow.delete_expense(admin_principal, expense.id)
        assert store.get_expense(expense.id) is None
        with pytest.raises(NotFound):
            expense_flow.delete_expense(admin_principal, expense.id)


class TestAccountFlow:
    """Registration, login and self-service."""

    def _register(self, account_flow, **overrides):
        data = {"name": "Nina", "email": "nina@projecttracker.com", "password": "secret1"}
        data.update(overrides)
        return account_flow.register(data)

    def test_register_defaults_to_viewer(self, account_flow, audit_storage):
        profile = self._register(account_flow)
        assert profile.role == Role.VIEWER
        assert AuditEventType.USER_REGISTERED in _event_types(audit_storage)

    def test_register_unknown_role_becomes_viewer(self, account_flow):
        assert self._register(account_flow, role="owner").role == Role.VIEWER

    def test_register_stores_hash_not_password(self, store, account_flow):
        profile = self._register(account_flow)
        user = store.get_user(profile.id)
        assert user.password_hash != "secret1"

    def test_duplicate_email_is_conflict(self, account_flow):
        self._register(account_flow)
        with pytest.raises(ConflictError):
            self._register(account_flow, email="NINA@projecttracker.com")

    def test_short_password(self, account_flow):
        with pytest.raises(ValidationError):
            self._register(account_flow, password="abc")

    def test_missing_email(self, account_flow):
        with pytest.raises(ValidationError):
            account_flow.register({"name": "Nina", "password": "secret1"})

    def test_authenticate(self, account_flow, audit_storage):
        profile = self._register(account_flow, role="admin")
        principal = account_flow.authenticate("nina@projecttracker.com", "secret1")
        assert principal == Principal(
            id=profile.id,
            role=Role.ADMIN,
            name="Nina",
            email="nina@projecttracker.com",
        )
        assert AuditEventType.USER_AUTHENTICATED in _event_types(audit_storage)

    @pytest.mark.parametrize("email,password", [
        ("nina@projecttracker.com", "wrong-password"),
        ("nobody@projecttracker.com", "secret1"),
    ])
    def test_bad_credentials(self, account_flow, audit_storage, email, password):
        self._register(account_flow)
        with pytest.raises(NotAuthorized, match="Invalid credentials"):
            account_flow.authenticate(email, password)
        assert AuditEventType.AUTHENTICATION_FAILED in _event_types(audit_storage)

    def test_profile_round_trip(self, account_flow):
        profile = self._register(account_flow)
        principal = account_flow.authenticate("nina@projecttracker.com", "secret1")
        assert account_flow.get_profile(principal) == profile

        updated = account_flow.update_profile(principal, {"name": "Nina K"})
        assert updated.name == "Nina K"
        assert updated.email == "nina@projecttracker.com"

    def test_profile_needs_login(self, account_flow):
        with pytest.raises(NotAuthorized):
            account_flow.get_profile(None)

    def test_profile_email_conflict(self, account_flow):
        self._register(account_flow)
        self._register(account_flow, email="omar@projecttracker.com", name="Omar")
        omar = account_flow.authenticate("omar@projecttracker.com", "secret1")
        with pytest.raises(ConflictError):
            account_flow.update_profile(omar, {"email": "nina@projecttracker.com"})

    def test_change_password(self, account_flow):
        self._register(account_flow)
        principal = account_flow.authenticate("nina@projecttracker.com", "secret1")

        account_flow.change_password(principal, "secret1", "newsecret")

        assert account_flow.authenticate("nina@projecttracker.com", "newsecret").id == principal.id
        with pytest.raises(NotAuthorized):
            account_flow.authenticate("nina@projecttracker.com", "secret1")

    def test_change_password_wrong_current(self, account_flow):
        self._register(account_flow)
        principal = account_flow.authenticate("nina@projecttracker.com", "secret1")
        with pytest.raises(ValidationError, match="Current password is incorrect"):
            account_flow.change_password(principal, "guess", "newsecret")

    def test_ensure_default_admin_is_idempotent(self, account_flow):
        profile = account_flow.ensure_default_admin()
        assert profile.role == Role.ADMIN
        assert profile.email == "seed@projecttracker.com"
        assert account_flow.ensure_default_admin() is None
        assert account_flow.authenticate("seed@projecttracker.com", "seedpass").role == Role.ADMIN


class TestReportFlow:
    """Authorization around the aggregation engine."""

    def test_dashboard_needs_login(self, report_flow):
        with pytest.raises(NotAuthorized):
            report_flow.dashboard(None)

    def test_dashboard_for_caller(self, report_flow, admin, make_project, make_expense):
        project = make_project(admin)
        make_expense(project, "300.00")
        make_expense(project, "250.00")
        stats = report_flow.dashboard(admin.to_principal())
        assert stats.budget_utilization == Decimal("55.00")

    def test_viewer_on_hold_project_report(self, report_flow, admin, viewer, make_project):
        project = make_project(admin, status=ProjectStatus.ON_HOLD)
        with pytest.raises(NotAuthorized):
            report_flow.category_summary(viewer.to_principal(), project.id)
        with pytest.raises(NotAuthorized):
            report_flow.monthly(viewer.to_principal(), project.id, 2024)

    def test_missing_project_report(self, report_flow, admin):
        with pytest.raises(NotFound):
            report_flow.annual(admin.to_principal(), 999)

    def test_viewer_active_project_report(self, report_flow, admin, viewer, make_project, make_expense):
        project = make_project(admin)
        make_expense(project, "100.00", date=date(2024, 3, 15))
        months = report_flow.monthly(viewer.to_principal(), project.id, 2024)
        assert months[2].total == Decimal("100.00")

    def test_global_summary(self, report_flow, admin):
        assert len(report_flow.global_summary(admin.to_principal()).annual) == 5

    def test_monthly_defaults_to_engine_clock(self, report_flow, admin, make_project, make_expense):
        project = make_project(admin)
        make_expense(project, "100.00", date=date(2024, 3, 15))
        months = report_flow.monthly(admin.to_principal(), project.id)
        assert all(m.year == 2024 for m in months)
        assert months[2].total == Decimal("100.00")

    def test_out_of_range_inputs_are_validation_errors(self, report_flow, admin, make_project):
        project = make_project(admin)
        with pytest.raises(ValidationError):
            report_flow.monthly(admin.to_principal(), project.id, 0)
        with pytest.raises(ValidationError):
            report_flow.annual(admin.to_principal(), project.id, 5000)


class TestErrorMapping:
    """Domain errors map to the HTTP status the transport answers with."""

    @pytest.mark.parametrize("exc,status", [
        (NotAuthorized("x"), 401),
        (Forbidden("x"), 403),
        (NotFound("x"), 404),
        (ValidationError("x"), 400),
        (ConflictError("x"), 400),
        (RuntimeError("x"), 500),
        (KeyError("x"), 500),
    ])
    def test_http_status_for(self, exc, status):
        assert http_status_for(exc) == status


class TestAppComponents:
    """The factory wires every flow to one store."""

    def test_wired_with_injected_store(self):
        storage = InMemoryTrackerStorage()
        audit_storage = InMemoryAuditStorage()

        components = create_app_components(
            settings=Settings(),
            storage=storage,
            audit_storage=audit_storage,
        )

        assert components.storage is storage
        seeded = storage.get_user_by_email(Settings().auth.default_admin_email)
        assert seeded is not None
        assert seeded.role == Role.ADMIN
        assert AuditEventType.DEFAULT_ADMIN_SEEDED in _event_types(audit_storage)

    def test_end_to_end_on_sqlite(self, monkeypatch):
        monkeypatch.setenv("DB_URL", "sqlite://")
        components = create_app_components(settings=Settings())

        admin = components.accounts.authenticate(
            Settings().auth.default_admin_email,
            Settings().auth.default_admin_password,
        )
        project = components.projects.create_project(admin, PROJECT_DATA)
        expense = components.expenses.create_expense(admin, {
            "project_id": project.id,
            "date": "2024-03-15",
            "amount": "300.00",
            "category": "travel",
        })
        components.expenses.set_status(admin, expense.id, "approved")

        viewer_profile = components.accounts.register({
            "name": "Val",
            "email": "val@projecttracker.com",
            "password": "secret1",
        })
        viewer = components.accounts.authenticate("val@projecttracker.com", "secret1")
        assert viewer.id == viewer_profile.id

        listed = components.queries.list_expenses(viewer.role)
        assert [e.id for e in listed] == [expense.id]
        summary = components.reports.category_summary(viewer, project.id)
        assert summary.total_expenses == Decimal("300.00")

    def test_reports_use_given_settings(self):
        class ShortSummarySettings(Settings):
            @property
            def app(self) -> AppSettings:
                return AppSettings(annual_summary_years=2)

        settings = ShortSummarySettings()
        components = create_app_components(
            settings=settings,
            storage=InMemoryTrackerStorage(),
            audit_storage=InMemoryAuditStorage(),
        )
        admin = components.accounts.authenticate(
            settings.auth.default_admin_email,
            settings.auth.default_admin_password,
        )
        assert len(components.reports.global_summary(admin).annual) == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
