"""
Main Orchestrator for Project Expense Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Project mutations (authorize → validate → store → audit)
2. Expense mutations (same, plus the owning project must exist)
3. Accounts (register, log in, profile, password, default admin)
4. Reports (authorization-gated access to the aggregation engine)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No mutation without an admin principal
- No mutation without validation
- Every mutation, login and refused write is audited

Reads go straight through ScopedQueries; only reports are wrapped here
because they need a principal check the engine itself doesn't make.
"""

from typing import Any, NamedTuple, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from expense_tracker.audit import AuditLogger
from expense_tracker.config import AuthSettings, Settings, get_settings
from expense_tracker.errors import (
    ConflictError,
    Forbidden,
    NotAuthorized,
    NotFound,
    ValidationError,
)
from expense_tracker.models.audit import AuditEventBuilder
from expense_tracker.models.records import (
    Expense,
    ExpenseCreate,
    ExpenseStatus,
    ExpenseUpdate,
    PasswordChange,
    Principal,
    ProfileUpdate,
    Project,
    ProjectCreate,
    ProjectStatus,
    ProjectUpdate,
    Role,
    User,
    UserProfile,
    UserRegistration,
)
from expense_tracker.models.reports import (
    AnnualTotal,
    CategorySummary,
    DashboardStats,
    DateRange,
    GlobalExpenseSummary,
    MonthlyTotal,
    StatusCount,
)
from expense_tracker.policy import Action, Resource, require_authenticated, require_mutation
from expense_tracker.queries import ScopedQueries
from expense_tracker.reports import ExpenseAggregator
from expense_tracker.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    SQLAuditStorage,
    SQLDatabase,
    SQLTrackerStorage,
    TrackerStorageInterface,
)
from expense_tracker.validation import RecordValidator, parse_payload


# Fields a partial update may explicitly clear by sending null
NULLABLE_PROJECT_FIELDS = frozenset({"description", "end_date", "total_budget"})
NULLABLE_EXPENSE_FIELDS = frozenset({"description", "receipt_url"})


def _changes(payload, nullable: frozenset) -> dict:
    """Fields actually sent in a partial update. Null only clears nullable fields."""
    return {
        k: v for k, v in payload.model_dump(exclude_unset=True).items()
        if v is not None or k in nullable
    }


def _authorize_mutation(
    audit_logger: AuditLogger,
    principal: Optional[Principal],
    action: Action,
    resource: Resource,
    entity_id: Optional[int] = None,
) -> Principal:
    """require_mutation, with the refusal written to the audit log."""
    try:
        return require_mutation(principal, resource, action)
    except Forbidden as e:
        audit_logger.log_access_denied(
            entity_type=resource.value,
            entity_id=entity_id,
            actor_id=principal.id if principal else None,
            reason=e.message,
        )
        raise


class ProjectFlow:
    """
    Orchestrates project mutations.

    Flow:
    1. Authorize → admin only (Forbidden otherwise)
    2. Validate → schema, then semantics (ValidationError)
    3. Store
    4. Audit
    """

    def __init__(
        self,
        storage: TrackerStorageInterface,
        validator: Optional[RecordValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._validator = validator or RecordValidator()
        self._audit = audit_logger or AuditLogger()

    def _existing(self, project_id: int) -> Project:
        project = self._storage.get_project(project_id)
        if project is None:
            raise NotFound(f"Project {project_id} not found")
        return project

    def create_project(self, principal: Optional[Principal], data: Any) -> Project:
        """Create a project owned by the caller."""
        principal = _authorize_mutation(
            self._audit, principal, Action.CREATE, Resource.PROJECT
        )
        payload = self._validator.require(ProjectCreate, data)

        project = self._storage.save_project(
            Project(**payload.model_dump(), created_by=principal.id)
        )
        self._audit.log(AuditEventBuilder.project_created(
            project_id=project.id,
            name=project.name,
            actor_id=principal.id,
        ))
        return project

    def update_project(
        self,
        principal: Optional[Principal],
        project_id: int,
        data: Any,
    ) -> Project:
        """
        Apply a partial update.

        The merged project is re-validated, so sending only an end_date
        that precedes the stored start_date is still rejected.
        """
        principal = _authorize_mutation(
            self._audit, principal, Action.UPDATE, Resource.PROJECT, project_id
        )
        existing = self._existing(project_id)
        payload = self._validator.require(ProjectUpdate, data)
        changes = _changes(payload, NULLABLE_PROJECT_FIELDS)

        merged = existing.model_copy(update=changes)
        self._validator.raise_for_issues(self._validator.check_project(merged))

        project = self._storage.update_project(merged)
        self._audit.log(AuditEventBuilder.project_updated(
            project_id=project_id,
            changed_fields=sorted(changes),
            actor_id=principal.id,
        ))
        if "status" in changes and existing.status != project.status:
            self._audit.log(AuditEventBuilder.status_changed(
                entity_type="project",
                entity_id=project_id,
                old_status=existing.status.value,
                new_status=project.status.value,
                actor_id=principal.id,
            ))
        return project

    def set_status(
        self,
        principal: Optional[Principal],
        project_id: int,
        status: Any,
    ) -> Project:
        """
        Set any status directly.

        There is no transition graph: every status is reachable from
        every other status.
        """
        principal = _authorize_mutation(
            self._audit, principal, Action.UPDATE, Resource.PROJECT, project_id
        )
        try:
            new_status = ProjectStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid project status: {status!r}")

        existing = self._existing(project_id)
        project = self._storage.update_project(
            existing.model_copy(update={"status": new_status})
        )
        self._audit.log(AuditEventBuilder.status_changed(
            entity_type="project",
            entity_id=project_id,
            old_status=existing.status.value,
            new_status=new_status.value,
            actor_id=principal.id,
        ))
        return project

    def delete_project(self, principal: Optional[Principal], project_id: int) -> None:
        """Delete a project and, with it, all of its expenses."""
        principal = _authorize_mutation(
            self._audit, principal, Action.DELETE, Resource.PROJECT, project_id
        )
        if not self._storage.delete_project(project_id):
            raise NotFound(f"Project {project_id} not found")
        self._audit.log(AuditEventBuilder.project_deleted(project_id, principal.id))


class ExpenseFlow:
    """
    Orchestrates expense mutations.

    Same flow as ProjectFlow. An expense can only be booked against,
    or moved to, a project that exists.
    """

    def __init__(
        self,
        storage: TrackerStorageInterface,
        validator: Optional[RecordValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._validator = validator or RecordValidator()
        self._audit = audit_logger or AuditLogger()

    def _existing(self, expense_id: int) -> Expense:
        expense = self._storage.get_expense(expense_id)
        if expense is None:
            raise NotFound(f"Expense {expense_id} not found")
        return expense

    def _require_project(self, project_id: int) -> None:
        if self._storage.get_project(project_id) is None:
            raise NotFound(f"Project {project_id} not found")

    def create_expense(self, principal: Optional[Principal], data: Any) -> Expense:
        principal = _authorize_mutation(
            self._audit, principal, Action.CREATE, Resource.EXPENSE
        )
        payload = self._validator.require(ExpenseCreate, data)
        self._require_project(payload.project_id)

        try:
            expense = self._storage.save_expense(
                Expense(**payload.model_dump(), added_by=principal.id)
            )
        except NotFoundError as e:
            # Project deleted between the check and the insert
            raise NotFound(str(e))

        self._audit.log(AuditEventBuilder.expense_created(
            expense_id=expense.id,
            project_id=expense.project_id,
            amount=str(expense.amount),
            actor_id=principal.id,
        ))
        return expense

    def update_expense(
        self,
        principal: Optional[Principal],
        expense_id: int,
        data: Any,
    ) -> Expense:
        principal = _authorize_mutation(
            self._audit, principal, Action.UPDATE, Resource.EXPENSE, expense_id
        )
        existing = self._existing(expense_id)
        payload = self._validator.require(ExpenseUpdate, data)
        changes = _changes(payload, NULLABLE_EXPENSE_FIELDS)

        merged = existing.model_copy(update=changes)
        if "date" in changes:
            self._validator.raise_for_issues(self._validator.check_expense(merged))
        if merged.project_id != existing.project_id:
            self._require_project(merged.project_id)

        try:
            expense = self._storage.update_expense(merged)
        except NotFoundError as e:
            raise NotFound(str(e))

        self._audit.log(AuditEventBuilder.expense_updated(
            expense_id=expense_id,
            changed_fields=sorted(changes),
            actor_id=principal.id,
        ))
        if "status" in changes and existing.status != expense.status:
            self._audit.log(AuditEventBuilder.status_changed(
                entity_type="expense",
                entity_id=expense_id,
                old_status=existing.status.value,
                new_status=expense.status.value,
                actor_id=principal.id,
            ))
        return expense

    def set_status(
        self,
        principal: Optional[Principal],
        expense_id: int,
        status: Any,
    ) -> Expense:
        """Approve, reject or reset an expense. Any admin may set any value."""
        principal = _authorize_mutation(
            self._audit, principal, Action.UPDATE, Resource.EXPENSE, expense_id
        )
        try:
            new_status = ExpenseStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid expense status: {status!r}")

        existing = self._existing(expense_id)
        expense = self._storage.update_expense(
            existing.model_copy(update={"status": new_status})
        )
        self._audit.log(AuditEventBuilder.status_changed(
            entity_type="expense",
            entity_id=expense_id,
            old_status=existing.status.value,
            new_status=new_status.value,
            actor_id=principal.id,
        ))
        return expense

    def delete_expense(self, principal: Optional[Principal], expense_id: int) -> None:
        principal = _authorize_mutation(
            self._audit, principal, Action.DELETE, Resource.EXPENSE, expense_id
        )
        if not self._storage.delete_expense(expense_id):
            raise NotFound(f"Expense {expense_id} not found")
        self._audit.log(AuditEventBuilder.expense_deleted(expense_id, principal.id))


class AccountFlow:
    """
    Registration, login and self-service account management.

    Issuing and checking session tokens is the identity provider's job;
    authenticate() only resolves credentials to a Principal.
    """

    def __init__(
        self,
        storage: TrackerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AuthSettings] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().auth

    def _check_password_length(self, password: str) -> None:
        minimum = self._settings.min_password_length
        if len(password) < minimum:
            raise ValidationError(
                f"Password must be at least {minimum} characters long"
            )

    def _current_user(self, principal: Optional[Principal]) -> User:
        principal = require_authenticated(principal)
        user = self._storage.get_user(principal.id)
        if user is None:
            raise NotFound(f"User {principal.id} not found")
        return user

    def register(self, data: Any) -> UserProfile:
        """
        Create a user account.

        An unknown or missing role becomes viewer.

        Raises:
            ValidationError: On missing fields or a short password
            ConflictError: If the email is already registered
        """
        payload = parse_payload(UserRegistration, data)
        self._check_password_length(payload.password)

        if self._storage.get_user_by_email(payload.email) is not None:
            raise ConflictError("User already exists")

        try:
            user = self._storage.save_user(User(
                name=payload.name,
                email=payload.email,
                password_hash=generate_password_hash(payload.password),
                role=payload.role,
            ))
        except DuplicateError:
            raise ConflictError("User already exists")

        self._audit.log(AuditEventBuilder.user_registered(
            user_id=user.id,
            email=user.email,
            role=user.role.value,
        ))
        return user.to_profile()

    def authenticate(self, email: str, password: str) -> Principal:
        """
        Resolve credentials to a Principal.

        Raises:
            NotAuthorized: For an unknown email or a wrong password,
                           with the same message for both
        """
        user = self._storage.get_user_by_email(email or "")
        if user is None or not check_password_hash(user.password_hash, password or ""):
            self._audit.log(AuditEventBuilder.authentication_failed(email or ""))
            raise NotAuthorized("Invalid credentials")

        self._audit.log(AuditEventBuilder.user_authenticated(user.id))
        return user.to_principal()

    def get_profile(self, principal: Optional[Principal]) -> UserProfile:
        return self._current_user(principal).to_profile()

    def update_profile(self, principal: Optional[Principal], data: Any) -> UserProfile:
        """
        Change the caller's own name and/or email.

        Raises:
            ConflictError: If the new email belongs to another user
        """
        user = self._current_user(principal)
        payload = parse_payload(ProfileUpdate, data)
        changes = _changes(payload, frozenset())

        if "email" in changes:
            other = self._storage.get_user_by_email(changes["email"])
            if other is not None and other.id != user.id:
                raise ConflictError("Email already in use")

        try:
            updated = self._storage.update_user(user.model_copy(update=changes))
        except DuplicateError:
            raise ConflictError("Email already in use")

        self._audit.log(AuditEventBuilder.profile_updated(user.id, sorted(changes)))
        return updated.to_profile()

    def change_password(
        self,
        principal: Optional[Principal],
        current_password: str,
        new_password: str,
    ) -> None:
        """
        Replace the caller's password after verifying the current one.

        Raises:
            ValidationError: If the current password is wrong or the
                             new one is too short
        """
        user = self._current_user(principal)
        payload = parse_payload(PasswordChange, {
            "current_password": current_password,
            "new_password": new_password,
        })

        if not check_password_hash(user.password_hash, payload.current_password):
            raise ValidationError("Current password is incorrect")
        self._check_password_length(payload.new_password)

        self._storage.update_user(user.model_copy(update={
            "password_hash": generate_password_hash(payload.new_password),
        }))
        self._audit.log(AuditEventBuilder.password_changed(user.id))

    def ensure_default_admin(self) -> Optional[UserProfile]:
        """
        Seed the configured admin account if it doesn't exist yet.

        Returns:
            The new admin's profile, or None if it already existed
        """
        email = self._settings.default_admin_email
        if self._storage.get_user_by_email(email) is not None:
            return None

        user = self._storage.save_user(User(
            name=self._settings.default_admin_name,
            email=email,
            password_hash=generate_password_hash(self._settings.default_admin_password),
            role=Role.ADMIN,
        ))
        self._audit.log(AuditEventBuilder.default_admin_seeded(user.id, user.email))
        return user.to_profile()


class ReportFlow:
    """
    Gated access to the aggregation engine.

    Dashboard and global reports need an authenticated caller.
    Project-level reports additionally need the project to be visible
    to the caller's role.
    """

    def __init__(
        self,
        storage: TrackerStorageInterface,
        aggregator: Optional[ExpenseAggregator] = None,
        queries: Optional[ScopedQueries] = None,
    ):
        self._aggregator = aggregator or ExpenseAggregator(storage)
        self._queries = queries or ScopedQueries(storage)

    def _visible(self, principal: Optional[Principal], project_id: int) -> None:
        principal = require_authenticated(principal)
        self._queries.visible_project(project_id, principal.role)

    def dashboard(self, principal: Optional[Principal]) -> DashboardStats:
        principal = require_authenticated(principal)
        return self._aggregator.dashboard_stats(principal.role, principal.id)

    def status_distribution(self, principal: Optional[Principal]) -> list[StatusCount]:
        principal = require_authenticated(principal)
        return self._aggregator.project_status_distribution(principal.role, principal.id)

    def category_summary(
        self,
        principal: Optional[Principal],
        project_id: int,
        date_range: Optional[DateRange] = None,
    ) -> CategorySummary:
        self._visible(principal, project_id)
        return self._aggregator.expense_summary_by_category(project_id, date_range)

    def monthly(
        self,
        principal: Optional[Principal],
        project_id: int,
        year: Optional[int] = None,
    ) -> list[MonthlyTotal]:
        """Monthly totals for one project; defaults to the current year."""
        self._visible(principal, project_id)
        return self._aggregator.monthly_expenses(project_id, year)

    def annual(
        self,
        principal: Optional[Principal],
        project_id: int,
        years_back: int = 5,
    ) -> list[AnnualTotal]:
        self._visible(principal, project_id)
        return self._aggregator.annual_expenses(project_id, years_back)

    def global_summary(self, principal: Optional[Principal]) -> GlobalExpenseSummary:
        require_authenticated(principal)
        return self._aggregator.global_expense_summary()


class AppComponents(NamedTuple):
    projects: ProjectFlow
    expenses: ExpenseFlow
    accounts: AccountFlow
    reports: ReportFlow
    queries: ScopedQueries
    storage: TrackerStorageInterface
    audit_logger: AuditLogger


def create_app_components(
    settings: Optional[Settings] = None,
    storage: Optional[TrackerStorageInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    seed_admin: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to build from. Defaults to get_settings().
        storage: Store to use. If None, a SQL store is built from
                 the database settings and initialized.
        audit_storage: Where audit events are persisted. If None and the
                       SQL store was built here, the same database is used;
                       otherwise events are only logged locally.
        seed_admin: Whether to create the default admin account

    Returns:
        AppComponents with every flow wired to the same store
    """
    settings = settings or get_settings()

    if storage is None:
        database = SQLDatabase(settings.database)
        storage = SQLTrackerStorage(database)
        if audit_storage is None:
            audit_storage = SQLAuditStorage(database)
    storage.initialize()

    audit_logger = AuditLogger(audit_storage)
    validator = RecordValidator(settings.app)
    queries = ScopedQueries(storage)

    accounts = AccountFlow(storage, audit_logger, settings.auth)
    if seed_admin:
        accounts.ensure_default_admin()

    return AppComponents(
        projects=ProjectFlow(storage, validator, audit_logger),
        expenses=ExpenseFlow(storage, validator, audit_logger),
        accounts=accounts,
        reports=ReportFlow(storage, ExpenseAggregator(storage, settings.app), queries),
        queries=queries,
        storage=storage,
        audit_logger=audit_logger,
    )
