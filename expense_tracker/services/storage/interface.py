"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run against any relational database through SQLAlchemy
2. Use in-memory storage for testing and embedding
3. Keep business rules decoupled from the storage implementation

The interface is intentionally small - we're not building a full ORM.
Besides CRUD it exposes a fixed set of group-by/sum primitives. The
aggregation engine composes them; it never builds ad-hoc queries.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from expense_tracker.models.audit import AuditEvent
from expense_tracker.models.records import (
    Expense,
    Project,
    ProjectStatus,
    User,
)
from expense_tracker.models.reports import CategoryTotal, ExpenseFilter


class TrackerStorageInterface(ABC):
    """
    Abstract interface for user, project and expense storage.

    Any storage implementation (SQL database, in-memory, ...)
    must implement these methods.

    Contract:
    - save_* assigns the id and returns the stored record
    - get_* returns None when the id is unknown
    - deleting a project deletes its expenses
    - money comes back as Decimal, never float
    """

    def initialize(self) -> None:
        """Prepare the backend (connect, create schema). No-op by default."""

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    @abstractmethod
    def save_user(self, user: User) -> User:
        """
        Insert a new user.

        Raises:
            DuplicateError: If the email is already registered
        """

    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]:
        pass

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive lookup by email."""

    @abstractmethod
    def update_user(self, user: User) -> User:
        """
        Replace a stored user.

        Raises:
            NotFoundError: If the user doesn't exist
            DuplicateError: If the new email belongs to another user
        """

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    @abstractmethod
    def save_project(self, project: Project) -> Project:
        pass

    @abstractmethod
    def get_project(self, project_id: int) -> Optional[Project]:
        pass

    @abstractmethod
    def update_project(self, project: Project) -> Project:
        """
        Replace a stored project.

        Raises:
            NotFoundError: If the project doesn't exist
        """

    @abstractmethod
    def delete_project(self, project_id: int) -> bool:
        """
        Delete a project and all of its expenses.

        Returns:
            True if the project existed
        """

    @abstractmethod
    def list_projects(
        self,
        status: Optional[ProjectStatus] = None,
        created_by: Optional[int] = None,
    ) -> list[Project]:
        """
        List projects, newest first.

        Args:
            status: Only projects with this status
            created_by: Only projects owned by this user
        """

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    @abstractmethod
    def save_expense(self, expense: Expense) -> Expense:
        """
        Insert a new expense.

        Raises:
            NotFoundError: If the referenced project doesn't exist
        """

    @abstractmethod
    def get_expense(self, expense_id: int) -> Optional[Expense]:
        pass

    @abstractmethod
    def update_expense(self, expense: Expense) -> Expense:
        """
        Replace a stored expense.

        Raises:
            NotFoundError: If the expense or its project doesn't exist
        """

    @abstractmethod
    def delete_expense(self, expense_id: int) -> bool:
        pass

    @abstractmethod
    def list_expenses(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> list[Expense]:
        """List matching expenses, most recent date first."""

    # -------------------------------------------------------------------------
    # Aggregation primitives
    # -------------------------------------------------------------------------

    @abstractmethod
    def sum_expenses(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> Decimal:
        """Sum of amounts of matching expenses (0 when none match)."""

    @abstractmethod
    def totals_by_category(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> list[CategoryTotal]:
        """One entry per category: summed amount and record count. Unordered."""

    @abstractmethod
    def totals_by_month(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> dict[int, Decimal]:
        """Summed amount per calendar month (1-12). Months without data are absent."""

    @abstractmethod
    def totals_by_year(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> dict[int, Decimal]:
        """Summed amount per calendar year. Years without data are absent."""

    @abstractmethod
    def expense_totals_by_project(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> dict[int, Decimal]:
        """Summed amount per project id. Projects without expenses are absent."""

    @abstractmethod
    def count_projects_by_status(
        self,
        created_by: Optional[int] = None,
    ) -> dict[ProjectStatus, int]:
        """Project count per status. Statuses without projects are absent."""

    @abstractmethod
    def sum_project_budgets(
        self,
        created_by: Optional[int] = None,
    ) -> Decimal:
        """Sum of total_budget over projects; unbudgeted projects count as 0."""


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """

    @abstractmethod
    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: int,
    ) -> list[AuditEvent]:
        """All events for one entity, in chronological order."""

    @abstractmethod
    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent events, newest first."""


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
