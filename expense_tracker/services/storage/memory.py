"""
In-Memory Storage Implementation

Dict-backed implementation of the storage interfaces. Used by the test
suite and by embedders that don't want a database.

Aggregation primitives are computed in Python over the filtered
records: this is the group-by fallback for backends without a query
engine. Results are identical to the SQL implementation.
"""

import itertools
import threading
from collections import defaultdict
from decimal import Decimal
from typing import Optional

from expense_tracker.models.audit import AuditEvent
from expense_tracker.models.records import (
    Expense,
    Project,
    ProjectStatus,
    User,
    to_money,
    utcnow,
)
from expense_tracker.models.reports import CategoryTotal, ExpenseFilter
from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    TrackerStorageInterface,
)


class InMemoryTrackerStorage(TrackerStorageInterface):
    """
    Thread-safe in-memory store.

    Records are copied on the way in and on the way out, so callers
    can never mutate stored state by accident.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._users: dict[int, User] = {}
        self._projects: dict[int, Project] = {}
        self._expenses: dict[int, Expense] = {}
        self._user_ids = itertools.count(1)
        self._project_ids = itertools.count(1)
        self._expense_ids = itertools.count(1)

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    def _email_taken(self, email: str, exclude_id: Optional[int] = None) -> bool:
        wanted = email.lower()
        return any(
            u.email.lower() == wanted and u.id != exclude_id
            for u in self._users.values()
        )

    def save_user(self, user: User) -> User:
        with self._lock:
            if self._email_taken(user.email):
                raise DuplicateError(f"Email already registered: {user.email}")
            stored = user.model_copy(update={"id": next(self._user_ids)})
            self._users[stored.id] = stored
            return stored.model_copy()

    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy() if user else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        wanted = email.lower()
        with self._lock:
            for user in self._users.values():
                if user.email.lower() == wanted:
                    return user.model_copy()
            return None

    def update_user(self, user: User) -> User:
        with self._lock:
            if user.id not in self._users:
                raise NotFoundError(f"User not found: {user.id}")
            if self._email_taken(user.email, exclude_id=user.id):
                raise DuplicateError(f"Email already registered: {user.email}")
            stored = user.model_copy(update={"updated_at": utcnow()})
            self._users[user.id] = stored
            return stored.model_copy()

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    def save_project(self, project: Project) -> Project:
        with self._lock:
            stored = project.model_copy(update={"id": next(self._project_ids)})
            self._projects[stored.id] = stored
            return stored.model_copy()

    def get_project(self, project_id: int) -> Optional[Project]:
        with self._lock:
            project = self._projects.get(project_id)
            return project.model_copy() if project else None

    def update_project(self, project: Project) -> Project:
        with self._lock:
            if project.id not in self._projects:
                raise NotFoundError(f"Project not found: {project.id}")
            stored = project.model_copy(update={"updated_at": utcnow()})
            self._projects[project.id] = stored
            return stored.model_copy()

    def delete_project(self, project_id: int) -> bool:
        with self._lock:
            if self._projects.pop(project_id, None) is None:
                return False
            orphaned = [
                eid for eid, e in self._expenses.items()
                if e.project_id == project_id
            ]
            for eid in orphaned:
                del self._expenses[eid]
            return True

    def list_projects(
        self,
        status: Optional[ProjectStatus] = None,
        created_by: Optional[int] = None,
    ) -> list[Project]:
        with self._lock:
            projects = [
                p.model_copy() for p in self._projects.values()
                if (status is None or p.status == status)
                and (created_by is None or p.created_by == created_by)
            ]
        projects.sort(key=lambda p: (p.created_at, p.id), reverse=True)
        return projects

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    def save_expense(self, expense: Expense) -> Expense:
        with self._lock:
            if expense.project_id not in self._projects:
                raise NotFoundError(f"Project not found: {expense.project_id}")
            stored = expense.model_copy(update={"id": next(self._expense_ids)})
            self._expenses[stored.id] = stored
            return stored.model_copy()

    def get_expense(self, expense_id: int) -> Optional[Expense]:
        with self._lock:
            expense = self._expenses.get(expense_id)
            return expense.model_copy() if expense else None

    def update_expense(self, expense: Expense) -> Expense:
        with self._lock:
            if expense.id not in self._expenses:
                raise NotFoundError(f"Expense not found: {expense.id}")
            if expense.project_id not in self._projects:
                raise NotFoundError(f"Project not found: {expense.project_id}")
            stored = expense.model_copy(update={"updated_at": utcnow()})
            self._expenses[expense.id] = stored
            return stored.model_copy()

    def delete_expense(self, expense_id: int) -> bool:
        with self._lock:
            return self._expenses.pop(expense_id, None) is not None

    def _matching(self, expense_filter: Optional[ExpenseFilter]) -> list[Expense]:
        expense_filter = expense_filter or ExpenseFilter()
        with self._lock:
            return [
                e.model_copy() for e in self._expenses.values()
                if expense_filter.matches(e, self._projects.get(e.project_id))
            ]

    def list_expenses(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> list[Expense]:
        expenses = self._matching(expense_filter)
        expenses.sort(key=lambda e: (e.date, e.id), reverse=True)
        return expenses

    # -------------------------------------------------------------------------
    # Aggregation primitives
    # -------------------------------------------------------------------------

    def sum_expenses(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> Decimal:
        return to_money(sum(
            (e.amount for e in self._matching(expense_filter)),
            Decimal("0"),
        ))

    def totals_by_category(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> list[CategoryTotal]:
        totals: dict[str, Decimal] = defaultdict(Decimal)
        counts: dict[str, int] = defaultdict(int)
        for expense in self._matching(expense_filter):
            totals[expense.category] += expense.amount
            counts[expense.category] += 1
        return [
            CategoryTotal(
                category=category,
                total_amount=to_money(total),
                count=counts[category],
            )
            for category, total in totals.items()
        ]

    def _group_sum(self, expense_filter, key) -> dict[int, Decimal]:
        totals: dict[int, Decimal] = defaultdict(Decimal)
        for expense in self._matching(expense_filter):
            totals[key(expense)] += expense.amount
        return {k: to_money(v) for k, v in totals.items()}

    def totals_by_month(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> dict[int, Decimal]:
        return self._group_sum(expense_filter, lambda e: e.date.month)

    def totals_by_year(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> dict[int, Decimal]:
        return self._group_sum(expense_filter, lambda e: e.date.year)

    def expense_totals_by_project(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> dict[int, Decimal]:
        return self._group_sum(expense_filter, lambda e: e.project_id)

    def count_projects_by_status(
        self,
        created_by: Optional[int] = None,
    ) -> dict[ProjectStatus, int]:
        counts: dict[ProjectStatus, int] = defaultdict(int)
        for project in self.list_projects(created_by=created_by):
            counts[project.status] += 1
        return dict(counts)

    def sum_project_budgets(
        self,
        created_by: Optional[int] = None,
    ) -> Decimal:
        return to_money(sum(
            (p.total_budget or Decimal("0")
             for p in self.list_projects(created_by=created_by)),
            Decimal("0"),
        ))


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: list[AuditEvent] = []

    def append_event(self, event: AuditEvent) -> bool:
        with self._lock:
            self._events.append(event)
        return True

    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: int,
    ) -> list[AuditEvent]:
        with self._lock:
            events = [
                e for e in self._events
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        events.sort(key=lambda e: e.timestamp)
        return events

    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        with self._lock:
            events = list(reversed(self._events))
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
