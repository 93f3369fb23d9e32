"""
Access-Scoped Query Layer

Every read goes through here. The caller's role turns into a store
filter *before* the query runs, so a viewer's result set never contains
a non-active project or a non-approved expense in the first place.

DESIGN DECISION: Existence is checked before visibility. A missing
project is NotFound for everybody; an existing but filtered one is
NotAuthorized for a viewer. Callers can tell the two apart.

All methods are pure reads.
"""

from decimal import Decimal
from typing import Optional

from expense_tracker.errors import NotAuthorized, NotFound
from expense_tracker.models.records import (
    Expense,
    ExpenseStatus,
    Project,
    ProjectStatus,
    Role,
)
from expense_tracker.models.reports import (
    DateRange,
    ExpenseFilter,
    LandingProject,
    ProjectDetail,
    ProjectSummary,
)
from expense_tracker.policy import Action, Resource, can_access
from expense_tracker.services.storage import TrackerStorageInterface


_ZERO = Decimal("0.00")


class ScopedQueries:
    """
    Role-aware reads over the store.

    Usage:
        queries = ScopedQueries(storage)
        projects = queries.list_projects(principal.role)
    """

    def __init__(self, storage: TrackerStorageInterface):
        self._storage = storage

    # -------------------------------------------------------------------------
    # Role -> filter
    # -------------------------------------------------------------------------

    @staticmethod
    def _require_listing(role: Optional[Role], resource: Resource) -> None:
        if not can_access(role, Action.LIST, resource):
            raise NotAuthorized(f"Not authorized to list {resource.value}s")

    @staticmethod
    def _project_status_scope(role: Optional[Role]) -> Optional[ProjectStatus]:
        return None if role == Role.ADMIN else ProjectStatus.ACTIVE

    @staticmethod
    def _expense_status_scope(role: Optional[Role]) -> Optional[ExpenseStatus]:
        return None if role == Role.ADMIN else ExpenseStatus.APPROVED

    def visible_project(self, project_id: int, role: Optional[Role]) -> Project:
        """
        Fetch a project the role may see.

        Raises:
            NotFound: If the project doesn't exist
            NotAuthorized: If it exists but is filtered out for this role
        """
        project = self._storage.get_project(project_id)
        if project is None:
            raise NotFound(f"Project {project_id} not found")
        if not can_access(role, Action.READ, project):
            raise NotAuthorized("Not authorized to view this project")
        return project

    # -------------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------------

    def list_projects(self, role: Optional[Role]) -> list[Project]:
        """Admin: every project. Viewer: active projects only. Newest first."""
        self._require_listing(role, Resource.PROJECT)
        return self._storage.list_projects(status=self._project_status_scope(role))

    def list_expenses(self, role: Optional[Role]) -> list[Expense]:
        """Admin: every expense. Viewer: approved expenses only. Latest date first."""
        self._require_listing(role, Resource.EXPENSE)
        return self._storage.list_expenses(
            ExpenseFilter(status=self._expense_status_scope(role))
        )

    def get_project_expenses(
        self,
        project_id: int,
        role: Optional[Role],
        date_range: Optional[DateRange] = None,
        category: Optional[str] = None,
    ) -> list[Expense]:
        """
        Expenses of one project, latest date first.

        Args:
            project_id: The project
            role: Caller's role
            date_range: Optional inclusive [start, end] window
            category: Optional exact category match

        Raises:
            NotFound: If the project doesn't exist
            NotAuthorized: If a viewer asks for a non-active project
        """
        self.visible_project(project_id, role)
        return self._storage.list_expenses(
            ExpenseFilter.within(
                date_range,
                project_id=project_id,
                category=category,
                status=self._expense_status_scope(role),
            )
        )

    # -------------------------------------------------------------------------
    # Detail views
    # -------------------------------------------------------------------------

    def get_project(self, project_id: int, role: Optional[Role]) -> ProjectDetail:
        project = self.visible_project(project_id, role)
        expenses = self._storage.list_expenses(
            ExpenseFilter(
                project_id=project_id,
                status=self._expense_status_scope(role),
            )
        )
        return ProjectDetail(project=project, expenses=expenses)

    def get_expense(self, expense_id: int, role: Optional[Role]) -> Expense:
        """
        One expense.

        A viewer only gets it when the expense is approved and
        its project is active.
        """
        expense = self._storage.get_expense(expense_id)
        if expense is None:
            raise NotFound(f"Expense {expense_id} not found")
        if not can_access(role, Action.READ, expense):
            raise NotAuthorized("Not authorized to view this expense")
        if role != Role.ADMIN:
            project = self._storage.get_project(expense.project_id)
            if project is None or not can_access(role, Action.READ, project):
                raise NotAuthorized("Not authorized to view this expense")
        return expense

    # -------------------------------------------------------------------------
    # Summaries
    # -------------------------------------------------------------------------

    def landing_projects(self) -> list[LandingProject]:
        """
        Public listing: every project regardless of status, with the
        sum of all of its expenses. No budget figures.
        """
        totals = self._storage.expense_totals_by_project()
        return [
            LandingProject(
                id=p.id,
                name=p.name,
                description=p.description,
                status=p.status,
                start_date=p.start_date,
                end_date=p.end_date,
                created_by=p.created_by,
                total_expenses=totals.get(p.id, _ZERO),
            )
            for p in self._storage.list_projects()
        ]

    def project_summaries(self, role: Optional[Role]) -> list[ProjectSummary]:
        """Budget position of every project the role may see."""
        projects = self.list_projects(role)
        totals = self._storage.expense_totals_by_project(
            ExpenseFilter(status=self._expense_status_scope(role))
        )
        summaries = []
        for p in projects:
            spent = totals.get(p.id, _ZERO)
            remaining = p.total_budget - spent if p.total_budget is not None else None
            summaries.append(ProjectSummary(
                id=p.id,
                name=p.name,
                status=p.status,
                total_budget=p.total_budget,
                total_expenses=spent,
                remaining_budget=remaining,
                start_date=p.start_date,
                end_date=p.end_date,
            ))
        return summaries
