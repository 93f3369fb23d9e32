"""
Aggregation Engine

Computes dashboard statistics and time-bucketed expense summaries.

DESIGN DECISION: The store does the grouping and summing (SQL GROUP BY /
SUM, or the in-memory fallback). This module only:
1. Picks the right filter for each report
2. Zero-fills missing buckets (months, years)
3. Sorts into a stable order
4. Rounds at presentation time

Every report has a fixed, typed shape. There is no generic query DSL.

All arithmetic is Decimal. Nothing here can raise on an empty data set:
no expenses means all-zero reports, and a zero or missing budget means
zero utilization.
"""

import datetime as dt
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional

from expense_tracker.config import AppSettings, get_settings
from expense_tracker.errors import ValidationError
from expense_tracker.models.records import ProjectStatus, Role, to_money
from expense_tracker.models.reports import (
    AnnualTotal,
    CategorySummary,
    DashboardStats,
    DateRange,
    ExpenseFilter,
    GlobalExpenseSummary,
    MonthlyTotal,
    ProjectTotal,
    StatusCount,
)
from expense_tracker.services.storage import TrackerStorageInterface


# Display labels for the status distribution chart. "inactive" is a
# legacy value some deployments still carry; unlabelled statuses are
# shown as stored.
STATUS_LABELS = {
    "active": "Active",
    "inactive": "Inactive",
    "completed": "Completed",
    "on_hold": "On Hold",
}

HUNDRED = Decimal("100")


def _percentage(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return Decimal("0.00")
    return (part / whole * HUNDRED).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class ExpenseAggregator:
    """
    Builds the fixed-shape reports from the store's aggregation primitives.

    Args:
        storage: Store to aggregate over
        settings: Reporting settings. Defaults to get_settings().app
        today: Clock used for "current year" reports; injectable for tests
    """

    def __init__(
        self,
        storage: TrackerStorageInterface,
        settings: Optional[AppSettings] = None,
        today: Callable[[], dt.date] = dt.date.today,
    ):
        self._storage = storage
        self._today = today
        self._settings = settings or get_settings().app

    # -------------------------------------------------------------------------
    # Dashboard
    # -------------------------------------------------------------------------

    def dashboard_stats(self, role: Optional[Role], user_id: int) -> DashboardStats:
        """
        Headline numbers for the dashboard.

        Scoped to the projects created by user_id, for every role. In a
        multi-admin deployment an admin only sees their own projects here.
        """
        by_status = self._storage.count_projects_by_status(created_by=user_id)
        total_expenses = self._storage.sum_expenses(
            ExpenseFilter(project_owner_id=user_id)
        )
        total_budget = self._storage.sum_project_budgets(created_by=user_id)

        return DashboardStats(
            total_projects=sum(by_status.values()),
            active_projects=by_status.get(ProjectStatus.ACTIVE, 0),
            total_expenses=total_expenses,
            budget_utilization=_percentage(total_expenses, total_budget),
            total_budget=total_budget,
        )

    def project_status_distribution(
        self,
        role: Optional[Role],
        user_id: int,
    ) -> list[StatusCount]:
        """Owned projects per status, in status declaration order. Empty statuses are left out."""
        counts = self._storage.count_projects_by_status(created_by=user_id)
        return [
            StatusCount(
                name=STATUS_LABELS.get(status.value, status.value),
                count=counts[status],
            )
            for status in ProjectStatus
            if counts.get(status)
        ]

    # -------------------------------------------------------------------------
    # Per-project summaries
    # -------------------------------------------------------------------------

    def expense_summary_by_category(
        self,
        project_id: int,
        date_range: Optional[DateRange] = None,
    ) -> CategorySummary:
        """
        Totals per category, largest first.

        Ties are broken by category name so the order is deterministic.
        """
        rows = self._storage.totals_by_category(
            ExpenseFilter.within(date_range, project_id=project_id)
        )
        rows.sort(key=lambda r: (-r.total_amount, r.category))
        total = to_money(sum((r.total_amount for r in rows), Decimal("0")))
        return CategorySummary(by_category=rows, total_expenses=total)

    def monthly_expenses(
        self,
        project_id: Optional[int],
        year: Optional[int] = None,
    ) -> list[MonthlyTotal]:
        """
        Exactly 12 entries, January first. Months without expenses are 0.

        Raises:
            ValidationError: If year is outside the supported calendar
        """
        if year is None:
            year = self._today().year
        if not dt.MINYEAR <= year <= dt.MAXYEAR:
            raise ValidationError(
                f"year must be between {dt.MINYEAR} and {dt.MAXYEAR}, got {year}"
            )

        totals = self._storage.totals_by_month(
            ExpenseFilter.within(DateRange.for_year(year), project_id=project_id)
        )
        return [
            MonthlyTotal(month=month, total=totals.get(month, Decimal("0.00")), year=year)
            for month in range(1, 13)
        ]

    def annual_expenses(
        self,
        project_id: Optional[int],
        years_back: int = 5,
    ) -> list[AnnualTotal]:
        """
        One entry per year, oldest first, ending at the current year.

        Raises:
            ValidationError: If years_back is less than 1 or reaches back
                before the first supported year
        """
        if years_back < 1:
            raise ValidationError(f"years_back must be at least 1, got {years_back}")

        current_year = self._today().year
        first_year = current_year - years_back + 1
        if first_year < dt.MINYEAR:
            raise ValidationError(
                f"years_back must be at most {current_year - dt.MINYEAR + 1}, got {years_back}"
            )
        totals = self._storage.totals_by_year(
            ExpenseFilter.within(
                DateRange.for_years(first_year, current_year),
                project_id=project_id,
            )
        )
        return [
            AnnualTotal(year=year, total=totals.get(year, Decimal("0.00")))
            for year in range(first_year, current_year + 1)
        ]

    # -------------------------------------------------------------------------
    # Global
    # -------------------------------------------------------------------------

    def global_expense_summary(self) -> GlobalExpenseSummary:
        """
        Whole-system view: this year by month, the last N years, and every
        project's total (largest first).
        """
        years = self._settings.annual_summary_years
        totals = self._storage.expense_totals_by_project()
        projects = [
            ProjectTotal(
                id=p.id,
                name=p.name,
                total_expenses=totals.get(p.id, Decimal("0.00")),
            )
            for p in self._storage.list_projects()
        ]
        projects.sort(key=lambda p: (-p.total_expenses, p.name, p.id))

        return GlobalExpenseSummary(
            monthly=self.monthly_expenses(None),
            annual=self.annual_expenses(None, years),
            projects=projects,
        )
