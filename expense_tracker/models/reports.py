"""
Query and Report Models

Inputs to the store's filtered queries, and the fixed shapes the
aggregation engine returns.

DESIGN DECISION: Report models keep snake_case attributes in Python but
serialize with the camelCase keys the dashboard clients already consume
(model_dump(by_alias=True) -> {"totalProjects": ..., "byCategory": ...}).
"""

import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from expense_tracker.models.records import (
    Expense,
    ExpenseStatus,
    Project,
    ProjectStatus,
)


# =============================================================================
# QUERY MODELS
# =============================================================================

class DateRange(BaseModel):
    """Inclusive [start, end] date range."""

    start: dt.date
    end: dt.date

    @model_validator(mode='after')
    def validate_order(self) -> 'DateRange':
        if self.end < self.start:
            raise ValueError("Date range end cannot be before start")
        return self

    @classmethod
    def for_year(cls, year: int) -> 'DateRange':
        """The calendar year, i.e. [year-01-01, year+1-01-01)."""
        return cls(start=dt.date(year, 1, 1), end=dt.date(year, 12, 31))

    @classmethod
    def for_years(cls, first_year: int, last_year: int) -> 'DateRange':
        return cls(start=dt.date(first_year, 1, 1), end=dt.date(last_year, 12, 31))


class ExpenseFilter(BaseModel):
    """
    Filter for expense queries and aggregation primitives.

    Every field is optional; unset fields do not filter.
    """

    project_id: Optional[int] = None
    project_owner_id: Optional[int] = Field(
        default=None,
        description="Only expenses of projects created by this user"
    )
    status: Optional[ExpenseStatus] = None
    category: Optional[str] = None
    date_from: Optional[dt.date] = Field(
        default=None,
        description="Inclusive lower bound"
    )
    date_to: Optional[dt.date] = Field(
        default=None,
        description="Inclusive upper bound"
    )

    @classmethod
    def within(
        cls,
        date_range: Optional[DateRange],
        **kwargs,
    ) -> 'ExpenseFilter':
        if date_range is None:
            return cls(**kwargs)
        return cls(date_from=date_range.start, date_to=date_range.end, **kwargs)

    def matches(self, expense: Expense, project: Optional[Project] = None) -> bool:
        """In-Python evaluation, used by stores without a query engine."""
        if self.project_id is not None and expense.project_id != self.project_id:
            return False
        if self.project_owner_id is not None:
            if project is None or project.created_by != self.project_owner_id:
                return False
        if self.status is not None and expense.status != self.status:
            return False
        if self.category is not None and expense.category != self.category:
            return False
        if self.date_from is not None and expense.date < self.date_from:
            return False
        if self.date_to is not None and expense.date > self.date_to:
            return False
        return True


# =============================================================================
# REPORT MODELS
# =============================================================================

class ReportModel(BaseModel):
    """Base for every report shape: camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class DashboardStats(ReportModel):
    total_projects: int = Field(ge=0)
    active_projects: int = Field(ge=0)
    total_expenses: Decimal
    budget_utilization: Decimal = Field(
        description="Percentage of total_budget consumed, 2 decimal places"
    )
    total_budget: Decimal


class StatusCount(ReportModel):
    name: str
    count: int = Field(ge=0)


class CategoryTotal(ReportModel):
    category: str
    total_amount: Decimal
    count: int = Field(ge=0)


class CategorySummary(ReportModel):
    by_category: list[CategoryTotal] = Field(default_factory=list)
    total_expenses: Decimal = Decimal("0")


class MonthlyTotal(ReportModel):
    month: int = Field(ge=1, le=12)
    total: Decimal = Field(ge=0)
    year: Optional[int] = None


class AnnualTotal(ReportModel):
    year: int
    total: Decimal = Field(ge=0)


class ProjectTotal(ReportModel):
    id: int
    name: str
    total_expenses: Decimal


class GlobalExpenseSummary(ReportModel):
    monthly: list[MonthlyTotal]
    annual: list[AnnualTotal]
    projects: list[ProjectTotal]


class ProjectSummary(ReportModel):
    """Budget position of one project."""

    id: int
    name: str
    status: ProjectStatus
    total_budget: Optional[Decimal] = None
    total_expenses: Decimal
    remaining_budget: Optional[Decimal] = None
    start_date: dt.date
    end_date: Optional[dt.date] = None


class LandingProject(ReportModel):
    """Public listing entry: no budget, just spend so far."""

    id: int
    name: str
    description: Optional[str] = None
    status: ProjectStatus
    start_date: dt.date
    end_date: Optional[dt.date] = None
    created_by: int
    total_expenses: Decimal


class ProjectDetail(ReportModel):
    """A project together with the expenses the caller may see."""

    project: Project
    expenses: list[Expense] = Field(default_factory=list)
