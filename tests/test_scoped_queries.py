"""
Tests for the access-scoped query layer.

A viewer must never observe a non-active project or a non-approved
expense through any listing or detail view.
"""

import pytest
from datetime import date
from decimal import Decimal

from expense_tracker.errors import NotAuthorized, NotFound
from expense_tracker.models.records import ExpenseStatus, ProjectStatus, Role
from expense_tracker.models.reports import DateRange
from expense_tracker.queries import ScopedQueries


@pytest.fixture
def queries(store):
    return ScopedQueries(store)


@pytest.fixture
def mixed(admin, make_project, make_expense):
    """One project per status, one expense per status on the active one."""
    projects = {
        status: make_project(admin, name=status.value, status=status)
        for status in ProjectStatus
    }
    active = projects[ProjectStatus.ACTIVE]
    expenses = {
        status: make_expense(active, "10.00", status=status)
        for status in ExpenseStatus
    }
    # Approved, but on a project a viewer can't see
    hidden = make_expense(projects[ProjectStatus.ON_HOLD], "99.00")
    return projects, expenses, hidden


class TestListings:
    """list_projects / list_expenses."""

    def test_admin_sees_all_projects(self, queries, mixed):
        projects, _, _ = mixed
        assert len(queries.list_projects(Role.ADMIN)) == len(projects)

    def test_viewer_sees_only_active_projects(self, queries, mixed):
        listed = queries.list_projects(Role.VIEWER)
        assert len(listed) == 1
        assert all(p.status == ProjectStatus.ACTIVE for p in listed)

    def test_admin_sees_all_expenses(self, queries, mixed):
        _, expenses, _ = mixed
        assert len(queries.list_expenses(Role.ADMIN)) == len(expenses) + 1

    def test_viewer_sees_only_approved_expenses(self, queries, mixed):
        listed = queries.list_expenses(Role.VIEWER)
        assert listed
        assert all(e.status == ExpenseStatus.APPROVED for e in listed)

    def test_anonymous_cannot_list(self, queries, mixed):
        with pytest.raises(NotAuthorized):
            queries.list_projects(None)
        with pytest.raises(NotAuthorized):
            queries.list_expenses(None)


class TestProjectExpenses:
    """get_project_expenses."""

    def test_missing_project_is_not_found(self, queries):
        with pytest.raises(NotFound):
            queries.get_project_expenses(999, Role.ADMIN)

    def test_missing_project_is_not_found_for_viewer_too(self, queries):
        with pytest.raises(NotFound):
            queries.get_project_expenses(999, Role.VIEWER)

    def test_viewer_on_hold_project_is_not_authorized(self, queries, admin, make_project):
        project = make_project(admin, status=ProjectStatus.ON_HOLD)
        with pytest.raises(NotAuthorized):
            queries.get_project_expenses(project.id, Role.VIEWER)

    def test_admin_on_hold_project_is_fine(self, queries, admin, make_project, make_expense):
        project = make_project(admin, status=ProjectStatus.ON_HOLD)
        make_expense(project, "5.00")
        assert len(queries.get_project_expenses(project.id, Role.ADMIN)) == 1

    def test_date_range_and_category(self, queries, admin, make_project, make_expense):
        project = make_project(admin)
        first = make_expense(project, "1.00", date=date(2024, 3, 1), category="fuel")
        last = make_expense(project, "1.00", date=date(2024, 3, 31), category="fuel")
        make_expense(project, "1.00", date=date(2024, 4, 1), category="fuel")
        make_expense(project, "1.00", date=date(2024, 3, 10), category="food")

        result = queries.get_project_expenses(
            project.id,
            Role.ADMIN,
            date_range=DateRange(start=date(2024, 3, 1), end=date(2024, 3, 31)),
            category="fuel",
        )
        assert [e.id for e in result] == [last.id, first.id]

    def test_viewer_only_gets_approved(self, queries, mixed):
        projects, expenses, _ = mixed
        result = queries.get_project_expenses(projects[ProjectStatus.ACTIVE].id, Role.VIEWER)
        assert [e.id for e in result] == [expenses[ExpenseStatus.APPROVED].id]


class TestDetailViews:
    """get_project / get_expense."""

    def test_viewer_project_detail_filters_expenses(self, queries, mixed):
        projects, expenses, _ = mixed
        detail = queries.get_project(projects[ProjectStatus.ACTIVE].id, Role.VIEWER)
        assert detail.project.status == ProjectStatus.ACTIVE
        assert [e.id for e in detail.expenses] == [expenses[ExpenseStatus.APPROVED].id]

    def test_admin_project_detail_has_everything(self, queries, mixed):
        projects, expenses, _ = mixed
        detail = queries.get_project(projects[ProjectStatus.ACTIVE].id, Role.ADMIN)
        assert len(detail.expenses) == len(expenses)

    @pytest.mark.parametrize("status", [
        ProjectStatus.COMPLETED,
        ProjectStatus.ON_HOLD,
        ProjectStatus.CANCELLED,
    ])
    def test_viewer_cannot_open_inactive_project(self, queries, mixed, status):
        projects, _, _ = mixed
        with pytest.raises(NotAuthorized):
            queries.get_project(projects[status].id, Role.VIEWER)

    def test_viewer_gets_approved_expense(self, queries, mixed):
        _, expenses, _ = mixed
        approved = expenses[ExpenseStatus.APPROVED]
        assert queries.get_expense(approved.id, Role.VIEWER).id == approved.id

    def test_viewer_cannot_get_pending_expense(self, queries, mixed):
        _, expenses, _ = mixed
        with pytest.raises(NotAuthorized):
            queries.get_expense(expenses[ExpenseStatus.PENDING].id, Role.VIEWER)

    def test_viewer_cannot_get_expense_of_hidden_project(self, queries, mixed):
        _, _, hidden = mixed
        with pytest.raises(NotAuthorized):
            queries.get_expense(hidden.id, Role.VIEWER)

    def test_admin_gets_any_expense(self, queries, mixed):
        _, _, hidden = mixed
        assert queries.get_expense(hidden.id, Role.ADMIN).id == hidden.id

    def test_missing_expense(self, queries):
        with pytest.raises(NotFound):
            queries.get_expense(999, Role.ADMIN)


class TestSummaries:
    """landing_projects / project_summaries."""

    def test_landing_lists_every_status_with_totals(self, queries, mixed):
        projects, _, _ = mixed
        landing = {p.id: p for p in queries.landing_projects()}
        assert set(landing) == {p.id for p in projects.values()}
        # Every expense counts on the landing page, whatever its status
        assert landing[projects[ProjectStatus.ACTIVE].id].total_expenses == Decimal("30.00")
        assert landing[projects[ProjectStatus.ON_HOLD].id].total_expenses == Decimal("99.00")
        assert landing[projects[ProjectStatus.COMPLETED].id].total_expenses == Decimal("0.00")

    def test_landing_has_no_budget(self, queries, mixed):
        dumped = queries.landing_projects()[0].model_dump(by_alias=True)
        assert "totalBudget" not in dumped
        assert "totalExpenses" in dumped

    def test_remaining_budget(self, queries, admin, make_project, make_expense):
        budgeted = make_project(admin, name="Budgeted", total_budget=Decimal("1000.00"))
        open_ended = make_project(admin, name="Open", total_budget=None)
        make_expense(budgeted, "300.00")
        make_expense(budgeted, "250.00")
        make_expense(open_ended, "80.00")

        summaries = {s.id: s for s in queries.project_summaries(Role.ADMIN)}
        assert summaries[budgeted.id].total_expenses == Decimal("550.00")
        assert summaries[budgeted.id].remaining_budget == Decimal("450.00")
        assert summaries[open_ended.id].remaining_budget is None

    def test_viewer_summaries_are_scoped(self, queries, mixed):
        projects, _, _ = mixed
        summaries = queries.project_summaries(Role.VIEWER)
        assert [s.id for s in summaries] == [projects[ProjectStatus.ACTIVE].id]
        # Only the approved expense counts for a viewer
        assert summaries[0].total_expenses == Decimal("10.00")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
