"""
Data Models Package

This package contains all Pydantic models used in the Project Expense Tracker.
All data flowing through the system must conform to these schemas.
"""

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
    ValidationIssue,
    ValidationResult,
)
from expense_tracker.models.reports import (
    AnnualTotal,
    CategorySummary,
    CategoryTotal,
    DashboardStats,
    DateRange,
    ExpenseFilter,
    GlobalExpenseSummary,
    LandingProject,
    MonthlyTotal,
    ProjectDetail,
    ProjectSummary,
    ProjectTotal,
    StatusCount,
)
from expense_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Record models
    "Expense",
    "ExpenseCreate",
    "ExpenseStatus",
    "ExpenseUpdate",
    "PasswordChange",
    "Principal",
    "ProfileUpdate",
    "Project",
    "ProjectCreate",
    "ProjectStatus",
    "ProjectUpdate",
    "Role",
    "User",
    "UserProfile",
    "UserRegistration",
    "ValidationIssue",
    "ValidationResult",
    # Query and report models
    "AnnualTotal",
    "CategorySummary",
    "CategoryTotal",
    "DashboardStats",
    "DateRange",
    "ExpenseFilter",
    "GlobalExpenseSummary",
    "LandingProject",
    "MonthlyTotal",
    "ProjectDetail",
    "ProjectSummary",
    "ProjectTotal",
    "StatusCount",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
