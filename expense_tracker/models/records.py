"""
Core Data Models for Project Expense Tracker

These models define the strict schemas for all records flowing through
the system. They are designed to:
1. Enforce the record invariants at construction time
2. Provide clear validation error messages
3. Be storage-agnostic (the stores map them to rows)

DESIGN DECISION: Money fields are Decimal with two decimal places.
Floats never enter a record, so sums are exact.
"""

import datetime as dt
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)


CENT = Decimal("0.01")


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def to_money(value) -> Decimal:
    """
    Normalize an amount to a two-place Decimal.

    None (e.g. SUM over no rows) becomes 0.00. Floats coming back from
    drivers are converted through str() so no binary noise leaks in.
    """
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Role(str, Enum):
    """Role attached to an authenticated user."""
    ADMIN = "admin"
    VIEWER = "viewer"


class ProjectStatus(str, Enum):
    """
    Project lifecycle status.

    Flat set: an admin may set any value directly, there is
    no transition graph.
    """
    ACTIVE = "active"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"
    CANCELLED = "cancelled"


class ExpenseStatus(str, Enum):
    """
    Expense approval status.

    Same rule as ProjectStatus: any admin may set any value.
    Viewers only ever see APPROVED expenses.
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# =============================================================================
# USERS
# =============================================================================

class User(BaseModel):
    """
    A stored user account.

    Carries the password hash; never hand this to a caller,
    use to_profile() instead.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password_hash: str = Field(..., min_length=1)
    role: Role = Role.VIEWER
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)

    def to_profile(self) -> "UserProfile":
        return UserProfile(
            id=self.id,
            name=self.name,
            email=self.email,
            role=self.role,
            created_at=self.created_at,
        )

    def to_principal(self) -> "Principal":
        return Principal(
            id=self.id,
            role=self.role,
            name=self.name,
            email=self.email,
        )


class UserProfile(BaseModel):
    """What a caller may see of a user account."""

    id: int
    name: str
    email: str
    role: Role
    created_at: Optional[dt.datetime] = None


class Principal(BaseModel):
    """
    The resolved caller, as handed over by the identity provider.

    The core trusts this completely; it never re-checks credentials.
    An unauthenticated caller is represented by None, not by a Principal.
    """
    model_config = ConfigDict(frozen=True)

    id: int
    role: Role
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


# =============================================================================
# PROJECTS
# =============================================================================

class Project(BaseModel):
    """
    A tracked project.

    Owned by the admin who created it (created_by). Deleting a
    project deletes its expenses.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: dt.date
    end_date: Optional[dt.date] = None
    total_budget: Optional[Decimal] = Field(
        default=None,
        ge=0,
        decimal_places=2,
        description="Budget for the whole project; absent means unbudgeted"
    )
    status: ProjectStatus = ProjectStatus.ACTIVE
    created_by: int
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)

    @model_validator(mode='after')
    def validate_dates(self) -> 'Project':
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self


# =============================================================================
# EXPENSES
# =============================================================================

class Expense(BaseModel):
    """A single expense booked against exactly one project."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[int] = None
    date: dt.date
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Always strictly positive"
    )
    category: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    receipt_url: Optional[str] = Field(default=None, max_length=500)
    status: ExpenseStatus = ExpenseStatus.PENDING
    project_id: int
    added_by: Optional[int] = None
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)


# =============================================================================
# MUTATION PAYLOADS
# =============================================================================

class ProjectCreate(BaseModel):
    """Input for creating a project. created_by comes from the caller."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: dt.date
    end_date: Optional[dt.date] = None
    total_budget: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    status: ProjectStatus = ProjectStatus.ACTIVE

    @model_validator(mode='after')
    def validate_dates(self) -> 'ProjectCreate':
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self


class ProjectUpdate(BaseModel):
    """Partial update; only the fields that were sent are applied."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    total_budget: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    status: Optional[ProjectStatus] = None


class ExpenseCreate(BaseModel):
    """Input for creating an expense. added_by comes from the caller."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    project_id: int
    date: dt.date
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    category: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    receipt_url: Optional[str] = Field(default=None, max_length=500)
    status: ExpenseStatus = ExpenseStatus.PENDING


class ExpenseUpdate(BaseModel):
    """Partial update; moving an expense to another project is allowed."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    project_id: Optional[int] = None
    date: Optional[dt.date] = None
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    receipt_url: Optional[str] = Field(default=None, max_length=500)
    status: Optional[ExpenseStatus] = None


class UserRegistration(BaseModel):
    """
    Input for self-registration.

    An unknown or missing role silently becomes VIEWER.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=1)
    role: Role = Role.VIEWER

    @field_validator('role', mode='before')
    @classmethod
    def default_unknown_role(cls, v):
        valid = {r.value for r in Role}
        if isinstance(v, Role):
            return v
        if isinstance(v, str) and v.strip().lower() in valid:
            return v.strip().lower()
        return Role.VIEWER


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None


class PasswordChange(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)


# =============================================================================
# VALIDATION RESULTS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single problem found while validating a payload."""

    field: str
    issue_type: str = Field(
        ...,
        description="e.g. 'invalid_value', 'future_date', 'suspicious_value'"
    )
    message: str
    severity: str = Field(
        default="error",
        pattern="^(error|warning)$",
    )


class ValidationResult(BaseModel):
    """Outcome of validating one project or expense payload."""

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    @property
    def error_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == "error")
