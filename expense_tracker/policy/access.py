"""
Authorization Policy

A pure function from (role, action, resource) to allow/deny, plus two
helpers that turn a denial into the right domain error.

DESIGN DECISION: The policy knows nothing about storage. When the answer
depends on a record's state (a viewer may only see active projects and
approved expenses) the caller passes the record itself as the resource.
Whether an expense's *project* is visible is a second check the query
layer makes with the project record.

Rules:
- Admin: everything on projects and expenses
- Viewer: read-only; active projects, approved expenses; own account
- Anonymous (role None): the public landing listing, login and registration
"""

from enum import Enum
from typing import Optional, Union

from expense_tracker.errors import Forbidden, NotAuthorized
from expense_tracker.models.records import (
    Expense,
    ExpenseStatus,
    Principal,
    Project,
    ProjectStatus,
    Role,
)


class Action(str, Enum):
    LIST = "list"
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class Resource(str, Enum):
    PROJECT = "project"
    EXPENSE = "expense"
    USER = "user"
    LANDING = "landing"


READ_ACTIONS = frozenset({Action.LIST, Action.READ})
WRITE_ACTIONS = frozenset({Action.CREATE, Action.UPDATE, Action.DELETE})

ResourceLike = Union[Resource, Project, Expense]


def _resource_type(resource: ResourceLike) -> Resource:
    if isinstance(resource, Project):
        return Resource.PROJECT
    if isinstance(resource, Expense):
        return Resource.EXPENSE
    return Resource(resource)


def can_access(
    role: Optional[Role],
    action: Action,
    resource: ResourceLike,
) -> bool:
    """
    Decide whether a role may perform an action on a resource.

    Args:
        role: The caller's role, or None for an unauthenticated caller
        action: What the caller wants to do
        resource: A resource type, or a Project/Expense whose status matters

    Returns:
        True if allowed
    """
    kind = _resource_type(resource)

    # The landing page is public and read-only
    if kind == Resource.LANDING:
        return action in READ_ACTIONS

    if role is None:
        # Registration is the only thing an anonymous caller may write
        return kind == Resource.USER and action == Action.CREATE

    if kind == Resource.USER:
        # Own account only; whose account it is, is the caller's business
        return action in (READ_ACTIONS | {Action.UPDATE})

    if role == Role.ADMIN:
        return True

    # Viewer from here on
    if action in WRITE_ACTIONS:
        return False
    if isinstance(resource, Project):
        return resource.status == ProjectStatus.ACTIVE
    if isinstance(resource, Expense):
        return resource.status == ExpenseStatus.APPROVED
    # Listing a type is fine; the query layer filters the rows
    return True


def _role_of(principal: Optional[Principal]) -> Optional[Role]:
    return principal.role if principal is not None else None


def require_authenticated(principal: Optional[Principal]) -> Principal:
    if principal is None:
        raise NotAuthorized("Authentication required")
    return principal


def require_mutation(
    principal: Optional[Principal],
    resource: ResourceLike,
    action: Action = Action.UPDATE,
) -> Principal:
    """
    Gate a write.

    Raises:
        Forbidden: If the caller may not perform this mutation
    """
    if not can_access(_role_of(principal), action, resource):
        kind = _resource_type(resource).value
        raise Forbidden(f"Not allowed to {action.value} {kind}")
    return principal


def require_read(
    principal: Optional[Principal],
    resource: ResourceLike,
    action: Action = Action.READ,
) -> None:
    """
    Gate a read of an existing resource.

    Raises:
        NotAuthorized: If the resource exists but the caller's role may not see it
    """
    if not can_access(_role_of(principal), action, resource):
        kind = _resource_type(resource).value
        raise NotAuthorized(f"Not authorized to view this {kind}")
