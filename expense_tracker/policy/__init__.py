"""Authorization policy package."""

from expense_tracker.policy.access import (
    Action,
    Resource,
    can_access,
    require_authenticated,
    require_mutation,
    require_read,
)

__all__ = [
    "Action",
    "Resource",
    "can_access",
    "require_authenticated",
    "require_mutation",
    "require_read",
]
