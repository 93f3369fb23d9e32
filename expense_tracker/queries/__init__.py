"""Access-scoped query package."""

from expense_tracker.queries.scoped import ScopedQueries

__all__ = ["ScopedQueries"]
