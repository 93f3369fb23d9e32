"""
Domain Errors

Every failure the business layer reports to its caller is one of these.
They are raised at the query/aggregation/flow boundary and passed through
unmodified; the transport maps them to status codes with http_status_for().

None of them is retried internally.
"""

from typing import Optional


class TrackerError(Exception):
    """Base class for all domain errors. Always carries a readable message."""

    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(TrackerError):
    """The requested resource id does not exist."""

    http_status = 404


class NotAuthorized(TrackerError):
    """
    The caller's role may not read this resource.

    Distinct from NotFound: the resource exists but is filtered out
    for this role (e.g. a viewer asking for an on-hold project).
    """

    http_status = 401


class Forbidden(TrackerError):
    """The caller's role may not perform this mutation at all."""

    http_status = 403


class ValidationError(TrackerError):
    """Malformed input: non-positive amount, missing field, bad date, ..."""

    http_status = 400

    def __init__(self, message: str, issues: Optional[list[dict]] = None):
        super().__init__(message)
        self.issues = issues or []


class ConflictError(TrackerError):
    """Uniqueness violation, e.g. an email that is already registered."""

    http_status = 400


def http_status_for(exc: BaseException) -> int:
    """
    Map an exception to the HTTP status the transport should answer with.

    Domain errors use their own status; anything else is a server error.
    """
    if isinstance(exc, TrackerError):
        return exc.http_status
    return 500
