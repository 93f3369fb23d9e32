"""Payload validation package."""

from expense_tracker.validation.validator import (
    RecordValidator,
    issues_from_schema_error,
    parse_payload,
)

__all__ = ["RecordValidator", "issues_from_schema_error", "parse_payload"]
