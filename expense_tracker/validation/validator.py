"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking and coercion (dates, decimals, enums)
- Required field presence
- Field constraints (amount > 0, budget >= 0, lengths)

STAGE 2 - SEMANTIC VALIDATION:
- Expense dates in the future
- Project end date before start date (also after partial updates)
- Unusually large amounts (warning only)

Stage 2 only runs when stage 1 passes. Warnings never block a mutation;
errors always do.

IMPORTANT: Validation NEVER silently fixes issues. Only the documented
coercions (string to date, number to Decimal, unknown role to viewer)
happen, everything else is reported.
"""

import datetime as dt
from decimal import Decimal
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from expense_tracker.config import AppSettings, get_settings
from expense_tracker.errors import ValidationError
from expense_tracker.models.records import (
    ValidationIssue,
    ValidationResult,
)


PayloadT = TypeVar("PayloadT", bound=BaseModel)


def issues_from_schema_error(error: SchemaError) -> list[ValidationIssue]:
    """Turn pydantic's error list into ValidationIssues."""
    issues = []
    for err in error.errors():
        field = ".".join(str(part) for part in err["loc"]) or "payload"
        message = err["msg"]
        # Model-level validators report "Value error, <message>"
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        issues.append(ValidationIssue(
            field=field,
            issue_type=err["type"],
            message=message,
            severity="error",
        ))
    return issues


def parse_payload(model_cls: Type[PayloadT], data: Any) -> PayloadT:
    """
    Schema-only parse of an input payload.

    Raises:
        ValidationError: With one issue per failing field
    """
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except SchemaError as e:
        RecordValidator.raise_for_issues(issues_from_schema_error(e))
        raise


class RecordValidator:
    """
    Validates project and expense payloads through a two-stage pipeline.

    Stage 1: Schema validation (pydantic models)
    Stage 2: Semantic validation (dates, thresholds)
    """

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        today=dt.date.today,
    ):
        self._settings = settings or get_settings().app
        self._today = today

    def _validate_schema(
        self,
        model_cls: Type[PayloadT],
        data: Any,
    ) -> tuple[Optional[PayloadT], list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (parsed_payload_or_None, list_of_issues)
        """
        if isinstance(data, model_cls):
            return data, []
        if isinstance(data, BaseModel):
            data = data.model_dump(exclude_unset=True)
        try:
            return model_cls.model_validate(data), []
        except SchemaError as e:
            return None, issues_from_schema_error(e)

    def check_project(self, project: Any) -> list[ValidationIssue]:
        """
        Stage 2 for projects.

        Works on anything with start_date/end_date, so a project merged
        from a partial update can be re-checked.
        """
        issues = []
        start = getattr(project, "start_date", None)
        end = getattr(project, "end_date", None)
        if start and end and end < start:
            issues.append(ValidationIssue(
                field="end_date",
                issue_type="inconsistent",
                message="End date cannot be before start date",
            ))
        return issues

    def check_expense(self, expense: Any) -> list[ValidationIssue]:
        """Stage 2 for expenses."""
        issues = []

        expense_date = getattr(expense, "date", None)
        latest = self._today() + dt.timedelta(
            days=self._settings.future_expense_tolerance_days
        )
        if expense_date and expense_date > latest:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Expense date ({expense_date}) is in the future",
            ))

        amount = getattr(expense, "amount", None)
        max_amount = Decimal(str(self._settings.max_expense_amount))
        if amount is not None and amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({amount:,.2f}) seems unusually high",
                severity="warning",
            ))

        return issues

    def validate(
        self,
        model_cls: Type[PayloadT],
        data: Any,
    ) -> tuple[Optional[PayloadT], ValidationResult]:
        """
        Run both stages for one payload.

        Returns:
            (parsed payload or None, ValidationResult with all issues found)
        """
        payload, issues = self._validate_schema(model_cls, data)
        schema_valid = payload is not None

        semantic_valid = False
        if schema_valid:
            if hasattr(payload, "start_date"):
                issues.extend(self.check_project(payload))
            if hasattr(payload, "amount"):
                issues.extend(self.check_expense(payload))
            semantic_valid = not any(i.severity == "error" for i in issues)

        return payload, ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=issues,
            warnings=[i.message for i in issues if i.severity == "warning"],
        )

    def require(self, model_cls: Type[PayloadT], data: Any) -> PayloadT:
        """
        Parse and validate, or fail.

        Raises:
            ValidationError: On any error-level issue
        """
        payload, result = self.validate(model_cls, data)
        self.raise_for_issues(result.issues)
        return payload

    @staticmethod
    def raise_for_issues(issues: list[ValidationIssue]) -> None:
        errors = [i for i in issues if i.severity == "error"]
        if errors:
            raise ValidationError(
                "; ".join(f"{i.field}: {i.message}" for i in errors),
                issues=[i.model_dump() for i in errors],
            )
