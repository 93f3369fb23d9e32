"""
Audit Models for Project Expense Tracker

Every mutation, login and denied access is logged for audit purposes.
This provides:
1. Traceability of who changed which project or expense
2. Debugging information when things go wrong
3. A record of refused access attempts

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Projects
    PROJECT_CREATED = "project_created"
    PROJECT_UPDATED = "project_updated"
    PROJECT_DELETED = "project_deleted"
    PROJECT_STATUS_CHANGED = "project_status_changed"

    # Expenses
    EXPENSE_CREATED = "expense_created"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    EXPENSE_STATUS_CHANGED = "expense_status_changed"

    # Accounts
    USER_REGISTERED = "user_registered"
    USER_AUTHENTICATED = "user_authenticated"
    AUTHENTICATION_FAILED = "authentication_failed"
    PROFILE_UPDATED = "profile_updated"
    PASSWORD_CHANGED = "password_changed"
    DEFAULT_ADMIN_SEEDED = "default_admin_seeded"

    # Access control
    ACCESS_DENIED = "access_denied"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'project', 'expense', 'user')"
    )
    entity_id: Optional[int] = None

    # Who did it? None for anonymous callers.
    actor_id: Optional[int] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.project_created(project_id, name, actor_id)
        event = AuditEventBuilder.access_denied("expense", 7, actor_id, "Forbidden")
    """

    @staticmethod
    def project_created(project_id: int, name: str, actor_id: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROJECT_CREATED,
            entity_type="project",
            entity_id=project_id,
            actor_id=actor_id,
            description=f"Project created: {name}",
            details={"name": name},
        )

    @staticmethod
    def project_updated(
        project_id: int,
        changed_fields: list[str],
        actor_id: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROJECT_UPDATED,
            entity_type="project",
            entity_id=project_id,
            actor_id=actor_id,
            description=f"Project {project_id} updated",
            details={"changed_fields": changed_fields},
        )

    @staticmethod
    def project_deleted(project_id: int, actor_id: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROJECT_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="project",
            entity_id=project_id,
            actor_id=actor_id,
            description=f"Project {project_id} deleted with its expenses",
        )

    @staticmethod
    def status_changed(
        entity_type: str,
        entity_id: int,
        old_status: str,
        new_status: str,
        actor_id: int,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.PROJECT_STATUS_CHANGED
            if entity_type == "project"
            else AuditEventType.EXPENSE_STATUS_CHANGED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            description=f"{entity_type.capitalize()} {entity_id}: {old_status} -> {new_status}",
            details={"old_status": old_status, "new_status": new_status},
        )

    @staticmethod
    def expense_created(
        expense_id: int,
        project_id: int,
        amount: str,
        actor_id: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_CREATED,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            description=f"Expense of {amount} booked on project {project_id}",
            details={"project_id": project_id, "amount": amount},
        )

    @staticmethod
    def expense_updated(
        expense_id: int,
        changed_fields: list[str],
        actor_id: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_UPDATED,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            description=f"Expense {expense_id} updated",
            details={"changed_fields": changed_fields},
        )

    @staticmethod
    def expense_deleted(expense_id: int, actor_id: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            description=f"Expense {expense_id} deleted",
        )

    @staticmethod
    def user_registered(user_id: int, email: str, role: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_REGISTERED,
            entity_type="user",
            entity_id=user_id,
            actor_id=user_id,
            description=f"User registered: {email}",
            details={"email": email, "role": role},
        )

    @staticmethod
    def user_authenticated(user_id: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_AUTHENTICATED,
            entity_type="user",
            entity_id=user_id,
            actor_id=user_id,
            description=f"User {user_id} logged in",
        )

    @staticmethod
    def authentication_failed(email: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTHENTICATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            description="Login rejected: invalid credentials",
            details={"email": email},
        )

    @staticmethod
    def profile_updated(user_id: int, changed_fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_UPDATED,
            entity_type="user",
            entity_id=user_id,
            actor_id=user_id,
            description=f"User {user_id} updated their profile",
            details={"changed_fields": changed_fields},
        )

    @staticmethod
    def password_changed(user_id: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PASSWORD_CHANGED,
            entity_type="user",
            entity_id=user_id,
            actor_id=user_id,
            description=f"User {user_id} changed their password",
        )

    @staticmethod
    def default_admin_seeded(user_id: int, email: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEFAULT_ADMIN_SEEDED,
            entity_type="user",
            entity_id=user_id,
            description=f"Default admin account created: {email}",
            details={"email": email},
        )

    @staticmethod
    def access_denied(
        entity_type: str,
        entity_id: Optional[int],
        actor_id: Optional[int],
        reason: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCESS_DENIED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            description=f"Access denied on {entity_type}",
            error_message=reason,
        )
