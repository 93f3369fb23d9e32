"""
SQL Storage Implementation

DESIGN DECISION: The relational store is reached through SQLAlchemy so any
database it supports can be used (SQLite by default, PostgreSQL/MySQL in
deployment). Referential integrity lives in the schema:
- expenses.project_id REFERENCES projects(id) ON DELETE CASCADE
- users.email is UNIQUE

Aggregation primitives are real GROUP BY / SUM queries; the aggregation
engine only zero-fills, sorts and rounds what comes back.

Every public method is one unit of work in its own session.
"""

import json
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterator, Optional
from uuid import UUID

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    create_engine,
    event,
    extract,
    func,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Query, Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from expense_tracker.config import DatabaseSettings, get_settings
from expense_tracker.models.audit import AuditEvent, AuditEventType, AuditSeverity
from expense_tracker.models.records import (
    Expense,
    ExpenseStatus,
    Project,
    ProjectStatus,
    Role,
    User,
    to_money,
    utcnow,
)
from expense_tracker.models.reports import CategoryTotal, ExpenseFilter
from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    StorageConnectionError,
    StorageError,
    TrackerStorageInterface,
)


Base = declarative_base()


def _enum_column(enum_cls, name: str) -> SAEnum:
    # Store the enum values ("on_hold"), not the member names ("ON_HOLD").
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda e: [m.value for m in e],
    )


class UserRow(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(_enum_column(Role, "user_role"), nullable=False, default=Role.VIEWER)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    projects = relationship("ProjectRow", back_populates="creator")


class ProjectRow(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    total_budget = Column(Numeric(14, 2), nullable=True)
    status = Column(
        _enum_column(ProjectStatus, "project_status"),
        nullable=False,
        default=ProjectStatus.ACTIVE,
        index=True,
    )
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    creator = relationship("UserRow", back_populates="projects")
    expenses = relationship(
        "ExpenseRow",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ExpenseRow(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    category = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)
    receipt_url = Column(String(500), nullable=True)
    status = Column(
        _enum_column(ExpenseStatus, "expense_status"),
        nullable=False,
        default=ExpenseStatus.PENDING,
        index=True,
    )
    project_id = Column(
        Integer,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    added_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    project = relationship("ProjectRow", back_populates="expenses")


class AuditEventRow(Base):
    __tablename__ = "audit_events"

    event_id = Column(String(36), primary_key=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    event_type = Column(String(50), nullable=False)
    severity = Column(String(20), nullable=False)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, nullable=True)
    actor_id = Column(Integer, nullable=True)
    description = Column(String(500), nullable=False)
    details_json = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)


def _is_in_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:")


class SQLDatabase:
    """
    Low-level database client wrapper.

    Owns the engine and the session factory, creates the schema and
    checks connectivity with retry at startup.
    """

    def __init__(self, settings: Optional[DatabaseSettings] = None):
        self._settings = settings or get_settings().database
        self._engine = self._create_engine()
        self._session_factory = sessionmaker(
            bind=self._engine,
            autoflush=False,
            expire_on_commit=False,
        )

    def _create_engine(self) -> Engine:
        url = self._settings.url
        kwargs = {"echo": self._settings.echo}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if _is_in_memory_sqlite(url):
                # One shared connection, otherwise every session sees its own empty DB
                kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)

        if engine.dialect.name == "sqlite":
            @event.listens_for(engine, "connect")
            def _enable_foreign_keys(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        return engine

    @property
    def engine(self) -> Engine:
        return self._engine

    def connect(self) -> None:
        """
        Verify the database is reachable.

        Retries transient connection failures with exponential backoff.
        """
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self._settings.connect_attempts),
                wait=wait_exponential(multiplier=1, min=2, max=10),
                retry=retry_if_exception_type(OperationalError),
                reraise=True,
            ):
                with attempt:
                    with self._engine.connect() as conn:
                        conn.execute(text("SELECT 1"))
        except OperationalError as e:
            raise StorageConnectionError(f"Failed to connect to database: {e}") from e

    def create_schema(self) -> None:
        Base.metadata.create_all(self._engine)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Transactional scope: commit on success, roll back on any error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"Database operation failed: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self._engine.dispose()


# =============================================================================
# Row <-> model mapping
# =============================================================================

def _utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops the offset on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _user_from_row(row: UserRow) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        password_hash=row.password_hash,
        role=row.role,
        created_at=_utc(row.created_at),
        updated_at=_utc(row.updated_at),
    )


def _project_from_row(row: ProjectRow) -> Project:
    return Project(
        id=row.id,
        name=row.name,
        description=row.description,
        start_date=row.start_date,
        end_date=row.end_date,
        total_budget=to_money(row.total_budget) if row.total_budget is not None else None,
        status=row.status,
        created_by=row.created_by,
        created_at=_utc(row.created_at),
        updated_at=_utc(row.updated_at),
    )


def _expense_from_row(row: ExpenseRow) -> Expense:
    return Expense(
        id=row.id,
        date=row.date,
        amount=to_money(row.amount),
        category=row.category,
        description=row.description,
        receipt_url=row.receipt_url,
        status=row.status,
        project_id=row.project_id,
        added_by=row.added_by,
        created_at=_utc(row.created_at),
        updated_at=_utc(row.updated_at),
    )


_PROJECT_FIELDS = (
    "name", "description", "start_date", "end_date",
    "total_budget", "status", "created_by",
)
_EXPENSE_FIELDS = (
    "date", "amount", "category", "description",
    "receipt_url", "status", "project_id", "added_by",
)


class SQLTrackerStorage(TrackerStorageInterface):
    """SQLAlchemy implementation of user, project and expense storage."""

    def __init__(self, database: Optional[SQLDatabase] = None):
        self._db = database or SQLDatabase()

    def initialize(self) -> None:
        self._db.connect()
        self._db.create_schema()

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    @staticmethod
    def _email_taken(session: Session, email: str, exclude_id: Optional[int] = None) -> bool:
        query = session.query(UserRow.id).filter(func.lower(UserRow.email) == email.lower())
        if exclude_id is not None:
            query = query.filter(UserRow.id != exclude_id)
        return query.first() is not None

    def save_user(self, user: User) -> User:
        try:
            with self._db.session_scope() as session:
                if self._email_taken(session, user.email):
                    raise DuplicateError(f"Email already registered: {user.email}")
                row = UserRow(
                    name=user.name,
                    email=user.email,
                    password_hash=user.password_hash,
                    role=user.role,
                    created_at=user.created_at,
                    updated_at=user.updated_at,
                )
                session.add(row)
                session.flush()
                return _user_from_row(row)
        except IntegrityError as e:
            raise DuplicateError(f"Email already registered: {user.email}") from e

    def get_user(self, user_id: int) -> Optional[User]:
        with self._db.session_scope() as session:
            row = session.get(UserRow, user_id)
            return _user_from_row(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._db.session_scope() as session:
            row = (
                session.query(UserRow)
                .filter(func.lower(UserRow.email) == email.lower())
                .first()
            )
            return _user_from_row(row) if row else None

    def update_user(self, user: User) -> User:
        try:
            with self._db.session_scope() as session:
                row = session.get(UserRow, user.id)
                if row is None:
                    raise NotFoundError(f"User not found: {user.id}")
                if self._email_taken(session, user.email, exclude_id=user.id):
                    raise DuplicateError(f"Email already registered: {user.email}")
                row.name = user.name
                row.email = user.email
                row.password_hash = user.password_hash
                row.role = user.role
                row.updated_at = utcnow()
                session.flush()
                return _user_from_row(row)
        except IntegrityError as e:
            raise DuplicateError(f"Email already registered: {user.email}") from e

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    def save_project(self, project: Project) -> Project:
        with self._db.session_scope() as session:
            row = ProjectRow(
                **{f: getattr(project, f) for f in _PROJECT_FIELDS},
                created_at=project.created_at,
                updated_at=project.updated_at,
            )
            session.add(row)
            session.flush()
            return _project_from_row(row)

    def get_project(self, project_id: int) -> Optional[Project]:
        with self._db.session_scope() as session:
            row = session.get(ProjectRow, project_id)
            return _project_from_row(row) if row else None

    def update_project(self, project: Project) -> Project:
        with self._db.session_scope() as session:
            row = session.get(ProjectRow, project.id)
            if row is None:
                raise NotFoundError(f"Project not found: {project.id}")
            for field in _PROJECT_FIELDS:
                setattr(row, field, getattr(project, field))
            row.updated_at = utcnow()
            session.flush()
            return _project_from_row(row)

    def delete_project(self, project_id: int) -> bool:
        with self._db.session_scope() as session:
            row = session.get(ProjectRow, project_id)
            if row is None:
                return False
            # Explicit delete so the cascade holds even where the
            # database doesn't enforce foreign keys.
            session.query(ExpenseRow).filter(
                ExpenseRow.project_id == project_id
            ).delete(synchronize_session=False)
            session.delete(row)
            return True

    def list_projects(
        self,
        status: Optional[ProjectStatus] = None,
        created_by: Optional[int] = None,
    ) -> list[Project]:
        with self._db.session_scope() as session:
            query = session.query(ProjectRow)
            if status is not None:
                query = query.filter(ProjectRow.status == status)
            if created_by is not None:
                query = query.filter(ProjectRow.created_by == created_by)
            rows = query.order_by(
                ProjectRow.created_at.desc(), ProjectRow.id.desc()
            ).all()
            return [_project_from_row(r) for r in rows]

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    def save_expense(self, expense: Expense) -> Expense:
        with self._db.session_scope() as session:
            if session.get(ProjectRow, expense.project_id) is None:
                raise NotFoundError(f"Project not found: {expense.project_id}")
            row = ExpenseRow(
                **{f: getattr(expense, f) for f in _EXPENSE_FIELDS},
                created_at=expense.created_at,
                updated_at=expense.updated_at,
            )
            session.add(row)
            session.flush()
            return _expense_from_row(row)

    def get_expense(self, expense_id: int) -> Optional[Expense]:
        with self._db.session_scope() as session:
            row = session.get(ExpenseRow, expense_id)
            return _expense_from_row(row) if row else None

    def update_expense(self, expense: Expense) -> Expense:
        with self._db.session_scope() as session:
            row = session.get(ExpenseRow, expense.id)
            if row is None:
                raise NotFoundError(f"Expense not found: {expense.id}")
            if session.get(ProjectRow, expense.project_id) is None:
                raise NotFoundError(f"Project not found: {expense.project_id}")
            for field in _EXPENSE_FIELDS:
                setattr(row, field, getattr(expense, field))
            row.updated_at = utcnow()
            session.flush()
            return _expense_from_row(row)

    def delete_expense(self, expense_id: int) -> bool:
        with self._db.session_scope() as session:
            row = session.get(ExpenseRow, expense_id)
            if row is None:
                return False
            session.delete(row)
            return True

    @staticmethod
    def _filtered(query: Query, expense_filter: Optional[ExpenseFilter]) -> Query:
        query = query.select_from(ExpenseRow)
        if expense_filter is None:
            return query
        if expense_filter.project_owner_id is not None:
            query = query.join(
                ProjectRow, ProjectRow.id == ExpenseRow.project_id
            ).filter(ProjectRow.created_by == expense_filter.project_owner_id)
        if expense_filter.project_id is not None:
            query = query.filter(ExpenseRow.project_id == expense_filter.project_id)
        if expense_filter.status is not None:
            query = query.filter(ExpenseRow.status == expense_filter.status)
        if expense_filter.category is not None:
            query = query.filter(ExpenseRow.category == expense_filter.category)
        if expense_filter.date_from is not None:
            query = query.filter(ExpenseRow.date >= expense_filter.date_from)
        if expense_filter.date_to is not None:
            query = query.filter(ExpenseRow.date <= expense_filter.date_to)
        return query

    def list_expenses(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> list[Expense]:
        with self._db.session_scope() as session:
            rows = (
                self._filtered(session.query(ExpenseRow), expense_filter)
                .order_by(ExpenseRow.date.desc(), ExpenseRow.id.desc())
                .all()
            )
            return [_expense_from_row(r) for r in rows]

    # -------------------------------------------------------------------------
    # Aggregation primitives
    # -------------------------------------------------------------------------

    def sum_expenses(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> Decimal:
        with self._db.session_scope() as session:
            total = self._filtered(
                session.query(func.sum(ExpenseRow.amount)), expense_filter
            ).scalar()
            return to_money(total)

    def totals_by_category(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> list[CategoryTotal]:
        with self._db.session_scope() as session:
            rows = (
                self._filtered(
                    session.query(
                        ExpenseRow.category,
                        func.sum(ExpenseRow.amount),
                        func.count(ExpenseRow.id),
                    ),
                    expense_filter,
                )
                .group_by(ExpenseRow.category)
                .all()
            )
            return [
                CategoryTotal(category=category, total_amount=to_money(total), count=count)
                for category, total, count in rows
            ]

    def _group_sum(self, key_expr, expense_filter) -> dict[int, Decimal]:
        with self._db.session_scope() as session:
            rows = (
                self._filtered(
                    session.query(key_expr, func.sum(ExpenseRow.amount)),
                    expense_filter,
                )
                .group_by(key_expr)
                .all()
            )
            return {int(key): to_money(total) for key, total in rows}

    def totals_by_month(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> dict[int, Decimal]:
        return self._group_sum(extract("month", ExpenseRow.date), expense_filter)

    def totals_by_year(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> dict[int, Decimal]:
        return self._group_sum(extract("year", ExpenseRow.date), expense_filter)

    def expense_totals_by_project(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> dict[int, Decimal]:
        return self._group_sum(ExpenseRow.project_id, expense_filter)

    def count_projects_by_status(
        self,
        created_by: Optional[int] = None,
    ) -> dict[ProjectStatus, int]:
        with self._db.session_scope() as session:
            query = session.query(ProjectRow.status, func.count(ProjectRow.id))
            if created_by is not None:
                query = query.filter(ProjectRow.created_by == created_by)
            rows = query.group_by(ProjectRow.status).all()
            return {ProjectStatus(status): count for status, count in rows}

    def sum_project_budgets(
        self,
        created_by: Optional[int] = None,
    ) -> Decimal:
        with self._db.session_scope() as session:
            query = session.query(func.sum(ProjectRow.total_budget))
            if created_by is not None:
                query = query.filter(ProjectRow.created_by == created_by)
            return to_money(query.scalar())


class SQLAuditStorage(AuditStorageInterface):
    """
    SQL implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, database: Optional[SQLDatabase] = None):
        self._db = database or SQLDatabase()

    @staticmethod
    def _row_to_event(row: AuditEventRow) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(row.event_id),
            timestamp=_utc(row.timestamp),
            event_type=AuditEventType(row.event_type),
            severity=AuditSeverity(row.severity),
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            actor_id=row.actor_id,
            description=row.description,
            details=json.loads(row.details_json) if row.details_json else {},
            error_message=row.error_message,
        )

    def append_event(self, event: AuditEvent) -> bool:
        with self._db.session_scope() as session:
            session.add(AuditEventRow(
                event_id=str(event.event_id),
                timestamp=event.timestamp,
                event_type=event.event_type.value,
                severity=event.severity.value,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                actor_id=event.actor_id,
                description=event.description,
                details_json=json.dumps(event.details, default=str) if event.details else None,
                error_message=event.error_message,
            ))
        return True

    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: int,
    ) -> list[AuditEvent]:
        with self._db.session_scope() as session:
            rows = (
                session.query(AuditEventRow)
                .filter(
                    AuditEventRow.entity_type == entity_type,
                    AuditEventRow.entity_id == entity_id,
                )
                .order_by(AuditEventRow.timestamp.asc())
                .all()
            )
            return [self._row_to_event(r) for r in rows]

    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        with self._db.session_scope() as session:
            rows = (
                session.query(AuditEventRow)
                .order_by(AuditEventRow.timestamp.desc())
                .limit(limit)
                .all()
            )
            return [self._row_to_event(r) for r in rows]
