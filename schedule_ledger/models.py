from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declared_attr, relationship
from sqlalchemy.sql import func

from .config import DEFAULT_TIMEZONE
from .database import Base

# Appointment statuses
APPOINTMENT_SCHEDULED = "scheduled"
APPOINTMENT_COMPLETED = "completed"
APPOINTMENT_CANCELLED = "cancelled"
APPOINTMENT_STATUSES = (APPOINTMENT_SCHEDULED, APPOINTMENT_COMPLETED, APPOINTMENT_CANCELLED)
# Occurrences in these states are never touched by re-materialization
FROZEN_APPOINTMENT_STATUSES = (APPOINTMENT_COMPLETED, APPOINTMENT_CANCELLED)

# Financial entry kinds and statuses
ENTRY_REVENUE = "revenue"
ENTRY_EXPENSE = "expense"
ENTRY_EXPECTED = "expected"
ENTRY_CONFIRMED = "confirmed"


class User(Base):
    """Business owner; every other row is scoped by user_id"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    auth_uid = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), nullable=True)
    full_name = Column(String(255), nullable=True)
    # IANA zone used to decide what "today" is for this owner
    timezone = Column(String(64), default=DEFAULT_TIMEZONE, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    clients = relationship("Client", back_populates="user")
    recurring_rules = relationship("RecurringRule", back_populates="user")


class Client(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    is_recurring = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="clients")
    appointments = relationship(
        "Appointment", back_populates="client", cascade="all, delete-orphan"
    )
    recurring_rules = relationship("RecurringRule", back_populates="client")


class RecurringRule(Base):
    """Declarative weekly schedule for a client's recurring appointments"""

    __tablename__ = "recurring_rules"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # Nullable so a rule survives (deactivated) after its client is deleted
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(255), default="Recurring", nullable=False)
    weekdays = Column(JSON, nullable=False, default=list)  # [0..6], 0 = Sunday
    time_local = Column(String(5), nullable=False)  # HH:MM
    timezone = Column(String(64), default=DEFAULT_TIMEZONE, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    interval_weeks = Column(Integer, default=1, nullable=False)
    amount = Column(Float, default=0, nullable=False)
    active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="recurring_rules")
    client = relationship("Client", back_populates="recurring_rules")
    appointments = relationship("Appointment", back_populates="recurring_rule")


class Appointment(Base):
    """Concrete appointment, either manual or materialized from a rule"""

    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    # Null for manually created, non-recurring appointments
    recurring_rule_id = Column(Integer, ForeignKey("recurring_rules.id"), nullable=True)
    title = Column(String(255), nullable=True)
    date = Column(Date, nullable=False)
    time = Column(String(5), nullable=True)  # HH:MM
    amount = Column(Float, default=0, nullable=False)
    # Status workflow: scheduled → completed | cancelled
    status = Column(String(20), default=APPOINTMENT_SCHEDULED, nullable=False, index=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client", back_populates="appointments")
    recurring_rule = relationship("RecurringRule", back_populates="appointments")

    __table_args__ = (
        Index("ix_appointments_rule_date", "recurring_rule_id", "date"),
        Index("ix_appointments_user_date", "user_id", "date"),
    )


class SourceRecordMixin:
    """Columns shared by expenses and revenues"""

    id = Column(Integer, primary_key=True, index=True)

    @declared_attr
    def user_id(cls):
        return Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    amount = Column(Float, nullable=False)
    description = Column(String(255), nullable=False)
    category_tag = Column(String(100), nullable=True)
    competence_date = Column(Date, nullable=False)
    is_recurring = Column(Boolean, default=False, nullable=False)
    # {"kind": "daily"|"weekly"|"monthly", ...} - see domain.recurrence.schemas
    recurrence = Column(JSON, nullable=True)
    # Legacy monthly-on-competence-day shape
    is_fixed_type = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Expense(SourceRecordMixin, Base):
    __tablename__ = "expenses"

    ENTRY_KIND = ENTRY_EXPENSE


class Revenue(SourceRecordMixin, Base):
    __tablename__ = "revenues"

    ENTRY_KIND = ENTRY_REVENUE
    payment_method = Column(String(50), nullable=True)


class FinancialEntry(Base):
    """
    One month's amount for one source record (or a single confirmed entry).
    The note is the only link back to the source record.
    """

    __tablename__ = "financial_entries"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    kind = Column(String(20), nullable=False)  # revenue, expense
    status = Column(String(20), default=ENTRY_EXPECTED, nullable=False)  # expected, confirmed
    amount = Column(Float, nullable=False)
    due_date = Column(Date, nullable=False)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (Index("ix_financial_entries_upsert", "user_id", "kind", "due_date"),)


SOURCE_RECORD_MODELS = {ENTRY_EXPENSE: Expense, ENTRY_REVENUE: Revenue}
