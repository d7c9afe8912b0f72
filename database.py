"""Database module for the Appointment Reminder Service.

This module defines SQLAlchemy models and store lifecycle management.
IMPORTANT: scheduled_at/sent_at/created_at are stored as UTC DateTime objects, NOT strings.
Appointment date/time stay strings because they are written by the booking app.
"""

from datetime import datetime, timezone
from typing import Optional
import enum
import uuid

from sqlalchemy import (
    create_engine, Column, String, Boolean, DateTime, JSON, Enum as SQLEnum, Index
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from config import settings
from logger_config import setup_logger

logger = setup_logger(__name__, 'database.log')

# SQLAlchemy Base
Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AppointmentStatusEnum(enum.Enum):
    """Appointment status values; only APPROVED appointments get reminders"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class JobStatusEnum(enum.Enum):
    """Notification job status values (pending -> sent, terminal)"""
    PENDING = "pending"
    SENT = "sent"


class Appointment(Base):
    """Appointment model - one booked service slot.

    The three latch columns (reminder_scheduled, one_hour_reminder_sent,
    barber_notified) only ever go from False to True, each written by one task.
    """

    __tablename__ = "appointments"

    id = Column(String, primary_key=True, default=_new_id, doc="Appointment ID")

    customer_id = Column(String, nullable=False, index=True, doc="Customer push identity")
    barber_id = Column(String, nullable=False, index=True, doc="Staff push identity")

    # Slot, as written by the booking app in the configured UTC offset
    date = Column(String, nullable=True, doc="Calendar date, YYYY-MM-DD")
    time = Column(String, nullable=True, doc="Clock time, HH:MM")

    status = Column(
        SQLEnum(AppointmentStatusEnum),
        default=AppointmentStatusEnum.PENDING,
        nullable=False,
        doc="Booking status"
    )

    # Latches
    reminder_scheduled = Column(Boolean, default=False, nullable=False, doc="Reminder jobs materialized")
    one_hour_reminder_sent = Column(Boolean, default=False, nullable=False, doc="Direct 1h reminder delivered")
    barber_notified = Column(Boolean, default=False, nullable=False, doc="Staff told about confirmation")

    # Set externally by the customer app
    customer_confirmed = Column(Boolean, default=False, nullable=False, doc="Customer confirmed attendance")

    # Display strings
    customer_name = Column(String, default="", doc="Customer display name")
    appointment_time = Column(String, default="", doc="Human readable slot")

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index('idx_appt_status_scheduled', 'status', 'reminder_scheduled'),
        Index('idx_appt_status_date', 'status', 'date'),
        Index('idx_appt_confirmed', 'customer_confirmed', 'barber_notified'),
    )

    def __repr__(self):
        return (
            f"<Appointment(id={self.id}, customer={self.customer_id}, "
            f"date={self.date}, time={self.time}, status={self.status.value})>"
        )


class NotificationJob(Base):
    """Notification job model - one scheduled push notification.

    Jobs are never deleted; sent jobs form the delivery audit trail.
    """

    __tablename__ = "notification_jobs"

    id = Column(String, primary_key=True, default=_new_id, doc="Job ID")
    appointment_id = Column(String, nullable=True, index=True, doc="Appointment back-reference")
    user_id = Column(String, nullable=False, doc="Push target identity")

    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    kind = Column(String, nullable=True, doc="Reminder kind (one_hour, thirty_minute)")

    scheduled_at = Column(DateTime(timezone=True), nullable=False, doc="When the job becomes due (UTC)")
    status = Column(SQLEnum(JobStatusEnum), default=JobStatusEnum.PENDING, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    buttons = Column(JSON, nullable=True, doc="Optional interactive buttons")
    data = Column(JSON, nullable=True, doc="Optional structured payload")

    __table_args__ = (
        Index('idx_job_status_scheduled', 'status', 'scheduled_at'),
    )

    def __repr__(self):
        return (
            f"<NotificationJob(id={self.id}, user={self.user_id}, kind={self.kind}, "
            f"scheduled_at={self.scheduled_at}, status={self.status.value})>"
        )


# Store lifecycle. SessionLocal stays None while the store is unavailable.
SessionLocal: Optional[sessionmaker] = None


def init_store(database_url: Optional[str] = None) -> Optional[sessionmaker]:
    """Connect to the store and create tables.

    Returns the session factory, or None if the store could not be reached.
    Never raises for connection problems; callers treat None as "unavailable".
    """
    global SessionLocal
    url = database_url or settings.DATABASE_URL
    try:
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False} if "sqlite" in url else {},
            echo=False  # Set to True for SQL debugging
        )
        Base.metadata.create_all(bind=engine)
    except (SQLAlchemyError, ImportError) as e:
        # ImportError: DBAPI driver for the URL is not installed
        logger.warning(f"⚠️ Store unavailable ({url.split('://')[0]}): {e!r}")
        SessionLocal = None
        return None

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    logger.info(f"Store initialized ({url.split('://')[0]})")
    return SessionLocal


def get_session_factory() -> Optional[sessionmaker]:
    """Current session factory, retrying initialization while unavailable."""
    if SessionLocal is None:
        return init_store()
    return SessionLocal


def get_db():
    """Database session dependency for FastAPI.

    Yields:
        Session, or None when the store is unavailable (endpoints answer 503)
    """
    factory = get_session_factory()
    if factory is None:
        yield None
        return
    db = factory()
    try:
        yield db
    finally:
        db.close()
