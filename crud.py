"""Store operations for the Appointment Reminder Service.

This module provides queries and grouped writes for appointments and
notification jobs. Writes are staged on the session and applied by
:func:`atomic`, so one group commits or rolls back as a whole.
IMPORTANT: All datetime parameters are aware datetimes and are normalized to UTC.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from database import Appointment, AppointmentStatusEnum, NotificationJob, JobStatusEnum
from logger_config import setup_logger
from timeparse import as_utc

logger = setup_logger(__name__, 'crud.log')

LATCH_FIELDS = ('reminder_scheduled', 'one_hour_reminder_sent', 'barber_notified')


@contextmanager
def atomic(db: Session):
    """Apply everything staged inside the block as one all-or-nothing group.

    Usage:
        with atomic(db):
            db.add(job)
            set_latch(appointment, 'reminder_scheduled')

    Raises:
        SQLAlchemyError: On commit failure, after rolling back
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def set_latch(appointment: Appointment, field: str) -> bool:
    """Flip a latch column from False to True.

    Returns:
        bool: True if the latch changed, False if it was already set
    """
    if field not in LATCH_FIELDS:
        raise ValueError(f"{field} is not a latch field")
    if getattr(appointment, field):
        return False
    setattr(appointment, field, True)
    return True


def create_appointment(db: Session, appointment_data: dict) -> Appointment:
    """Insert an appointment record (used by seeding scripts and tests).

    Args:
        db: Database session
        appointment_data: Dictionary with appointment fields
            - customer_id, barber_id: str
            - date: "YYYY-MM-DD", time: "HH:MM"
            - status: Optional[str] (default "pending")
            - customer_name, appointment_time: Optional[str]

    Returns:
        Appointment: Created appointment
    """
    data = dict(appointment_data)
    status = data.pop('status', AppointmentStatusEnum.PENDING)
    if isinstance(status, str):
        status = AppointmentStatusEnum[status.upper()]

    appointment = Appointment(status=status, **data)
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment


def get_appointment(db: Session, appointment_id: str) -> Optional[Appointment]:
    return db.query(Appointment).filter(Appointment.id == appointment_id).first()


def get_unscheduled_appointments(db: Session) -> List[Appointment]:
    """Approved appointments whose reminder jobs have not been materialized."""
    return db.query(Appointment).filter(
        Appointment.status == AppointmentStatusEnum.APPROVED,
        Appointment.reminder_scheduled.is_(False)
    ).all()


def get_direct_reminder_candidates(db: Session, today: str) -> List[Appointment]:
    """Approved appointments on ``today`` without a delivered one-hour reminder.

    Args:
        db: Database session
        today: Calendar date string in the appointment offset ("YYYY-MM-DD")
    """
    return db.query(Appointment).filter(
        Appointment.status == AppointmentStatusEnum.APPROVED,
        Appointment.date == today,
        Appointment.one_hour_reminder_sent.is_(False)
    ).all()


def get_unnotified_confirmations(db: Session, limit: int) -> List[Appointment]:
    """Appointments the customer confirmed that the barber hasn't been told about."""
    return db.query(Appointment).filter(
        Appointment.customer_confirmed.is_(True),
        Appointment.barber_notified.is_(False)
    ).limit(limit).all()


def get_due_jobs(db: Session, now: datetime) -> List[NotificationJob]:
    """Pending jobs whose scheduled_at is at or before ``now``.

    Args:
        db: Database session
        now: Evaluation instant (aware)

    Returns:
        List[NotificationJob]: Due jobs, oldest first
    """
    return db.query(NotificationJob).filter(
        NotificationJob.status == JobStatusEnum.PENDING,
        NotificationJob.scheduled_at <= as_utc(now)
    ).order_by(NotificationJob.scheduled_at).all()


def get_jobs_for_appointment(db: Session, appointment_id: str) -> List[NotificationJob]:
    return db.query(NotificationJob).filter(
        NotificationJob.appointment_id == appointment_id
    ).order_by(NotificationJob.scheduled_at).all()


def stage_jobs(db: Session, jobs: Iterable[NotificationJob]) -> List[NotificationJob]:
    """Stage new jobs in the current group; nothing is written until commit."""
    staged = []
    for job in jobs:
        job.scheduled_at = as_utc(job.scheduled_at)
        if job.status is None:
            job.status = JobStatusEnum.PENDING
        db.add(job)
        staged.append(job)
    return staged


def mark_job_sent(job: NotificationJob, now: datetime) -> None:
    """Move a job to its terminal SENT state (staged, not committed)."""
    if job.status == JobStatusEnum.SENT:
        return
    job.status = JobStatusEnum.SENT
    job.sent_at = as_utc(now)
