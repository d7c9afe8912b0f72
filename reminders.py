"""Reminder kinds, message templates and reminder state.

An appointment gets at most two queued reminders: one an hour before the
slot and one thirty minutes before. Which of them exist depends on the lead
time at the moment the appointment is first scanned.
"""

import enum
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from database import Appointment, JobStatusEnum, NotificationJob
from timeparse import as_utc


class ReminderKind(str, enum.Enum):
    ONE_HOUR = "one_hour"
    THIRTY_MINUTE = "thirty_minute"


class ReminderState(str, enum.Enum):
    """Lifecycle of one (appointment, reminder kind) pair."""
    UNSCHEDULED = "unscheduled"
    SCHEDULED = "scheduled"
    SENT = "sent"
    SKIPPED_TOO_LATE = "skipped_too_late"


LEAD_TIMES = {
    ReminderKind.ONE_HOUR: timedelta(minutes=60),
    ReminderKind.THIRTY_MINUTE: timedelta(minutes=30),
}

TEMPLATES = {
    ReminderKind.ONE_HOUR: (
        "⏰ Your appointment is in 1 hour",
        "Don't forget to get ready, your appointment is in 1 hour.",
    ),
    ReminderKind.THIRTY_MINUTE: (
        "✂️ Your appointment is coming up",
        "Your appointment is in 30 minutes!",
    ),
}

CONFIRM_BUTTON = {"id": "confirm", "text": "I'm coming"}


def plan_reminder_jobs(instant: datetime, now: datetime) -> List[Tuple[ReminderKind, datetime]]:
    """Decide which reminders still fit before ``instant``.

    A reminder kind is planned only when the appointment is strictly further
    away than its lead time. Returns (kind, scheduled_at) pairs in UTC.
    """
    instant = as_utc(instant)
    diff = instant - as_utc(now)
    return [
        (kind, instant - lead)
        for kind, lead in LEAD_TIMES.items()
        if diff > lead
    ]


def build_reminder_jobs(
    appointment_id: str,
    user_id: str,
    instant: datetime,
    now: datetime
) -> List[NotificationJob]:
    """Unsaved NotificationJob rows for the reminders that fit before ``instant``."""
    jobs = []
    for kind, scheduled_at in plan_reminder_jobs(instant, now):
        title, message = TEMPLATES[kind]
        jobs.append(NotificationJob(
            appointment_id=appointment_id,
            user_id=user_id,
            title=title,
            message=message,
            kind=kind.value,
            scheduled_at=scheduled_at,
            status=JobStatusEnum.PENDING,
            created_at=as_utc(now),
        ))
    return jobs


def direct_reminder_content(appointment: Appointment) -> Tuple[str, str, List[dict], dict]:
    """Title, body, buttons and data of the direct one-hour reminder."""
    title = TEMPLATES[ReminderKind.ONE_HOUR][0]
    when = appointment.appointment_time or appointment.time
    message = f"Your appointment at {when} starts within the hour. Tap to confirm you're coming."
    data = {"appointmentId": appointment.id, "type": "one_hour_reminder"}
    return title, message, [CONFIRM_BUTTON], data


def confirmation_notice_content(appointment: Appointment) -> Tuple[str, str, dict]:
    """Title, body and data of the notice sent to the barber."""
    who = appointment.customer_name or "Your customer"
    when = appointment.appointment_time or f"{appointment.date} {appointment.time}"
    data = {"appointmentId": appointment.id, "type": "customer_confirmed"}
    return "✅ Appointment confirmed", f"{who} confirmed attendance for {when}.", data


def reminder_states(
    appointment: Appointment,
    jobs: Iterable[NotificationJob]
) -> Dict[ReminderKind, ReminderState]:
    """Derive the state of each queued reminder kind for one appointment.

    Latches and jobs are the stored facts; this maps them onto
    unscheduled -> scheduled -> sent, or unscheduled -> skipped_too_late
    when the scanner latched the appointment without creating that job.
    """
    by_kind: Dict[str, Optional[NotificationJob]] = {}
    for job in jobs:
        if job.kind:
            by_kind[job.kind] = job

    states = {}
    for kind in ReminderKind:
        job = by_kind.get(kind.value)
        if job is not None:
            states[kind] = ReminderState.SENT if job.status == JobStatusEnum.SENT else ReminderState.SCHEDULED
        elif appointment.reminder_scheduled:
            states[kind] = ReminderState.SKIPPED_TOO_LATE
        else:
            states[kind] = ReminderState.UNSCHEDULED
    return states
