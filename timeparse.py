"""Appointment date/time resolution.

Appointments carry their slot as two display strings, ``date`` ("2024-01-20")
and ``time`` ("14:30"), written in one fixed UTC offset. Every scanner resolves
them through :func:`parse_appointment_instant` so the interpretation is
identical across tasks.
"""

from datetime import datetime, timezone, tzinfo
from typing import Optional

INVALID_DATE_TIME = "invalid_date_time"
INVALID_DATE_PARSE = "invalid_date_parse"

_TIME_FORMATS = ("%H:%M", "%H:%M:%S")


class AppointmentTimeError(ValueError):
    """Raised when an appointment's date/time cannot be resolved to an instant."""

    def __init__(self, reason: str, date: Optional[str], time: Optional[str]):
        self.reason = reason
        self.date = date
        self.time = time
        super().__init__(f"{reason}: date={date!r} time={time!r}")


def parse_appointment_instant(date, time, tz: tzinfo) -> datetime:
    """Resolve ``date`` + ``time`` written in ``tz`` to an aware UTC datetime.

    Raises:
        AppointmentTimeError: reason ``invalid_date_time`` when a field is
            missing or not a string, ``invalid_date_parse`` when it does not parse.
    """
    if not isinstance(date, str) or not isinstance(time, str) or not date.strip() or not time.strip():
        raise AppointmentTimeError(INVALID_DATE_TIME, date, time)

    day = date.strip()
    clock = time.strip()
    for fmt in _TIME_FORMATS:
        try:
            local = datetime.strptime(f"{day} {clock}", f"%Y-%m-%d {fmt}")
        except ValueError:
            continue
        return local.replace(tzinfo=tz).astimezone(timezone.utc)

    raise AppointmentTimeError(INVALID_DATE_PARSE, date, time)


def local_today(now: datetime, tz: tzinfo) -> str:
    """Calendar date of ``now`` in ``tz``, formatted like appointment ``date`` fields."""
    return as_utc(now).astimezone(tz).strftime("%Y-%m-%d")


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
