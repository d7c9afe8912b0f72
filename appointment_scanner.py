"""Appointment Scanner.

Turns approved appointments into queued notification jobs, once per
appointment. For each approved appointment that is not yet latched as
``reminder_scheduled``:

- appointments further away than 60 minutes get a one-hour job
- appointments further away than 30 minutes get a thirty-minute job
- the latch is set either way, so an appointment first seen with 30 minutes
  or less to go never gets a queued reminder

Appointments whose date/time does not parse are skipped and left unlatched,
so they are looked at again next cycle.
"""

from datetime import datetime, tzinfo
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

import crud
from config import settings
from logger_config import setup_logger
from reminders import build_reminder_jobs
from timeparse import AppointmentTimeError, parse_appointment_instant, utcnow

logger = setup_logger(__name__, 'worker.log')


def scan_appointments(
    session_factory: Optional[sessionmaker],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None
) -> Optional[dict]:
    """Run one scan cycle.

    Args:
        session_factory: Store session factory, None when the store is unavailable
        now: Evaluation instant (defaults to the current UTC time)
        tz: Offset appointment date/time fields are written in

    Returns:
        dict: Cycle summary, or None when the cycle was skipped
    """
    if session_factory is None:
        logger.warning("[SCANNER] Store unavailable, skipping cycle")
        return None

    now = now or utcnow()
    tz = tz or settings.appointment_tz
    summary = {"checked": 0, "scheduled": 0, "jobs_created": 0, "skipped": 0, "failed": 0}

    db = session_factory()
    try:
        try:
            appointments = crud.get_unscheduled_appointments(db)
        except SQLAlchemyError as e:
            logger.warning(f"[SCANNER] Store query failed, skipping cycle: {e}")
            return None

        # Ids captured up front; a rolled back group expires the loaded rows
        for appointment, appointment_id in [(a, a.id) for a in appointments]:
            summary["checked"] += 1
            try:
                try:
                    instant = parse_appointment_instant(appointment.date, appointment.time, tz)
                except AppointmentTimeError as e:
                    summary["skipped"] += 1
                    logger.warning(
                        f"[SCANNER] Skipping appointment {appointment_id} ({e.reason}): "
                        f"date={e.date!r} time={e.time!r}"
                    )
                    continue

                # Jobs enqueued at booking time are not created twice
                queued = {job.kind for job in crud.get_jobs_for_appointment(db, appointment_id)}
                jobs = [
                    job for job in build_reminder_jobs(appointment_id, appointment.customer_id, instant, now)
                    if job.kind not in queued
                ]

                # Jobs and latch for one appointment commit together
                with crud.atomic(db):
                    crud.stage_jobs(db, jobs)
                    crud.set_latch(appointment, 'reminder_scheduled')

            except SQLAlchemyError as e:
                summary["failed"] += 1
                logger.error(f"[SCANNER] Could not schedule appointment {appointment_id}: {e}")
                continue

            summary["scheduled"] += 1
            summary["jobs_created"] += len(jobs)
            if jobs:
                logger.info(f"[SCANNER] Created {len(jobs)} job(s) for appointment {appointment_id}")
            else:
                logger.info(f"[SCANNER] Appointment {appointment_id} latched without new reminder jobs")
    finally:
        db.close()

    if summary["checked"]:
        logger.info(
            f"[SCANNER] checked={summary['checked']} scheduled={summary['scheduled']} "
            f"jobs={summary['jobs_created']} skipped={summary['skipped']} failed={summary['failed']}"
        )
    return summary
