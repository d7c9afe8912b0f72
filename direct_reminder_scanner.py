"""Direct Reminder Scanner.

Low-latency backstop for the one-hour reminder that does not depend on jobs
having been queued. Each cycle looks at today's approved appointments that
have not had their one-hour reminder, sends it to every appointment starting
within the next hour and latches ``one_hour_reminder_sent`` only for the
sends the gateway accepted. Failed sends are retried next cycle.
"""

from datetime import datetime, tzinfo
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

import crud
from config import settings
from database import Appointment, AppointmentStatusEnum
from logger_config import setup_logger
from push_gateway import PushGatewayClient
from reminders import direct_reminder_content
from timeparse import AppointmentTimeError, as_utc, local_today, parse_appointment_instant, utcnow

logger = setup_logger(__name__, 'worker.log')

NOT_APPROVED = "not_approved"
TIME_NOT_IN_RANGE = "time_not_in_range"

WINDOW_MINUTES = 60


def in_reminder_window(minutes_remaining: float) -> bool:
    """True for 0 < minutes_remaining <= 60."""
    return 0 < minutes_remaining <= WINDOW_MINUTES


def evaluate_candidate(
    appointment: Appointment,
    now: datetime,
    tz: tzinfo
) -> Tuple[Optional[str], Optional[float]]:
    """Check one appointment against the direct reminder rules.

    Returns:
        (skip_reason, minutes_remaining); skip_reason is None when eligible
    """
    if appointment.status != AppointmentStatusEnum.APPROVED:
        return NOT_APPROVED, None

    try:
        instant = parse_appointment_instant(appointment.date, appointment.time, tz)
    except AppointmentTimeError as e:
        return e.reason, None

    minutes_remaining = (instant - as_utc(now)).total_seconds() / 60
    if not in_reminder_window(minutes_remaining):
        return TIME_NOT_IN_RANGE, minutes_remaining
    return None, minutes_remaining


async def scan_direct_reminders(
    session_factory: Optional[sessionmaker],
    gateway: PushGatewayClient,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None
) -> Optional[dict]:
    """Run one direct reminder cycle.

    Returns:
        dict: ``checked``, ``sent``, ``skipped``, ``failed`` and per-reason
        ``skip_reasons``, or None when the cycle was skipped
    """
    if session_factory is None:
        logger.warning("[DIRECT] Store unavailable, skipping cycle")
        return None

    now = now or utcnow()
    tz = tz or settings.appointment_tz
    today = local_today(now, tz)
    summary = {"checked": 0, "sent": 0, "skipped": 0, "failed": 0, "skip_reasons": {}}

    db = session_factory()
    try:
        try:
            candidates = crud.get_direct_reminder_candidates(db, today)
        except SQLAlchemyError as e:
            logger.warning(f"[DIRECT] Store query failed, skipping cycle: {e}")
            return None

        try:
            with crud.atomic(db):
                for appointment in candidates:
                    summary["checked"] += 1
                    # Status may have changed while earlier sends were awaited
                    db.refresh(appointment)
                    reason, minutes_remaining = evaluate_candidate(appointment, now, tz)
                    if reason is not None:
                        summary["skipped"] += 1
                        summary["skip_reasons"][reason] = summary["skip_reasons"].get(reason, 0) + 1
                        logger.debug(f"[DIRECT] Skipping appointment {appointment.id}: {reason}")
                        continue

                    title, message, buttons, data = direct_reminder_content(appointment)
                    delivered = await gateway.send(appointment.customer_id, title, message, buttons, data)
                    if not delivered:
                        summary["failed"] += 1
                        logger.warning(
                            f"[DIRECT] One-hour reminder for appointment {appointment.id} failed, "
                            f"will retry next cycle"
                        )
                        continue

                    crud.set_latch(appointment, 'one_hour_reminder_sent')
                    summary["sent"] += 1
                    logger.info(
                        f"[DIRECT] One-hour reminder sent for appointment {appointment.id} "
                        f"({minutes_remaining:.1f} min remaining)"
                    )
        except SQLAlchemyError as e:
            logger.error(f"[DIRECT] Latch update failed, reminders will be re-evaluated: {e}")

        logger.info(
            f"[DIRECT] Cycle summary: checked={summary['checked']} sent={summary['sent']} "
            f"skipped={summary['skipped']} failed={summary['failed']}"
        )
        return summary
    finally:
        db.close()
