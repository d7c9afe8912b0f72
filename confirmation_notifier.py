"""Confirmation Notifier.

Tells the barber when a customer has confirmed attendance. The
``barber_notified`` latch is set once the send has completed, whatever the
gateway answered.
"""

from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

import crud
from config import settings
from logger_config import setup_logger
from push_gateway import PushGatewayClient
from reminders import confirmation_notice_content

logger = setup_logger(__name__, 'worker.log')


async def notify_confirmations(
    session_factory: Optional[sessionmaker],
    gateway: PushGatewayClient,
    batch_size: Optional[int] = None
) -> Optional[dict]:
    """Run one confirmation cycle.

    Returns:
        dict: ``checked``, ``notified`` and ``failed`` counts, or None when skipped
    """
    if session_factory is None:
        logger.warning("[CONFIRM] Store unavailable, skipping cycle")
        return None

    batch_size = batch_size or settings.CONFIRMATION_BATCH_SIZE
    db = session_factory()
    try:
        try:
            appointments = crud.get_unnotified_confirmations(db, batch_size)
        except SQLAlchemyError as e:
            logger.warning(f"[CONFIRM] Store query failed, skipping cycle: {e}")
            return None

        summary = {"checked": len(appointments), "notified": 0, "failed": 0}
        if not appointments:
            return summary

        try:
            with crud.atomic(db):
                for appointment in appointments:
                    title, message, data = confirmation_notice_content(appointment)
                    delivered = await gateway.send(appointment.barber_id, title, message, data=data)
                    if delivered:
                        summary["notified"] += 1
                    else:
                        summary["failed"] += 1
                        logger.warning(
                            f"[CONFIRM] Notice for appointment {appointment.id} was not accepted, "
                            f"latching anyway"
                        )
                    crud.set_latch(appointment, 'barber_notified')
        except SQLAlchemyError as e:
            logger.error(f"[CONFIRM] Latch update failed: {e}")
            return summary

        logger.info(
            f"[CONFIRM] checked={summary['checked']} notified={summary['notified']} "
            f"failed={summary['failed']}"
        )
        return summary
    finally:
        db.close()
