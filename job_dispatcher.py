"""Job Dispatcher.

Polls the job store for pending notification jobs that are due, pushes
each one through the gateway and retires it as SENT. Every due job of a
cycle is retired in one atomic group whether or not the gateway accepted
it: a job gets at most one delivery attempt.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

import crud
from logger_config import setup_logger
from push_gateway import PushGatewayClient
from timeparse import utcnow

logger = setup_logger(__name__, 'worker.log')


async def dispatch_due_jobs(
    session_factory: Optional[sessionmaker],
    gateway: PushGatewayClient,
    now: Optional[datetime] = None
) -> Optional[dict]:
    """Run one dispatch cycle.

    Returns:
        dict: ``due``, ``sent`` (gateway accepted) and ``failed`` counts,
        or None when the cycle was skipped
    """
    if session_factory is None:
        logger.warning("[DISPATCH] Store unavailable, skipping cycle")
        return None

    now = now or utcnow()
    db = session_factory()
    try:
        try:
            jobs = crud.get_due_jobs(db, now)
        except SQLAlchemyError as e:
            logger.warning(f"[DISPATCH] Store query failed, skipping cycle: {e}")
            return None

        summary = {"due": len(jobs), "sent": 0, "failed": 0}
        if not jobs:
            logger.debug("[DISPATCH] No due jobs")
            return summary

        logger.info(f"[DISPATCH] Found {len(jobs)} pending job(s)")

        try:
            with crud.atomic(db):
                for job in jobs:
                    logger.info(f"[DISPATCH] Processing job {job.id} -> user {job.user_id}")
                    delivered = await gateway.send(
                        job.user_id, job.title, job.message, job.buttons, job.data
                    )
                    if delivered:
                        summary["sent"] += 1
                    else:
                        summary["failed"] += 1
                        logger.warning(f"[DISPATCH] Job {job.id} not accepted by gateway, retiring anyway")
                    crud.mark_job_sent(job, now)
        except SQLAlchemyError as e:
            logger.error(f"[DISPATCH] Batch update failed, jobs stay pending: {e}")
            return summary

        logger.info(
            f"[DISPATCH] Batch update completed: due={summary['due']} "
            f"sent={summary['sent']} failed={summary['failed']}"
        )
        return summary
    finally:
        db.close()
