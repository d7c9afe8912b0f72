"""Background Worker for the Appointment Reminder Service.

This module runs the periodic reminder tasks:

- Appointment Scanner: materializes reminder jobs (every SCANNER_INTERVAL seconds)
- Confirmation Notifier: tells barbers about confirmed appointments (same period)
- Job Dispatcher: sends due jobs (every DISPATCHER_INTERVAL seconds)
- Direct Reminder Scanner: one-hour reminders straight from appointments
  (every DIRECT_REMINDER_INTERVAL seconds)

Each task runs in its own loop and awaits its cycle before sleeping, so a
task never overlaps its own previous run. Errors inside a cycle are logged
and the loop carries on; an unavailable store turns a cycle into a no-op.
"""

import asyncio
import signal
import sys
from typing import Awaitable, Callable, Optional

import database
from appointment_scanner import scan_appointments
from confirmation_notifier import notify_confirmations
from config import settings
from direct_reminder_scanner import scan_direct_reminders
from job_dispatcher import dispatch_due_jobs
from logger_config import setup_logger
from push_gateway import PushGatewayClient

# Configure logging
logger = setup_logger(__name__, 'worker.log')

# Global flag for graceful shutdown
shutdown_requested = False


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    global shutdown_requested
    logger.info(f"Received signal {signum}, initiating graceful shutdown...")
    shutdown_requested = True


async def run_periodic(
    name: str,
    interval: int,
    cycle: Callable[[], Awaitable[Optional[dict]]],
    max_iterations: Optional[int] = None
):
    """Run ``cycle`` every ``interval`` seconds until shutdown.

    Args:
        name: Task name used in log lines
        interval: Seconds to sleep after each completed cycle
        cycle: Zero-argument coroutine function running one cycle
        max_iterations: Stop after this many cycles (None = run until shutdown)
    """
    logger.info(f"[{name}] started, interval {interval}s")
    iteration = 0
    while not shutdown_requested:
        iteration += 1
        try:
            await cycle()
        except Exception as e:
            logger.error(f"[{name}] Error in iteration {iteration}: {str(e)}", exc_info=True)

        if max_iterations is not None and iteration >= max_iterations:
            break

        # Break sleep into 1-second intervals to allow quick shutdown
        for _ in range(interval):
            if shutdown_requested:
                break
            await asyncio.sleep(1)

    logger.info(f"[{name}] stopped after {iteration} iteration(s)")


def build_tasks(gateway: PushGatewayClient) -> dict:
    """Cycle coroutines keyed by task name, each resolving the store per tick."""

    async def scanner_cycle():
        return scan_appointments(database.get_session_factory())

    async def confirmation_cycle():
        return await notify_confirmations(database.get_session_factory(), gateway)

    async def dispatcher_cycle():
        return await dispatch_due_jobs(database.get_session_factory(), gateway)

    async def direct_cycle():
        return await scan_direct_reminders(database.get_session_factory(), gateway)

    return {
        "SCANNER": (settings.SCANNER_INTERVAL, scanner_cycle),
        "CONFIRM": (settings.SCANNER_INTERVAL, confirmation_cycle),
        "DISPATCH": (settings.DISPATCHER_INTERVAL, dispatcher_cycle),
        "DIRECT": (settings.DIRECT_REMINDER_INTERVAL, direct_cycle),
    }


async def worker_loop():
    """Start every periodic task and wait for all of them to stop."""
    logger.info("Background worker started")
    logger.info(f"Worker enabled: {settings.WORKER_ENABLED}")
    logger.info(f"Push gateway URL: {settings.PUSH_GATEWAY_URL}")
    logger.info(f"Appointment UTC offset: {settings.APPOINTMENT_UTC_OFFSET_MINUTES} minutes")

    if not settings.WORKER_ENABLED:
        logger.warning("Worker is disabled in configuration. Exiting.")
        return

    if database.init_store() is None:
        logger.warning("⚠️ Store not available at startup. Tasks will retry every tick.")

    gateway = PushGatewayClient.from_settings()
    tasks = build_tasks(gateway)
    await asyncio.gather(*(
        run_periodic(name, interval, cycle)
        for name, (interval, cycle) in tasks.items()
    ))

    logger.info("Background worker shutting down gracefully")


def main():
    """Main entry point for the background worker."""
    # Register signal handlers for graceful shutdown
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    logger.info("=" * 60)
    logger.info("Appointment Reminder Service - Background Worker")
    logger.info("=" * 60)

    missing = settings.missing_required_settings()
    if missing:
        logger.critical(f"❌ Missing required configuration: {', '.join(missing)}")
        sys.exit(1)

    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        logger.error(f"Fatal error in background worker: {str(e)}", exc_info=True)
        sys.exit(1)

    logger.info("Background worker stopped")
    sys.exit(0)


if __name__ == "__main__":
    main()
