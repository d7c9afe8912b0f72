"""FastAPI REST API server for the Appointment Reminder Service.

This module provides the HTTP surface next to the background worker:
health checks, a manual push endpoint and the booking-time scheduling
endpoint that queues the one-hour and thirty-minute reminder jobs.
"""

import sys

from fastapi import FastAPI, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import crud
import database
import schemas
from config import settings
from logger_config import setup_logger
from push_gateway import PushGatewayClient
from reminders import build_reminder_jobs, reminder_states
from timeparse import AppointmentTimeError, as_utc, parse_appointment_instant, utcnow

logger = setup_logger(__name__, 'api.log')

# Create FastAPI application
app = FastAPI(
    title="Appointment Reminder Service API",
    description="Push notification scheduling for barber appointments",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_gateway() -> PushGatewayClient:
    """Push gateway dependency."""
    return PushGatewayClient.from_settings()


def require_db(db=Depends(database.get_db)) -> Session:
    """Database session dependency that answers 503 while the store is unavailable."""
    if db is None:
        raise HTTPException(status_code=503, detail="Store unavailable")
    return db


def job_response(job) -> schemas.NotificationJobResponse:
    return schemas.NotificationJobResponse(
        id=job.id,
        appointment_id=job.appointment_id,
        user_id=job.user_id,
        title=job.title,
        message=job.message,
        kind=job.kind,
        scheduled_at=as_utc(job.scheduled_at),
        status=job.status.value,
        sent_at=as_utc(job.sent_at) if job.sent_at else None,
    )


@app.get("/")
def root():
    """Root endpoint - service information"""
    return {
        "service": "Appointment Reminder Service API",
        "version": "1.0.0",
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "send": "/send-notification",
            "schedule": "/schedule-notification"
        }
    }


@app.get("/health")
def health_check():
    """Health check endpoint for monitoring"""
    return {
        "status": "ok",
        "service": "notification-server",
        "url": settings.SERVER_URL,
        "database": "available" if database.get_session_factory() is not None else "unavailable"
    }


@app.post("/send-notification")
async def send_notification(
    request: schemas.SendNotificationRequest,
    gateway: PushGatewayClient = Depends(get_gateway)
):
    """Send a push notification right away.

    Request body example:
    ```json
    {"userId": "customer-42", "title": "Hello", "message": "See you soon"}
    ```
    """
    delivered = await gateway.send(
        request.user_id, request.title, request.message, request.buttons, request.data
    )
    if not delivered:
        raise HTTPException(status_code=500, detail="Failed to send notification")
    return {"success": True}


@app.post("/schedule-notification", response_model=schemas.ScheduleNotificationResponse)
def schedule_notification(
    request: schemas.ScheduleNotificationRequest,
    db: Session = Depends(require_db)
):
    """Queue the reminder jobs for a freshly booked appointment.

    Request body example:
    ```json
    {"userId": "customer-42", "appointmentId": "a1", "date": "2024-01-20", "time": "14:30"}
    ```

    Jobs whose lead time has already passed are not created, and neither are
    kinds already queued for the appointment. Only new jobs are returned.
    """
    try:
        instant = parse_appointment_instant(request.date, request.time, settings.appointment_tz)
    except AppointmentTimeError as e:
        raise HTTPException(status_code=400, detail=f"Invalid date format ({e.reason})")

    try:
        with crud.atomic(db):
            queued = {job.kind for job in crud.get_jobs_for_appointment(db, request.appointment_id)}
            jobs = [
                job for job in build_reminder_jobs(request.appointment_id, request.user_id, instant, utcnow())
                if job.kind not in queued
            ]
            crud.stage_jobs(db, jobs)
    except SQLAlchemyError as e:
        logger.error(f"[SCHEDULE] Scheduling failed for appointment {request.appointment_id}: {e}")
        raise HTTPException(status_code=500, detail="Scheduling failed")

    logger.info(f"[SCHEDULE] Created {len(jobs)} job(s) for appointment {request.appointment_id}")
    return schemas.ScheduleNotificationResponse(jobs=[job_response(job) for job in jobs])


@app.get("/appointments/{appointment_id}/reminders", response_model=schemas.ReminderStatusResponse)
def get_reminder_status(appointment_id: str, db: Session = Depends(require_db)):
    """Reminder latches, derived reminder states and queued jobs of one appointment."""
    appointment = crud.get_appointment(db, appointment_id)
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")

    jobs = crud.get_jobs_for_appointment(db, appointment_id)
    states = reminder_states(appointment, jobs)
    return schemas.ReminderStatusResponse(
        appointment_id=appointment.id,
        reminder_scheduled=appointment.reminder_scheduled,
        one_hour_reminder_sent=appointment.one_hour_reminder_sent,
        barber_notified=appointment.barber_notified,
        states={kind.value: state.value for kind, state in states.items()},
        jobs=[job_response(job) for job in jobs],
    )


if __name__ == "__main__":
    import uvicorn

    missing = settings.missing_required_settings()
    if missing:
        logger.critical(f"❌ Missing required configuration: {', '.join(missing)}")
        sys.exit(1)

    uvicorn.run(
        app,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level="info"
    )
