"""Pydantic schemas for the Appointment Reminder Service API.

Request bodies use the camelCase field names the mobile app sends
(userId, appointmentId, ...); snake_case names are accepted as well.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SendNotificationRequest(BaseModel):
    """Body of POST /send-notification (manual, immediate push)."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1, description="Push target identity")
    title: str = Field(..., min_length=1, description="Notification heading")
    message: str = Field(..., min_length=1, description="Notification body")
    buttons: Optional[List[Dict]] = Field(None, description="Optional interactive buttons")
    data: Optional[Dict] = Field(None, description="Optional structured payload")


class ScheduleNotificationRequest(BaseModel):
    """Body of POST /schedule-notification, called when an appointment is booked."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1, description="Customer push identity")
    appointment_id: str = Field(..., alias="appointmentId", min_length=1, description="Appointment ID")
    date: str = Field(..., min_length=1, description="Appointment date", examples=["2024-01-20"])
    time: str = Field(..., min_length=1, description="Appointment time", examples=["14:30"])


class NotificationJobResponse(BaseModel):
    """A queued or sent notification job."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    appointment_id: Optional[str] = None
    user_id: str
    title: str
    message: str
    kind: Optional[str] = None
    scheduled_at: datetime
    status: str
    sent_at: Optional[datetime] = None


class ScheduleNotificationResponse(BaseModel):
    success: bool = True
    message: str = "Notifications scheduled"
    jobs: List[NotificationJobResponse] = Field(default_factory=list)


class ReminderStatusResponse(BaseModel):
    """Reminder state of one appointment."""

    appointment_id: str
    reminder_scheduled: bool
    one_hour_reminder_sent: bool
    barber_notified: bool
    states: Dict[str, str] = Field(..., description="State per reminder kind")
    jobs: List[NotificationJobResponse] = Field(default_factory=list)
