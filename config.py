"""Configuration module for the Appointment Reminder Service.

This module provides configuration settings using Pydantic Settings.
Environment variables can be used to override default values.
"""

from datetime import timedelta, timezone
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings for the Appointment Reminder Service.

    All settings can be overridden via environment variables.
    Example: export ONESIGNAL_APP_ID="..."
    """

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./appointments.db"
    """Database connection URL. Default: SQLite file in current directory"""

    # API Server Configuration
    API_HOST: str = "0.0.0.0"
    """API server host address"""

    API_PORT: int = 3000
    """API server port"""

    SERVER_URL: str = "http://localhost:3000"
    """Public URL reported by the health endpoint"""

    # Push Gateway Configuration
    ONESIGNAL_APP_ID: str = ""
    """OneSignal application identifier (required)"""

    ONESIGNAL_REST_API_KEY: str = ""
    """OneSignal REST API key sent as the Authorization credential (required)"""

    PUSH_GATEWAY_URL: str = "https://onesignal.com/api/v1/notifications"
    """Notification endpoint of the push gateway"""

    PUSH_ACCENT_COLOR: str = "FF000000"
    """Android accent color (ARGB hex) attached to every push"""

    # Appointment time handling
    APPOINTMENT_UTC_OFFSET_MINUTES: int = 180
    """Fixed UTC offset of appointment date/time fields (default: UTC+03:00)"""

    # Background Worker Configuration
    WORKER_ENABLED: bool = True
    """Enable/disable the periodic reminder tasks"""

    SCANNER_INTERVAL: int = 300
    """Seconds between appointment scans and confirmation notices"""

    DISPATCHER_INTERVAL: int = 60
    """Seconds between notification job dispatch cycles"""

    DIRECT_REMINDER_INTERVAL: int = 60
    """Seconds between direct one-hour reminder scans"""

    CONFIRMATION_BATCH_SIZE: int = 20
    """Maximum confirmed appointments handled per confirmation cycle"""

    # Logging
    LOG_LEVEL: str = "INFO"
    """Log level for service loggers"""

    LOG_DIR: str = "logs"
    """Directory for rotating log files, relative to the service directory"""

    class Config:
        """Pydantic config"""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @property
    def appointment_tz(self) -> timezone:
        """Fixed-offset timezone that appointment date/time fields are written in."""
        return timezone(timedelta(minutes=self.APPOINTMENT_UTC_OFFSET_MINUTES))

    def missing_required_settings(self) -> List[str]:
        """Names of required credentials that are not configured."""
        required = ("ONESIGNAL_APP_ID", "ONESIGNAL_REST_API_KEY")
        return [name for name in required if not getattr(self, name)]


# Global settings instance
settings = Settings()
