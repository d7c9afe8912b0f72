"""
Pytest configuration and fixtures
"""
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import crud
from database import Base, NotificationJob

# Appointments are written in UTC+03:00; NOW is 12:00 local on 2026-10-17
TZ = timezone(timedelta(hours=3))
NOW = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)
TODAY = "2026-10-17"


def slot(now: datetime, minutes: float):
    """Local (date, time) strings of an appointment ``minutes`` after ``now``."""
    local = (now + timedelta(minutes=minutes)).astimezone(TZ)
    return local.strftime("%Y-%m-%d"), local.strftime("%H:%M")


@pytest.fixture(scope="function")
def session_factory():
    """Session factory bound to a fresh in-memory database shared by all sessions"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    """Session for arranging and inspecting test data"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_appointment(db):
    """Create an approved appointment ``minutes_ahead`` of NOW"""
    counter = {"n": 0}

    def _make(minutes_ahead=120, now=NOW, **overrides):
        counter["n"] += 1
        date, time = slot(now, minutes_ahead)
        data = {
            "customer_id": f"customer-{counter['n']}",
            "barber_id": f"barber-{counter['n']}",
            "date": date,
            "time": time,
            "status": "approved",
            "customer_name": f"Customer {counter['n']}",
            "appointment_time": time,
        }
        data.update(overrides)
        return crud.create_appointment(db, data)

    return _make


@pytest.fixture
def make_job(db):
    """Create a pending notification job"""

    def _make(scheduled_at, **overrides):
        data = {
            "appointment_id": "appt-1",
            "user_id": "customer-1",
            "title": "Title",
            "message": "Message",
            "scheduled_at": scheduled_at,
        }
        data.update(overrides)
        job = crud.stage_jobs(db, [NotificationJob(**data)])[0]
        db.commit()
        db.refresh(job)
        return job

    return _make


@pytest.fixture
def gateway():
    """Push gateway double that accepts every notification"""
    fake = AsyncMock()
    fake.send.return_value = True
    return fake


@pytest.fixture
def failing_gateway():
    """Push gateway double that rejects every notification"""
    fake = AsyncMock()
    fake.send.return_value = False
    return fake


@pytest.fixture
def fail_next_commit(monkeypatch):
    """Make the next grouped write roll back with a store error; later ones commit"""
    real_atomic = crud.atomic
    state = {"failures": 0}

    @contextmanager
    def flaky_atomic(db):
        if state["failures"]:
            with real_atomic(db):
                yield db
            return
        state["failures"] += 1
        yield db
        db.rollback()
        raise SQLAlchemyError("database is locked")

    monkeypatch.setattr(crud, "atomic", flaky_atomic)
    return state


def reload(session_factory, model, object_id):
    """Fetch a fresh copy of a row through a new session"""
    session = session_factory()
    try:
        return session.get(model, object_id)
    finally:
        session.close()


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
