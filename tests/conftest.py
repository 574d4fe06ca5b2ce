"""Shared test fixtures and helpers."""

import os

# Configure before any app module reads the environment
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

from datetime import date, datetime
from fnmatch import fnmatch
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from app import models_google_calendar  # noqa: F401
from app.auth import get_current_user
from app.database import Base, SessionLocal, engine
from app.models import Booking, Client, Service, User, UserRole

# 2030-07-01 is a Monday; far enough ahead that no slot is in the past
MONDAY = date(2030, 7, 1)
SUNDAY = date(2030, 6, 30)
SATURDAY = date(2030, 7, 6)


def at(day: date, hhmm: str) -> datetime:
    """Naive UTC datetime on day at HH:MM"""
    hours, minutes = hhmm.split(":")
    return datetime(day.year, day.month, day.day, int(hours), int(minutes))


def iso(day: date, hhmm: str) -> str:
    return at(day, hhmm).isoformat() + "Z"


def make_booking(
    db,
    host: User,
    client: Client,
    start: datetime,
    end: datetime,
    status: str = "CONFIRMED",
    title: str = "Site visit",
    google_event_id: Optional[str] = None,
) -> Booking:
    booking = Booking(
        host_id=host.id,
        client_id=client.id,
        created_by=host.id,
        title=title,
        start_time=start,
        end_time=end,
        duration=int((end - start).total_seconds() // 60),
        status=status,
        attendees=[],
        google_event_id=google_event_id,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


def week_payload(active=(1, 2, 3, 4, 5), start="09:00", end="17:00") -> list[dict]:
    return [
        {"dayOfWeek": day, "startTime": start, "endTime": end, "isActive": day in active}
        for day in range(7)
    ]


class FakeRedis:
    """In-memory stand-in for the redis-py calls the cache makes"""

    def __init__(self):
        self.values: dict[str, str] = {}
        self.sets: dict[str, set] = {}

    def ping(self):
        return True

    def get(self, key):
        return self.values.get(key)

    def setex(self, key, ttl, value):
        self.values[key] = value
        return True

    def sadd(self, key, *members):
        self.sets.setdefault(key, set()).update(members)
        return len(members)

    def smembers(self, key):
        return set(self.sets.get(key, set()))

    def expire(self, key, ttl):
        return key in self.sets or key in self.values

    def delete(self, *keys):
        deleted = 0
        for key in keys:
            if self.values.pop(key, None) is not None:
                deleted += 1
            if self.sets.pop(key, None) is not None:
                deleted += 1
        return deleted

    def keys(self, pattern="*"):
        return [k for k in list(self.values) + list(self.sets) if fnmatch(k, pattern)]

    def info(self):
        return {"used_memory_human": "1K", "connected_clients": 1, "keyspace_hits": 0, "keyspace_misses": 0}


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def manager(db):
    user = User(
        firebase_uid="uid-manager",
        email="manager@example.com",
        full_name="Morgan Manager",
        role=UserRole.SERVICE_MANAGER.value,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def host(db):
    user = User(
        firebase_uid="uid-host",
        email="host@example.com",
        full_name="Harper Host",
        role=UserRole.TEAM_MEMBER.value,
        timezone="UTC",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def client_record(db):
    client = Client(business_name="Acme Offices", contact_name="Casey", email="casey@acme.example")
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


@pytest.fixture
def service_record(db):
    service = Service(name="Deep clean", duration_minutes=60, price=120.0)
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def login():
    """Call login(user) to authenticate API requests as that user"""
    from app.main import app

    def _login(user: User):
        app.dependency_overrides[get_current_user] = lambda: user
        return user

    yield _login
    app.dependency_overrides.clear()


@pytest.fixture
def api(db, manager, login):
    """TestClient authenticated as the service manager"""
    from app.main import app

    login(manager)
    with TestClient(app) as test_client:
        yield test_client


def booking_body(host: User, client: Client, day: date = MONDAY, start="10:00", end="11:00", **extra) -> dict:
    body = {
        "title": "Site visit",
        "clientId": client.id,
        "hostId": host.id,
        "startTime": iso(day, start),
        "endTime": iso(day, end),
    }
    body.update(extra)
    return body
