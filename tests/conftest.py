import os
from datetime import datetime, timedelta, timezone

# Must be set before portal.core.config builds its settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENABLE_CHANGE_NOTIFICATIONS", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from portal.core.database import Base, get_db
from portal.core.events import EventBus, event_bus
from portal.leave.service import seed_leave_types
from portal.main import app

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


class FrozenClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    seeding = TestingSessionLocal()
    try:
        seed_leave_types(seeding)
    finally:
        seeding.close()
    yield
    event_bus.clear()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    # Wednesday
    return FrozenClock(datetime(2024, 3, 6, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def events():
    bus = EventBus()
    received = []
    bus.subscribe("*", received.append)
    bus.received = received
    return bus


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def employee_headers(employee_id: str = "emp-1"):
    return {"X-User-ID": employee_id, "X-User-Role": "employee"}


def admin_headers(admin_id: str = "admin-1"):
    return {"X-User-ID": admin_id, "X-User-Role": "admin"}
