"""Test fixtures for the barbershop booking API."""

import os
from datetime import date, datetime, timedelta

import pytest

# Set test environment before importing app modules
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("RUN_CLEANUP_SCHEDULER", "0")

from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine, select

from barbershop.auth import create_access_token, hash_password
from barbershop.cache import Cache
from barbershop.db import get_session, init_db
from barbershop.main import app
from barbershop.models import Booking, BookingStatus, Client, User
from barbershop.notifications import DeliveryResult, Notifier, get_notifier
from barbershop.services.catalog import ServiceCatalog, get_catalog


class FakeNotifier(Notifier):
    """Renders every email like the real notifier but keeps it in memory."""

    def __init__(self):
        self.outbox = []
        self.fail = False

    def deliver(self, to_addr, subject, html):
        if self.fail:
            return DeliveryResult(success=False, error="smtp unavailable")
        self.outbox.append({"to": to_addr, "subject": subject, "html": html})
        return DeliveryResult(success=True)

    def subjects(self):
        return [m["subject"] for m in self.outbox]


def next_weekday(weekday: int, today: date = None) -> date:
    """First date strictly after ``today`` falling on ``weekday`` (0=Mon)."""
    today = today or date.today()
    days_ahead = (weekday - today.weekday()) % 7 or 7
    return today + timedelta(days=days_ahead)


@pytest.fixture
def engine():
    """Fresh in-memory database with the default services."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def catalog():
    return ServiceCatalog(Cache(ttl=60))


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def now():
    return datetime.now().replace(microsecond=0)


@pytest.fixture
def tuesday():
    return next_weekday(1)


@pytest.fixture
def make_booking(session):
    """Insert a booking (and its client) directly."""

    def _make(
        day,
        time,
        service_id=1,
        status=BookingStatus.pending,
        verified=True,
        email="ana@example.com",
        created_at=None,
    ):
        client = session.exec(select(Client).where(Client.email == email)).first()
        if client is None:
            client = Client(email=email, name="Ana Pop", phone_number="0712345678")
        client.total_bookings += 1
        session.add(client)
        session.commit()
        session.refresh(client)

        booking = Booking(
            client_id=client.id,
            client_name=client.name,
            phone_number=client.phone_number,
            email=email,
            service_id=service_id,
            date=day,
            time=time,
            status=status,
            verified=verified,
            verification_code=None if verified else "123456",
            created_at=created_at or datetime.now(),
        )
        session.add(booking)
        session.commit()
        session.refresh(booking)
        return booking

    return _make


@pytest.fixture
def api_client(engine, catalog, notifier):
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


def _staff_headers(session, email, role):
    session.add(User(email=email, password_hash=hash_password("barber-pass-123"), role=role))
    session.commit()
    token = create_access_token({"sub": email, "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(session):
    return _staff_headers(session, "admin@barbershop.test", "admin")


@pytest.fixture
def barber_headers(session):
    return _staff_headers(session, "barber@barbershop.test", "barber")
