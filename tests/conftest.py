import os

# Must be set before sportslot reads its settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["EXPIRY_WATCHER_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["TIMEZONE"] = "Asia/Bangkok"

import itertools
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from helpers import DAY, at
from sportslot.core.deps import get_db, get_now
from sportslot.db.base import Base
from sportslot.main import create_app
from sportslot.models.booking import Booking, BookingKind, BookingParticipant, BookingStatus
from sportslot.models.court import Court
from sportslot.models.user import User
from sportslot.services import conflict_service
from sportslot.services.settings_service import PolicyStore

# Import models so Base.metadata is populated for create_all.
import sportslot.models  # noqa: F401


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT to work
    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store() -> PolicyStore:
    # Zero TTL: every read goes to the table
    return PolicyStore(ttl_seconds=0)


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(*, role: str = "user", points: int = 100, code: str | None = "", **kwargs) -> User:
        n = next(counter)
        user = User(
            email=f"user{n}@example.com",
            first_name=kwargs.pop("first_name", f"First{n}"),
            last_name=kwargs.pop("last_name", f"Last{n}"),
            student_id=kwargs.pop("student_id", f"6500{n:04d}"),
            user_code=f"CODE{n:02d}" if code == "" else code,
            role=role,
            is_active=kwargs.pop("is_active", True),
            is_email_verified=kwargs.pop("is_email_verified", True),
            points=points,
            **kwargs,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_court(db):
    def _make(name: str = "Badminton 1", category: str = "badminton", **kwargs) -> Court:
        court = Court(name=name, category=category, **kwargs)
        db.add(court)
        db.commit()
        return court

    return _make


@pytest.fixture
def make_booking(db):
    """Insert a booking row directly, bypassing creation rules."""

    def _make(
        owner: User,
        court: Court,
        *,
        date: str = DAY,
        time_slots: list[str] | None = None,
        status: str = BookingStatus.PENDING,
        participants: list[User] = (),
        booking_kind: str = BookingKind.REGULAR,
        created_at: datetime | None = None,
        claim: bool = True,
        **kwargs,
    ) -> Booking:
        booking = Booking(
            owner_id=owner.id,
            owner_name=owner.display_name,
            court_id=court.id,
            court_name=court.name,
            date=date,
            time_slots=list(time_slots or ["09:00-10:00"]),
            status=status,
            booking_kind=booking_kind,
            required_players=court.effective_required_players,
            created_at=created_at or at(7).astimezone(timezone.utc),
            **kwargs,
        )
        booking.participants = [
            BookingParticipant(user_id=u.id, user_code=u.user_code or "", user_name=u.display_name) for u in participants
        ]
        db.add(booking)
        db.flush()
        if claim and status not in BookingStatus.RELEASED:
            conflict_service.add_claims(db, booking)
        db.commit()
        return booking

    return _make


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> Clock:
    return Clock(at(8))


@pytest.fixture
def app(db, session_factory, clock):
    app = create_app(session_factory=session_factory)

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_now] = lambda: clock.now
    return app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
