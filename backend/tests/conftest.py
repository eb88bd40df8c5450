# backend/tests/conftest.py
"""
Pytest configuration for the private session backend.

Testing mode and every secret are set BEFORE any app import, so the
settings singleton is built for tests. Email delivery is patched globally;
no test may reach Resend or Stripe.
"""

import os

# CRITICAL: Set testing mode BEFORE any app imports!
os.environ["IS_TESTING"] = "true"
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["EMAIL_PROVIDER"] = "console"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_dummy"
os.environ["PORTAL_MANAGEMENT_EMAILS"] = "ops@example.com, finance@example.com"
os.environ["PORTAL_URL"] = "https://portal.example.com"

# CRITICAL: Mock Resend API globally to prevent real emails in ANY test
import unittest.mock

global_resend_mock = unittest.mock.patch("resend.Emails.send")
mocked_send = global_resend_mock.start()
mocked_send.return_value = {"id": "test-email-id"}

global_resend_batch_mock = unittest.mock.patch("resend.Batch.send")
mocked_batch_send = global_resend_batch_mock.start()
mocked_batch_send.return_value = {"data": [{"id": "test-email-id"}]}

from datetime import date, datetime, time, timezone
from typing import Any, Dict, Optional

from fastapi.testclient import TestClient
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import create_access_token
from app.core.enums import RoleName
from app.database import Base, get_db, get_session_factory
from app.main import fastapi_app as app
from app.models.availability import CoachAvailability
from app.models.private_session import PrivateSession, SessionStatus
from app.models.user import ParentStudentLink, User

# One in-memory database shared by every connection in a test
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
)

# Future slot used by request tests (the suite runs long before this date)
FUTURE_DATE = date(2030, 3, 12)


@pytest.fixture
def db() -> Session:
    """Fresh schema per test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session) -> TestClient:
    """TestClient bound to the test session; background jobs use the test engine."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ============================================================================
# Factories
# ============================================================================


@pytest.fixture
def make_user(db: Session):
    counter = {"n": 0}

    def _make(
        role: RoleName,
        name: Optional[str] = None,
        *,
        email: Optional[str] = None,
        timezone_name: Optional[str] = "America/Vancouver",
        preferences: Optional[Dict[str, Any]] = None,
        is_active: bool = True,
    ) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"{role.value}{counter['n']}@example.com",
            display_name=name or f"{role.value.title()} {counter['n']}",
            role=role.value,
            timezone=timezone_name,
            notification_preferences=preferences,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def admin(make_user) -> User:
    return make_user(RoleName.ADMIN, "Alex Admin", email="admin@example.com")


@pytest.fixture
def coach(make_user) -> User:
    return make_user(RoleName.COACH, "Casey Coach", email="coach@example.com")


@pytest.fixture
def other_coach(make_user) -> User:
    return make_user(RoleName.COACH, "Other Coach", email="other.coach@example.com")


@pytest.fixture
def ta(make_user) -> User:
    return make_user(RoleName.TA, "Taylor Assistant", email="ta@example.com")


@pytest.fixture
def student(make_user) -> User:
    return make_user(
        RoleName.STUDENT, "Sam Student", email="student@example.com", timezone_name="America/Toronto"
    )


@pytest.fixture
def other_student(make_user) -> User:
    return make_user(RoleName.STUDENT, "Other Student", email="other.student@example.com")


@pytest.fixture
def parent(make_user, student, db: Session) -> User:
    user = make_user(RoleName.PARENT, "Pat Parent", email="parent@example.com")
    db.add(ParentStudentLink(parent_id=user.id, student_id=student.id))
    db.commit()
    return user


@pytest.fixture
def make_slot(db: Session):
    def _make(
        coach: User,
        *,
        slot_date: date = FUTURE_DATE,
        start: time = time(16, 0),
        end: time = time(17, 0),
        tz: str = "America/Vancouver",
        is_private: bool = True,
    ) -> CoachAvailability:
        slot = CoachAvailability(
            coach_id=coach.id,
            slot_date=slot_date,
            start_time=start,
            end_time=end,
            timezone=tz,
            is_private=is_private,
        )
        db.add(slot)
        db.commit()
        return slot

    return _make


@pytest.fixture
def make_session(db: Session):
    """Insert a session row directly in any status."""

    def _make(
        coach: User,
        student: User,
        status: SessionStatus = SessionStatus.PENDING,
        *,
        session_date: date = date(2026, 1, 6),
        start: time = time(16, 0),
        end: time = time(17, 0),
        tz: str = "America/Vancouver",
        price_cad: Optional[float] = None,
        proposal: Optional[tuple] = None,
        proposed_by: Optional[User] = None,
        assistant: Optional[User] = None,
        availability: Optional[CoachAvailability] = None,
    ) -> PrivateSession:
        row = PrivateSession(
            coach_id=coach.id,
            student_id=student.id,
            assistant_id=assistant.id if assistant else None,
            availability_id=availability.id if availability else None,
            requested_date=session_date,
            requested_start_time=start,
            requested_end_time=end,
            timezone=tz,
            status=status.value,
            price_cad=price_cad,
        )
        if proposal is not None:
            row.proposed_date, row.proposed_start_time, row.proposed_end_time = proposal
            row.proposed_by = (proposed_by or coach).id
        db.add(row)
        db.commit()
        return row

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> Dict[str, str]:
        token = create_access_token({"sub": user.id})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 1, 2, 18, 0, tzinfo=timezone.utc)
