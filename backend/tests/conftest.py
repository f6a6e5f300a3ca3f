# backend/tests/conftest.py
"""
Pytest configuration for the Tutorbook backend.

Tests run against an in-memory SQLite database that lives for one test.
Settings are pinned through the environment BEFORE any tutorbook import so
Stripe stays in mock mode and nothing touches a real database file.
"""

import os

# Set test configuration before the settings module is imported
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = ""
os.environ["AUTOCOMPLETE_SECRET"] = "test-job-secret"
os.environ["FRONTEND_URL"] = "http://localhost:3000"

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterator, List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tutorbook.api.dependencies import database as database_dependency
from tutorbook.core.config import settings
from tutorbook.database import Base, enable_sqlite_foreign_keys
from tutorbook.main import fastapi_app as app
import tutorbook.models  # noqa: F401  registers tables on Base.metadata
from tutorbook.models.availability import TutorAvailabilitySlot
from tutorbook.models.tutor import TutorProfile
from tutorbook.models.user import User
from tutorbook.principal import ClientPrincipal

# Tuesday; lessons in the tests are booked on the following days
FIXED_NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)

TUTOR_AVAILABILITY: Dict[str, List[str]] = {
    "monday": ["14:00", "15:00"],
    "wednesday": ["18:00"],
}

test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_foreign_keys(test_engine)
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=test_engine, expire_on_commit=False
)


def auth_headers(user: User) -> Dict[str, str]:
    """Principal header the identity layer would forward for ``user``."""
    principal = ClientPrincipal(
        user_id=user.external_id, email=user.email, roles=("authenticated",)
    )
    return {settings.principal_header: principal.to_header()}


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def fixed_clock(fixed_now: datetime):
    return lambda: fixed_now


@pytest.fixture
def db() -> Iterator[Session]:
    Base.metadata.create_all(bind=test_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def client(db: Session) -> Iterator[TestClient]:
    def override_get_db() -> Iterator[Session]:
        yield db

    app.dependency_overrides[database_dependency.get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def student(db: Session) -> User:
    user = User(external_id="student-1", email="student@example.com", roles="authenticated")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def other_student(db: Session) -> User:
    user = User(external_id="student-2", email="other@example.com", roles="authenticated")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def tutor_user(db: Session) -> User:
    user = User(external_id="tutor-1", email="tutor@example.com", roles="authenticated")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def tutor(db: Session, tutor_user: User) -> TutorProfile:
    profile = TutorProfile(
        user_id=tutor_user.id,
        email=tutor_user.email,
        name="Ada Tutor",
        hourly_rate=Decimal("20.00"),
        timezone="America/New_York",
    )
    db.add(profile)
    db.flush()
    for day, times in TUTOR_AVAILABILITY.items():
        for slot in times:
            db.add(TutorAvailabilitySlot(tutor_id=profile.id, day_of_week=day, start_time=slot))
    db.commit()
    return profile
