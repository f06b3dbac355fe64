"""Shared fixtures: in-memory database, fixed clock, seeded shop."""

from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.auth import create_access_token, hash_password
from app.config import Settings, get_settings
from app.db import get_session
from app.deps import get_now
from app.main import app
from app.models import Business, Professional, Service, User

# Friday morning; the following Monday is 2026-10-19.
NOW = datetime(2026, 10, 16, 8, 0)
MONDAY = date(2026, 10, 19)
TUESDAY = date(2026, 10, 20)
SUNDAY = date(2026, 10, 18)

WEEKDAY_HOURS = {"start": "09:00", "end": "18:00"}


@pytest.fixture
def settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite://",
        SECRET_KEY="test-secret",
        READ_RETRY_DELAY_SECONDS=0,
        SLOT_MINUTES=30,
        MAX_ADVANCE_DAYS=30,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def shop(session):
    """One business, one barber working Monday 09:00-12:00, two services."""
    business = Business(name="Corte Fino", whatsapp_number="+258 84 123 4567")
    session.add(business)
    session.commit()
    session.refresh(business)

    barber = Professional(
        business_id=business.id,
        name="Ana",
        working_hours={
            "monday": {"start": "09:00", "end": "12:00"},
            "tuesday": WEEKDAY_HOURS,
            "wednesday": WEEKDAY_HOURS,
            "thursday": WEEKDAY_HOURS,
            "friday": WEEKDAY_HOURS,
            "saturday": {"start": "09:00", "end": "13:00"},
            "sunday": None,
        },
    )
    haircut = Service(business_id=business.id, name="Haircut", price=350, duration_minutes=30)
    beard = Service(business_id=business.id, name="Cut and beard", price=500, duration_minutes=45)
    session.add_all([barber, haircut, beard])
    session.commit()
    for obj in (barber, haircut, beard):
        session.refresh(obj)

    return {
        "business_id": business.id,
        "professional_id": barber.id,
        "haircut_id": haircut.id,
        "beard_id": beard.id,
    }


@pytest.fixture
def client(engine, settings):
    def _session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_now] = lambda: NOW
    yield TestClient(app)
    app.dependency_overrides.clear()


def _staff_headers(session, settings, shop, email, role):
    user = User(
        email=email,
        password_hash=hash_password("correct-horse"),
        role=role,
        business_id=shop["business_id"],
    )
    session.add(user)
    session.commit()
    token = create_access_token({"sub": email}, settings)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def manager_headers(session, settings, shop):
    return _staff_headers(session, settings, shop, "manager@cortefino.test", "manager")


@pytest.fixture
def barber_headers(session, settings, shop):
    return _staff_headers(session, settings, shop, "ana@cortefino.test", "barber")
