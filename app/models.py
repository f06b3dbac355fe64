# app/models.py

from typing import Optional
from datetime import datetime, timezone, date as Date

from sqlalchemy import UniqueConstraint
from sqlalchemy.types import JSON
from sqlmodel import SQLModel, Field, Column


class Business(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    whatsapp_number: Optional[str] = None


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    password_hash: str
    role: str  # manager or barber
    business_id: int = Field(foreign_key="business.id", index=True)


class Professional(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    business_id: int = Field(foreign_key="business.id", index=True)
    name: str
    phone: Optional[str] = None
    # {"monday": {"start": "09:00", "end": "18:00"}, "sunday": None, ...}
    working_hours: dict = Field(default_factory=dict, sa_column=Column(JSON))
    active: bool = True


class Service(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    business_id: int = Field(foreign_key="business.id", index=True)
    name: str
    price: float = 0
    duration_minutes: int = 30
    active: bool = True


class ProfessionalService(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("professional_id", "service_id", name="uq_professional_service"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    professional_id: int = Field(foreign_key="professional.id", index=True)
    service_id: int = Field(foreign_key="service.id", index=True)


class Appointment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    business_id: int = Field(foreign_key="business.id", index=True)
    professional_id: int = Field(foreign_key="professional.id", index=True)
    service_id: int = Field(foreign_key="service.id")
    client_name: str
    client_phone: str
    appointment_date: Date = Field(index=True)
    start_time: str  # HH:MM
    status: str = "pending"
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ProfessionalBlock(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    professional_id: int = Field(foreign_key="professional.id", index=True)
    date: Date = Field(index=True)
    start_minute: int
    end_minute: int
    kind: str  # "lunch_break" or "day_off"


class ProfessionalDay(SQLModel, table=True):
    """Write ledger: one row per professional/day, bumped by every booking."""

    professional_id: int = Field(foreign_key="professional.id", primary_key=True)
    day: Date = Field(primary_key=True)
    version: int = 0
