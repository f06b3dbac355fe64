# app/schemas.py

from pydantic import BaseModel, Field, field_validator, model_validator
from enum import Enum
from datetime import datetime, date as Date, time
from typing import List, Optional

from .core import WEEKDAYS, parse_hhmm


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserRole(str, Enum):
    manager = "manager"
    barber = "barber"


class AppointmentStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class BlockKind(str, Enum):
    lunch_break = "lunch_break"
    day_off = "day_off"


class BusinessCreate(BaseModel):
    name: str = Field(min_length=1)
    whatsapp_number: Optional[str] = None


class BusinessPublic(BaseModel):
    id: int
    name: str
    whatsapp_number: Optional[str] = None


class UserPublic(BaseModel):
    id: int
    email: str
    role: UserRole
    business_id: int


class UserCreate(BaseModel):
    email: str
    password: str = Field(min_length=8, max_length=72)
    role: UserRole
    business_id: int


class DayHours(BaseModel):
    start: str
    end: str

    @model_validator(mode="after")
    def check_range(self):
        start, end = parse_hhmm(self.start), parse_hhmm(self.end)
        if start >= end:
            raise ValueError("start must be before end")
        return self


class WorkingHours(BaseModel):
    monday: Optional[DayHours] = None
    tuesday: Optional[DayHours] = None
    wednesday: Optional[DayHours] = None
    thursday: Optional[DayHours] = None
    friday: Optional[DayHours] = None
    saturday: Optional[DayHours] = None
    sunday: Optional[DayHours] = None

    def as_dict(self) -> dict:
        return {day: (getattr(self, day).model_dump() if getattr(self, day) else None) for day in WEEKDAYS}


class ProfessionalCreate(BaseModel):
    name: str = Field(min_length=1)
    phone: Optional[str] = None
    working_hours: WorkingHours = WorkingHours()
    active: bool = True


class ProfessionalPublic(BaseModel):
    id: int
    business_id: int
    name: str
    phone: Optional[str] = None
    working_hours: dict
    active: bool


class ServiceCreate(BaseModel):
    name: str = Field(min_length=1)
    price: float = Field(default=0, ge=0)
    duration_minutes: int = Field(gt=0)
    active: bool = True


class ServicePublic(BaseModel):
    id: int
    business_id: int
    name: str
    price: float
    duration_minutes: int
    active: bool


class ServiceProfessionals(BaseModel):
    professional_ids: List[int]


class BlockCreate(BaseModel):
    date: Date
    start_time: time
    kind: BlockKind


class BlockPublic(BaseModel):
    id: int
    professional_id: int
    date: Date
    start_time: str
    end_time: str
    kind: BlockKind


class AppointmentCreate(BaseModel):
    professional_id: int
    service_id: int
    date: Date
    start_time: str
    client_name: str = Field(min_length=1)
    client_phone: str = Field(min_length=1)
    notes: Optional[str] = None

    @field_validator("client_name", "client_phone")
    @classmethod
    def strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class AppointmentPublic(BaseModel):
    id: int
    business_id: int
    professional_id: int
    service_id: int
    client_name: str
    client_phone: str
    appointment_date: Date
    start_time: str
    status: AppointmentStatus
    notes: Optional[str] = None
    created_at: datetime


class StatusUpdate(BaseModel):
    status: AppointmentStatus


class AvailabilityResponse(BaseModel):
    professional_id: int
    service_id: int
    date: Date
    slots: List[str]


class WhatsAppLink(BaseModel):
    url: str
