# app/routers/appointments_routes.py

import logging
from datetime import datetime, date
from typing import Optional, List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.config import Settings, get_settings
from app.db import get_session
from app.models import Business, Professional, Service
from app.schemas import (
    AppointmentCreate,
    AppointmentPublic,
    AppointmentStatus,
    AvailabilityResponse,
    StatusUpdate,
    WhatsAppLink,
)
from app.auth import get_current_user
from app.booking import (
    cancel_appointment,
    change_status,
    get_appointment,
    get_availability,
    list_appointments,
    submit_booking,
)
from app.deps import get_now, to_http
from app.errors import SchedulingError
from app.notifications import build_whatsapp_link, confirmation_message, notify_booking_created

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["appointments"],
)


def _shop_number(session: Session, business_id: int, settings: Settings) -> str:
    business = session.get(Business, business_id)
    if business is not None and business.whatsapp_number:
        return business.whatsapp_number
    return settings.WHATSAPP_NUMBER


def _message_for(session: Session, appointment) -> str:
    service = session.get(Service, appointment.service_id)
    professional = session.get(Professional, appointment.professional_id)
    return confirmation_message(
        appointment,
        service.name if service else "",
        professional.name if professional else "",
    )


@router.get("/availability", response_model=AvailabilityResponse, tags=["availability"])
def availability(
    professional_id: int,
    date: date,
    service_id: int,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    now: datetime = Depends(get_now),
):
    try:
        slots = get_availability(session, professional_id, date, service_id, settings, now)
    except SchedulingError as e:
        raise to_http(e)

    return {
        "professional_id": professional_id,
        "service_id": service_id,
        "date": date,
        "slots": slots,
    }


@router.post("/appointments", response_model=AppointmentPublic, status_code=201)
def create_appointment(
    appt: AppointmentCreate,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    now: datetime = Depends(get_now),
):
    try:
        db_appt = submit_booking(session, appt, settings, now)
    except SchedulingError as e:
        raise to_http(e)

    created = AppointmentPublic.model_validate(db_appt, from_attributes=True)

    # the booking is committed; notification problems must not fail the request
    try:
        number = _shop_number(session, created.business_id, settings)
        message = _message_for(session, db_appt)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Could not prepare confirmation for appointment {created.id}: {e}")
    else:
        background_tasks.add_task(notify_booking_created, number, message)
    return created


@router.get("/appointments", response_model=List[AppointmentPublic])
def list_business_appointments(
    on_date: Optional[date] = None,
    status: Optional[str] = None,
    professional_id: Optional[int] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    if status is not None and status not in {s.value for s in AppointmentStatus}:
        raise HTTPException(status_code=422, detail="Unknown status")

    return list_appointments(
        session,
        current_user["business_id"],
        on_date=on_date,
        status=status,
        professional_id=professional_id,
    )


@router.patch("/appointments/{appt_id}/status", response_model=AppointmentPublic)
def update_status(
    appt_id: int,
    update: StatusUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    try:
        return change_status(session, appt_id, update.status, current_user["business_id"])
    except SchedulingError as e:
        raise to_http(e)


@router.patch("/appointments/{appt_id}/cancel", response_model=AppointmentPublic)
def cancel(
    appt_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    try:
        return cancel_appointment(session, appt_id, current_user["business_id"])
    except SchedulingError as e:
        raise to_http(e)


@router.get("/appointments/{appt_id}/whatsapp-link", response_model=WhatsAppLink)
def whatsapp_link(
    appt_id: int,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: dict = Depends(get_current_user),
):
    try:
        db_appt = get_appointment(session, appt_id, current_user["business_id"])
    except SchedulingError as e:
        raise to_http(e)

    return {
        "url": build_whatsapp_link(
            _shop_number(session, db_appt.business_id, settings),
            _message_for(session, db_appt),
        )
    }
