# app/booking.py

"""
Availability reads and the booking write path.

Availability is advisory: clients compute it against a read that can be
stale by the time they submit. `submit_booking` re-checks the requested
interval and admits it only after claiming the professional's day ledger
row with a compare-and-set on its version, so two overlapping bookings for
the same professional and day can never both commit.
"""

import logging
import time
from datetime import date, datetime
from typing import Callable, List, Optional, Tuple, TypeVar

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import Session, col, select

from .config import Settings
from .core import (
    Interval,
    compute_occupied_intervals,
    compute_open_interval,
    drop_elapsed_slots,
    find_conflicts,
    format_hhmm,
    generate_slots,
    is_past_or_out_of_window,
    parse_hhmm,
)
from .errors import BookingValidationError, NotFound, SlotUnavailable
from .models import (
    Appointment,
    Professional,
    ProfessionalBlock,
    ProfessionalDay,
    ProfessionalService,
    Service,
)
from .schemas import AppointmentCreate, AppointmentStatus, BlockCreate, BlockKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

LUNCH_BREAK_MINUTES = 30

ALLOWED_TRANSITIONS = {
    AppointmentStatus.pending: {AppointmentStatus.confirmed, AppointmentStatus.cancelled},
    AppointmentStatus.confirmed: {
        AppointmentStatus.in_progress,
        AppointmentStatus.completed,
        AppointmentStatus.cancelled,
    },
    AppointmentStatus.in_progress: {AppointmentStatus.completed},
}


def _minute_of(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def with_read_retry(session: Session, settings: Settings, read: Callable[[], T]) -> T:
    """Run a read, retrying transient store failures a bounded number of times."""
    attempts = max(1, settings.READ_RETRY_ATTEMPTS)
    for attempt in range(1, attempts + 1):
        try:
            return read()
        except OperationalError as e:
            session.rollback()
            if attempt == attempts:
                logger.error(f"Availability read failed after {attempts} attempts: {e}")
                raise
            logger.warning(f"Retry {attempt}/{attempts} for availability read: {e}")
            time.sleep(settings.READ_RETRY_DELAY_SECONDS * attempt)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def load_professional(session: Session, professional_id: int) -> Professional:
    professional = session.get(Professional, professional_id)
    if professional is None or not professional.active:
        raise BookingValidationError("professional_id", "Unknown professional")
    return professional


def load_service(session: Session, service_id: int, business_id: int) -> Service:
    service = session.get(Service, service_id)
    if service is None or not service.active or service.business_id != business_id:
        raise BookingValidationError("service_id", "Unknown service")
    return service


def professionals_for_service(session: Session, service: Service, settings: Settings) -> List[Professional]:
    """
    Active professionals who perform `service`.

    A service with no mapping rows at all falls back to every active
    professional of the business when FALLBACK_TO_ALL_PROFESSIONALS is set.
    """
    mapped_ids = session.exec(
        select(ProfessionalService.professional_id)
        .where(ProfessionalService.service_id == service.id)
    ).all()

    stmt = (
        select(Professional)
        .where(Professional.business_id == service.business_id)
        .where(Professional.active == True)  # noqa: E712
    )
    if mapped_ids:
        stmt = stmt.where(col(Professional.id).in_(mapped_ids))
    elif settings.FALLBACK_TO_ALL_PROFESSIONALS:
        logger.warning(f"Service {service.id} has no professional mapping; offering all professionals")
    else:
        return []

    return list(session.exec(stmt.order_by(Professional.name)).all())


def day_appointments(session: Session, professional_id: int, day: date) -> List[Appointment]:
    """Non-cancelled appointments of one professional on one day."""
    return list(session.exec(
        select(Appointment)
        .where(Appointment.professional_id == professional_id)
        .where(Appointment.appointment_date == day)
        .where(Appointment.status != AppointmentStatus.cancelled.value)
        .order_by(Appointment.start_time)
    ).all())


def day_blocks(session: Session, professional_id: int, day: date) -> List[ProfessionalBlock]:
    return list(session.exec(
        select(ProfessionalBlock)
        .where(ProfessionalBlock.professional_id == professional_id)
        .where(ProfessionalBlock.date == day)
    ).all())


def occupied_for_day(
    session: Session,
    professional_id: int,
    day: date,
    settings: Settings,
) -> Tuple[bool, List[Interval]]:
    """Return (day_off, occupied intervals) from appointments and blocks."""
    appointments = day_appointments(session, professional_id, day)
    service_ids = {a.service_id for a in appointments}
    services = {}
    if service_ids:
        services = {
            s.id: s
            for s in session.exec(select(Service).where(col(Service.id).in_(service_ids))).all()
        }
    occupied = compute_occupied_intervals(appointments, services, settings.DEFAULT_SERVICE_MINUTES)

    day_off = False
    for block in day_blocks(session, professional_id, day):
        if block.kind == BlockKind.day_off.value:
            day_off = True
        occupied.append(Interval(block.start_minute, block.end_minute))
    return day_off, occupied


def _check_window(day: date, now: datetime, settings: Settings):
    if is_past_or_out_of_window(day, now.date(), settings.MAX_ADVANCE_DAYS):
        raise BookingValidationError(
            "date",
            f"Date must be between today and {settings.MAX_ADVANCE_DAYS} days ahead",
        )


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------

def get_availability(
    session: Session,
    professional_id: int,
    day: date,
    service_id: int,
    settings: Settings,
    now: datetime,
) -> List[str]:
    """Bookable start times for a professional, day and service. May be empty."""
    _check_window(day, now, settings)

    def read():
        professional = load_professional(session, professional_id)
        service = load_service(session, service_id, professional.business_id)
        open_interval = compute_open_interval(professional.working_hours, day)
        if open_interval is None:
            return service, None, False, []
        day_off, occupied = occupied_for_day(session, professional.id, day, settings)
        return service, open_interval, day_off, occupied

    service, open_interval, day_off, occupied = with_read_retry(session, settings, read)
    if open_interval is None or day_off:
        return []

    slots = generate_slots(open_interval, occupied, service.duration_minutes, settings.SLOT_MINUTES)
    if day == now.date():
        slots = drop_elapsed_slots(slots, _minute_of(now))
    return slots


# ---------------------------------------------------------------------------
# Booking submission
# ---------------------------------------------------------------------------

def _day_ledger_version(session: Session, professional_id: int, day: date) -> int:
    stmt = (
        select(ProfessionalDay)
        .where(ProfessionalDay.professional_id == professional_id)
        .where(ProfessionalDay.day == day)
        .execution_options(populate_existing=True)
    )
    ledger = session.exec(stmt).first()
    if ledger is None:
        session.add(ProfessionalDay(professional_id=professional_id, day=day, version=0))
        try:
            session.commit()
        except IntegrityError:
            # another writer created the row first
            session.rollback()
        ledger = session.exec(stmt).first()
    return ledger.version


def claim_day(session: Session, professional_id: int, day: date, seen_version: int) -> bool:
    """Compare-and-set the ledger version; False if another write got there first."""
    result = session.connection().execute(
        update(ProfessionalDay)
        .where(ProfessionalDay.professional_id == professional_id)
        .where(ProfessionalDay.day == day)
        .where(ProfessionalDay.version == seen_version)
        .values(version=ProfessionalDay.version + 1)
    )
    return result.rowcount == 1


def _bump_day(session: Session, professional_id: int, day: date):
    _day_ledger_version(session, professional_id, day)
    session.connection().execute(
        update(ProfessionalDay)
        .where(ProfessionalDay.professional_id == professional_id)
        .where(ProfessionalDay.day == day)
        .values(version=ProfessionalDay.version + 1)
    )


def _validate_request(
    session: Session,
    request: AppointmentCreate,
    settings: Settings,
    now: datetime,
) -> Tuple[Professional, Service, Interval]:
    professional = load_professional(session, request.professional_id)
    service = load_service(session, request.service_id, professional.business_id)

    offered_by = {p.id for p in professionals_for_service(session, service, settings)}
    if professional.id not in offered_by:
        raise BookingValidationError("professional_id", "Professional does not offer this service")

    try:
        start = parse_hhmm(request.start_time)
    except ValueError:
        raise BookingValidationError("start_time", "Start time must be HH:MM")

    _check_window(request.date, now, settings)

    open_interval = compute_open_interval(professional.working_hours, request.date)
    if open_interval is None:
        raise BookingValidationError("date", "Professional does not work on that day")

    requested = Interval(start, start + service.duration_minutes)
    if requested.start < open_interval.start or requested.end > open_interval.end:
        raise BookingValidationError("start_time", "Appointment must be within working hours")

    if request.date == now.date() and requested.start <= _minute_of(now):
        raise BookingValidationError("start_time", "Cannot book an appointment in the past")

    return professional, service, requested


def submit_booking(
    session: Session,
    request: AppointmentCreate,
    settings: Settings,
    now: datetime,
) -> Appointment:
    """
    Admit a client booking in `pending` status or raise.

    Raises BookingValidationError for bad input, SlotUnavailable when the
    interval is taken (or the day stays contended for every attempt).
    Store failures propagate; writes are never retried blindly.
    """
    professional, service, requested = _validate_request(session, request, settings, now)
    professional_id = professional.id
    business_id = professional.business_id

    attempts = max(1, settings.BOOKING_CLAIM_ATTEMPTS)
    for attempt in range(1, attempts + 1):
        seen_version = _day_ledger_version(session, professional_id, request.date)

        day_off, occupied = occupied_for_day(session, professional_id, request.date, settings)
        if day_off:
            session.rollback()
            raise BookingValidationError("date", "Professional is off on that day")
        if find_conflicts(requested, occupied):
            session.rollback()
            logger.info(
                f"Rejected booking for professional {professional_id} on {request.date} "
                f"at {request.start_time}: overlaps an existing booking"
            )
            raise SlotUnavailable()

        if not claim_day(session, professional_id, request.date, seen_version):
            session.rollback()
            logger.warning(
                f"Concurrent write on professional {professional_id} {request.date}; "
                f"attempt {attempt}/{attempts}"
            )
            continue

        appointment = Appointment(
            business_id=business_id,
            professional_id=professional_id,
            service_id=service.id,
            client_name=request.client_name,
            client_phone=request.client_phone,
            appointment_date=request.date,
            start_time=format_hhmm(requested.start),
            status=AppointmentStatus.pending.value,
            notes=request.notes,
        )
        session.add(appointment)
        session.commit()
        session.refresh(appointment)
        logger.info(
            f"Booked appointment {appointment.id} for professional {professional_id} "
            f"on {request.date} {appointment.start_time}-{format_hhmm(requested.end)}"
        )
        return appointment

    raise SlotUnavailable()


# ---------------------------------------------------------------------------
# Staff actions
# ---------------------------------------------------------------------------

def get_appointment(session: Session, appointment_id: int, business_id: Optional[int] = None) -> Appointment:
    appointment = session.get(Appointment, appointment_id)
    if appointment is None or (business_id is not None and appointment.business_id != business_id):
        raise NotFound("Appointment")
    return appointment


def change_status(
    session: Session,
    appointment_id: int,
    new_status: AppointmentStatus,
    business_id: int,
) -> Appointment:
    appointment = get_appointment(session, appointment_id, business_id)
    current = AppointmentStatus(appointment.status)
    if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
        raise BookingValidationError(
            "status", f"Cannot change status from {current.value} to {new_status.value}"
        )

    appointment.status = new_status.value
    session.add(appointment)
    session.commit()
    session.refresh(appointment)
    logger.info(f"Appointment {appointment.id}: {current.value} -> {new_status.value}")
    return appointment


def cancel_appointment(session: Session, appointment_id: int, business_id: int) -> Appointment:
    return change_status(session, appointment_id, AppointmentStatus.cancelled, business_id)


def list_appointments(
    session: Session,
    business_id: int,
    on_date: Optional[date] = None,
    status: Optional[str] = None,
    professional_id: Optional[int] = None,
) -> List[Appointment]:
    stmt = select(Appointment).where(Appointment.business_id == business_id)
    if on_date is not None:
        stmt = stmt.where(Appointment.appointment_date == on_date)
    if status is not None:
        stmt = stmt.where(Appointment.status == status)
    if professional_id is not None:
        stmt = stmt.where(Appointment.professional_id == professional_id)
    stmt = stmt.order_by(Appointment.appointment_date, Appointment.start_time)
    return list(session.exec(stmt).all())


def add_block(session: Session, professional: Professional, block: BlockCreate) -> ProfessionalBlock:
    """Register a lunch break or a day off for a professional."""
    open_interval = compute_open_interval(professional.working_hours, block.date)
    if open_interval is None:
        raise BookingValidationError("date", "Not scheduled to work that day")

    if block.kind == BlockKind.lunch_break:
        start = block.start_time.hour * 60 + block.start_time.minute
        interval = Interval(start, start + LUNCH_BREAK_MINUTES)
    else:
        interval = open_interval

    if interval.start < open_interval.start or interval.end > open_interval.end:
        raise BookingValidationError("start_time", "Block must be within working hours")

    for existing in day_blocks(session, professional.id, block.date):
        if existing.kind == BlockKind.day_off.value:
            raise SlotUnavailable("Day is already blocked")
        if block.kind == BlockKind.day_off:
            # a day off supersedes lunch breaks on the same day
            session.delete(existing)
        elif find_conflicts(interval, [Interval(existing.start_minute, existing.end_minute)]):
            raise SlotUnavailable("Block overlaps existing block")

    professional_id = professional.id
    _bump_day(session, professional_id, block.date)
    db_block = ProfessionalBlock(
        professional_id=professional_id,
        date=block.date,
        start_minute=interval.start,
        end_minute=interval.end,
        kind=block.kind.value,
    )
    session.add(db_block)
    session.commit()
    session.refresh(db_block)
    return db_block
