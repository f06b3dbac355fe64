"""Tests for the booking write path and availability reads in app/booking.py."""

from datetime import datetime, time
from itertools import combinations
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from app.booking import (
    _day_ledger_version,
    add_block,
    cancel_appointment,
    change_status,
    claim_day,
    get_availability,
    professionals_for_service,
    submit_booking,
    with_read_retry,
)
from app.core import parse_hhmm
from app.errors import BookingValidationError, NotFound, SlotUnavailable
from app.models import Appointment, Professional, ProfessionalBlock, ProfessionalService, Service
from app.schemas import AppointmentCreate, AppointmentStatus, BlockCreate, BlockKind

from conftest import MONDAY, NOW, SUNDAY, TUESDAY


def request_for(shop, start_time, service="haircut_id", day=MONDAY, **overrides):
    data = {
        "professional_id": shop["professional_id"],
        "service_id": shop[service],
        "date": day,
        "start_time": start_time,
        "client_name": "Joao",
        "client_phone": "+258 84 000 0001",
    }
    data.update(overrides)
    return AppointmentCreate(**data)


def book(session, shop, settings, start_time, service="haircut_id", **overrides):
    return submit_booking(session, request_for(shop, start_time, service, **overrides), settings, NOW)


class TestSubmitBooking:

    def test_persists_pending_appointment(self, session, shop, settings):
        appt = book(session, shop, settings, "10:00")

        assert appt.id is not None
        assert appt.status == "pending"
        assert appt.business_id == shop["business_id"]
        assert appt.start_time == "10:00"
        assert appt.appointment_date == MONDAY

    def test_exact_collision_rejected(self, session, shop, settings):
        book(session, shop, settings, "10:00")
        with pytest.raises(SlotUnavailable):
            book(session, shop, settings, "10:00")

    def test_longer_service_starting_before_existing_booking_rejected(self, session, shop, settings):
        # existing [10:00, 10:30); 45 minutes from 09:45 spans into it
        book(session, shop, settings, "10:00")
        with pytest.raises(SlotUnavailable):
            book(session, shop, settings, "09:45", service="beard_id")

    def test_adjacent_bookings_accepted(self, session, shop, settings):
        book(session, shop, settings, "10:00")
        book(session, shop, settings, "09:30")
        book(session, shop, settings, "10:30")

        assert len(session.exec(select(Appointment)).all()) == 3

    def test_cancelled_booking_frees_the_interval(self, session, shop, settings):
        first = book(session, shop, settings, "10:00")
        cancel_appointment(session, first.id, shop["business_id"])

        second = book(session, shop, settings, "10:00")
        assert second.id != first.id

    def test_rejected_booking_writes_nothing(self, session, shop, settings):
        book(session, shop, settings, "10:00")
        with pytest.raises(SlotUnavailable):
            book(session, shop, settings, "10:15")
        assert len(session.exec(select(Appointment)).all()) == 1

    def test_no_overlap_invariant_holds_across_many_requests(self, session, shop, settings):
        starts = ["09:00", "09:15", "09:30", "09:45", "10:00", "10:15", "10:30", "11:00", "11:15"]
        for i, start in enumerate(starts):
            service = "beard_id" if i % 2 else "haircut_id"
            try:
                book(session, shop, settings, start, service=service)
            except (SlotUnavailable, BookingValidationError):
                pass

        durations = {shop["haircut_id"]: 30, shop["beard_id"]: 45}
        intervals = [
            (parse_hhmm(a.start_time), parse_hhmm(a.start_time) + durations[a.service_id])
            for a in session.exec(select(Appointment)).all()
        ]
        assert len(intervals) >= 3
        for (a1, a2), (b1, b2) in combinations(intervals, 2):
            assert not (a1 < b2 and a2 > b1)


class TestSubmitBookingValidation:

    def test_past_date(self, session, shop, settings):
        with pytest.raises(BookingValidationError) as exc:
            book(session, shop, settings, "10:00", day=NOW.date().replace(day=10))
        assert exc.value.field == "date"

    def test_beyond_advance_window(self, session, shop, settings):
        with pytest.raises(BookingValidationError) as exc:
            book(session, shop, settings, "10:00", day=NOW.date().replace(month=12))
        assert exc.value.field == "date"

    def test_day_not_worked(self, session, shop, settings):
        with pytest.raises(BookingValidationError) as exc:
            book(session, shop, settings, "10:00", day=SUNDAY)
        assert exc.value.field == "date"

    def test_service_must_finish_before_closing(self, session, shop, settings):
        with pytest.raises(BookingValidationError) as exc:
            book(session, shop, settings, "11:30", service="beard_id")
        assert exc.value.field == "start_time"

    def test_start_before_opening(self, session, shop, settings):
        with pytest.raises(BookingValidationError):
            book(session, shop, settings, "08:30")

    def test_malformed_start_time(self, session, shop, settings):
        with pytest.raises(BookingValidationError) as exc:
            book(session, shop, settings, "9am")
        assert exc.value.field == "start_time"

    def test_unknown_professional_and_service(self, session, shop, settings):
        with pytest.raises(BookingValidationError) as exc:
            book(session, shop, settings, "10:00", professional_id=9999)
        assert exc.value.field == "professional_id"

        with pytest.raises(BookingValidationError) as exc:
            book(session, shop, settings, "10:00", service_id=9999)
        assert exc.value.field == "service_id"

    def test_inactive_service(self, session, shop, settings):
        service = session.get(Service, shop["haircut_id"])
        service.active = False
        session.add(service)
        session.commit()

        with pytest.raises(BookingValidationError):
            book(session, shop, settings, "10:00")

    def test_earlier_today_rejected(self, session, shop, settings):
        today = NOW.date()  # Friday, 09:00-18:00
        later = datetime.combine(today, time(11, 0))
        with pytest.raises(BookingValidationError) as exc:
            submit_booking(session, request_for(shop, "10:00", day=today), settings, later)
        assert exc.value.field == "start_time"

        appt = submit_booking(session, request_for(shop, "11:30", day=today), settings, later)
        assert appt.start_time == "11:30"

    def test_professional_not_mapped_to_service(self, session, shop, settings):
        other = Professional(business_id=shop["business_id"], name="Bruno", working_hours={})
        session.add(other)
        session.commit()
        session.add(ProfessionalService(professional_id=other.id, service_id=shop["haircut_id"]))
        session.commit()

        with pytest.raises(BookingValidationError) as exc:
            book(session, shop, settings, "10:00")
        assert exc.value.field == "professional_id"


class TestDayLedger:

    def test_stale_version_cannot_claim(self, engine, session, shop, settings):
        seen = _day_ledger_version(session, shop["professional_id"], MONDAY)

        with Session(engine) as other:
            book(other, shop, settings, "10:00")

        assert not claim_day(session, shop["professional_id"], MONDAY, seen)
        session.rollback()

        fresh = _day_ledger_version(session, shop["professional_id"], MONDAY)
        assert fresh == seen + 1
        assert claim_day(session, shop["professional_id"], MONDAY, fresh)
        session.rollback()

    def test_contention_exhausts_attempts(self, session, shop, settings, monkeypatch):
        monkeypatch.setattr("app.booking.claim_day", lambda *args: False)

        with pytest.raises(SlotUnavailable):
            book(session, shop, settings, "10:00")
        assert session.exec(select(Appointment)).all() == []


class TestAvailability:

    def test_monday_scenario(self, session, shop, settings):
        confirmed = book(session, shop, settings, "10:00")
        change_status(session, confirmed.id, AppointmentStatus.confirmed, shop["business_id"])

        slots = get_availability(
            session, shop["professional_id"], MONDAY, shop["haircut_id"], settings, NOW
        )
        assert slots == ["09:00", "09:30", "10:30", "11:00", "11:30"]

    def test_cancellation_restores_slot(self, session, shop, settings):
        appt = book(session, shop, settings, "10:00")
        cancel_appointment(session, appt.id, shop["business_id"])

        slots = get_availability(
            session, shop["professional_id"], MONDAY, shop["haircut_id"], settings, NOW
        )
        assert "10:00" in slots

    def test_non_working_day_is_empty_not_error(self, session, shop, settings):
        assert get_availability(
            session, shop["professional_id"], SUNDAY, shop["haircut_id"], settings, NOW
        ) == []

    def test_elapsed_slots_today_not_offered(self, session, shop, settings):
        later = datetime.combine(NOW.date(), time(16, 10))
        slots = get_availability(
            session, shop["professional_id"], NOW.date(), shop["haircut_id"], settings, later
        )
        assert slots == ["16:30", "17:00", "17:30"]

    def test_day_off_block_empties_day(self, session, shop, settings):
        professional = session.get(Professional, shop["professional_id"])
        add_block(session, professional, BlockCreate(date=TUESDAY, start_time=time(9, 0), kind=BlockKind.day_off))

        assert get_availability(
            session, shop["professional_id"], TUESDAY, shop["haircut_id"], settings, NOW
        ) == []

    def test_lunch_break_occupies_thirty_minutes(self, session, shop, settings):
        professional = session.get(Professional, shop["professional_id"])
        add_block(session, professional, BlockCreate(date=MONDAY, start_time=time(11, 0), kind=BlockKind.lunch_break))

        slots = get_availability(
            session, shop["professional_id"], MONDAY, shop["haircut_id"], settings, NOW
        )
        assert "11:00" not in slots
        assert "11:30" in slots
        with pytest.raises(SlotUnavailable):
            book(session, shop, settings, "10:45")

    def test_overlapping_blocks_rejected(self, session, shop, settings):
        professional = session.get(Professional, shop["professional_id"])
        add_block(session, professional, BlockCreate(date=MONDAY, start_time=time(11, 0), kind=BlockKind.lunch_break))
        professional = session.get(Professional, shop["professional_id"])
        with pytest.raises(SlotUnavailable):
            add_block(session, professional, BlockCreate(date=MONDAY, start_time=time(11, 15), kind=BlockKind.lunch_break))

    def test_day_off_replaces_lunch_break(self, session, shop, settings):
        professional = session.get(Professional, shop["professional_id"])
        add_block(session, professional, BlockCreate(date=MONDAY, start_time=time(11, 0), kind=BlockKind.lunch_break))
        professional = session.get(Professional, shop["professional_id"])
        day_off = add_block(session, professional, BlockCreate(date=MONDAY, start_time=time(9, 0), kind=BlockKind.day_off))

        blocks = session.exec(select(ProfessionalBlock)).all()
        assert [(b.kind, b.start_minute, b.end_minute) for b in blocks] == [("day_off", 540, 720)]
        assert day_off.kind == "day_off"
        assert get_availability(
            session, shop["professional_id"], MONDAY, shop["haircut_id"], settings, NOW
        ) == []

    def test_second_day_off_rejected(self, session, shop, settings):
        professional = session.get(Professional, shop["professional_id"])
        add_block(session, professional, BlockCreate(date=MONDAY, start_time=time(9, 0), kind=BlockKind.day_off))
        professional = session.get(Professional, shop["professional_id"])
        with pytest.raises(SlotUnavailable):
            add_block(session, professional, BlockCreate(date=MONDAY, start_time=time(11, 0), kind=BlockKind.lunch_break))

    def test_out_of_window_is_validation_error(self, session, shop, settings):
        with pytest.raises(BookingValidationError):
            get_availability(
                session, shop["professional_id"], NOW.date().replace(month=12), shop["haircut_id"], settings, NOW
            )


class TestReadRetry:

    def test_retries_transient_failures(self, settings):
        session = MagicMock()
        read = MagicMock(side_effect=[OperationalError("select", {}, Exception("gone")), ["09:00"]])

        assert with_read_retry(session, settings, read) == ["09:00"]
        assert read.call_count == 2
        session.rollback.assert_called_once()

    def test_gives_up_after_bounded_attempts(self, settings):
        session = MagicMock()
        read = MagicMock(side_effect=OperationalError("select", {}, Exception("gone")))

        with pytest.raises(OperationalError):
            with_read_retry(session, settings, read)
        assert read.call_count == settings.READ_RETRY_ATTEMPTS


class TestStatusTransitions:

    def test_forward_lifecycle(self, session, shop, settings):
        appt = book(session, shop, settings, "10:00")
        for status in (AppointmentStatus.confirmed, AppointmentStatus.in_progress, AppointmentStatus.completed):
            appt = change_status(session, appt.id, status, shop["business_id"])
        assert appt.status == "completed"

    @pytest.mark.parametrize("path", [
        [AppointmentStatus.cancelled, AppointmentStatus.confirmed],
        [AppointmentStatus.confirmed, AppointmentStatus.completed, AppointmentStatus.cancelled],
        [AppointmentStatus.in_progress],
        [AppointmentStatus.pending],
    ])
    def test_invalid_transitions(self, session, shop, settings, path):
        appt = book(session, shop, settings, "10:00")
        *ok, bad = path
        for status in ok:
            change_status(session, appt.id, status, shop["business_id"])
        with pytest.raises(BookingValidationError):
            change_status(session, appt.id, bad, shop["business_id"])

    def test_other_business_cannot_see_appointment(self, session, shop, settings):
        appt = book(session, shop, settings, "10:00")
        with pytest.raises(NotFound):
            cancel_appointment(session, appt.id, shop["business_id"] + 1)


class TestServiceProfessionals:

    def test_unmapped_service_falls_back_to_all(self, session, shop, settings):
        service = session.get(Service, shop["haircut_id"])
        names = [p.name for p in professionals_for_service(session, service, settings)]
        assert names == ["Ana"]

    def test_unmapped_service_without_fallback(self, session, shop, settings):
        settings.FALLBACK_TO_ALL_PROFESSIONALS = False
        service = session.get(Service, shop["haircut_id"])
        assert professionals_for_service(session, service, settings) == []

    def test_mapping_restricts(self, session, shop, settings):
        other = Professional(business_id=shop["business_id"], name="Bruno", working_hours={})
        session.add(other)
        session.commit()
        session.add(ProfessionalService(professional_id=other.id, service_id=shop["beard_id"]))
        session.commit()

        service = session.get(Service, shop["beard_id"])
        assert [p.name for p in professionals_for_service(session, service, settings)] == ["Bruno"]
