# app/core.py

"""
Availability engine.

Pure functions over working hours, appointments and blocks. Times are
minute offsets from midnight; every interval is half-open [start, end).
"""

from datetime import date, timedelta
from typing import Iterable, List, Mapping, NamedTuple, Optional

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

DEFAULT_SERVICE_MINUTES = 30


class Interval(NamedTuple):
    start: int
    end: int


def parse_hhmm(value: str) -> int:
    """'09:30' -> 570. Raises ValueError on anything else."""
    parts = value.split(":") if isinstance(value, str) else []
    if len(parts) != 2 or not all(p.isdigit() and len(p) == 2 for p in parts):
        raise ValueError(f"Expected HH:MM, got {value!r}")
    hours, minutes = int(parts[0]), int(parts[1])
    if hours > 23 or minutes > 59:
        raise ValueError(f"Expected HH:MM, got {value!r}")
    return hours * 60 + minutes


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    return a_start < b_end and a_end > b_start


def weekday_name(day: date) -> str:
    return WEEKDAYS[day.weekday()]


def compute_open_interval(working_hours: Optional[Mapping], day: date) -> Optional[Interval]:
    """Return the professional's open interval for `day`, or None if they do not work."""
    if not working_hours:
        return None
    hours = working_hours.get(weekday_name(day))
    if not hours:
        return None
    start = parse_hhmm(hours["start"])
    end = parse_hhmm(hours["end"])
    if start >= end:
        return None
    return Interval(start, end)


def compute_occupied_intervals(
    appointments: Iterable,
    services: Mapping[int, object],
    default_duration: int = DEFAULT_SERVICE_MINUTES,
) -> List[Interval]:
    """
    One interval per appointment, [start, start + service duration).

    `appointments` must already be filtered to one professional/day and
    exclude cancelled ones. `services` maps service id -> object with a
    `duration_minutes` attribute; unknown services take `default_duration`.
    """
    occupied = []
    for appt in appointments:
        start = parse_hhmm(appt.start_time)
        service = services.get(appt.service_id)
        duration = getattr(service, "duration_minutes", None) or default_duration
        occupied.append(Interval(start, start + duration))
    return occupied


def find_conflicts(candidate: Interval, occupied: Iterable[Interval]) -> List[Interval]:
    return [iv for iv in occupied if overlaps(candidate.start, candidate.end, iv.start, iv.end)]


def generate_slots(
    open_interval: Optional[Interval],
    occupied: Iterable[Interval],
    service_duration: int,
    step_minutes: int = 30,
) -> List[str]:
    """
    Bookable start times, ascending, as "HH:MM".

    Candidates sit on the step grid starting at the first aligned point at
    or after opening. A candidate is kept when the whole service fits
    before closing and it overlaps no occupied interval.
    """
    if service_duration <= 0:
        raise ValueError("service_duration must be positive")
    if step_minutes <= 0:
        raise ValueError("step_minutes must be positive")
    if open_interval is None:
        return []

    occupied = list(occupied)
    slots = []
    current = -(-open_interval.start // step_minutes) * step_minutes
    while current + service_duration <= open_interval.end:
        if not find_conflicts(Interval(current, current + service_duration), occupied):
            slots.append(format_hhmm(current))
        current += step_minutes
    return slots


def drop_elapsed_slots(slots: Iterable[str], now_minute: int) -> List[str]:
    """Keep only slots that start after the current wall-clock minute."""
    return [s for s in slots if parse_hhmm(s) > now_minute]


def is_past_or_out_of_window(day: date, today: date, max_advance_days: int) -> bool:
    return day < today or day > today + timedelta(days=max_advance_days)
