"""Half-hour slot grid over a room's operating hours.

Times of day travel through the system as zero-padded ``HH:MM`` strings.
Internally they are converted to minutes after midnight so slot arithmetic
and interval comparisons never depend on string ordering.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import time
from typing import Iterable, Sequence, Tuple, Union

from .errors import ValidationError

SLOT_MINUTES = 30

TimeOfDay = Union[str, time, int]

_TIME_PATTERN = re.compile(r"^(\d{2}):(\d{2})$")


@dataclass(frozen=True)
class Slot:
    time: str
    available: bool


def parse_time_of_day(value: TimeOfDay) -> int:
    """Return minutes after midnight for a grid-aligned time of day.

    Accepts ``HH:MM`` strings, :class:`datetime.time` values or an already
    converted minute count. Raises :class:`ValidationError` when the value is
    malformed or its minutes are not 0 or 30.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid time of day: {value!r}", code="invalid_time")
    if isinstance(value, int):
        minutes = value
        if not 0 <= minutes < 24 * 60:
            raise ValidationError(f"Invalid time of day: {value!r}", code="invalid_time")
    elif isinstance(value, time):
        if value.second or value.microsecond:
            raise ValidationError(f"Invalid time of day: {value.isoformat()}", code="invalid_time")
        minutes = value.hour * 60 + value.minute
    elif isinstance(value, str):
        match = _TIME_PATTERN.match(value.strip())
        if not match:
            raise ValidationError(f"Invalid time of day: {value!r}; expected HH:MM", code="invalid_time")
        hours, mins = int(match.group(1)), int(match.group(2))
        if hours > 23 or mins > 59:
            raise ValidationError(f"Invalid time of day: {value!r}", code="invalid_time")
        minutes = hours * 60 + mins
    else:
        raise ValidationError(f"Invalid time of day: {value!r}", code="invalid_time")

    if minutes % SLOT_MINUTES:
        raise ValidationError(
            f"Time slots must be in {SLOT_MINUTES}-minute increments (e.g. 09:00, 09:30)",
            code="off_grid_time",
            details={"value": format_time_of_day(minutes - minutes % SLOT_MINUTES)},
        )
    return minutes


def format_time_of_day(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_range(start: TimeOfDay, end: TimeOfDay) -> Tuple[int, int]:
    """Parse a start/end pair and require ``end > start``."""
    start_minutes = parse_time_of_day(start)
    end_minutes = parse_time_of_day(end)
    if end_minutes <= start_minutes:
        raise ValidationError("End time must be after start time", code="invalid_range")
    return start_minutes, end_minutes


def duration_hours(start: TimeOfDay, end: TimeOfDay) -> float:
    """Length of ``[start, end)`` in hours, always a positive multiple of 0.5."""
    start_minutes, end_minutes = parse_range(start, end)
    return (end_minutes - start_minutes) / 60


def generate_slots(
    operating_start: TimeOfDay,
    operating_end: TimeOfDay,
    busy_intervals: Iterable[Sequence[TimeOfDay]] = (),
) -> Tuple[Slot, ...]:
    """Every half-hour mark in ``[operating_start, operating_end)`` with its availability.

    A slot is unavailable when its start instant falls inside ``[busy.start, busy.end)``
    of any busy interval.
    """
    open_minutes, close_minutes = parse_range(operating_start, operating_end)
    busy = [(_to_minutes(begin), _to_minutes(finish)) for begin, finish in busy_intervals]

    return tuple(
        Slot(
            time=format_time_of_day(mark),
            available=not any(begin <= mark < finish for begin, finish in busy),
        )
        for mark in range(open_minutes, close_minutes, SLOT_MINUTES)
    )


def _to_minutes(value: TimeOfDay) -> int:
    # Busy intervals come from stored bookings, which are grid aligned already.
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return parse_time_of_day(value)
