"""Half-open interval overlap checks across booking sources."""
from __future__ import annotations

from dataclasses import dataclass
from itertools import chain
from typing import Iterable, List, Optional

from .models import ACTIVE_STATUSES, BookerVariant, Booking
from .timegrid import format_time_of_day, parse_time_of_day


@dataclass(frozen=True)
class Interval:
    start: int
    end: int
    booking_id: Optional[int] = None
    booker_variant: Optional[BookerVariant] = None

    @property
    def start_time(self) -> str:
        return format_time_of_day(self.start)

    @property
    def end_time(self) -> str:
        return format_time_of_day(self.end)

    def as_dict(self) -> dict:
        return {
            "booking_id": self.booking_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """``[a_start, a_end)`` and ``[b_start, b_end)`` share at least one instant."""
    return a_start < b_end and b_start < a_end


def interval_of(booking: Booking) -> Interval:
    return Interval(
        start=parse_time_of_day(booking.start_time),
        end=parse_time_of_day(booking.end_time),
        booking_id=booking.id,
        booker_variant=booking.booker_variant,
    )


def active_intervals(*sources: Iterable[Booking], exclude_booking_id: Optional[int] = None) -> List[Interval]:
    """Intervals of every active booking across all sources, minus the excluded one."""
    return sorted(
        (
            interval_of(booking)
            for booking in chain.from_iterable(sources)
            if booking.status in ACTIVE_STATUSES and booking.id != exclude_booking_id
        ),
        key=lambda interval: (interval.start, interval.end),
    )


def find_conflicts(requested_start: int, requested_end: int, *candidates: Iterable[Interval]) -> List[Interval]:
    return [
        interval
        for interval in chain.from_iterable(candidates)
        if overlaps(requested_start, requested_end, interval.start, interval.end)
    ]


def has_conflict(requested_start: int, requested_end: int, *candidates: Iterable[Interval]) -> bool:
    return bool(find_conflicts(requested_start, requested_end, *candidates))
