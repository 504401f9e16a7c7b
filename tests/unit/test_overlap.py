"""Unit tests for interval overlap detection."""
from types import SimpleNamespace

import pytest

from reservations.models import BookerVariant, BookingStatus
from reservations.overlap import Interval, active_intervals, find_conflicts, has_conflict, overlaps


def _booking(booking_id, start, end, status=BookingStatus.PENDING, variant=BookerVariant.MEMBER):
    return SimpleNamespace(id=booking_id, start_time=start, end_time=end, status=status, booker_variant=variant)


class TestOverlaps:
    """Test the half-open overlap predicate."""

    @pytest.mark.parametrize(
        "a,b,expected",
        [
            ((600, 660), (630, 690), True),
            ((600, 660), (660, 720), False),
            ((660, 720), (600, 660), False),
            ((600, 720), (630, 660), True),
            ((630, 660), (600, 720), True),
            ((600, 660), (600, 660), True),
            ((540, 570), (600, 660), False),
        ],
    )
    def test_overlaps(self, a, b, expected):
        """Test touching intervals do not overlap and nested ones do."""
        assert overlaps(*a, *b) is expected
        assert overlaps(*b, *a) is expected


class TestActiveIntervals:
    """Test collection of intervals from booking sources."""

    def test_merges_sources_and_sorts(self):
        """Test member and guest bookings are combined in start order."""
        members = [_booking(1, "13:00", "14:00")]
        guests = [_booking(2, "09:00", "10:00", variant=BookerVariant.GUEST)]

        intervals = active_intervals(members, guests)

        assert [interval.booking_id for interval in intervals] == [2, 1]
        assert intervals[0].booker_variant == BookerVariant.GUEST
        assert intervals[0].start_time == "09:00"

    def test_skips_inactive_and_excluded(self):
        """Test cancelled, no-show and excluded bookings are ignored."""
        bookings = [
            _booking(1, "09:00", "10:00", status=BookingStatus.CANCELLED),
            _booking(2, "10:00", "11:00", status=BookingStatus.NO_SHOW),
            _booking(3, "11:00", "12:00", status=BookingStatus.CONFIRMED),
            _booking(4, "12:00", "13:00", status=BookingStatus.COMPLETED),
        ]

        assert [interval.booking_id for interval in active_intervals(bookings)] == [3, 4]
        assert [interval.booking_id for interval in active_intervals(bookings, exclude_booking_id=3)] == [4]


class TestFindConflicts:
    """Test conflict lookup against candidate intervals."""

    def test_reports_every_overlapping_interval(self):
        """Test all conflicting intervals are returned."""
        candidates = [Interval(540, 600, 1), Interval(600, 660, 2), Interval(660, 720, 3)]

        conflicts = find_conflicts(570, 690, candidates)

        assert [interval.booking_id for interval in conflicts] == [1, 2, 3]
        assert conflicts[0].as_dict() == {"booking_id": 1, "start_time": "09:00", "end_time": "10:00"}

    def test_no_conflict_when_touching(self):
        """Test a request ending where another begins is free."""
        assert has_conflict(540, 600, [Interval(600, 660, 1)]) is False
        assert has_conflict(540, 630, [Interval(600, 660, 1)]) is True
