"""
Availability checker tests.

Run with: pytest tests/test_availability.py -v
"""
from datetime import time

import pytest

from app.availability import (
    Available,
    AvailabilityChecker,
    Conflict,
    Interval,
    NotWorking,
    OutOfHours,
    find_alternatives,
    find_conflicts,
    overlaps,
    subtract,
    working_intervals,
)
from app.models import AppointmentStatus
from conftest import MONDAY, NOW, SUNDAY


class TestOverlap:

    def test_partial_overlap(self):
        # [09:00, 09:30) and [09:15, 09:45)
        assert overlaps(540, 570, 555, 585)

    def test_touching_ranges_do_not_overlap(self):
        # [09:00, 09:30) and [09:30, 10:00)
        assert not overlaps(540, 570, 570, 600)
        assert not overlaps(570, 600, 540, 570)

    def test_containment(self):
        assert overlaps(540, 600, 555, 565)


class TestWorkingIntervals:

    def test_subtract_splits_interval(self):
        assert subtract([Interval(540, 1080)], [Interval(720, 780)]) == [
            Interval(540, 720),
            Interval(780, 1080),
        ]

    def test_breaks_are_removed(self, queries, carlos):
        queries.add_break(carlos, time(12, 0), time(13, 0), weekday=1)
        intervals = working_intervals(queries.schedules, queries.breaks, MONDAY)
        assert intervals == [Interval(540, 720), Interval(780, 1080)]

    def test_one_time_break_only_on_its_date(self, queries, carlos):
        queries.add_break(carlos, time(15, 0), time(16, 0), specific_date=MONDAY)
        assert Interval(900, 960) not in working_intervals(queries.schedules, queries.breaks, MONDAY)
        tuesday_intervals = working_intervals(queries.schedules, queries.breaks, MONDAY.replace(day=20))
        assert tuesday_intervals == [Interval(540, 1080)]

    def test_no_schedule_on_sunday(self, queries):
        assert working_intervals(queries.schedules, queries.breaks, SUNDAY) == []


class TestAlternatives:

    def test_scan_starts_after_conflicting_booking(self):
        alternatives = find_alternatives(
            [Interval(540, 1080)], [Interval(600, 630)], 30, 615, step=20, limit=3
        )
        assert alternatives == ["10:30", "10:50", "11:10"]

    def test_fills_from_earlier_slots_when_day_ends(self):
        alternatives = find_alternatives(
            [Interval(540, 660)], [Interval(600, 660)], 30, 600, step=20, limit=3
        )
        assert alternatives == ["09:00", "09:20"]

    def test_no_room_at_all(self):
        assert find_alternatives([Interval(540, 600)], [Interval(540, 600)], 30, 540) == []


@pytest.mark.asyncio
class TestAvailabilityChecker:

    async def test_available(self, queries, carlos):
        result = await AvailabilityChecker(queries, now=NOW).check(carlos, MONDAY, "10:00", 30)
        assert isinstance(result, Available)
        assert result.available
        assert result.employee_name == "Carlos"

    async def test_not_working(self, queries, carlos):
        result = await AvailabilityChecker(queries, now=NOW).check(carlos, SUNDAY, "10:00", 30)
        assert isinstance(result, NotWorking)
        assert result.message() == "❌ Carlos não trabalha neste dia da semana."

    async def test_ends_after_closing(self, queries, carlos):
        result = await AvailabilityChecker(queries, now=NOW).check(carlos, MONDAY, "17:45", 30)
        assert isinstance(result, OutOfHours)
        assert "Carlos trabalha das 09:00 às 18:00" in result.message()

    async def test_inside_break(self, queries, carlos):
        queries.add_break(carlos, time(12, 0), time(13, 0), weekday=1)
        result = await AvailabilityChecker(queries, now=NOW).check(carlos, MONDAY, "12:15", 30)
        assert isinstance(result, OutOfHours)

    async def test_conflict_offers_later_slots(self, queries, carlos):
        queries.book(carlos, MONDAY, time(10, 0), time(10, 30))
        result = await AvailabilityChecker(queries, now=NOW).check(carlos, MONDAY, "10:15", 30)
        assert isinstance(result, Conflict)
        assert result.alternatives == ("10:30", "10:50", "11:10")
        assert "10:00" not in result.alternatives
        assert "10:15" not in result.alternatives
        assert "Horários disponíveis com Carlos: 10:30, 10:50, 11:10" in result.message()

    async def test_cancelled_and_no_show_do_not_block(self, queries, carlos):
        queries.book(carlos, MONDAY, time(10, 0), time(10, 30), status=AppointmentStatus.CANCELLED)
        queries.book(carlos, MONDAY, time(10, 0), time(10, 30), status=AppointmentStatus.NO_SHOW)
        result = await AvailabilityChecker(queries, now=NOW).check(carlos, MONDAY, "10:00", 30)
        assert isinstance(result, Available)

    async def test_repeated_checks_agree(self, queries, carlos):
        queries.book(carlos, MONDAY, time(10, 0), time(10, 30))
        checker = AvailabilityChecker(queries, now=NOW)
        first = await checker.check(carlos, MONDAY, "10:15", 30)
        second = await checker.check(carlos, MONDAY, "10:15", 30)
        assert first == second

    async def test_time_already_passed_today(self, queries):
        sunday_barber = queries.add_employee("Bruno", weekdays=[0], start=time(9, 0), end=time(18, 0))
        # NOW is Sunday 14:00 business time
        result = await AvailabilityChecker(queries, now=NOW).check(sunday_barber, SUNDAY, "13:00", 30)
        assert isinstance(result, OutOfHours)
        assert result.already_passed

    async def test_first_available_skips_busy_employee(self, queries, carlos):
        rafael = queries.add_employee("Rafael")
        queries.book(carlos, MONDAY, time(10, 0), time(11, 0))
        search = await AvailabilityChecker(queries, now=NOW).first_available(
            [carlos, rafael], MONDAY, "10:00", 30
        )
        assert search.employee is rafael
        assert isinstance(search.result, Available)
        assert len(search.tried) == 2

    async def test_single_employee_is_used_even_when_busy(self, queries, carlos):
        queries.book(carlos, MONDAY, time(10, 0), time(11, 0))
        search = await AvailabilityChecker(queries, now=NOW).first_available(
            [carlos], MONDAY, "10:00", 30
        )
        assert search.employee is carlos
        assert isinstance(search.result, Conflict)

    async def test_nobody_free(self, queries, carlos):
        rafael = queries.add_employee("Rafael")
        queries.book(carlos, MONDAY, time(10, 0), time(11, 0))
        queries.book(rafael, MONDAY, time(10, 0), time(11, 0))
        search = await AvailabilityChecker(queries, now=NOW).first_available(
            [carlos, rafael], MONDAY, "10:00", 30
        )
        assert search.employee is None
        assert search.result is None


def test_find_conflicts_ignores_cancelled(queries, carlos):
    kept = queries.book(carlos, MONDAY, time(10, 0), time(10, 30))
    queries.book(carlos, MONDAY, time(10, 30), time(11, 0), status=AppointmentStatus.CANCELLED)
    assert find_conflicts(queries.appointments, 600, 660) == [kept]
