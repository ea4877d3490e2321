"""
Slot availability for one employee on one day.

Working hours are the employee's active schedule rows for the weekday minus
the active breaks that apply to the date. All arithmetic is done in minutes
since midnight over half-open intervals [start, end).
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Iterator, Optional, Sequence

from .business_time import (
    business_today,
    day_of_week,
    minutes_to_hhmm,
    parse_hhmm,
    time_to_minutes,
    to_business_time,
)
from .core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Check if two half-open ranges overlap. Touching ranges do not."""
    return start_a < end_b and start_b < end_a


@dataclass(frozen=True, order=True)
class Interval:
    start: int
    end: int

    def contains(self, start: int, end: int) -> bool:
        return self.start <= start and end <= self.end

    def __str__(self) -> str:
        return f"{minutes_to_hhmm(self.start)} às {minutes_to_hhmm(self.end)}"


def subtract(intervals: Iterable[Interval], cuts: Iterable[Interval]) -> list[Interval]:
    """Remove every cut from every interval, keeping what is left in order."""
    remaining = sorted(intervals)
    for cut in sorted(cuts):
        pieces = []
        for interval in remaining:
            if not overlaps(interval.start, interval.end, cut.start, cut.end):
                pieces.append(interval)
                continue
            if interval.start < cut.start:
                pieces.append(Interval(interval.start, cut.start))
            if cut.end < interval.end:
                pieces.append(Interval(cut.end, interval.end))
        remaining = pieces
    return remaining


def working_intervals(schedules: Sequence, breaks: Sequence, day: date) -> list[Interval]:
    dow = day_of_week(day)
    shifts = [
        Interval(time_to_minutes(s.start_time), time_to_minutes(s.end_time))
        for s in schedules
        if s.is_active and s.day_of_week == dow and s.start_time < s.end_time
    ]
    cuts = [
        Interval(time_to_minutes(b.start_time), time_to_minutes(b.end_time))
        for b in breaks
        if b.applies_to(day, dow)
    ]
    return subtract(shifts, cuts)


def busy_intervals(appointments: Sequence) -> list[Interval]:
    """Intervals taken by appointments that still block the slot."""
    return sorted(
        Interval(time_to_minutes(a.start_time), time_to_minutes(a.end_time))
        for a in appointments
        if a.blocks_slot()
    )


def find_conflicts(appointments: Sequence, start: int, end: int) -> list:
    return [
        a for a in appointments
        if a.blocks_slot()
        and overlaps(start, end, time_to_minutes(a.start_time), time_to_minutes(a.end_time))
    ]


# ────────────────────────────────────────────────────────────────
# Results
# ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AvailabilityResult:
    employee_id: object
    employee_name: str
    date: date
    time: str

    @property
    def available(self) -> bool:
        return False

    def message(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class NotWorking(AvailabilityResult):
    def message(self) -> str:
        return f"❌ {self.employee_name} não trabalha neste dia da semana."


@dataclass(frozen=True)
class OutOfHours(AvailabilityResult):
    working_hours: tuple[Interval, ...] = ()
    already_passed: bool = False

    def message(self) -> str:
        if self.already_passed:
            return f"❌ O horário {self.time} de hoje já passou. Pode escolher um horário mais tarde?"
        hours = ", ".join(f"das {interval}" for interval in self.working_hours)
        return (
            f"❌ Este horário está fora do expediente. "
            f"{self.employee_name} trabalha {hours}."
        )


@dataclass(frozen=True)
class Conflict(AvailabilityResult):
    alternatives: tuple[str, ...] = ()

    def message(self) -> str:
        if self.alternatives:
            return (
                f"❌ O horário {self.time} já está ocupado. Horários disponíveis com "
                f"{self.employee_name}: {', '.join(self.alternatives)}. "
                "Gostaria de agendar em um desses horários?"
            )
        return (
            f"❌ O horário {self.time} está ocupado e não há outros horários disponíveis "
            f"com {self.employee_name} neste dia."
        )


@dataclass(frozen=True)
class Available(AvailabilityResult):
    @property
    def available(self) -> bool:
        return True

    def message(self) -> str:
        return f"✅ Ótimo! O horário {self.time} com {self.employee_name} está disponível."


# ────────────────────────────────────────────────────────────────
# Evaluation
# ────────────────────────────────────────────────────────────────

def _free_starts(
    interval: Interval,
    busy: Sequence[Interval],
    duration: int,
    begin: int,
    step: int,
) -> Iterator[int]:
    """Free start times inside `interval` from `begin` on, stepping `step` minutes.

    A candidate that collides with a booking jumps to the end of that booking,
    so the grid restarts there instead of staying anchored to the shift start.
    With 10:00-10:30 booked this offers 10:30, where a fixed grid from 09:00
    would skip to 10:40.
    """
    cursor = max(begin, interval.start)
    while cursor + duration <= interval.end:
        blocking = [b for b in busy if overlaps(cursor, cursor + duration, b.start, b.end)]
        if blocking:
            cursor = max(b.end for b in blocking)
            continue
        yield cursor
        cursor += step


def find_alternatives(
    intervals: Sequence[Interval],
    busy: Sequence[Interval],
    duration: int,
    requested: int,
    *,
    earliest: int = 0,
    step: Optional[int] = None,
    limit: Optional[int] = None,
) -> list[str]:
    """Up to `limit` free starts, closest after the requested time first."""
    step = step or settings.slot_step_minutes
    limit = limit or settings.max_alternative_slots

    later: list[int] = []
    for interval in intervals:
        for start in _free_starts(interval, busy, duration, max(requested, earliest), step):
            later.append(start)
            if len(later) >= limit:
                break
        if len(later) >= limit:
            break

    earlier: list[int] = []
    if len(later) < limit:
        for interval in intervals:
            for start in _free_starts(interval, busy, duration, earliest, step):
                if start >= requested:
                    break
                earlier.append(start)
        earlier = earlier[-(limit - len(later)):]

    return [minutes_to_hhmm(start) for start in sorted(earlier + later)]


def evaluate_slot(
    employee,
    day: date,
    time_str: str,
    duration: int,
    intervals: Sequence[Interval],
    busy: Sequence[Interval],
    *,
    earliest: int = 0,
) -> AvailabilityResult:
    """Pure availability decision for one employee/day/time."""
    base = dict(employee_id=employee.id, employee_name=employee.name, date=day, time=time_str)
    if not intervals:
        return NotWorking(**base)

    start = parse_hhmm(time_str)
    end = start + duration
    if start < earliest:
        return OutOfHours(**base, working_hours=tuple(intervals), already_passed=True)
    if not any(interval.contains(start, end) for interval in intervals):
        return OutOfHours(**base, working_hours=tuple(intervals))

    if any(overlaps(start, end, b.start, b.end) for b in busy):
        alternatives = find_alternatives(intervals, busy, duration, start, earliest=earliest)
        return Conflict(**base, alternatives=tuple(alternatives))

    return Available(**base)


@dataclass
class EmployeeSearch:
    """Outcome of trying several employees for the same slot."""
    employee: Optional[object] = None
    result: Optional[AvailabilityResult] = None
    tried: list[AvailabilityResult] = field(default_factory=list)


class AvailabilityChecker:
    """Loads schedules, breaks and appointments and evaluates a slot."""

    def __init__(self, queries, now: Optional[datetime] = None):
        self.queries = queries
        self.now = now

    def _earliest_start(self, day: date) -> int:
        # Slots earlier than the current minute are gone when booking for today.
        if self.now is None or day != business_today(self.now):
            return 0
        local_now = to_business_time(self.now)
        return local_now.hour * 60 + local_now.minute + 1

    async def check(self, employee, day: date, time_str: str, duration: int) -> AvailabilityResult:
        schedules = await self.queries.list_schedules(employee.id, day_of_week(day))
        breaks = await self.queries.list_breaks(employee.id)
        appointments = await self.queries.list_appointments(employee.id, day)

        intervals = working_intervals(schedules, breaks, day)
        busy = busy_intervals(appointments)
        result = evaluate_slot(
            employee,
            day,
            time_str,
            duration,
            intervals,
            busy,
            earliest=self._earliest_start(day),
        )
        logger.info(
            "Availability %s for %s on %s at %s (%s min)",
            type(result).__name__,
            employee.name,
            day.isoformat(),
            time_str,
            duration,
        )
        return result

    async def first_available(
        self, employees: Sequence, day: date, time_str: str, duration: int
    ) -> EmployeeSearch:
        """
        Pick the employee for a slot when the client did not name one.

        With a single employee that employee is used as is. Otherwise employees
        are tried in order and the first one free at that time wins.
        """
        search = EmployeeSearch()
        if len(employees) == 1:
            result = await self.check(employees[0], day, time_str, duration)
            search.employee, search.result = employees[0], result
            search.tried.append(result)
            return search

        for employee in employees:
            result = await self.check(employee, day, time_str, duration)
            search.tried.append(result)
            if result.available:
                search.employee, search.result = employee, result
                break
        return search
