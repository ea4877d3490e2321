"""
Entity extraction for booking messages (pt-BR).

Time and date are resolved by ordered rule lists. Each rule is a compiled
pattern plus a resolver, and the first rule that matches wins. Order
matters: specific phrases ("quatro da tarde", "depois de amanhã") must be
tried before the generic ones that would swallow them ("às 4", "amanhã").
"""
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, Optional, Sequence

from .business_time import business_today, day_of_week

NUMBER_WORDS = {
    "uma": 1,
    "duas": 2,
    "três": 3,
    "tres": 3,
    "quatro": 4,
    "cinco": 5,
    "seis": 6,
    "sete": 7,
    "oito": 8,
    "nove": 9,
    "dez": 10,
    "onze": 11,
    "doze": 12,
}

WEEKDAY_NUMBERS = {
    "domingo": 0,
    "segunda": 1,
    "terça": 2,
    "terca": 2,
    "quarta": 3,
    "quinta": 4,
    "sexta": 5,
    "sábado": 6,
    "sabado": 6,
}

# Bare hours in this range could be morning or afternoon/evening.
AMBIGUOUS_HOURS = range(1, 8)

PERIOD = r"(manhã|manha|tarde|noite)"
VAGUE_PERIOD_RE = re.compile(r"(?<!boa )\b" + PERIOD + r"\b", re.IGNORECASE)
PERIOD_ONLY_RE = re.compile(
    r"^\s*(?:[eé]\s+)?(?:d[ae]|à|a|na|pela)?\s*" + PERIOD + r"\s*[.!?]*\s*$",
    re.IGNORECASE,
)


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class HistoryMessage:
    role: str
    content: str


# ────────────────────────────────────────────────────────────────
# Time
# ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TimeMatch:
    """A time-of-day found in a message.

    `time` is None when the matched numbers are out of range. `has_period`
    is False for a bare "às N", which is what makes it ambiguous.
    """
    rule: str
    hour: int
    minute: int
    has_period: bool = True

    @property
    def time(self) -> Optional[str]:
        if not (0 <= self.hour <= 23 and 0 <= self.minute <= 59):
            return None
        return f"{self.hour:02d}:{self.minute:02d}"

    @property
    def ambiguous(self) -> bool:
        return not self.has_period and self.hour in AMBIGUOUS_HOURS


@dataclass(frozen=True)
class TimeRule:
    name: str
    pattern: re.Pattern
    resolve: Callable[[re.Match], TimeMatch]


def apply_period(hour: int, period: str) -> int:
    period = period.lower()
    if period in ("tarde", "noite") and hour < 12:
        return hour + 12
    if period in ("manhã", "manha") and hour == 12:
        return 0
    return hour


def _spelled_with_period(match: re.Match) -> TimeMatch:
    hour = NUMBER_WORDS[match.group(1).lower()]
    if match.group(2).lower() in ("tarde", "noite") and hour < 12:
        hour += 12
    return TimeMatch("spelled_with_period", hour, 0)


def _digits_with_period(match: re.Match) -> TimeMatch:
    hour = apply_period(int(match.group(1)), match.group(3))
    return TimeMatch("digits_with_period", hour, int(match.group(2) or 0))


TIME_RULES: list[TimeRule] = [
    TimeRule(
        "noon",
        re.compile(r"\bmeio[- ]?dia\b", re.IGNORECASE),
        lambda m: TimeMatch("noon", 12, 0),
    ),
    TimeRule(
        "midnight",
        re.compile(r"\bmeia[- ]?noite\b", re.IGNORECASE),
        lambda m: TimeMatch("midnight", 0, 0),
    ),
    TimeRule(
        "spelled_with_period",
        re.compile(
            r"\b(" + "|".join(NUMBER_WORDS) + r")\s+(?:horas?\s+)?da\s+" + PERIOD + r"\b",
            re.IGNORECASE,
        ),
        _spelled_with_period,
    ),
    TimeRule(
        "digits_with_period",
        re.compile(
            r"(?<![:h\d])\b(\d{1,2})(?:[h:](\d{2}))?\s*(?:h|horas?)?\s+da\s+" + PERIOD + r"\b",
            re.IGNORECASE,
        ),
        _digits_with_period,
    ),
    TimeRule(
        "clock",
        re.compile(r"\b(\d{1,2})[h:](\d{2})\b", re.IGNORECASE),
        lambda m: TimeMatch("clock", int(m.group(1)), int(m.group(2))),
    ),
    TimeRule(
        "hours",
        re.compile(r"\b(\d{1,2})\s*(?:horas?|h)\b", re.IGNORECASE),
        lambda m: TimeMatch("hours", int(m.group(1)), 0),
    ),
    TimeRule(
        "bare_hour",
        re.compile(r"(?:^|\s)(?:às|as|à|a)\s+(\d{1,2})\b", re.IGNORECASE),
        lambda m: TimeMatch("bare_hour", int(m.group(1)), 0, has_period=False),
    ),
]


def extract_time(text: str) -> Optional[TimeMatch]:
    """Return the first time rule that matches, or None."""
    for rule in TIME_RULES:
        match = rule.pattern.search(text)
        if match:
            return rule.resolve(match)
    return None


def is_period_only(text: str) -> Optional[str]:
    """'da tarde' -> 'tarde'; None when the message says more than a period."""
    match = PERIOD_ONLY_RE.match(text)
    return match.group(1).lower() if match else None


def mentions_vague_period(text: str) -> bool:
    return bool(VAGUE_PERIOD_RE.search(text))


class TimeSource(str, Enum):
    CURRENT_MESSAGE = "current_message"
    HISTORY = "history"
    NONE = "none"


@dataclass(frozen=True)
class TimeResolution:
    time: Optional[str] = None
    source: TimeSource = TimeSource.NONE
    # Set when the client gave a bare hour (1-7) without saying which period.
    ambiguous_hour: Optional[int] = None


def resolve_time(message: str, history: Sequence[HistoryMessage]) -> TimeResolution:
    """
    Time from the current message, falling back to earlier user messages.

    A period-only reply ("da tarde") completes the most recent bare hour.
    When the current message mentions a period without an hour ("tem algo de
    tarde?") the history is not used: the client is asking for something new.
    """
    texts = [message] + [m.content for m in reversed(history) if m.role == ChatRole.USER.value]
    history_allowed = is_period_only(message) is not None or not mentions_vague_period(message)

    pending_period: Optional[str] = None
    for index, text in enumerate(texts):
        if index > 0 and not history_allowed:
            break
        source = TimeSource.CURRENT_MESSAGE if index == 0 else TimeSource.HISTORY
        found = extract_time(text)

        if found is None:
            period = is_period_only(text)
            if period and pending_period is None:
                pending_period = period
            continue

        if not found.has_period and pending_period:
            hour = apply_period(found.hour, pending_period)
            return TimeResolution(TimeMatch(found.rule, hour, found.minute).time, source)

        if found.ambiguous:
            if index == 0:
                return TimeResolution(None, source, ambiguous_hour=found.hour)
            # An unanswered ambiguous hour from earlier turns is not reused.
            continue

        if found.time is None:
            if index == 0:
                return TimeResolution(None, TimeSource.NONE)
            continue

        return TimeResolution(found.time, source)

    return TimeResolution()


# ────────────────────────────────────────────────────────────────
# Date
# ────────────────────────────────────────────────────────────────

class DateSource(str, Enum):
    CURRENT_MESSAGE = "current_message"
    SESSION = "session"
    HISTORY = "history"
    DEFAULT = "default"

    @property
    def persists_to_session(self) -> bool:
        return self in (DateSource.CURRENT_MESSAGE, DateSource.SESSION)


@dataclass(frozen=True)
class DateRule:
    name: str
    pattern: re.Pattern
    resolve: Callable[[re.Match, date], Optional[date]]
    # Relative words like "hoje" go stale, so they are only read from the current message.
    scan_history: bool = True


def next_weekday(today: date, target_dow: int) -> date:
    """Next strictly-future date with weekday `target_dow` (0 = Sunday)."""
    days_ahead = (target_dow - day_of_week(today)) % 7
    return today + timedelta(days=days_ahead or 7)


def day_of_month(today: date, day: int) -> Optional[date]:
    """Day `day` of this month if not yet passed, else of the next month."""
    if not 1 <= day <= 31:
        return None
    year, month = today.year, today.month
    if day < today.day:
        month += 1
    # Skip months that do not have this day (e.g. "dia 31" in November).
    for _ in range(3):
        if month > 12:
            month, year = 1, year + 1
        try:
            return date(year, month, day)
        except ValueError:
            month += 1
    return None


def _weekday(match: re.Match, today: date) -> Optional[date]:
    target = WEEKDAY_NUMBERS.get(match.group(1).lower())
    if target is None:
        return None
    return next_weekday(today, target)


DATE_RULES: list[DateRule] = [
    DateRule(
        "depois de amanhã",
        re.compile(r"\bdepois\s+de\s+amanh[ãa]\b", re.IGNORECASE),
        lambda m, today: today + timedelta(days=2),
    ),
    DateRule(
        "amanhã",
        re.compile(r"\bamanh[ãa]\b", re.IGNORECASE),
        lambda m, today: today + timedelta(days=1),
    ),
    DateRule(
        "hoje",
        re.compile(r"\bhoje\b", re.IGNORECASE),
        lambda m, today: today,
        scan_history=False,
    ),
    DateRule(
        "dia da semana",
        re.compile(
            r"\b(domingo|segunda|terça|terca|quarta|quinta|sexta|sábado|sabado)(?:[- ]feira)?\b",
            re.IGNORECASE,
        ),
        _weekday,
    ),
    DateRule(
        "dia do mês",
        re.compile(r"\bdia\s+(\d{1,2})\b", re.IGNORECASE),
        lambda m, today: day_of_month(today, int(m.group(1))),
    ),
]


def extract_date(text: str, today: date, *, history_scan: bool = False) -> Optional[tuple[date, str]]:
    for rule in DATE_RULES:
        if history_scan and not rule.scan_history:
            continue
        match = rule.pattern.search(text)
        if match:
            resolved = rule.resolve(match, today)
            if resolved is not None:
                return resolved, rule.name
    return None


@dataclass(frozen=True)
class DateResolution:
    date: date
    source: DateSource
    rule: str


def resolve_date(
    message: str,
    history: Sequence[HistoryMessage],
    session_date: Optional[date],
    today: date,
) -> DateResolution:
    """Current message, then carried session date, then history, then today."""
    found = extract_date(message, today)
    if found:
        return DateResolution(found[0], DateSource.CURRENT_MESSAGE, found[1])

    if session_date is not None:
        return DateResolution(session_date, DateSource.SESSION, "mantida")

    for msg in reversed(history):
        if msg.role != ChatRole.USER.value:
            continue
        found = extract_date(msg.content, today, history_scan=True)
        if found:
            return DateResolution(found[0], DateSource.HISTORY, found[1])

    return DateResolution(today, DateSource.DEFAULT, "hoje")


# ────────────────────────────────────────────────────────────────
# Employee
# ────────────────────────────────────────────────────────────────

def find_employee_in_text(text: str, employees: Sequence) -> Optional[object]:
    """
    Employee whose name appears in `text` (case-insensitive).

    A name contained in another matched name ("Carlos" in "Carlos Eduardo")
    yields to the longer one. Two unrelated names in the same text are
    ambiguous and return None.
    """
    lowered = text.lower()
    matches = [emp for emp in employees if emp.name and emp.name.lower() in lowered]
    names = [emp.name.lower() for emp in matches]
    matches = [
        emp for emp in matches
        if not any(emp.name.lower() != other and emp.name.lower() in other for other in names)
    ]
    if len(matches) == 1:
        return matches[0]
    return None


def resolve_employee(message: str, history: Sequence[HistoryMessage], employees: Sequence):
    employee = find_employee_in_text(message, employees)
    if employee is not None:
        return employee
    for msg in reversed(history):
        employee = find_employee_in_text(msg.content, employees)
        if employee is not None:
            return employee
    return None


# ────────────────────────────────────────────────────────────────
# Combined
# ────────────────────────────────────────────────────────────────

@dataclass
class ExtractedEntities:
    time: Optional[str]
    date: date
    employee: Optional[object]
    date_source: DateSource
    date_rule: str
    time_source: TimeSource = TimeSource.NONE
    ambiguous_hour: Optional[int] = None

    @property
    def date_label(self) -> str:
        return f"{self.date_source.value} ({self.date_rule})"


def extract_entities(
    message: str,
    history: Sequence[HistoryMessage],
    employees: Sequence,
    session_date: Optional[date] = None,
    now: Optional[datetime] = None,
) -> ExtractedEntities:
    today = business_today(now)
    time_resolution = resolve_time(message, history)
    date_resolution = resolve_date(message, history, session_date, today)
    return ExtractedEntities(
        time=time_resolution.time,
        date=date_resolution.date,
        employee=resolve_employee(message, history, employees),
        date_source=date_resolution.source,
        date_rule=date_resolution.rule,
        time_source=time_resolution.source,
        ambiguous_hour=time_resolution.ambiguous_hour,
    )
