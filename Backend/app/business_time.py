"""
Business clock and time arithmetic.

All "now" calculations use the barbershop's fixed offset (UTC-3) regardless
of where the server or the client runs. Weekdays follow the 0 = Sunday
numbering used by the employee schedule tables.
"""
from datetime import date, datetime, time

from .core.config import get_settings

settings = get_settings()

WEEKDAY_NAMES = [
    "domingo",
    "segunda-feira",
    "terça-feira",
    "quarta-feira",
    "quinta-feira",
    "sexta-feira",
    "sábado",
]

MONTH_NAMES = [
    "janeiro",
    "fevereiro",
    "março",
    "abril",
    "maio",
    "junho",
    "julho",
    "agosto",
    "setembro",
    "outubro",
    "novembro",
    "dezembro",
]


def business_now() -> datetime:
    """Get the current datetime in the business timezone."""
    return datetime.now(settings.business_timezone)


def to_business_time(value: datetime) -> datetime:
    return value.astimezone(settings.business_timezone)


def business_today(now: datetime | None = None) -> date:
    """Get today's date in the business timezone."""
    if now is None:
        return business_now().date()
    return to_business_time(now).date()


def day_of_week(value: date) -> int:
    """Weekday number with 0 = Sunday ... 6 = Saturday."""
    return (value.weekday() + 1) % 7


def time_to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def parse_hhmm(value: str) -> int:
    """'09:30' -> 570."""
    hour, minute = value.split(":")[:2]
    return int(hour) * 60 + int(minute)


def minutes_to_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def minutes_to_time(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def format_date_long(value: date) -> str:
    """Format like 'terça-feira, 21 de outubro de 2026'."""
    return (
        f"{WEEKDAY_NAMES[day_of_week(value)]}, {value.day:02d} "
        f"de {MONTH_NAMES[value.month - 1]} de {value.year}"
    )


def format_date_short(value: date) -> str:
    return value.strftime("%d/%m/%Y")
