"""
Entity extraction tests: time, date and employee from pt-BR messages.

Run with: pytest tests/test_extraction.py -v
"""
from datetime import date
from types import SimpleNamespace

import pytest

from app.extraction import (
    DateSource,
    HistoryMessage,
    TimeSource,
    day_of_month,
    extract_entities,
    extract_time,
    find_employee_in_text,
    next_weekday,
    resolve_date,
    resolve_employee,
    resolve_time,
)
from conftest import MONDAY, NOW, SUNDAY, TUESDAY


def user(content):
    return HistoryMessage(role="user", content=content)


def assistant(content):
    return HistoryMessage(role="assistant", content=content)


# ────────────────────────────────────────────────────────────────
# Time
# ────────────────────────────────────────────────────────────────

class TestTimeRules:

    @pytest.mark.parametrize("hour", range(1, 12))
    def test_afternoon_hours_move_to_24h(self, hour):
        assert extract_time(f"{hour} da tarde").time == f"{hour + 12:02d}:00"

    def test_noon_in_the_afternoon_stays_noon(self):
        assert extract_time("12 da tarde").time == "12:00"

    def test_twelve_in_the_morning_is_midnight(self):
        assert extract_time("12 da manhã").time == "00:00"

    def test_spelled_hours(self):
        assert extract_time("pode ser quatro da tarde").time == "16:00"
        assert extract_time("às nove da manhã").time == "09:00"
        assert extract_time("oito da noite").time == "20:00"

    def test_noon_and_midnight_words(self):
        assert extract_time("ao meio-dia").time == "12:00"
        assert extract_time("meia noite").time == "00:00"

    def test_clock_and_hour_suffix(self):
        assert extract_time("às 10h30").time == "10:30"
        assert extract_time("14:45 está bom").time == "14:45"
        assert extract_time("lá pelas 15h").time == "15:00"
        assert extract_time("16 horas").time == "16:00"

    @pytest.mark.parametrize(
        "message, expected",
        [
            ("às 4:30 da tarde", "16:30"),
            ("às 10:30 da manhã", "10:30"),
            ("14h30 da tarde", "14:30"),
            ("4h15 da tarde", "16:15"),
            ("às 4h da tarde", "16:00"),
        ],
    )
    def test_clock_with_period_keeps_minutes(self, message, expected):
        assert extract_time(message).time == expected

    def test_clock_with_period_from_current_message(self):
        result = resolve_time("às 4:30 da tarde", [user("às 10")])
        assert result.time == "16:30"
        assert result.source == TimeSource.CURRENT_MESSAGE

    def test_bare_hour_is_marked_without_period(self):
        found = extract_time("às 10")
        assert found.time == "10:00"
        assert not found.has_period
        assert not found.ambiguous

    def test_bare_small_hour_is_ambiguous(self):
        assert extract_time("às 3").ambiguous

    def test_out_of_range_time_has_no_value(self):
        assert extract_time("às 25:00").time is None

    def test_phone_number_is_not_a_time(self):
        assert extract_time("meu telefone é 11987654321") is None


class TestResolveTime:

    def test_current_message_wins(self):
        result = resolve_time("às 15h", [user("às 10h")])
        assert result.time == "15:00"
        assert result.source == TimeSource.CURRENT_MESSAGE

    def test_falls_back_to_user_history(self):
        result = resolve_time("com o Carlos", [user("amanhã às 10")])
        assert result.time == "10:00"
        assert result.source == TimeSource.HISTORY

    def test_assistant_times_are_ignored(self):
        result = resolve_time("ok", [assistant("Temos 10:30 livre")])
        assert result.time is None

    def test_ambiguous_hour_in_current_message(self):
        result = resolve_time("pode ser às 3", [])
        assert result.time is None
        assert result.ambiguous_hour == 3

    def test_period_reply_completes_earlier_bare_hour(self):
        result = resolve_time("da tarde", [user("pode ser às 3")])
        assert result.time == "15:00"

    def test_unanswered_ambiguous_hour_is_not_reused(self):
        result = resolve_time("com o Carlos", [user("às 3")])
        assert result.time is None
        assert result.ambiguous_hour is None

    def test_vague_period_question_does_not_reuse_history(self):
        result = resolve_time("tem algo de tarde?", [user("às 10")])
        assert result.time is None

    def test_greeting_does_not_block_history(self):
        result = resolve_time("boa tarde", [user("às 10")])
        assert result.time == "10:00"

    def test_invalid_current_time_returns_none(self):
        result = resolve_time("às 27:00", [user("às 10")])
        assert result.time is None


# ────────────────────────────────────────────────────────────────
# Date
# ────────────────────────────────────────────────────────────────

class TestDateRules:

    def test_same_weekday_means_next_week(self):
        assert next_weekday(SUNDAY, 0) == date(2026, 10, 25)

    def test_next_weekday(self):
        assert next_weekday(SUNDAY, 1) == MONDAY
        assert next_weekday(MONDAY, 0) == date(2026, 10, 25)

    def test_day_of_month_still_ahead(self):
        assert day_of_month(SUNDAY, 25) == date(2026, 10, 25)

    def test_day_of_month_already_passed_moves_to_next_month(self):
        assert day_of_month(SUNDAY, 10) == date(2026, 11, 10)

    def test_day_missing_from_next_month_is_skipped(self):
        assert day_of_month(date(2026, 11, 5), 31) == date(2026, 12, 31)

    def test_day_of_month_rolls_over_year(self):
        assert day_of_month(date(2026, 12, 20), 3) == date(2027, 1, 3)

    def test_invalid_day(self):
        assert day_of_month(SUNDAY, 40) is None


class TestResolveDate:

    @pytest.mark.parametrize(
        "message, expected, rule",
        [
            ("amanhã às 10", MONDAY, "amanhã"),
            ("depois de amanhã", TUESDAY, "depois de amanhã"),
            ("hoje mesmo", SUNDAY, "hoje"),
            ("na terça-feira", TUESDAY, "dia da semana"),
            ("domingo", date(2026, 10, 25), "dia da semana"),
            ("dia 10", date(2026, 11, 10), "dia do mês"),
        ],
    )
    def test_current_message(self, message, expected, rule):
        result = resolve_date(message, [], None, SUNDAY)
        assert result.date == expected
        assert result.rule == rule
        assert result.source == DateSource.CURRENT_MESSAGE

    def test_session_date_beats_history(self):
        result = resolve_date("às 15h", [user("amanhã")], TUESDAY, SUNDAY)
        assert result.date == TUESDAY
        assert result.source == DateSource.SESSION

    def test_current_message_beats_session(self):
        result = resolve_date("amanhã", [], TUESDAY, SUNDAY)
        assert result.date == MONDAY

    def test_history_used_without_session(self):
        result = resolve_date("às 15h", [user("quero na terça")], None, SUNDAY)
        assert result.date == TUESDAY
        assert result.source == DateSource.HISTORY

    def test_today_is_not_read_from_history(self):
        result = resolve_date("ok", [user("hoje às 10")], None, SUNDAY)
        assert result.date == SUNDAY
        assert result.source == DateSource.DEFAULT

    def test_only_current_and_session_dates_are_carried(self):
        assert DateSource.CURRENT_MESSAGE.persists_to_session
        assert DateSource.SESSION.persists_to_session
        assert not DateSource.HISTORY.persists_to_session
        assert not DateSource.DEFAULT.persists_to_session


# ────────────────────────────────────────────────────────────────
# Employee
# ────────────────────────────────────────────────────────────────

class TestEmployee:

    @pytest.fixture
    def team(self):
        return [
            SimpleNamespace(name="Carlos"),
            SimpleNamespace(name="Carlos Eduardo"),
            SimpleNamespace(name="Rafael"),
        ]

    def test_case_insensitive_match(self, team):
        assert find_employee_in_text("quero com o rafael", team).name == "Rafael"

    def test_longer_name_wins(self, team):
        assert find_employee_in_text("com o carlos eduardo", team).name == "Carlos Eduardo"

    def test_two_names_are_ambiguous(self, team):
        assert find_employee_in_text("Carlos Eduardo ou Rafael", team) is None

    def test_history_fallback(self, team):
        history = [user("quero com o Rafael"), assistant("Claro!")]
        assert resolve_employee("amanhã às 10", history, team).name == "Rafael"


def test_extract_entities_for_named_employee_tomorrow():
    carlos = SimpleNamespace(name="Carlos")
    entities = extract_entities(
        "quero cortar o cabelo com carlos amanhã às 10",
        [],
        [carlos],
        now=NOW,
    )
    assert entities.date == MONDAY
    assert entities.time == "10:00"
    assert entities.employee is carlos
    assert entities.date_source == DateSource.CURRENT_MESSAGE
