import math
from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest
import pytz

from metrics import (
    BASELINE_ENERGY, MilestoneValues, compute_progress, compute_streak,
    compute_weekly_energy, days_remaining, find_focus_todo, local_date_from_millis,
    normalize_milestone, round_half_up, safe_progress
)

# Miércoles
TODAY = date(2026, 10, 14)


def at(day, hour=12, tz=pytz.utc):
    """Epoch millis de un día a una hora concreta"""
    return int(tz.localize(datetime(day.year, day.month, day.day, hour)).timestamp() * 1000)


def days_ago(n):
    return TODAY - timedelta(days=n)


def todo(day, completed=False, **extra):
    return {"title": "t", "completed": completed, "due_date": at(day), **extra}


def journal(day, moods=(), answers=()):
    return {
        "date": day.isoformat(),
        "mood_entries": [{"mood": m} for m in moods],
        "answers": [{"question_id": q, "content": "..."} for q in answers],
    }


# =============================================================================
# PROGRESO
# =============================================================================

class TestProgress:
    @pytest.mark.parametrize("current, expected", [
        (42.4, 42), (42.5, 43), (150, 100), (-5, 0), (0, 0), (100, 100),
    ])
    def test_self_rating_uses_current_as_percentage(self, current, expected):
        milestone = {"type": "self-rating", "current_value": current, "start_value": 500, "target_value": 3}
        assert compute_progress(milestone) == expected

    def test_count(self):
        assert compute_progress({"type": "count", "current_value": 3, "target_value": 10}) == 30
        assert compute_progress({"type": "count", "current_value": 12, "target_value": 10}) == 100

    @pytest.mark.parametrize("target", [0, -4])
    def test_count_without_positive_target_is_zero(self, target):
        assert compute_progress({"type": "count", "current_value": 7, "target_value": target}) == 0

    def test_count_rounds_half_up(self):
        # 1/8 = 12.5%
        assert compute_progress({"type": "count", "current_value": 1, "target_value": 8}) == 13

    def test_numeric_range(self):
        assert compute_progress({"type": "numeric", "start_value": 80, "target_value": 90, "current_value": 85}) == 50

    def test_numeric_decreasing_range(self):
        # Bajar de 80kg a 70kg, va por 75kg
        milestone = {"type": "numeric", "start_value": 80, "target_value": 70, "current_value": 75}
        assert compute_progress(milestone) == 50
        assert compute_progress({**milestone, "current_value": 65}) == 100
        assert compute_progress({**milestone, "current_value": 85}) == 0

    def test_numeric_empty_range(self):
        assert compute_progress({"type": "numeric", "start_value": 50, "target_value": 50, "current_value": 60}) == 100
        assert compute_progress({"type": "numeric", "start_value": 50, "target_value": 50, "current_value": 50}) == 100
        assert compute_progress({"type": "numeric", "start_value": 50, "target_value": 50, "current_value": 40}) == 0

    def test_missing_fields_use_defaults(self):
        assert normalize_milestone({}) == MilestoneValues("numeric", 0.0, 100.0, 0.0)
        assert compute_progress({}) == 0
        assert compute_progress({"currentValue": 30}) == 30

    def test_unknown_type_is_numeric(self):
        values = normalize_milestone({"type": "weird", "current_value": 25})
        assert values.type == "numeric"
        assert compute_progress({"type": "weird", "current_value": 25}) == 25

    def test_reads_orm_like_objects(self):
        milestone = SimpleNamespace(type="count", current_value=None, target_value=4, start_value=None)
        assert compute_progress(milestone) == 0
        milestone.current_value = 2
        assert compute_progress(milestone) == 50

    @pytest.mark.parametrize("milestone", [
        {"type": "self-rating", "current_value": math.nan},
        {"type": "count", "current_value": 3, "target_value": math.inf},
        {"type": "numeric", "current_value": math.nan, "target_value": 10},
        {"type": "numeric", "current_value": 5, "start_value": -math.inf},
        {"type": "numeric", "current_value": "abc"},
    ])
    def test_non_finite_inputs_give_zero(self, milestone):
        assert compute_progress(milestone) == 0

    @pytest.mark.parametrize("milestone, expected", [
        ({"type": "count", "current_value": 1e308, "target_value": 1e-5}, 100),
        ({"type": "numeric", "start_value": -1e308, "target_value": 1e308, "current_value": 1e308}, 100),
        ({"type": "numeric", "start_value": -1e308, "target_value": 1e308, "current_value": 0}, 50),
        ({"type": "numeric", "start_value": 0, "target_value": 1e-300, "current_value": -1e308}, 0),
    ])
    def test_extreme_finite_values_do_not_overflow(self, milestone, expected):
        assert compute_progress(milestone) == expected

    def test_always_integer_in_range(self):
        for current in (-1e9, -3.7, 0, 0.49, 55.5, 99.99, 1e9):
            for target in (-10, 0, 1, 7, 100):
                for kind in ("self-rating", "count", "numeric"):
                    result = compute_progress({"type": kind, "current_value": current, "target_value": target})
                    assert isinstance(result, int)
                    assert 0 <= result <= 100

    def test_safe_progress(self):
        assert safe_progress(math.nan) == 0
        assert safe_progress(math.inf) == 0
        assert safe_progress(None) == 0
        assert safe_progress(99.6) == 100
        assert safe_progress(-0.4) == 0

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(-2.5) == -2


# =============================================================================
# ENERGÍA SEMANAL
# =============================================================================

class TestWeeklyEnergy:
    def test_seven_days_oldest_first(self):
        week = compute_weekly_energy([], [], today=TODAY, tz="UTC", locale="en")
        assert [p.day for p in week] == ["Thu", "Fri", "Sat", "Sun", "Mon", "Tue", "Wed"]

    def test_empty_week_is_baseline(self):
        week = compute_weekly_energy([], [], today=TODAY, tz="UTC")
        assert [p.value for p in week] == [BASELINE_ENERGY] * 7

    def test_single_great_mood(self):
        week = compute_weekly_energy([], [journal(TODAY, moods=[5])], today=TODAY, tz="UTC")
        assert week[-1].value == 60
        assert [p.value for p in week[:-1]] == [10] * 6

    def test_moods_are_averaged(self):
        # media 3.5 → 28 + bonus 20
        week = compute_weekly_energy([], [journal(TODAY, moods=[3, 4])], today=TODAY, tz="UTC")
        assert week[-1].value == 48

    def test_answers_only_give_engagement_bonus(self):
        week = compute_weekly_energy([], [journal(days_ago(1), answers=["grateful"])], today=TODAY, tz="UTC")
        assert week[-2].value == 20

    def test_empty_journal_counts_as_no_activity(self):
        week = compute_weekly_energy([], [journal(TODAY)], today=TODAY, tz="UTC")
        assert week[-1].value == BASELINE_ENERGY

    def test_half_of_tasks_done(self):
        todos = [todo(days_ago(2), completed=True), todo(days_ago(2))]
        week = compute_weekly_energy(todos, [], today=TODAY, tz="UTC")
        assert week[-3].value == 20

    def test_no_task_done_is_zero_not_baseline(self):
        week = compute_weekly_energy([todo(TODAY)], [], today=TODAY, tz="UTC")
        assert week[-1].value == 0

    def test_perfect_day(self):
        todos = [todo(TODAY, completed=True), todo(TODAY, completed=True)]
        journals = [journal(TODAY, moods=[5, 5], answers=["learn"])]
        week = compute_weekly_energy(todos, journals, today=TODAY, tz="UTC")
        assert week[-1].value == 100

    def test_tasks_outside_the_week_are_ignored(self):
        todos = [todo(days_ago(7), completed=True), todo(TODAY + timedelta(days=1), completed=True)]
        week = compute_weekly_energy(todos, [], today=TODAY, tz="UTC")
        assert [p.value for p in week] == [10] * 7

    def test_due_date_uses_user_timezone(self):
        madrid = pytz.timezone("Europe/Madrid")
        # 23:30 UTC del 13 = 01:30 del 14 en Madrid
        late = {"completed": True, "due_date": at(days_ago(1), hour=23)}
        late["due_date"] += 30 * 60 * 1000

        in_utc = compute_weekly_energy([late], [], today=TODAY, tz="UTC")
        in_madrid = compute_weekly_energy([late], [], today=TODAY, tz=madrid)
        assert (in_utc[-2].value, in_utc[-1].value) == (40, 10)
        assert (in_madrid[-2].value, in_madrid[-1].value) == (10, 40)

    def test_camel_case_records(self):
        journals = [{"date": TODAY.isoformat(), "moodEntries": [{"mood": 1}], "answers": []}]
        todos = [{"completed": True, "dueDate": at(TODAY)}]
        week = compute_weekly_energy(todos, journals, today=TODAY, tz="UTC")
        assert week[-1].value == 8 + 20 + 40

    def test_locale_labels(self):
        week = compute_weekly_energy([], [], today=TODAY, tz="UTC", locale="zh")
        assert week[-1].day == "三"
        week = compute_weekly_energy([], [], today=TODAY, tz="UTC", locale="es")
        assert week[0].day == "Jue"

    def test_is_deterministic(self):
        todos = [todo(days_ago(3), completed=True), todo(days_ago(3))]
        journals = [journal(days_ago(3), moods=[2, 4])]
        first = compute_weekly_energy(todos, journals, today=TODAY, tz="UTC")
        assert first == compute_weekly_energy(todos, journals, today=TODAY, tz="UTC")


# =============================================================================
# RACHA
# =============================================================================

class TestStreak:
    def test_consecutive_days_until_gap(self):
        todos = [todo(days_ago(n), completed=True) for n in (0, 1, 2, 4, 5)]
        assert compute_streak(todos, today=TODAY, tz="UTC") == 3

    def test_today_is_forgiven(self):
        todos = [todo(days_ago(1), completed=True), todo(days_ago(2), completed=True), todo(TODAY)]
        assert compute_streak(todos, today=TODAY, tz="UTC") == 2

    def test_yesterday_is_not_forgiven(self):
        todos = [todo(TODAY, completed=True), todo(days_ago(2), completed=True)]
        assert compute_streak(todos, today=TODAY, tz="UTC") == 1

    def test_no_completed_tasks(self):
        assert compute_streak([], today=TODAY, tz="UTC") == 0
        assert compute_streak([todo(TODAY), todo(days_ago(1))], today=TODAY, tz="UTC") == 0

    def test_several_tasks_same_day_count_once(self):
        todos = [todo(TODAY, completed=True), todo(TODAY, completed=True), todo(days_ago(1), completed=True)]
        assert compute_streak(todos, today=TODAY, tz="UTC") == 2

    def test_future_tasks_do_not_count(self):
        todos = [todo(TODAY + timedelta(days=1), completed=True)]
        assert compute_streak(todos, today=TODAY, tz="UTC") == 0

    def test_bounded_to_a_year(self):
        todos = [todo(days_ago(n), completed=True) for n in range(400)]
        assert compute_streak(todos, today=TODAY, tz="UTC") == 365

    def test_is_deterministic(self):
        todos = [todo(days_ago(n), completed=True) for n in (1, 2, 3)]
        assert compute_streak(todos, today=TODAY, tz="UTC") == compute_streak(todos, today=TODAY, tz="UTC")


# =============================================================================
# UTILIDADES
# =============================================================================

def test_local_date_from_millis():
    millis = at(TODAY, hour=23)
    assert local_date_from_millis(millis, "UTC") == TODAY
    assert local_date_from_millis(millis, "Europe/Madrid") == TODAY + timedelta(days=1)


def test_days_remaining_rounds_up():
    day = 24 * 60 * 60 * 1000
    assert days_remaining(day * 3 // 2, 0) == 2
    assert days_remaining(0, day) == -1


def test_find_focus_todo():
    todos = [
        {"title": "a", "is_focus": True, "completed": True},
        {"title": "b", "is_focus": False, "completed": False},
        {"title": "c", "isFocus": True, "completed": False},
    ]
    assert find_focus_todo(todos)["title"] == "c"
    assert find_focus_todo([]) is None


# =============================================================================
# FECHAS FUERA DE RANGO
# =============================================================================

@pytest.mark.parametrize("due", [10 ** 15, -10 ** 15, 253402300799999])
def test_unrepresentable_due_dates_are_skipped(due):
    todos = [{"completed": True, "due_date": due}, todo(TODAY, completed=True), todo(days_ago(1), completed=True)]

    week = compute_weekly_energy(todos, [], today=TODAY, tz="Pacific/Kiritimati")
    assert len(week) == 7
    assert compute_streak(todos, today=TODAY, tz="UTC") == 2
    assert compute_streak(todos, today=TODAY, tz="Pacific/Kiritimati") >= 1
