"""Tests for next-due-date calculation."""

import pytest
from datetime import date, datetime, time, timedelta

from cadence.models.recurrence import RecurrenceRule
from cadence.recurrence.calculator import (
    catch_up_due_date,
    next_due_date,
    snap_day,
    upcoming_due_dates,
)


def _rule(**kwargs) -> RecurrenceRule:
    return RecurrenceRule.parse(kwargs)


class TestSnapping:
    """Month-length snapping for monthly and yearly rules."""

    def test_snap_day(self):
        assert snap_day(2026, 2, 31) == 28
        assert snap_day(2028, 2, 31) == 29
        assert snap_day(2026, 4, 31) == 30
        assert snap_day(2026, 5, 15) == 15

    def test_monthly_day_31_snaps_to_last_day_of_shorter_month(self):
        rule = _rule(pattern="monthly", day_of_month=31, time_of_day="09:00")
        assert next_due_date(rule, datetime(2026, 1, 31, 9, 0)) == datetime(2026, 2, 28, 9, 0)
        assert next_due_date(rule, datetime(2026, 3, 31, 9, 0)) == datetime(2026, 4, 30, 9, 0)

    def test_monthly_anchor_recovers_after_short_month(self):
        rule = _rule(pattern="monthly", day_of_month=31, time_of_day="09:00")
        assert next_due_date(rule, datetime(2026, 2, 28, 9, 0)) == datetime(2026, 3, 31, 9, 0)

    def test_monthly_interval(self):
        rule = _rule(pattern="monthly", interval=3, day_of_month=15, time_of_day="10:00")
        assert next_due_date(rule, datetime(2026, 11, 15, 10, 0)) == datetime(2027, 2, 15, 10, 0)

    def test_yearly_feb_29_into_non_leap_year(self):
        rule = _rule(pattern="yearly", month_of_year=2, day_of_month=29, time_of_day="12:00")
        assert next_due_date(rule, datetime(2024, 2, 29, 12, 0)) == datetime(2025, 2, 28, 12, 0)

    def test_yearly_feb_29_returns_in_leap_year(self):
        rule = _rule(pattern="yearly", interval=4, month_of_year=2, day_of_month=29, time_of_day="12:00")
        assert next_due_date(rule, datetime(2024, 2, 29, 12, 0)) == datetime(2028, 2, 29, 12, 0)


class TestDailyAndWeekly:
    """Daily and weekly stepping."""

    def test_daily_interval(self):
        rule = _rule(pattern="daily", interval=3, time_of_day="08:00")
        assert next_due_date(rule, datetime(2026, 3, 30, 8, 0)) == datetime(2026, 4, 2, 8, 0)

    def test_daily_without_time_keeps_previous_time(self):
        rule = _rule(pattern="daily")
        assert next_due_date(rule, datetime(2026, 3, 4, 17, 45, 30)) == datetime(2026, 3, 5, 17, 45)

    def test_weekly_same_week_next_allowed_day(self):
        # Monday and Wednesday, weekly
        rule = _rule(pattern="weekly", days_of_week=[1, 3], time_of_day="08:00")
        assert next_due_date(rule, datetime(2026, 3, 2, 8, 0)) == datetime(2026, 3, 4, 8, 0)

    def test_weekly_interval_two_skips_a_week(self):
        """Last due on Wednesday of week N lands on Monday of week N+2."""
        rule = _rule(pattern="weekly", interval=2, days_of_week=[1, 3], time_of_day="08:00")
        wednesday = datetime(2026, 3, 4, 8, 0)
        assert next_due_date(rule, wednesday) == datetime(2026, 3, 16, 8, 0)

    def test_weekly_sunday_belongs_to_the_week_it_ends(self):
        # Sunday 2026-03-08 ends the Monday-started week of 2026-03-02.
        rule = _rule(pattern="weekly", interval=2, days_of_week=[0, 3], time_of_day="08:00")
        assert next_due_date(rule, datetime(2026, 3, 4, 8, 0)) == datetime(2026, 3, 8, 8, 0)
        assert next_due_date(rule, datetime(2026, 3, 8, 8, 0)) == datetime(2026, 3, 18, 8, 0)

    def test_weekly_sunday_last_due_skips_the_following_monday(self):
        # Mondays every two weeks; Monday 03-09 is one week after Sunday 03-08's week.
        rule = _rule(pattern="weekly", interval=2, days_of_week=[1], time_of_day="08:00")
        assert next_due_date(rule, datetime(2026, 3, 8, 8, 0)) == datetime(2026, 3, 16, 8, 0)


class TestBounds:
    """End date and occurrence count."""

    def test_end_date_exceeded_returns_none(self):
        rule = _rule(pattern="daily", time_of_day="08:00", end_date="2026-03-05")
        assert next_due_date(rule, datetime(2026, 3, 4, 8, 0)) == datetime(2026, 3, 5, 8, 0)
        assert next_due_date(rule, datetime(2026, 3, 5, 8, 0)) is None

    def test_occurrence_count_checked_against_instance_number(self):
        rule = _rule(pattern="daily", time_of_day="08:00", occurrence_count=3)
        assert next_due_date(rule, datetime(2026, 3, 4, 8, 0), next_instance_number=3) is not None
        assert next_due_date(rule, datetime(2026, 3, 4, 8, 0), next_instance_number=4) is None

    def test_upcoming_stops_at_bounds(self):
        rule = _rule(pattern="daily", time_of_day="08:00", occurrence_count=4)
        dates = list(upcoming_due_dates(rule, datetime(2026, 3, 4, 8, 0), 10, last_instance_number=1))
        assert dates == [datetime(2026, 3, 5, 8, 0), datetime(2026, 3, 6, 8, 0), datetime(2026, 3, 7, 8, 0)]

    def test_accepts_stored_dict(self):
        assert next_due_date({"pattern": "daily", "time_of_day": "06:00"}, datetime(2026, 3, 4, 6, 0)) == datetime(
            2026, 3, 5, 6, 0
        )


class TestStrictlyIncreasing:
    """The next due date is always after the previous one."""

    RULES = [
        {"pattern": "daily"},
        {"pattern": "daily", "time_of_day": "00:00"},
        {"pattern": "daily", "time_of_day": "23:59", "interval": 2},
        {"pattern": "weekly", "days_of_week": [0]},
        {"pattern": "weekly", "days_of_week": [1, 2, 3, 4, 5], "time_of_day": "07:00"},
        {"pattern": "weekly", "days_of_week": [6], "interval": 3, "time_of_day": "00:00"},
        {"pattern": "monthly", "day_of_month": 31, "time_of_day": "00:00"},
        {"pattern": "monthly", "day_of_month": 1},
        {"pattern": "yearly", "month_of_year": 2, "day_of_month": 29},
        {"pattern": "yearly", "month_of_year": 12, "day_of_month": 31, "time_of_day": "23:59"},
    ]

    @pytest.mark.parametrize("rule", RULES)
    def test_next_due_is_after_last_due(self, rule):
        start = datetime(2026, 1, 1, 13, 37)
        for offset in range(0, 400, 7):
            last_due = start + timedelta(days=offset, hours=offset % 24)
            assert next_due_date(rule, last_due) > last_due


class TestCatchUp:
    """First due date for a template without instances."""

    def test_daily_slot_later_today(self):
        rule = _rule(pattern="daily", time_of_day="18:00")
        assert catch_up_due_date(rule, datetime(2026, 3, 4, 9, 0)) == datetime(2026, 3, 4, 18, 0)

    def test_daily_slot_already_passed_moves_to_tomorrow(self):
        rule = _rule(pattern="daily", time_of_day="08:00")
        assert catch_up_due_date(rule, datetime(2026, 3, 4, 9, 0)) == datetime(2026, 3, 5, 8, 0)

    def test_weekly_remaining_day_this_week(self):
        rule = _rule(pattern="weekly", days_of_week=[5], time_of_day="08:00")
        assert catch_up_due_date(rule, datetime(2026, 3, 4, 9, 0)) == datetime(2026, 3, 6, 8, 0)

    def test_weekly_no_day_left_this_week(self):
        rule = _rule(pattern="weekly", days_of_week=[1], time_of_day="08:00")
        assert catch_up_due_date(rule, datetime(2026, 3, 4, 9, 0)) == datetime(2026, 3, 9, 8, 0)

    def test_monthly_day_passed_moves_to_next_month(self):
        rule = _rule(pattern="monthly", day_of_month=1, time_of_day="08:00")
        assert catch_up_due_date(rule, datetime(2026, 3, 4, 9, 0)) == datetime(2026, 4, 1, 8, 0)

    def test_never_returns_now_or_earlier(self):
        now = datetime(2026, 3, 4, 8, 0)
        rule = _rule(pattern="daily", time_of_day="08:00")
        assert catch_up_due_date(rule, now) > now

    def test_ended_rule_has_no_first_date(self):
        rule = _rule(pattern="daily", time_of_day="08:00", end_date=date(2026, 3, 1))
        assert catch_up_due_date(rule, datetime(2026, 3, 4, 9, 0)) is None

    def test_time_of_day_is_type_time(self):
        rule = _rule(pattern="daily", time_of_day="08:15")
        assert isinstance(rule.time_of_day, time)
