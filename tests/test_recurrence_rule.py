"""Tests for RecurrenceRule validation."""

import pytest
from datetime import date, time

from cadence.errors import InvalidRule
from cadence.models.recurrence import RecurrencePattern, RecurrenceRule, weekday_index


class TestWeekdayIndex:
    """Weekday normalization (Sunday=0)."""

    @pytest.mark.parametrize(
        "value,expected",
        [(0, 0), (6, 6), ("3", 3), ("Sunday", 0), ("monday", 1), ("Sat", 6), (" wed ", 3)],
    )
    def test_accepts_ints_digits_and_names(self, value, expected):
        assert weekday_index(value) == expected

    @pytest.mark.parametrize("value", [7, -1, "funday", True])
    def test_rejects_invalid(self, value):
        with pytest.raises(ValueError):
            weekday_index(value)


class TestRecurrenceRuleValidation:
    """Structural validation of rules."""

    def test_weekly_days_are_normalized(self):
        rule = RecurrenceRule.parse({"pattern": "weekly", "days_of_week": ["wed", 1, "monday", "3"]})
        assert rule.pattern == RecurrencePattern.WEEKLY
        assert rule.days_of_week == [1, 3]

    def test_weekly_requires_days(self):
        with pytest.raises(InvalidRule) as exc_info:
            RecurrenceRule.parse({"pattern": "weekly", "interval": 1})
        assert exc_info.value.details

    def test_interval_must_be_positive(self):
        with pytest.raises(InvalidRule):
            RecurrenceRule.parse({"pattern": "daily", "interval": 0})

    def test_unknown_pattern_rejected(self):
        with pytest.raises(InvalidRule):
            RecurrenceRule.parse({"pattern": "hourly"})

    def test_end_date_and_count_are_exclusive(self):
        with pytest.raises(InvalidRule):
            RecurrenceRule.parse(
                {"pattern": "daily", "end_date": "2026-12-31", "occurrence_count": 5}
            )

    def test_invalid_rule_is_a_value_error(self):
        with pytest.raises(ValueError):
            RecurrenceRule.parse({"pattern": "monthly", "day_of_month": 32})

    def test_time_of_day_drops_seconds(self):
        rule = RecurrenceRule.parse({"pattern": "daily", "time_of_day": "07:30:45"})
        assert rule.time_of_day == time(7, 30)

    def test_storage_round_trip_keeps_fields(self):
        rule = RecurrenceRule.parse(
            {"pattern": "yearly", "day_of_month": 29, "month_of_year": 2, "end_date": date(2030, 1, 1)}
        )
        stored = rule.to_storage()
        assert stored["pattern"] == "yearly"
        assert RecurrenceRule.parse(stored) == rule
        assert rule.is_bounded is True

    def test_parse_passes_rule_through(self):
        rule = RecurrenceRule(pattern=RecurrencePattern.DAILY)
        assert RecurrenceRule.parse(rule) is rule
        assert rule.is_bounded is False
