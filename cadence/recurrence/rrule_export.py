"""Export RecurrenceRule to iCalendar RRULE strings (export-only)."""

from __future__ import annotations

from datetime import date
from typing import List

from cadence.models.recurrence import RecurrencePattern, RecurrenceRule


# Sunday=0 ... Saturday=6
_WD_CODES: List[str] = ["SU", "MO", "TU", "WE", "TH", "FR", "SA"]


def rule_to_rrule(rule: RecurrenceRule) -> str:
    """Convert a rule to an RRULE (without the leading 'RRULE:' prefix)."""
    parts: List[str] = []
    freq = {
        RecurrencePattern.DAILY: "DAILY",
        RecurrencePattern.WEEKLY: "WEEKLY",
        RecurrencePattern.MONTHLY: "MONTHLY",
        RecurrencePattern.YEARLY: "YEARLY",
    }[rule.pattern]
    parts.append(f"FREQ={freq}")
    if rule.interval and int(rule.interval) != 1:
        parts.append(f"INTERVAL={int(rule.interval)}")
    if rule.pattern == RecurrencePattern.WEEKLY and rule.days_of_week:
        parts.append("BYDAY=" + ",".join(_WD_CODES[d] for d in rule.days_of_week))
    if rule.pattern == RecurrencePattern.MONTHLY and rule.day_of_month:
        # RRULE consumers skip months shorter than the anchor; the engine snaps instead.
        parts.append(f"BYMONTHDAY={rule.day_of_month}")
    if rule.pattern == RecurrencePattern.YEARLY and rule.month_of_year:
        parts.append(f"BYMONTH={rule.month_of_year}")
        if rule.day_of_month:
            parts.append(f"BYMONTHDAY={rule.day_of_month}")
    if rule.time_of_day is not None:
        parts.append(f"BYHOUR={rule.time_of_day.hour};BYMINUTE={rule.time_of_day.minute}")
    if rule.occurrence_count:
        parts.append(f"COUNT={int(rule.occurrence_count)}")
    # UNTIL: keep date-only to avoid timezone drift; interpreted as end of day in UTC.
    if rule.end_date:
        until: date = rule.end_date
        parts.append(f"UNTIL={until.strftime('%Y%m%d')}T235959Z")
    return ";".join(parts)
