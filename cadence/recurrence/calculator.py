"""Next-due-date calculation for recurrence rules.

Everything here is a pure function of its arguments: no clock access and no
persistence. Same inputs always produce the same output.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, time as dtime, timedelta
from typing import Iterator, Optional, Union

from cadence.models.constants import WEEKLY_SEARCH_SLACK_WEEKS
from cadence.models.recurrence import RecurrencePattern, RecurrenceRule

RuleLike = Union[RecurrenceRule, dict]


def _as_rule(rule: RuleLike) -> RecurrenceRule:
    return RecurrenceRule.parse(rule)


def snap_day(year: int, month: int, day: int) -> int:
    """Clamp a day-of-month to the last day of the target month."""
    return min(day, calendar.monthrange(year, month)[1])


def _time_for(rule: RecurrenceRule, reference: datetime) -> dtime:
    # Without an explicit time of day the previous due time is carried forward.
    if rule.time_of_day is not None:
        return rule.time_of_day
    return dtime(reference.hour, reference.minute)


def _combine(day: date, t: dtime) -> datetime:
    return datetime.combine(day, dtime(t.hour, t.minute))


def _add_months(d: date, months: int, day: int) -> date:
    total = d.year * 12 + (d.month - 1) + months
    year, month0 = divmod(total, 12)
    month = month0 + 1
    return date(year, month, snap_day(year, month, day))


def _week_start(d: date) -> date:
    """Monday of the week containing d."""
    return d - timedelta(days=d.weekday())


def _weekday_index(d: date) -> int:
    """Sunday=0 ... Saturday=6 (Python's weekday() is Monday=0)."""
    return (d.weekday() + 1) % 7


def _next_weekly_day(rule: RecurrenceRule, last_due: date) -> date:
    allowed = set(rule.days_of_week or [])
    # Interval weeks count from the Monday-start week holding last_due, so a Sunday last_due anchors on its own week.
    anchor = _week_start(last_due)
    current = last_due + timedelta(days=1)
    for _ in range(7 * (rule.interval + WEEKLY_SEARCH_SLACK_WEEKS)):
        weeks = (_week_start(current) - anchor).days // 7
        if _weekday_index(current) in allowed and weeks % rule.interval == 0:
            return current
        current += timedelta(days=1)
    # Wrap to the first allowed day `interval` weeks later.
    first = sorted(allowed)[0]
    return anchor + timedelta(weeks=rule.interval, days=(first - 1) % 7)


def _advance(rule: RecurrenceRule, last_due: datetime) -> date:
    base = last_due.date()
    if rule.pattern == RecurrencePattern.DAILY:
        return base + timedelta(days=rule.interval)
    if rule.pattern == RecurrencePattern.WEEKLY:
        return _next_weekly_day(rule, base)
    if rule.pattern == RecurrencePattern.MONTHLY:
        return _add_months(base, rule.interval, rule.day_of_month or base.day)
    if rule.pattern == RecurrencePattern.YEARLY:
        year = base.year + rule.interval
        month = rule.month_of_year or base.month
        return date(year, month, snap_day(year, month, rule.day_of_month or base.day))
    raise ValueError(f"Unsupported recurrence pattern: {rule.pattern}")


def _past_end(rule: RecurrenceRule, due: datetime) -> bool:
    return rule.end_date is not None and due.date() > rule.end_date


def next_due_date(
    rule: RuleLike,
    last_due: datetime,
    *,
    next_instance_number: Optional[int] = None,
) -> Optional[datetime]:
    """Compute the due timestamp following `last_due`.

    Args:
        rule: Recurrence rule (model or its stored dict form)
        last_due: Due timestamp of the previous instance
        next_instance_number: Number the generated instance would get; checked
            against `occurrence_count` when both are set

    Returns:
        A timestamp strictly after `last_due`, or None when the rule's end date
        or occurrence cap is exceeded.
    """
    rule = _as_rule(rule)
    if (
        rule.occurrence_count is not None
        and next_instance_number is not None
        and next_instance_number > rule.occurrence_count
    ):
        return None

    due = _combine(_advance(rule, last_due), _time_for(rule, last_due))
    if _past_end(rule, due):
        return None
    return due


def _current_period_slot(rule: RecurrenceRule, now: datetime) -> Optional[datetime]:
    t = _time_for(rule, now)
    today = now.date()
    if rule.pattern == RecurrencePattern.DAILY:
        return _combine(today, t)
    if rule.pattern == RecurrencePattern.WEEKLY:
        allowed = set(rule.days_of_week or [])
        week_end = _week_start(today) + timedelta(days=6)
        day = today
        while day <= week_end:
            if _weekday_index(day) in allowed and _combine(day, t) > now:
                return _combine(day, t)
            day += timedelta(days=1)
        return None
    if rule.pattern == RecurrencePattern.MONTHLY:
        day = snap_day(today.year, today.month, rule.day_of_month or today.day)
        return _combine(date(today.year, today.month, day), t)
    if rule.pattern == RecurrencePattern.YEARLY:
        month = rule.month_of_year or today.month
        day = snap_day(today.year, month, rule.day_of_month or today.day)
        return _combine(date(today.year, month, day), t)
    return None


def catch_up_due_date(rule: RuleLike, now: datetime) -> Optional[datetime]:
    """First due date for a rule that has no prior instance.

    Prefers the slot in the current period (today, this week, this month or
    this year) when it is still ahead of `now`; otherwise recurs from `now`.
    Never returns a value <= now.
    """
    rule = _as_rule(rule)
    candidate = _current_period_slot(rule, now)
    if candidate is None or candidate <= now:
        candidate = next_due_date(rule, now)
    if candidate is None or _past_end(rule, candidate):
        return None
    return candidate


def upcoming_due_dates(
    rule: RuleLike,
    last_due: datetime,
    limit: int,
    *,
    last_instance_number: Optional[int] = None,
) -> Iterator[datetime]:
    """Yield up to `limit` successive due dates after `last_due`, stopping at the rule's bounds."""
    rule = _as_rule(rule)
    current = last_due
    number = last_instance_number
    for _ in range(max(0, limit)):
        next_number = number + 1 if number is not None else None
        due = next_due_date(rule, current, next_instance_number=next_number)
        if due is None:
            return
        yield due
        current = due
        number = next_number
