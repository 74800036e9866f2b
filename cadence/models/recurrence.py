"""Recurrence rule model for cadence.

Canonical internal representation for repeating tasks. Templates store the
rule as JSON; the calculator consumes the pydantic model.
"""

from __future__ import annotations

from datetime import date, time
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from cadence.errors import InvalidRule


class RecurrencePattern(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


# Weekday indices follow the Sunday=0 convention used by clients.
WEEKDAY_NAMES = {
    "sunday": 0,
    "monday": 1,
    "tuesday": 2,
    "wednesday": 3,
    "thursday": 4,
    "friday": 5,
    "saturday": 6,
}
_WEEKDAY_ABBREVIATIONS = {name[:3]: idx for name, idx in WEEKDAY_NAMES.items()}


def weekday_index(value: Any) -> int:
    """Normalize a weekday given as an int, a digit string or a day name."""
    if isinstance(value, bool):
        raise ValueError(f"invalid weekday: {value!r}")
    if isinstance(value, int):
        idx = value
    else:
        text = str(value).strip().lower()
        if text in WEEKDAY_NAMES:
            idx = WEEKDAY_NAMES[text]
        elif text in _WEEKDAY_ABBREVIATIONS:
            idx = _WEEKDAY_ABBREVIATIONS[text]
        else:
            try:
                idx = int(text)
            except ValueError:
                raise ValueError(f"invalid weekday: {value!r}") from None
    if idx < 0 or idx > 6:
        raise ValueError(f"weekday index out of range (0-6): {idx}")
    return idx


class RecurrenceRule(BaseModel):
    """Recurrence definition held by a task template.

    Notes:
    - `days_of_week` uses 0=Sunday ... 6=Saturday.
    - `day_of_month` / `month_of_year` are captured from the first due date when
      the template is created so monthly and yearly snapping never drifts.
    - At most one of `end_date` and `occurrence_count` bounds the recurrence.
    """

    pattern: RecurrencePattern
    interval: int = Field(1, ge=1, description="Every N units (days/weeks/months/years)")
    days_of_week: Optional[List[int]] = Field(
        None, description="For weekly recurrence: weekday indices on which it occurs"
    )
    time_of_day: Optional[time] = Field(None, description="Wall-clock time of generated instances")
    end_date: Optional[date] = Field(None, description="Inclusive last date an instance may fall on")
    occurrence_count: Optional[int] = Field(None, ge=1, description="Cap on total generated instances")

    day_of_month: Optional[int] = Field(None, ge=1, le=31)
    month_of_year: Optional[int] = Field(None, ge=1, le=12)

    @field_validator("days_of_week", mode="before")
    @classmethod
    def _normalize_days_of_week(cls, v):
        if v is None:
            return None
        if isinstance(v, (str, int)):
            v = [v]
        return sorted({weekday_index(day) for day in v})

    @field_validator("time_of_day")
    @classmethod
    def _strip_seconds(cls, v):
        if v is None:
            return None
        return v.replace(second=0, microsecond=0, tzinfo=None)

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.pattern == RecurrencePattern.WEEKLY and not self.days_of_week:
            raise ValueError("days_of_week is required for weekly recurrence")
        if self.end_date is not None and self.occurrence_count is not None:
            raise ValueError("end_date and occurrence_count are mutually exclusive")
        return self

    @classmethod
    def parse(cls, data: Any) -> "RecurrenceRule":
        """Build a rule from loose input, raising InvalidRule on bad configuration."""
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            details = [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
                for err in e.errors()
            ]
            raise InvalidRule("Invalid recurrence rule", details) from e

    def to_storage(self) -> dict:
        """JSON-safe dict for the template's rule column."""
        return self.model_dump(mode="json")

    @property
    def is_bounded(self) -> bool:
        return self.end_date is not None or self.occurrence_count is not None
