"""Escalation policy: when an overdue instance should reach each level.

Thresholds are configuration, not engine behavior. Each priority maps to
(warning, critical, blocking) minute offsets; a level is reached once the
instance is strictly more than that many minutes overdue.
"""

from datetime import datetime, timedelta
from typing import Dict, Mapping, Optional, Sequence, Tuple

from cadence.models.constants import DEFAULT_ESCALATION_THRESHOLDS
from cadence.models.escalation import EscalationLevel, EscalationState
from cadence.models.task import TaskInstance, TaskPriority

Thresholds = Tuple[Optional[int], Optional[int], Optional[int]]

_LEVELS_BY_THRESHOLD = (
    EscalationLevel.WARNING,
    EscalationLevel.CRITICAL,
    EscalationLevel.BLOCKING,
)


def _normalize(thresholds: Sequence[Optional[int]]) -> Thresholds:
    values = list(thresholds) + [None] * (3 - len(thresholds))
    if len(values) != 3:
        raise ValueError(f"expected at most 3 thresholds, got {len(thresholds)}")
    previous = -1
    for value in values:
        if value is None:
            continue
        if int(value) < 0 or int(value) <= previous:
            raise ValueError(f"thresholds must be non-negative and increasing: {thresholds!r}")
        previous = int(value)
    return tuple(None if v is None else int(v) for v in values)  # type: ignore[return-value]


class EscalationPolicy:
    """Maps (priority, minutes overdue) to a target escalation level."""

    def __init__(
        self,
        thresholds: Optional[Mapping[str, Sequence[Optional[int]]]] = None,
        *,
        blocking_requires_strict_mode: bool = True,
    ):
        merged: Dict[str, Sequence[Optional[int]]] = dict(DEFAULT_ESCALATION_THRESHOLDS)
        if thresholds:
            merged.update({str(getattr(k, "value", k)): v for k, v in thresholds.items()})
        self.thresholds: Dict[str, Thresholds] = {k: _normalize(v) for k, v in merged.items()}
        self.blocking_requires_strict_mode = blocking_requires_strict_mode

    def thresholds_for(self, priority) -> Thresholds:
        key = str(getattr(priority, "value", priority))
        return self.thresholds.get(key, self.thresholds[TaskPriority.NO_PRIORITY.value])

    def level_for(self, priority, minutes_overdue: int, *, strict_mode: bool = True) -> EscalationLevel:
        level = EscalationLevel.NORMAL
        for threshold, candidate in zip(self.thresholds_for(priority), _LEVELS_BY_THRESHOLD):
            if threshold is not None and minutes_overdue > threshold:
                level = candidate
        if (
            level is EscalationLevel.BLOCKING
            and self.blocking_requires_strict_mode
            and not strict_mode
        ):
            return EscalationLevel.CRITICAL
        return level

    def target_level(self, instance: TaskInstance, now: datetime) -> EscalationLevel:
        return self.level_for(
            instance.priority,
            instance.minutes_overdue(now),
            strict_mode=instance.strict_mode,
        )

    @staticmethod
    def notification_due(state: EscalationState, interval_minutes: int, now: datetime) -> bool:
        """True when no reminder was sent yet or the cadence interval has elapsed."""
        if state.last_notified_at is None:
            return True
        return now - state.last_notified_at >= timedelta(minutes=interval_minutes)
