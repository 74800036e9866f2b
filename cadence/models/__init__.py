"""Data models for cadence."""

from cadence.models.recurrence import RecurrencePattern, RecurrenceRule
from cadence.models.task import TaskTemplate, TaskInstance, TaskStatus, TaskPriority
from cadence.models.escalation import EscalationLevel, EscalationState
from cadence.models.notification import NotificationEvent, NotificationKind

__all__ = [
    "RecurrencePattern",
    "RecurrenceRule",
    "TaskTemplate",
    "TaskInstance",
    "TaskStatus",
    "TaskPriority",
    "EscalationLevel",
    "EscalationState",
    "NotificationEvent",
    "NotificationKind",
]
