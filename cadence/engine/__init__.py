"""Escalation engine for cadence."""

from cadence.engine.escalation import (
    initial_state,
    advance,
    advance_to,
    mark_overdue,
    increment_notification,
    notify_coaches,
    reset,
    is_initial,
)
from cadence.engine.policy import EscalationPolicy
from cadence.engine.clock import Clock, SystemClock, FixedClock

__all__ = [
    "initial_state",
    "advance",
    "advance_to",
    "mark_overdue",
    "increment_notification",
    "notify_coaches",
    "reset",
    "is_initial",
    "EscalationPolicy",
    "Clock",
    "SystemClock",
    "FixedClock",
]
