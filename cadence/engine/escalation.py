"""Escalation state machine for overdue task instances.

Levels only move forward (normal -> warning -> critical -> blocking) except
for a full reset. Transitions are pure mutations of an in-memory
EscalationState; callers decide when to apply them and persist the result.
"""

from datetime import datetime
from typing import List

from cadence.models.escalation import EscalationLevel, EscalationState


def initial_state(instance_id: str) -> EscalationState:
    """Default state for an instance that has never been overdue."""
    return EscalationState(instance_id=instance_id)


def advance(state: EscalationState, now: datetime) -> EscalationState:
    """Move exactly one level forward; no-op once blocking.

    Entering blocking also sets blocking_app and stamps blocking_started_at.
    """
    current = EscalationLevel.coerce(state.level)
    if current is EscalationLevel.BLOCKING:
        return state
    state.level = current.next_level()
    if state.level is EscalationLevel.BLOCKING:
        state.blocking_app = True
        if state.blocking_started_at is None:
            state.blocking_started_at = now
    return state


def advance_to(state: EscalationState, target: EscalationLevel, now: datetime) -> List[EscalationLevel]:
    """Advance one level at a time until `target` is reached.

    Never moves backwards. Returns the levels entered, in order.
    """
    target = EscalationLevel.coerce(target)
    entered: List[EscalationLevel] = []
    while EscalationLevel.coerce(state.level).rank < target.rank:
        advance(state, now)
        entered.append(EscalationLevel.coerce(state.level))
    return entered


def mark_overdue(state: EscalationState, now: datetime) -> EscalationState:
    """Stamp became_overdue_at on the first call only."""
    if state.became_overdue_at is None:
        state.became_overdue_at = now
    return state


def increment_notification(state: EscalationState, now: datetime) -> EscalationState:
    state.notification_count += 1
    state.last_notified_at = now
    return state


def notify_coaches(state: EscalationState, now: datetime) -> EscalationState:
    """Record that coaches were alerted; the first stamp is kept."""
    state.coaches_notified = True
    if state.coaches_notified_at is None:
        state.coaches_notified_at = now
    return state


def reset(state: EscalationState) -> EscalationState:
    """Return every escalation field to its initial value.

    Identity (instance_id) and the optimistic-lock version are preserved so the
    reset can be saved over the existing row.
    """
    fresh = initial_state(state.instance_id)
    for field in EscalationState.model_fields:
        if field in ("instance_id", "version"):
            continue
        setattr(state, field, getattr(fresh, field))
    return state


clear = reset


def is_initial(state: EscalationState) -> bool:
    fresh = initial_state(state.instance_id)
    return all(
        getattr(state, field) == getattr(fresh, field)
        for field in EscalationState.model_fields
        if field not in ("instance_id", "version")
    )
