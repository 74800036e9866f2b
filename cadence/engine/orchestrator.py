"""Scheduler orchestrator: overdue escalation ticks and completion handling.

Each overdue instance is processed in its own transaction. Notifications are
queued while the transition is computed and only dispatched after commit.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from cadence.config import EngineSettings
from cadence.database.database import SessionLocal, session_scope
from cadence.database.escalation_repository import EscalationStateRepository
from cadence.database.instance_repository import TaskInstanceRepository
from cadence.database.locks import LockManager
from cadence.engine import escalation
from cadence.engine.clock import Clock, SystemClock
from cadence.engine.policy import EscalationPolicy
from cadence.errors import ConcurrentModification, InstanceNotFound
from cadence.integrations.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    dispatcher_from_settings,
)
from cadence.models.constants import DEFAULT_RETRY_ATTEMPTS, DEFAULT_RETRY_BACKOFF_SEC
from cadence.models.escalation import EscalationLevel, EscalationState
from cadence.models.notification import NotificationKind
from cadence.models.task import TaskInstance
from cadence.recurrence.instances import TemplateInstanceManager

logger = logging.getLogger(__name__)

R = TypeVar("R")

Queued = List[Tuple[NotificationKind, Dict[str, Any]]]


class TickResult:
    """Result of one escalation tick."""

    def __init__(self):
        self.started_at: Optional[datetime] = None
        self.checked: int = 0
        self.escalated: Dict[str, List[str]] = {}
        self.notifications: int = 0
        self.retries: int = 0
        self.errors: Dict[str, str] = {}

    @property
    def failed(self) -> int:
        return len(self.errors)


class SchedulerOrchestrator:
    """Drives escalation ticks and recurring generation against a session factory."""

    def __init__(
        self,
        session_factory: Callable = SessionLocal,
        *,
        dispatcher: Optional[NotificationDispatcher] = None,
        policy: Optional[EscalationPolicy] = None,
        clock: Optional[Clock] = None,
        lock_manager: Optional[LockManager] = None,
        lock_timeout_sec: Optional[float] = None,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_backoff_sec: float = DEFAULT_RETRY_BACKOFF_SEC,
        default_notification_interval_minutes: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()
        self.policy = policy or EscalationPolicy()
        self.clock = clock or SystemClock()
        self.lock_manager = lock_manager
        self.lock_timeout_sec = lock_timeout_sec
        self.retry_attempts = max(1, retry_attempts)
        self.retry_backoff_sec = retry_backoff_sec
        self.default_notification_interval_minutes = default_notification_interval_minutes
        self.sleep = sleep

    @classmethod
    def from_settings(cls, settings: EngineSettings, session_factory: Callable = SessionLocal, **kwargs):
        """Build an orchestrator wired from EngineSettings."""
        kwargs.setdefault("dispatcher", dispatcher_from_settings(settings))
        kwargs.setdefault("policy", EscalationPolicy(settings.escalation_thresholds))
        return cls(
            session_factory,
            lock_timeout_sec=settings.lock_timeout_sec,
            retry_attempts=settings.retry_attempts,
            retry_backoff_sec=settings.retry_backoff_sec,
            default_notification_interval_minutes=settings.default_notification_interval_minutes,
            **kwargs,
        )

    def manager(self, db) -> TemplateInstanceManager:
        return TemplateInstanceManager(
            db,
            clock=self.clock,
            lock_manager=self.lock_manager,
            lock_timeout_sec=self.lock_timeout_sec,
            default_notification_interval_minutes=self.default_notification_interval_minutes,
        )

    def _with_retry(self, label: str, fn: Callable[[], R], result: Optional[TickResult] = None) -> R:
        delay = self.retry_backoff_sec
        attempt = 1
        while True:
            try:
                return fn()
            except ConcurrentModification as e:
                if attempt >= self.retry_attempts:
                    raise
                if result is not None:
                    result.retries += 1
                logger.warning(f"{label}: {e}; retrying ({attempt}/{self.retry_attempts - 1})")
                self.sleep(delay)
                delay *= 2
                attempt += 1

    def _dispatch(self, instance: TaskInstance, queued: Queued) -> int:
        sent = 0
        for kind, context in queued:
            try:
                self.dispatcher.notify(kind, instance, context)
                sent += 1
            except Exception as e:
                logger.error(
                    f"Failed to dispatch {kind.value} for instance {instance.id}: {type(e).__name__}: {str(e)}"
                )
        return sent

    # ------------------------------------------------------------------
    # Escalation tick
    # ------------------------------------------------------------------

    def _escalate(self, instance: TaskInstance, state: EscalationState, now: datetime) -> Tuple[List[EscalationLevel], Queued]:
        """Apply one tick's worth of transitions to `state` and list what to notify."""
        queued: Queued = []
        escalation.mark_overdue(state, now)
        entered = escalation.advance_to(state, self.policy.target_level(instance, now), now)
        level = EscalationLevel.coerce(state.level)
        minutes = instance.minutes_overdue(now)

        def context() -> Dict[str, Any]:
            return {
                "level": level.value,
                "minutes_overdue": minutes,
                "notification_count": state.notification_count,
                "requires_explanation": instance.requires_explanation_if_missed,
                "timestamp": now,
            }

        if self.policy.notification_due(state, instance.notification_interval_minutes, now):
            escalation.increment_notification(state, now)
            queued.append((NotificationKind.REMINDER, context()))

        if level.rank >= EscalationLevel.CRITICAL.rank and not state.coaches_notified:
            escalation.notify_coaches(state, now)
            queued.append((NotificationKind.COACH_ALERT, context()))

        if EscalationLevel.BLOCKING in entered:
            logger.warning(f"Instance {instance.id} ('{instance.title[:50]}') is now blocking the app")
            queued.append((NotificationKind.APP_BLOCKING, context()))

        return entered, queued

    def _process_overdue(self, instance_id: str, now: datetime) -> Tuple[Optional[TaskInstance], List[EscalationLevel], Queued]:
        with session_scope(self.session_factory) as db:
            instance = TaskInstanceRepository(db, auto_commit=False).get(instance_id)
            if instance is None or instance.can_be_snoozed or not instance.is_overdue(now):
                return None, [], []
            states = EscalationStateRepository(db, auto_commit=False)
            state = states.get(instance_id) or escalation.initial_state(instance_id)
            entered, queued = self._escalate(instance, state, now)
            states.save(state)
            return instance, entered, queued

    def tick(self) -> TickResult:
        """Escalate every overdue, not-done, non-snoozable instance once.

        A failure on one instance is logged and counted; the rest of the tick
        continues.
        """
        result = TickResult()
        now = self.clock.now()
        result.started_at = now

        with session_scope(self.session_factory) as db:
            overdue = TaskInstanceRepository(db, auto_commit=False).list_overdue(now, snoozable=False)
            overdue_ids = [i.id for i in overdue]

        for instance_id in overdue_ids:
            result.checked += 1
            try:
                instance, entered, queued = self._with_retry(
                    f"Escalation of {instance_id}",
                    lambda: self._process_overdue(instance_id, now),
                    result,
                )
            except Exception as e:
                result.errors[instance_id] = f"{type(e).__name__}: {str(e)}"
                logger.error(f"Failed to escalate instance {instance_id}: {type(e).__name__}: {str(e)}")
                continue
            if instance is None:
                continue
            if entered:
                result.escalated[instance_id] = [level.value for level in entered]
            result.notifications += self._dispatch(instance, queued)

        logger.info(
            f"Escalation tick at {now.isoformat()}: checked={result.checked} "
            f"escalated={len(result.escalated)} notifications={result.notifications} "
            f"retries={result.retries} errors={result.failed}"
        )
        return result

    # ------------------------------------------------------------------
    # Completion / generation
    # ------------------------------------------------------------------

    def _complete(self, instance_id: str) -> Tuple[TaskInstance, Optional[TaskInstance], bool]:
        with session_scope(self.session_factory) as db:
            manager = self.manager(db)
            completed = manager.complete_instance(instance_id, commit=False)
            generated, created = manager.materialize_next(completed, commit=False)
            if created:
                states = EscalationStateRepository(db, auto_commit=False)
                states.save(escalation.initial_state(generated.id))
            return completed, generated, created

    def handle_completion(self, instance_id: str) -> Optional[TaskInstance]:
        """Complete an instance and materialize its successor in one unit of work.

        The completed instance's escalation record stays as history; a newly
        generated successor starts from a reset state. Redelivered completions
        return the existing successor without touching its escalation. Returns
        None when recurrence has ended.
        """
        completed, generated, created = self._with_retry(
            f"Completion of {instance_id}", lambda: self._complete(instance_id)
        )
        if not created:
            logger.info(
                f"Instance {completed.id} already completed"
                + (f"; next instance {generated.id} exists" if generated else "; recurrence ended")
            )
            return generated
        logger.info(
            f"Completed instance {completed.id}; next instance {generated.id} due {generated.due_at.isoformat()}"
        )
        self._dispatch(
            generated,
            [
                (
                    NotificationKind.INSTANCE_GENERATED,
                    {
                        "previous_instance_id": completed.id,
                        "instance_number": generated.instance_number,
                        "due_at": generated.due_at.isoformat(),
                        "timestamp": self.clock.now(),
                    },
                )
            ],
        )
        return generated

    def _reschedule(self, instance_id: str, due_at: Optional[datetime], delay: Optional[timedelta]) -> TaskInstance:
        with session_scope(self.session_factory) as db:
            manager = self.manager(db)
            if delay is not None:
                current = manager.instances.get(instance_id)
                if current is None:
                    raise InstanceNotFound(f"Instance {instance_id} not found")
                due_at = current.due_at + delay
            moved = manager.reschedule_instance(instance_id, due_at, commit=False)
            states = EscalationStateRepository(db, auto_commit=False)
            state = states.get(instance_id)
            if state is not None and not escalation.is_initial(state):
                states.save(escalation.reset(state))
            return moved

    def reschedule(self, instance_id: str, due_at: datetime) -> TaskInstance:
        """Move an instance to a new due date and reset its escalation in one unit of work."""
        return self._with_retry(f"Reschedule of {instance_id}", lambda: self._reschedule(instance_id, due_at, None))

    def snooze(self, instance_id: str, delay: timedelta) -> TaskInstance:
        """Push an instance's due date back by `delay`."""
        if delay <= timedelta(0):
            raise ValueError("snooze delay must be positive")
        return self._with_retry(f"Snooze of {instance_id}", lambda: self._reschedule(instance_id, None, delay))

    def generate_missing(self) -> int:
        """Catch-up generation for templates whose latest instance is already done."""
        with session_scope(self.session_factory) as db:
            return self.manager(db).generate_missing()
