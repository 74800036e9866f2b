"""Template / instance lifecycle for recurring tasks.

A template holds the recurrence rule and canonical fields; instances are the
concrete, completable tasks generated from it. Instances reference their
template by id only: deleting a template cascades or unlinks, and that choice
is always explicit.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cadence.database.instance_repository import TaskInstanceRepository
from cadence.database.locks import LockManager, default_lock_manager, template_lock_key
from cadence.database.template_repository import TaskTemplateRepository
from cadence.engine.clock import Clock, SystemClock
from cadence.errors import (
    ConcurrentModification,
    InstanceNotFound,
    InvalidRule,
    TemplateGone,
    TemplateNotFound,
)
from cadence.models.recurrence import RecurrencePattern, RecurrenceRule
from cadence.models.task import TaskInstance, TaskStatus, TaskTemplate
from cadence.models.task_factory import (
    EDITABLE_TEMPLATE_FIELDS,
    PROPAGATED_FIELDS,
    create_instance_from_template,
    create_template_base,
)
from cadence.recurrence.calculator import catch_up_due_date, next_due_date, upcoming_due_dates

logger = logging.getLogger(__name__)


def anchor_rule(rule: RecurrenceRule, first_due: datetime) -> RecurrenceRule:
    """Capture time-of-day and day/month anchors from the first due date."""
    update: Dict[str, Any] = {}
    if rule.time_of_day is None:
        update["time_of_day"] = first_due.time().replace(second=0, microsecond=0)
    if rule.pattern in (RecurrencePattern.MONTHLY, RecurrencePattern.YEARLY) and rule.day_of_month is None:
        update["day_of_month"] = first_due.day
    if rule.pattern == RecurrencePattern.YEARLY and rule.month_of_year is None:
        update["month_of_year"] = first_due.month
    return rule.model_copy(update=update) if update else rule


def _check_fields(fields: Mapping[str, Any]) -> None:
    unknown = set(fields) - set(EDITABLE_TEMPLATE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown template fields: {', '.join(sorted(unknown))}")
    if "title" in fields and not (fields["title"] or "").strip():
        raise ValueError("title must not be empty")


class TemplateInstanceManager:
    """Creates templates, generates instances and applies edit/delete policies.

    Operations run in the given session's transaction. Methods taking
    `commit=True` end the unit of work themselves; pass `commit=False` to
    compose them with other changes (e.g. completion + next instance).
    """

    def __init__(
        self,
        db: Session,
        *,
        clock: Optional[Clock] = None,
        lock_manager: Optional[LockManager] = None,
        lock_timeout_sec: Optional[float] = None,
        default_notification_interval_minutes: Optional[int] = None,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.lock_manager = lock_manager or default_lock_manager(db, lock_timeout_sec)
        self.default_notification_interval_minutes = default_notification_interval_minutes
        self.templates = TaskTemplateRepository(db, auto_commit=False)
        self.instances = TaskInstanceRepository(db, auto_commit=False)

    def _finish(self, commit: bool) -> None:
        if not commit:
            self.db.flush()
            return
        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to commit recurrence changes: {type(e).__name__}: {str(e)}")
            raise

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_template(
        self,
        owner_id: str,
        list_id: str,
        fields: Mapping[str, Any],
        rule: Any,
        due_at: Optional[datetime] = None,
    ) -> Tuple[TaskTemplate, TaskInstance]:
        """Create a template and its first instance, at most once per (owner, list, title).

        The first instance is due at `due_at` verbatim; without one, the first
        slot after now is used. Invalid rules raise InvalidRule before anything
        is written.
        """
        rule = RecurrenceRule.parse(rule)
        fields = dict(fields)
        if "title" not in fields:
            raise ValueError("title is required")
        _check_fields(fields)

        now = self.clock.now()
        first_due = due_at if due_at is not None else catch_up_due_date(rule, now)
        if first_due is None:
            raise InvalidRule(
                "Recurrence rule produces no occurrences",
                [{"loc": ["end_date"], "msg": "end_date is before the first occurrence"}],
            )
        rule = anchor_rule(rule, first_due)
        if fields.get("notification_interval_minutes") is None and self.default_notification_interval_minutes:
            fields["notification_interval_minutes"] = self.default_notification_interval_minutes

        title = fields.pop("title")
        key = template_lock_key(owner_id, list_id, title)
        with self.lock_manager.lock(key):
            try:
                template = self.templates.find_by_key(owner_id, list_id, title)
                if template is not None:
                    first = self.instances.first_for_template(template.id)
                    if first is not None:
                        self.db.commit()
                        logger.info(f"Template for '{title[:50]}' already exists ({template.id}); not duplicating")
                        return template, first
                else:
                    template = self.templates.create(
                        create_template_base(owner_id, list_id, title, rule, now=now, **fields)
                    )
                first = self.instances.create(create_instance_from_template(template, 1, first_due, now))
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to create template '{title[:50]}': {type(e).__name__}: {str(e)}")
                raise

        logger.info(f"Created template {template.id} with first instance {first.id} due {first_due.isoformat()}")
        return template, first

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _load_template(self, instance: TaskInstance) -> TaskTemplate:
        template = self.templates.get(instance.template_id) if instance.template_id else None
        if template is None:
            raise TemplateGone(f"Instance {instance.id} references missing template {instance.template_id}")
        return template

    @staticmethod
    def recurrence_ended(template: TaskTemplate, last_instance: TaskInstance, now: datetime) -> bool:
        rule = template.rule
        if rule.end_date is not None and now.date() > rule.end_date:
            return True
        if rule.occurrence_count is not None and last_instance.instance_number >= rule.occurrence_count:
            return True
        return False

    def generate_next(self, completed_instance: TaskInstance, *, commit: bool = True) -> Optional[TaskInstance]:
        """Materialize the instance following `completed_instance`.

        Returns None when the template is gone, recurrence has ended or the rule
        yields no further date. Idempotent: an already generated successor is
        returned as-is.
        """
        instance, _ = self.materialize_next(completed_instance, commit=commit)
        return instance

    def materialize_next(
        self, completed_instance: TaskInstance, *, commit: bool = True
    ) -> Tuple[Optional[TaskInstance], bool]:
        """Like generate_next, also reporting whether the successor was created by this call."""
        if completed_instance.template_id is None:
            return None, False
        try:
            template = self._load_template(completed_instance)
        except TemplateGone as e:
            logger.warning(f"{e}; treating recurrence as ended")
            return None, False

        now = self.clock.now()
        if self.recurrence_ended(template, completed_instance, now):
            logger.debug(f"Recurrence ended for template {template.id} after #{completed_instance.instance_number}")
            return None, False

        next_number = completed_instance.instance_number + 1
        existing = self.instances.get_by_number(template.id, next_number)
        if existing is not None:
            return existing, False

        due_at = next_due_date(template.rule, completed_instance.due_at, next_instance_number=next_number)
        if due_at is None:
            logger.debug(f"No further occurrences for template {template.id}")
            return None, False

        try:
            instance = self.instances.create(create_instance_from_template(template, next_number, due_at, now))
        except IntegrityError as e:
            raise ConcurrentModification(
                f"Instance #{next_number} of template {template.id} was generated concurrently"
            ) from e
        self._finish(commit)
        logger.info(f"Generated instance #{next_number} of template {template.id} due {due_at.isoformat()}")
        return instance, True

    def complete_instance(self, instance_id: str, *, commit: bool = True) -> TaskInstance:
        """Mark an instance done (idempotent)."""
        instance = self.instances.get(instance_id)
        if instance is None:
            raise InstanceNotFound(f"Instance {instance_id} not found")
        if instance.is_done:
            return instance
        now = self.clock.now()
        done = self.instances.update(
            instance.model_copy(update={"status": TaskStatus.DONE, "completed_at": now, "updated_at": now})
        )
        self._finish(commit)
        return done

    def reschedule_instance(self, instance_id: str, due_at: datetime, *, commit: bool = True) -> TaskInstance:
        """Move a pending instance to a new due date."""
        instance = self.instances.get(instance_id)
        if instance is None:
            raise InstanceNotFound(f"Instance {instance_id} not found")
        if instance.is_done:
            raise ValueError(f"Instance {instance_id} is already done")
        moved = self.instances.update(
            instance.model_copy(update={"due_at": due_at, "updated_at": self.clock.now()})
        )
        self._finish(commit)
        logger.info(f"Rescheduled instance {instance_id} from {instance.due_at.isoformat()} to {due_at.isoformat()}")
        return moved

    def generate_missing(self) -> int:
        """Generate successors for templates whose latest instance is done.

        Templates with a pending latest instance, or with no instances at all,
        are skipped. Each template is its own unit of work.
        """
        now = self.clock.now()
        templates = self.templates.list_active_templates(now)
        latest = self.instances.latest_by_template([t.id for t in templates])
        generated = 0
        skipped_pending = 0
        skipped_no_instances = 0
        errors = 0
        for template in templates:
            last = latest.get(template.id)
            if last is None:
                skipped_no_instances += 1
                continue
            if not last.is_done:
                skipped_pending += 1
                continue
            try:
                if self.generate_next(last) is not None:
                    generated += 1
            except Exception as e:
                self.db.rollback()
                errors += 1
                logger.error(f"Failed to generate next instance for template {template.id}: {type(e).__name__}: {str(e)}")
        logger.info(
            f"Recurring generation: checked={len(templates)} generated={generated} "
            f"skipped_pending={skipped_pending} skipped_no_instances={skipped_no_instances} errors={errors}"
        )
        return generated

    def preview_due_dates(self, template_id: str, count: int) -> List[datetime]:
        """Due dates the next `count` instances would get."""
        template = self.templates.get(template_id)
        if template is None:
            raise TemplateNotFound(f"Template {template_id} not found")
        if count <= 0:
            return []
        last = self.instances.latest_for_template(template_id)
        if last is not None:
            return list(
                upcoming_due_dates(template.rule, last.due_at, count, last_instance_number=last.instance_number)
            )
        first = catch_up_due_date(template.rule, self.clock.now())
        if first is None:
            return []
        return [first] + list(upcoming_due_dates(template.rule, first, count - 1, last_instance_number=1))

    # ------------------------------------------------------------------
    # Edit / delete
    # ------------------------------------------------------------------

    def update_template(self, template_id: str, changes: Mapping[str, Any]) -> TaskTemplate:
        """Apply field changes; title/note also reach future, not-done instances.

        Rule changes are validated before anything is written and anchored on
        the first instance's due date. Due dates and recurrence parameters of
        existing instances are never touched.
        """
        template = self.templates.get(template_id)
        if template is None:
            raise TemplateNotFound(f"Template {template_id} not found")

        changes = dict(changes)
        update: Dict[str, Any] = {}
        now = self.clock.now()
        if "rule" in changes:
            rule_change = changes.pop("rule")
            if isinstance(rule_change, RecurrenceRule):
                new_rule = rule_change
            else:
                new_rule = RecurrenceRule.parse({**template.rule.to_storage(), **dict(rule_change)})
            first = self.instances.first_for_template(template_id)
            anchor_due = first.due_at if first is not None else catch_up_due_date(new_rule, now)
            update["rule"] = anchor_rule(new_rule, anchor_due) if anchor_due is not None else new_rule
        _check_fields(changes)
        update.update(changes)

        try:
            updated = self.templates.update(template.model_copy(update={**update, "updated_at": now}))
            propagated = {field: getattr(updated, field) for field in PROPAGATED_FIELDS if field in changes}
            touched = 0
            if propagated:
                for instance in self.instances.list_future_pending_for_template(template_id, now):
                    self.instances.update(instance.model_copy(update={**propagated, "updated_at": now}))
                    touched += 1
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update template {template_id}: {type(e).__name__}: {str(e)}")
            raise

        if propagated:
            logger.info(f"Propagated {sorted(propagated)} from template {template_id} to {touched} instances")
        return updated

    def delete_template(self, template_id: str, cascade_instances: bool) -> int:
        """Delete a template, destroying or unlinking its instances.

        Returns the number of instances deleted (cascade) or unlinked.
        """
        if self.templates.get(template_id) is None:
            raise TemplateNotFound(f"Template {template_id} not found")
        try:
            if cascade_instances:
                affected = self.instances.delete_for_template(template_id)
            else:
                affected = self.instances.unlink_template(template_id)
            self.templates.delete(template_id)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete template {template_id}: {type(e).__name__}: {str(e)}")
            raise
        logger.info(
            f"Deleted template {template_id} and {'deleted' if cascade_instances else 'unlinked'} {affected} instances"
        )
        return affected
