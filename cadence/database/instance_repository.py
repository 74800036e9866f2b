"""Repository for TaskInstance database operations."""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from cadence.database.models import EscalationStateDB, TaskInstanceDB, enum_to_value
from cadence.models.task import TaskInstance, TaskStatus

logger = logging.getLogger(__name__)


class TaskInstanceRepository:
    """Repository for TaskInstance database operations."""

    def __init__(self, db: Session, *, auto_commit: bool = True):
        self.db = db
        self.auto_commit = auto_commit

    def _persist(self, row=None) -> None:
        if self.auto_commit:
            self.db.commit()
            if row is not None:
                self.db.refresh(row)
        else:
            self.db.flush()

    def create(self, instance: TaskInstance) -> TaskInstance:
        """Create a new instance."""
        try:
            row = TaskInstanceDB.from_pydantic(instance)
            self.db.add(row)
            self._persist(row)
            logger.debug(
                f"Created instance {instance.id} (#{instance.instance_number}) "
                f"of template {instance.template_id} due {instance.due_at.isoformat()}"
            )
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create instance {instance.id}: {type(e).__name__}: {str(e)}")
            raise

    def get(self, instance_id: str) -> Optional[TaskInstance]:
        """Get instance by ID."""
        row = self.db.query(TaskInstanceDB).filter(TaskInstanceDB.id == instance_id).first()
        return row.to_pydantic() if row else None

    def get_by_number(self, template_id: str, instance_number: int) -> Optional[TaskInstance]:
        row = (
            self.db.query(TaskInstanceDB)
            .filter(
                TaskInstanceDB.template_id == template_id,
                TaskInstanceDB.instance_number == instance_number,
            )
            .first()
        )
        return row.to_pydantic() if row else None

    def list_for_template(self, template_id: str) -> List[TaskInstance]:
        """All instances referencing a template, in sequence order."""
        rows = (
            self.db.query(TaskInstanceDB)
            .filter(TaskInstanceDB.template_id == template_id)
            .order_by(TaskInstanceDB.instance_number.asc())
            .all()
        )
        return [row.to_pydantic() for row in rows]

    def first_for_template(self, template_id: str) -> Optional[TaskInstance]:
        row = (
            self.db.query(TaskInstanceDB)
            .filter(TaskInstanceDB.template_id == template_id)
            .order_by(TaskInstanceDB.instance_number.asc())
            .first()
        )
        return row.to_pydantic() if row else None

    def latest_for_template(self, template_id: str) -> Optional[TaskInstance]:
        row = (
            self.db.query(TaskInstanceDB)
            .filter(TaskInstanceDB.template_id == template_id)
            .order_by(TaskInstanceDB.instance_number.desc(), TaskInstanceDB.due_at.desc())
            .first()
        )
        return row.to_pydantic() if row else None

    def latest_by_template(self, template_ids: List[str]) -> Dict[str, TaskInstance]:
        """Latest instance (highest instance_number) per template id."""
        if not template_ids:
            return {}
        latest_numbers = (
            self.db.query(
                TaskInstanceDB.template_id.label("template_id"),
                func.max(TaskInstanceDB.instance_number).label("instance_number"),
            )
            .filter(TaskInstanceDB.template_id.in_(template_ids))
            .group_by(TaskInstanceDB.template_id)
            .subquery()
        )
        rows = (
            self.db.query(TaskInstanceDB)
            .join(
                latest_numbers,
                (TaskInstanceDB.template_id == latest_numbers.c.template_id)
                & (TaskInstanceDB.instance_number == latest_numbers.c.instance_number),
            )
            .all()
        )
        return {row.template_id: row.to_pydantic() for row in rows}

    def list_overdue(
        self, now: datetime, limit: Optional[int] = None, snoozable: Optional[bool] = None
    ) -> List[TaskInstance]:
        """Instances due before `now` that are not done, oldest first.

        `snoozable` narrows the result to instances whose can_be_snoozed flag matches.
        """
        query = self.db.query(TaskInstanceDB).filter(
            TaskInstanceDB.due_at < now,
            TaskInstanceDB.status != TaskStatus.DONE.value,
        )
        if snoozable is not None:
            query = query.filter(TaskInstanceDB.can_be_snoozed.is_(snoozable))
        query = query.order_by(TaskInstanceDB.due_at.asc(), TaskInstanceDB.id.asc())
        if limit:
            query = query.limit(limit)
        return [row.to_pydantic() for row in query.all()]

    def list_future_pending_for_template(self, template_id: str, now: datetime) -> List[TaskInstance]:
        """Instances of a template with due_at > now and status != done."""
        rows = (
            self.db.query(TaskInstanceDB)
            .filter(
                TaskInstanceDB.template_id == template_id,
                TaskInstanceDB.due_at > now,
                TaskInstanceDB.status != TaskStatus.DONE.value,
            )
            .order_by(TaskInstanceDB.due_at.asc())
            .all()
        )
        return [row.to_pydantic() for row in rows]

    def update(self, instance: TaskInstance) -> TaskInstance:
        """Update an existing instance."""
        row = self.db.query(TaskInstanceDB).filter(TaskInstanceDB.id == instance.id).first()
        if not row:
            raise ValueError(f"Instance {instance.id} not found")

        row.template_id = instance.template_id
        row.due_at = instance.due_at
        row.status = enum_to_value(instance.status)
        row.completed_at = instance.completed_at
        row.title = instance.title
        row.note = instance.note
        row.priority = enum_to_value(instance.priority)
        row.strict_mode = instance.strict_mode
        row.requires_explanation_if_missed = instance.requires_explanation_if_missed
        row.can_be_snoozed = instance.can_be_snoozed
        row.notification_interval_minutes = instance.notification_interval_minutes
        row.updated_at = instance.updated_at

        try:
            self._persist(row)
            logger.debug(f"Updated instance {instance.id}: {instance.title[:50]}")
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update instance {instance.id}: {type(e).__name__}: {str(e)}")
            raise

    def unlink_template(self, template_id: str) -> int:
        """Null the back-reference on every instance of a template."""
        try:
            affected = (
                self.db.query(TaskInstanceDB)
                .filter(TaskInstanceDB.template_id == template_id)
                .update({TaskInstanceDB.template_id: None}, synchronize_session=False)
            )
            self._persist()
            logger.debug(f"Unlinked {affected} instances from template {template_id}")
            return int(affected)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to unlink instances of template {template_id}: {type(e).__name__}: {str(e)}")
            raise

    def delete_for_template(self, template_id: str) -> int:
        """Delete every instance of a template together with its escalation state."""
        ids = [
            row[0]
            for row in self.db.query(TaskInstanceDB.id).filter(TaskInstanceDB.template_id == template_id).all()
        ]
        if not ids:
            return 0
        try:
            self.db.query(EscalationStateDB).filter(
                EscalationStateDB.instance_id.in_(ids)
            ).delete(synchronize_session=False)
            affected = (
                self.db.query(TaskInstanceDB)
                .filter(TaskInstanceDB.id.in_(ids))
                .delete(synchronize_session=False)
            )
            self._persist()
            logger.debug(f"Deleted {affected} instances of template {template_id}")
            return int(affected)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete instances of template {template_id}: {type(e).__name__}: {str(e)}")
            raise

    def delete(self, instance_id: str) -> bool:
        """Permanently delete an instance and its escalation state."""
        row = self.db.query(TaskInstanceDB).filter(TaskInstanceDB.id == instance_id).first()
        if not row:
            return False
        try:
            self.db.query(EscalationStateDB).filter(
                EscalationStateDB.instance_id == instance_id
            ).delete(synchronize_session=False)
            self.db.delete(row)
            self._persist()
            logger.debug(f"Deleted instance {instance_id}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete instance {instance_id}: {type(e).__name__}: {str(e)}")
            raise
