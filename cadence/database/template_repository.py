"""Repository for TaskTemplate database operations."""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from cadence.database.models import TaskInstanceDB, TaskTemplateDB, enum_to_value
from cadence.models.task import TaskTemplate

logger = logging.getLogger(__name__)


class TaskTemplateRepository:
    """Repository for TaskTemplate database operations.

    With `auto_commit=False` writes are only flushed, so several operations can
    share the caller's unit of work.
    """

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

    def create(self, template: TaskTemplate) -> TaskTemplate:
        """Create a new template."""
        try:
            row = TaskTemplateDB.from_pydantic(template)
            self.db.add(row)
            self._persist(row)
            logger.debug(f"Created template {template.id}: {template.title[:50]}")
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create template {template.id}: {type(e).__name__}: {str(e)}")
            raise

    def get(self, template_id: str) -> Optional[TaskTemplate]:
        """Get template by ID."""
        row = self.db.query(TaskTemplateDB).filter(TaskTemplateDB.id == template_id).first()
        return row.to_pydantic() if row else None

    def find_by_key(self, owner_id: str, list_id: str, title: str) -> Optional[TaskTemplate]:
        """Oldest template with the given (owner, list, title), if any."""
        row = (
            self.db.query(TaskTemplateDB)
            .filter(
                TaskTemplateDB.owner_id == owner_id,
                TaskTemplateDB.list_id == list_id,
                TaskTemplateDB.title == title,
            )
            .order_by(TaskTemplateDB.created_at.asc())
            .first()
        )
        return row.to_pydantic() if row else None

    def list_all(self) -> List[TaskTemplate]:
        rows = self.db.query(TaskTemplateDB).order_by(TaskTemplateDB.created_at.asc()).all()
        return [row.to_pydantic() for row in rows]

    def count_by_key(self, owner_id: str, list_id: str, title: str) -> int:
        return (
            self.db.query(func.count(TaskTemplateDB.id))
            .filter(
                TaskTemplateDB.owner_id == owner_id,
                TaskTemplateDB.list_id == list_id,
                TaskTemplateDB.title == title,
            )
            .scalar()
        )

    def list_active_templates(self, now: datetime) -> List[TaskTemplate]:
        """Templates whose recurrence has not ended (end date or occurrence cap)."""
        max_numbers: Dict[str, int] = dict(
            self.db.query(TaskInstanceDB.template_id, func.max(TaskInstanceDB.instance_number))
            .filter(TaskInstanceDB.template_id.isnot(None))
            .group_by(TaskInstanceDB.template_id)
            .all()
        )
        active: List[TaskTemplate] = []
        for template in self.list_all():
            rule = template.rule
            if rule.end_date is not None and now.date() > rule.end_date:
                continue
            if rule.occurrence_count is not None and max_numbers.get(template.id, 0) >= rule.occurrence_count:
                continue
            active.append(template)
        return active

    def update(self, template: TaskTemplate) -> TaskTemplate:
        """Update an existing template."""
        row = self.db.query(TaskTemplateDB).filter(TaskTemplateDB.id == template.id).first()
        if not row:
            raise ValueError(f"Template {template.id} not found")

        row.title = template.title
        row.note = template.note
        row.priority = enum_to_value(template.priority)
        row.strict_mode = template.strict_mode
        row.requires_explanation_if_missed = template.requires_explanation_if_missed
        row.can_be_snoozed = template.can_be_snoozed
        row.notification_interval_minutes = template.notification_interval_minutes
        row.rule = template.rule.to_storage()
        row.updated_at = template.updated_at

        try:
            self._persist(row)
            logger.debug(f"Updated template {template.id}: {template.title[:50]}")
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update template {template.id}: {type(e).__name__}: {str(e)}")
            raise

    def delete(self, template_id: str) -> bool:
        """Permanently delete a template row (instances are handled by the caller)."""
        row = self.db.query(TaskTemplateDB).filter(TaskTemplateDB.id == template_id).first()
        if not row:
            return False
        try:
            self.db.delete(row)
            self._persist()
            logger.debug(f"Deleted template {template_id}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete template {template_id}: {type(e).__name__}: {str(e)}")
            raise
