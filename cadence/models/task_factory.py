"""Template and instance creation factory for cadence.

This module centralizes construction of templates and instances so every
generated instance copies the same set of template fields.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from cadence.models.recurrence import RecurrenceRule
from cadence.models.task import TaskInstance, TaskPriority, TaskStatus, TaskTemplate
from cadence.models.constants import (
    DEFAULT_NOTIFICATION_INTERVAL_MINUTES,
    DEFAULT_PRIORITY,
)

# Fields an instance copies verbatim from its template.
TEMPLATE_COPIED_FIELDS = (
    "title",
    "note",
    "priority",
    "strict_mode",
    "requires_explanation_if_missed",
    "can_be_snoozed",
    "notification_interval_minutes",
)

# Fields a template edit propagates to future, pending instances.
PROPAGATED_FIELDS = ("title", "note")

EDITABLE_TEMPLATE_FIELDS = TEMPLATE_COPIED_FIELDS


def create_template_defaults() -> Dict[str, Any]:
    """Get default template field values as a dictionary."""
    return {
        "note": None,
        "priority": DEFAULT_PRIORITY,
        "strict_mode": False,
        "requires_explanation_if_missed": False,
        "can_be_snoozed": False,
        "notification_interval_minutes": DEFAULT_NOTIFICATION_INTERVAL_MINUTES,
    }


def create_template_base(
    owner_id: str,
    list_id: str,
    title: str,
    rule: RecurrenceRule,
    note: Optional[str] = None,
    priority: Optional[TaskPriority] = None,
    strict_mode: Optional[bool] = None,
    requires_explanation_if_missed: Optional[bool] = None,
    can_be_snoozed: Optional[bool] = None,
    notification_interval_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> TaskTemplate:
    """Create a template with defaults, allowing overrides.

    Args:
        owner_id: User ID who owns the template
        list_id: List the generated instances belong to
        title: Task title (required)
        rule: Validated recurrence rule
        note: Task note
        priority: Task priority (defaults to no_priority)
        strict_mode: Whether overdue instances may block the app
        requires_explanation_if_missed: Whether late completion needs a reason
        can_be_snoozed: Whether overdue instances are left out of escalation
        notification_interval_minutes: Overdue reminder cadence
        now: Creation timestamp (defaults to utcnow)

    Returns:
        TaskTemplate with defaults applied
    """
    now = now or datetime.utcnow()
    defaults = create_template_defaults()
    return TaskTemplate(
        id=str(uuid.uuid4()),
        owner_id=owner_id,
        list_id=list_id,
        title=title,
        note=note if note is not None else defaults["note"],
        priority=priority if priority is not None else defaults["priority"],
        strict_mode=strict_mode if strict_mode is not None else defaults["strict_mode"],
        requires_explanation_if_missed=requires_explanation_if_missed
        if requires_explanation_if_missed is not None
        else defaults["requires_explanation_if_missed"],
        can_be_snoozed=can_be_snoozed if can_be_snoozed is not None else defaults["can_be_snoozed"],
        notification_interval_minutes=notification_interval_minutes
        if notification_interval_minutes is not None
        else defaults["notification_interval_minutes"],
        rule=rule,
        created_at=now,
        updated_at=now,
    )


def create_instance_from_template(
    template: TaskTemplate,
    instance_number: int,
    due_at: datetime,
    now: Optional[datetime] = None,
) -> TaskInstance:
    """Materialize an instance copying the template fields verbatim."""
    now = now or datetime.utcnow()
    copied = {field: getattr(template, field) for field in TEMPLATE_COPIED_FIELDS}
    return TaskInstance(
        id=str(uuid.uuid4()),
        owner_id=template.owner_id,
        list_id=template.list_id,
        template_id=template.id,
        instance_number=instance_number,
        due_at=due_at,
        status=TaskStatus.PENDING,
        created_at=now,
        updated_at=now,
        **copied,
    )
