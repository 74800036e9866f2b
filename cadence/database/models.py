"""SQLAlchemy database models for cadence."""

from datetime import datetime
from typing import Union, TypeVar, Type
import uuid
from sqlalchemy import Column, String, Integer, Boolean, DateTime, JSON, ForeignKey, Index, UniqueConstraint

from cadence.database.database import Base
from cadence.models.escalation import EscalationLevel
from cadence.models.task import TaskStatus, TaskPriority

T = TypeVar('T')


def enum_to_value(enum_obj: Union[str, T]) -> str:
    """Convert enum to string value (handles both enum and string).

    Args:
        enum_obj: Enum instance or string value

    Returns:
        String value of the enum, or the string itself if already a string
    """
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


def value_to_enum(value: str, enum_class: Type[T], default: T) -> T:
    """Convert string to enum with fallback to default.

    Args:
        value: String value to convert
        enum_class: Enum class to convert to
        default: Default enum value if conversion fails

    Returns:
        Enum instance, or default if conversion fails
    """
    if not value:
        return default
    try:
        return enum_class(value.lower())
    except (ValueError, AttributeError):
        return default


class TaskTemplateDB(Base):
    """Database model for a recurring task template (rule holder)."""

    __tablename__ = "task_templates"
    __table_args__ = (
        # Lookup used by duplicate detection under the creation lock.
        Index("ix_task_templates_owner_list_title", "owner_id", "list_id", "title"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String, nullable=False, index=True)
    list_id = Column(String, nullable=False, index=True)

    title = Column(String, nullable=False)
    note = Column(String, nullable=True)
    priority = Column(String, nullable=False, default=TaskPriority.NO_PRIORITY.value)
    strict_mode = Column(Boolean, nullable=False, default=False)
    requires_explanation_if_missed = Column(Boolean, nullable=False, default=False)
    can_be_snoozed = Column(Boolean, nullable=False, default=False)
    notification_interval_minutes = Column(Integer, nullable=False, default=10)

    rule = Column(JSON, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from cadence.models.recurrence import RecurrenceRule
        from cadence.models.task import TaskTemplate

        return TaskTemplate(
            id=self.id,
            owner_id=self.owner_id,
            list_id=self.list_id,
            title=self.title,
            note=self.note,
            priority=value_to_enum(self.priority, TaskPriority, TaskPriority.NO_PRIORITY),
            strict_mode=self.strict_mode,
            requires_explanation_if_missed=self.requires_explanation_if_missed,
            can_be_snoozed=self.can_be_snoozed,
            notification_interval_minutes=self.notification_interval_minutes,
            rule=RecurrenceRule.model_validate(self.rule),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_pydantic(cls, template):
        """Create database model from Pydantic model."""
        return cls(
            id=template.id,
            owner_id=template.owner_id,
            list_id=template.list_id,
            title=template.title,
            note=template.note,
            priority=enum_to_value(template.priority),
            strict_mode=template.strict_mode,
            requires_explanation_if_missed=template.requires_explanation_if_missed,
            can_be_snoozed=template.can_be_snoozed,
            notification_interval_minutes=template.notification_interval_minutes,
            rule=template.rule.to_storage(),
            created_at=template.created_at,
            updated_at=template.updated_at,
        )


class TaskInstanceDB(Base):
    """Database model for a generated, schedulable task instance."""

    __tablename__ = "task_instances"
    __table_args__ = (
        # Prevent duplicate generation of the same occurrence for a template.
        # Note: NULL template ids (unlinked instances) do not participate.
        UniqueConstraint("template_id", "instance_number", name="uq_task_instance_number"),
        Index("ix_task_instances_status_due_at", "status", "due_at"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String, nullable=False, index=True)
    list_id = Column(String, nullable=False, index=True)

    # Back-reference only: deleting a template never implicitly deletes instances.
    template_id = Column(String, ForeignKey("task_templates.id", ondelete="SET NULL"), nullable=True, index=True)
    instance_number = Column(Integer, nullable=False, default=1)

    due_at = Column(DateTime, nullable=False, index=True)
    status = Column(String, nullable=False, default=TaskStatus.PENDING.value)
    completed_at = Column(DateTime, nullable=True)

    title = Column(String, nullable=False)
    note = Column(String, nullable=True)
    priority = Column(String, nullable=False, default=TaskPriority.NO_PRIORITY.value)
    strict_mode = Column(Boolean, nullable=False, default=False)
    requires_explanation_if_missed = Column(Boolean, nullable=False, default=False)
    can_be_snoozed = Column(Boolean, nullable=False, default=False)
    notification_interval_minutes = Column(Integer, nullable=False, default=10)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from cadence.models.task import TaskInstance

        return TaskInstance(
            id=self.id,
            owner_id=self.owner_id,
            list_id=self.list_id,
            template_id=self.template_id,
            instance_number=self.instance_number,
            due_at=self.due_at,
            status=value_to_enum(self.status, TaskStatus, TaskStatus.PENDING),
            completed_at=self.completed_at,
            title=self.title,
            note=self.note,
            priority=value_to_enum(self.priority, TaskPriority, TaskPriority.NO_PRIORITY),
            strict_mode=self.strict_mode,
            requires_explanation_if_missed=self.requires_explanation_if_missed,
            can_be_snoozed=self.can_be_snoozed,
            notification_interval_minutes=self.notification_interval_minutes,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_pydantic(cls, instance):
        """Create database model from Pydantic model."""
        return cls(
            id=instance.id,
            owner_id=instance.owner_id,
            list_id=instance.list_id,
            template_id=instance.template_id,
            instance_number=instance.instance_number,
            due_at=instance.due_at,
            status=enum_to_value(instance.status),
            completed_at=instance.completed_at,
            title=instance.title,
            note=instance.note,
            priority=enum_to_value(instance.priority),
            strict_mode=instance.strict_mode,
            requires_explanation_if_missed=instance.requires_explanation_if_missed,
            can_be_snoozed=instance.can_be_snoozed,
            notification_interval_minutes=instance.notification_interval_minutes,
            created_at=instance.created_at,
            updated_at=instance.updated_at,
        )


class EscalationStateDB(Base):
    """Database model for the escalation state of one task instance."""

    __tablename__ = "escalation_states"

    # 1:1 with the instance, same lifetime.
    instance_id = Column(String, ForeignKey("task_instances.id", ondelete="CASCADE"), primary_key=True)

    level = Column(String, nullable=False, default=EscalationLevel.NORMAL.value, index=True)
    notification_count = Column(Integer, nullable=False, default=0)
    last_notified_at = Column(DateTime, nullable=True)
    became_overdue_at = Column(DateTime, nullable=True)
    coaches_notified = Column(Boolean, nullable=False, default=False)
    coaches_notified_at = Column(DateTime, nullable=True)
    blocking_app = Column(Boolean, nullable=False, default=False, index=True)
    blocking_started_at = Column(DateTime, nullable=True)

    # Compare-and-swap counter: UPDATE ... WHERE version = :loaded_version
    version = Column(Integer, nullable=False)

    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from cadence.models.escalation import EscalationState

        return EscalationState(
            instance_id=self.instance_id,
            level=value_to_enum(self.level, EscalationLevel, EscalationLevel.NORMAL),
            notification_count=self.notification_count,
            last_notified_at=self.last_notified_at,
            became_overdue_at=self.became_overdue_at,
            coaches_notified=self.coaches_notified,
            coaches_notified_at=self.coaches_notified_at,
            blocking_app=self.blocking_app,
            blocking_started_at=self.blocking_started_at,
            version=self.version or 0,
        )

    def apply(self, state) -> None:
        """Copy mutable escalation fields from a Pydantic state onto this row."""
        self.level = enum_to_value(state.level)
        self.notification_count = state.notification_count
        self.last_notified_at = state.last_notified_at
        self.became_overdue_at = state.became_overdue_at
        self.coaches_notified = state.coaches_notified
        self.coaches_notified_at = state.coaches_notified_at
        self.blocking_app = state.blocking_app
        self.blocking_started_at = state.blocking_started_at
