"""Task template and task instance models for cadence."""

from datetime import datetime
from typing import Optional
from enum import Enum
from pydantic import BaseModel, Field

from cadence.models.recurrence import RecurrenceRule


class TaskStatus(str, Enum):
    """Instance status enumeration."""
    PENDING = "pending"
    DONE = "done"


class TaskPriority(str, Enum):
    """Task priority enumeration."""
    NO_PRIORITY = "no_priority"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskTemplate(BaseModel):
    """Holder of a recurrence rule and the canonical editable task fields."""

    id: str = Field(..., description="Unique template identifier (UUID v4)")
    owner_id: str = Field(..., description="User ID who owns this template")
    list_id: str = Field(..., description="List the generated instances belong to")
    title: str = Field(..., description="Task title copied to every instance")
    note: Optional[str] = Field(None, description="Task note copied to every instance")
    priority: TaskPriority = Field(TaskPriority.NO_PRIORITY, description="Task priority")
    strict_mode: bool = Field(False, description="Whether overdue instances may block the app")
    requires_explanation_if_missed: bool = Field(
        False, description="Whether completing an overdue instance requires a reason"
    )
    can_be_snoozed: bool = Field(False, description="Snoozable tasks are never escalated")
    notification_interval_minutes: int = Field(10, ge=1, description="Overdue reminder cadence")
    rule: RecurrenceRule = Field(..., description="Recurrence rule")
    created_at: datetime = Field(..., description="Template creation timestamp")
    updated_at: datetime = Field(..., description="Template last update timestamp")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class TaskInstance(BaseModel):
    """One concrete, due-dated, completable task generated from a template."""

    id: str = Field(..., description="Unique instance identifier (UUID v4)")
    owner_id: str = Field(..., description="User ID who owns this instance")
    list_id: str = Field(..., description="List the instance belongs to")
    template_id: Optional[str] = Field(
        None, description="Back-reference to the generating template (null once unlinked)"
    )
    instance_number: int = Field(..., ge=1, description="1-based position within the template's sequence")
    due_at: datetime = Field(..., description="When the instance is due")
    status: TaskStatus = Field(TaskStatus.PENDING, description="Instance status")
    completed_at: Optional[datetime] = Field(None, description="Completion timestamp")
    title: str = Field(..., description="Task title")
    note: Optional[str] = Field(None, description="Task note")
    priority: TaskPriority = Field(TaskPriority.NO_PRIORITY, description="Task priority")
    strict_mode: bool = Field(False, description="Whether this instance may block the app")
    requires_explanation_if_missed: bool = Field(False)
    can_be_snoozed: bool = Field(False)
    notification_interval_minutes: int = Field(10, ge=1)
    created_at: datetime = Field(..., description="Instance creation timestamp")
    updated_at: datetime = Field(..., description="Instance last update timestamp")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE

    def is_overdue(self, now: datetime) -> bool:
        return not self.is_done and self.due_at < now

    def minutes_overdue(self, now: datetime) -> int:
        if not self.is_overdue(now):
            return 0
        return int((now - self.due_at).total_seconds() // 60)
