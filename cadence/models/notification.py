"""Notification event model for cadence."""

from datetime import datetime
from enum import Enum
from typing import Dict, Any
from pydantic import BaseModel, Field


class NotificationKind(str, Enum):
    """What the engine is asking the dispatcher to deliver."""
    REMINDER = "reminder"
    COACH_ALERT = "coach_alert"
    APP_BLOCKING = "app_blocking"
    INSTANCE_GENERATED = "instance_generated"


class NotificationEvent(BaseModel):
    """Semantic payload of a notification; delivery is the dispatcher's concern."""

    kind: NotificationKind = Field(..., description="Type of notification")
    instance_id: str = Field(..., description="Task instance the notification is about")
    owner_id: str = Field(..., description="Owner of the task instance")
    timestamp: datetime = Field(..., description="When the engine decided the notification was due")
    context: Dict[str, Any] = Field(default_factory=dict, description="Level, minutes overdue, counts")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
