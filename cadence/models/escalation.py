"""Escalation state model for cadence."""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class EscalationLevel(str, Enum):
    """Ordered overdue severity: normal < warning < critical < blocking."""
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"
    BLOCKING = "blocking"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    def next_level(self) -> "EscalationLevel":
        """The level one step up; blocking is terminal."""
        if self is EscalationLevel.BLOCKING:
            return self
        return _LEVEL_ORDER[self.rank + 1]

    @classmethod
    def coerce(cls, value) -> "EscalationLevel":
        return value if isinstance(value, cls) else cls(str(value).lower())


_LEVEL_ORDER = [
    EscalationLevel.NORMAL,
    EscalationLevel.WARNING,
    EscalationLevel.CRITICAL,
    EscalationLevel.BLOCKING,
]


class EscalationState(BaseModel):
    """Overdue tracking for a single task instance (1:1, same lifetime)."""

    instance_id: str = Field(..., description="Owning task instance")
    level: EscalationLevel = Field(EscalationLevel.NORMAL, description="Current escalation level")
    notification_count: int = Field(0, ge=0, description="Reminders sent while overdue")
    last_notified_at: Optional[datetime] = Field(None, description="When the last reminder was sent")
    became_overdue_at: Optional[datetime] = Field(None, description="First time the instance was seen overdue")
    coaches_notified: bool = Field(False, description="Whether coaches were alerted")
    coaches_notified_at: Optional[datetime] = Field(None)
    blocking_app: bool = Field(False, description="Whether the consuming app should be blocked")
    blocking_started_at: Optional[datetime] = Field(None)
    version: int = Field(0, ge=0, description="Optimistic-lock counter (0 = not yet persisted)")
