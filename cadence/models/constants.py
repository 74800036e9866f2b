"""Constants for cadence.

This module centralizes default values used throughout the engine.
"""

from cadence.models.task import TaskPriority


# Instance defaults
DEFAULT_PRIORITY = TaskPriority.NO_PRIORITY
DEFAULT_NOTIFICATION_INTERVAL_MINUTES = 10

# Escalation thresholds: minutes overdue after which an instance reaches
# (warning, critical, blocking). None means the level is never reached.
DEFAULT_ESCALATION_THRESHOLDS = {
    TaskPriority.URGENT.value: (30, 60, 120),
    TaskPriority.HIGH.value: (60, 120, 240),
    TaskPriority.MEDIUM.value: (120, 240, None),
    TaskPriority.LOW.value: (120, 240, None),
    TaskPriority.NO_PRIORITY.value: (120, 240, None),
}

# Weekly recurrence search horizon, in weeks beyond the interval
WEEKLY_SEARCH_SLACK_WEEKS = 1

# Locking / retry
DEFAULT_LOCK_TIMEOUT_SEC = 10.0
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_SEC = 0.05

# Runner
DEFAULT_TICK_INTERVAL_SEC = 60
