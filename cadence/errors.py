"""Error types raised by the cadence engine."""

from typing import Any, Dict, List, Optional


class CadenceError(Exception):
    """Base class for engine errors."""


class InvalidRule(CadenceError, ValueError):
    """Malformed recurrence configuration.

    Raised when a template is created or updated, before anything is persisted.
    """

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.details = details or []


class ConcurrentModification(CadenceError):
    """Stale version or lock contention on a single record; retry that record."""


class LockTimeout(ConcurrentModification):
    """A named lock could not be acquired in time."""


class TemplateGone(CadenceError):
    """An instance references a template that no longer exists."""


class TemplateNotFound(CadenceError, LookupError):
    pass


class InstanceNotFound(CadenceError, LookupError):
    pass
