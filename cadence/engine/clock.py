"""Injectable clocks. All engine timestamps are naive UTC."""

from datetime import datetime, timedelta
from typing import Optional, Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.utcnow()


class FixedClock:
    """Clock frozen at a given instant; tests move it with advance()."""

    def __init__(self, current: Optional[datetime] = None):
        self.current = current or datetime.utcnow()

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current

    def set(self, current: datetime) -> None:
        self.current = current
