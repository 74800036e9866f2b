"""Named mutual-exclusion regions with automatic release.

Two backends:
- PostgresAdvisoryLock: `pg_advisory_xact_lock`, released by the server when
  the surrounding transaction commits or rolls back (including crashes).
- LocalLockManager: in-process named locks with an acquisition timeout, for
  SQLite and single-process deployments.
"""

import copy
import hashlib
import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Hashable, Iterator, List, Optional, Protocol, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from cadence.database.database import is_postgres_url
from cadence.errors import LockTimeout
from cadence.models.constants import DEFAULT_LOCK_TIMEOUT_SEC

logger = logging.getLogger(__name__)

R = TypeVar("R")

# Advisory lock keys are signed 64-bit integers; keep them positive.
_KEY_MASK = 0x7FFFFFFFFFFFFFFF


def template_lock_key(owner_id: str, list_id: str, title: str) -> int:
    """Stable lock key for template creation deduplication."""
    digest = hashlib.md5(f"recurring_task:{owner_id}:{list_id}:{title}".encode("utf-8")).hexdigest()
    return int(digest, 16) & _KEY_MASK


class LockManager(Protocol):
    def lock(self, key: Hashable):
        ...

    def with_lock(self, key: Hashable, fn: Callable[[], R]) -> R:
        ...


class LocalLockManager:
    """Process-local named locks; entries are dropped once nobody holds or waits on them."""

    def __init__(self, timeout: Optional[float] = DEFAULT_LOCK_TIMEOUT_SEC):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, List] = {}  # key -> [lock, users]

    def _checkout(self, key: Hashable) -> threading.Lock:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: Hashable) -> None:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                return
            entry[1] -= 1
            if entry[1] <= 0:
                del self._locks[key]

    @contextmanager
    def lock(self, key: Hashable) -> Iterator[None]:
        mutex = self._checkout(key)
        timeout = -1 if self.timeout is None else self.timeout
        if not mutex.acquire(timeout=timeout):
            self._checkin(key)
            raise LockTimeout(f"Timed out waiting for lock {key!r}")
        try:
            yield
        finally:
            mutex.release()
            self._checkin(key)

    def with_lock(self, key: Hashable, fn: Callable[[], R]) -> R:
        with self.lock(key):
            return fn()

    def held_keys(self) -> List[Hashable]:
        with self._guard:
            return list(self._locks)

    def with_timeout(self, timeout: Optional[float]) -> "LocalLockManager":
        """A view over the same named locks with its own acquisition timeout."""
        view = copy.copy(self)
        view.timeout = timeout
        return view


class PostgresAdvisoryLock:
    """Transaction-scoped advisory lock bound to a session.

    The lock lives until the session's transaction ends; callers commit or roll
    back inside the `lock()` block.
    """

    def __init__(self, db: Session, timeout: Optional[float] = DEFAULT_LOCK_TIMEOUT_SEC):
        self.db = db
        self.timeout = timeout

    @contextmanager
    def lock(self, key: Hashable) -> Iterator[None]:
        numeric_key = key if isinstance(key, int) else int(hashlib.md5(str(key).encode("utf-8")).hexdigest(), 16) & _KEY_MASK
        try:
            if self.timeout is not None:
                self.db.execute(text(f"SET LOCAL lock_timeout = '{int(self.timeout * 1000)}ms'"))
            self.db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": numeric_key})
        except OperationalError as e:
            self.db.rollback()
            raise LockTimeout(f"Timed out waiting for advisory lock {numeric_key}") from e
        yield

    def with_lock(self, key: Hashable, fn: Callable[[], R]) -> R:
        with self.lock(key):
            return fn()


# Shared by every manager in this process that is not backed by Postgres.
_process_locks = LocalLockManager()


def default_lock_manager(db: Session, timeout: Optional[float] = None) -> LockManager:
    """Advisory locks on Postgres sessions, process-local locks otherwise."""
    bind = db.get_bind()
    if is_postgres_url(str(bind.url)):
        return PostgresAdvisoryLock(db, timeout if timeout is not None else DEFAULT_LOCK_TIMEOUT_SEC)
    if timeout is not None:
        return _process_locks.with_timeout(timeout)
    return _process_locks
