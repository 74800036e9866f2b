"""Repository for EscalationState database operations.

Writes are compare-and-swap on the `version` column: a state loaded at
version N can only be saved while the row is still at version N.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from cadence.database.models import EscalationStateDB
from cadence.errors import ConcurrentModification
from cadence.models.escalation import EscalationState

logger = logging.getLogger(__name__)


class EscalationStateRepository:
    """Repository for EscalationState database operations."""

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

    def _row(self, instance_id: str) -> Optional[EscalationStateDB]:
        return (
            self.db.query(EscalationStateDB)
            .filter(EscalationStateDB.instance_id == instance_id)
            .populate_existing()
            .first()
        )

    def get(self, instance_id: str) -> Optional[EscalationState]:
        row = self._row(instance_id)
        return row.to_pydantic() if row else None

    def get_or_create(self, instance_id: str) -> EscalationState:
        """Load the state, creating the initial row lazily on first use."""
        existing = self.get(instance_id)
        if existing is not None:
            return existing
        return self.save(EscalationState(instance_id=instance_id))

    def save(self, state: EscalationState) -> EscalationState:
        """Persist `state` if the stored version still matches; returns the new version.

        Raises:
            ConcurrentModification: another writer saved (or created) the row first
        """
        row = self._row(state.instance_id)
        if row is None:
            if state.version:
                raise ConcurrentModification(f"Escalation state for {state.instance_id} was deleted")
            row = EscalationStateDB(instance_id=state.instance_id)
            row.apply(state)
            self.db.add(row)
        else:
            if row.version != state.version:
                raise ConcurrentModification(
                    f"Escalation state for {state.instance_id} is at version {row.version}, "
                    f"expected {state.version}"
                )
            row.apply(state)

        try:
            self._persist(row)
        except (StaleDataError, IntegrityError) as e:
            self.db.rollback()
            logger.warning(f"Concurrent escalation update for {state.instance_id}: {type(e).__name__}")
            raise ConcurrentModification(f"Escalation state for {state.instance_id} changed concurrently") from e
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to save escalation state {state.instance_id}: {type(e).__name__}: {str(e)}")
            raise
        return row.to_pydantic()

    def list_blocking(self) -> List[EscalationState]:
        """States currently blocking the consuming app."""
        rows = self.db.query(EscalationStateDB).filter(EscalationStateDB.blocking_app.is_(True)).all()
        return [row.to_pydantic() for row in rows]

    def delete(self, instance_id: str) -> bool:
        row = self._row(instance_id)
        if not row:
            return False
        try:
            self.db.delete(row)
            self._persist()
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete escalation state {instance_id}: {type(e).__name__}: {str(e)}")
            raise
