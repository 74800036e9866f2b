"""Engine configuration loaded from the environment (.env supported)."""

import json
import logging
import os
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from cadence.models.constants import (
    DEFAULT_LOCK_TIMEOUT_SEC,
    DEFAULT_NOTIFICATION_INTERVAL_MINUTES,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BACKOFF_SEC,
    DEFAULT_TICK_INTERVAL_SEC,
)

load_dotenv()

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}; using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


def _env_thresholds(name: str) -> Dict[str, List[Optional[int]]]:
    raw = os.getenv(name)
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"{name} must be a JSON object: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"{name} must map priority names to threshold lists")
    return {str(k).lower(): list(v) for k, v in data.items()}


class EngineSettings(BaseModel):
    """Immutable engine settings."""

    database_url: str = Field("sqlite:///./cadence.db")
    tick_interval_sec: float = Field(DEFAULT_TICK_INTERVAL_SEC, gt=0)
    default_notification_interval_minutes: int = Field(DEFAULT_NOTIFICATION_INTERVAL_MINUTES, ge=1)
    lock_timeout_sec: float = Field(DEFAULT_LOCK_TIMEOUT_SEC, gt=0)
    retry_attempts: int = Field(DEFAULT_RETRY_ATTEMPTS, ge=1)
    retry_backoff_sec: float = Field(DEFAULT_RETRY_BACKOFF_SEC, ge=0)
    notify_webhook_url: Optional[str] = None
    notify_webhook_timeout_sec: float = Field(5.0, gt=0)
    escalation_thresholds: Dict[str, List[Optional[int]]] = Field(default_factory=dict)

    class Config:
        """Pydantic configuration."""
        frozen = True

    @classmethod
    def from_env(cls) -> "EngineSettings":
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./cadence.db"),
            tick_interval_sec=_env_float("CADENCE_TICK_INTERVAL_SEC", DEFAULT_TICK_INTERVAL_SEC),
            default_notification_interval_minutes=_env_int(
                "CADENCE_DEFAULT_NOTIFICATION_INTERVAL_MIN", DEFAULT_NOTIFICATION_INTERVAL_MINUTES
            ),
            lock_timeout_sec=_env_float("CADENCE_LOCK_TIMEOUT_SEC", DEFAULT_LOCK_TIMEOUT_SEC),
            retry_attempts=_env_int("CADENCE_RETRY_ATTEMPTS", DEFAULT_RETRY_ATTEMPTS),
            retry_backoff_sec=_env_float("CADENCE_RETRY_BACKOFF_SEC", DEFAULT_RETRY_BACKOFF_SEC),
            notify_webhook_url=os.getenv("CADENCE_NOTIFY_WEBHOOK_URL") or None,
            notify_webhook_timeout_sec=_env_float("CADENCE_NOTIFY_WEBHOOK_TIMEOUT_SEC", 5.0),
            escalation_thresholds=_env_thresholds("CADENCE_ESCALATION_THRESHOLDS"),
        )
