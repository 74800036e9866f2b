"""Notification dispatchers for cadence.

The engine only decides that a notification is due and what it means.
Dispatchers hand that description to a delivery system. Dispatch is
fire-and-forget: the engine never consumes a return value.
"""

import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

import requests
from dotenv import load_dotenv

from cadence.models.notification import NotificationEvent, NotificationKind
from cadence.models.task import TaskInstance

load_dotenv()

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    def notify(self, kind: NotificationKind, instance: TaskInstance, context: Dict[str, Any]) -> None:
        ...


def build_event(kind: NotificationKind, instance: TaskInstance, context: Dict[str, Any]) -> NotificationEvent:
    return NotificationEvent(
        kind=kind,
        instance_id=instance.id,
        owner_id=instance.owner_id,
        timestamp=context.get("timestamp") or datetime.utcnow(),
        context={k: v for k, v in context.items() if k != "timestamp"},
    )


class LoggingNotificationDispatcher:
    """Default dispatcher: records every notification in the log."""

    def notify(self, kind: NotificationKind, instance: TaskInstance, context: Dict[str, Any]) -> None:
        kind_value = getattr(kind, "value", kind)
        level = logging.WARNING if kind_value == NotificationKind.APP_BLOCKING.value else logging.INFO
        logger.log(
            level,
            f"Notification {kind_value} for instance {instance.id} "
            f"('{instance.title[:50]}'): {context}",
        )


class RecordingNotificationDispatcher:
    """Keeps events in memory (tests, dry runs)."""

    def __init__(self):
        self.events: List[NotificationEvent] = []

    def notify(self, kind: NotificationKind, instance: TaskInstance, context: Dict[str, Any]) -> None:
        self.events.append(build_event(kind, instance, context))

    def kinds(self) -> List[str]:
        return [getattr(e.kind, "value", e.kind) for e in self.events]


class WebhookNotificationDispatcher:
    """POSTs each notification as JSON to a delivery service.

    Transport failures are logged and swallowed; they must never undo the
    state transition that produced the notification.
    """

    def __init__(self, url: Optional[str] = None, timeout: float = 5.0, session: Optional[requests.Session] = None):
        """Initialize the webhook dispatcher.

        Args:
            url: Endpoint receiving notifications. If None, reads CADENCE_NOTIFY_WEBHOOK_URL.
            timeout: Request timeout in seconds
            session: Optional requests session (connection reuse)
        """
        self.url = url or os.getenv("CADENCE_NOTIFY_WEBHOOK_URL")
        if not self.url:
            raise ValueError("Webhook URL is required. Set CADENCE_NOTIFY_WEBHOOK_URL env var.")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"Content-Type": "application/json"}

    def notify(self, kind: NotificationKind, instance: TaskInstance, context: Dict[str, Any]) -> None:
        event = build_event(kind, instance, context)
        payload = event.model_dump(mode="json")
        payload["title"] = instance.title
        try:
            response = self.session.post(self.url, json=payload, headers=self.headers, timeout=self.timeout)
            response.raise_for_status()
            logger.debug(f"Delivered {payload['kind']} for instance {instance.id}")
        except requests.RequestException as e:
            logger.error(f"Failed to deliver {payload['kind']} for instance {instance.id}: {type(e).__name__}: {str(e)}")


class CompositeNotificationDispatcher:
    """Fans a notification out to several dispatchers; one failing does not stop the others."""

    def __init__(self, dispatchers: List[NotificationDispatcher]):
        self.dispatchers = list(dispatchers)

    def notify(self, kind: NotificationKind, instance: TaskInstance, context: Dict[str, Any]) -> None:
        for dispatcher in self.dispatchers:
            try:
                dispatcher.notify(kind, instance, context)
            except Exception as e:
                logger.error(
                    f"Dispatcher {type(dispatcher).__name__} failed for instance {instance.id}: "
                    f"{type(e).__name__}: {str(e)}"
                )


def dispatcher_from_settings(settings) -> NotificationDispatcher:
    """Logging dispatcher, plus the webhook one when a URL is configured."""
    logging_dispatcher = LoggingNotificationDispatcher()
    if not settings.notify_webhook_url:
        return logging_dispatcher
    return CompositeNotificationDispatcher(
        [
            logging_dispatcher,
            WebhookNotificationDispatcher(settings.notify_webhook_url, timeout=settings.notify_webhook_timeout_sec),
        ]
    )
