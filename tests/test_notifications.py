"""Tests for notification dispatchers."""

import pytest
from datetime import datetime
from unittest.mock import MagicMock

import requests

from cadence.config import EngineSettings
from cadence.integrations.notifications import (
    CompositeNotificationDispatcher,
    LoggingNotificationDispatcher,
    RecordingNotificationDispatcher,
    WebhookNotificationDispatcher,
    dispatcher_from_settings,
)
from cadence.models.notification import NotificationKind
from cadence.models.task import TaskInstance

NOW = datetime(2026, 3, 4, 9, 0)


@pytest.fixture
def instance():
    return TaskInstance(
        id="instance-1",
        owner_id="owner-123",
        list_id="list-456",
        template_id="template-1",
        instance_number=1,
        due_at=NOW,
        title="Take vitamins",
        priority="high",
        created_at=NOW,
        updated_at=NOW,
    )


class TestWebhookNotificationDispatcher:
    def test_posts_json_payload(self, instance):
        session = MagicMock()
        dispatcher = WebhookNotificationDispatcher("https://notify.example.com/hook", timeout=3, session=session)

        dispatcher.notify(NotificationKind.REMINDER, instance, {"level": "warning", "timestamp": NOW})

        session.post.assert_called_once()
        args, kwargs = session.post.call_args
        assert args[0] == "https://notify.example.com/hook"
        assert kwargs["timeout"] == 3
        payload = kwargs["json"]
        assert payload["kind"] == "reminder"
        assert payload["instance_id"] == "instance-1"
        assert payload["owner_id"] == "owner-123"
        assert payload["title"] == "Take vitamins"
        assert payload["context"] == {"level": "warning"}
        assert payload["timestamp"].startswith("2026-03-04T09:00")

    def test_transport_errors_are_not_raised(self, instance):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("unreachable")
        dispatcher = WebhookNotificationDispatcher("https://notify.example.com/hook", session=session)

        dispatcher.notify(NotificationKind.COACH_ALERT, instance, {})

    def test_http_errors_are_not_raised(self, instance):
        session = MagicMock()
        session.post.return_value.raise_for_status.side_effect = requests.HTTPError("503")
        dispatcher = WebhookNotificationDispatcher("https://notify.example.com/hook", session=session)

        dispatcher.notify(NotificationKind.APP_BLOCKING, instance, {})

    def test_url_required(self, monkeypatch):
        monkeypatch.delenv("CADENCE_NOTIFY_WEBHOOK_URL", raising=False)
        with pytest.raises(ValueError):
            WebhookNotificationDispatcher()

    def test_url_from_env(self, monkeypatch):
        monkeypatch.setenv("CADENCE_NOTIFY_WEBHOOK_URL", "https://env.example.com/hook")
        assert WebhookNotificationDispatcher(session=MagicMock()).url == "https://env.example.com/hook"


class TestCompositeNotificationDispatcher:
    def test_failure_in_one_does_not_stop_others(self, instance):
        broken = MagicMock()
        broken.notify.side_effect = RuntimeError("down")
        recorder = RecordingNotificationDispatcher()

        CompositeNotificationDispatcher([broken, recorder]).notify(NotificationKind.REMINDER, instance, {})

        assert recorder.kinds() == ["reminder"]


class TestDispatcherFromSettings:
    def test_logging_only_without_webhook(self):
        assert isinstance(dispatcher_from_settings(EngineSettings()), LoggingNotificationDispatcher)

    def test_composite_with_webhook(self):
        settings = EngineSettings(notify_webhook_url="https://notify.example.com/hook")
        dispatcher = dispatcher_from_settings(settings)
        assert isinstance(dispatcher, CompositeNotificationDispatcher)
        assert isinstance(dispatcher.dispatchers[1], WebhookNotificationDispatcher)


def test_logging_dispatcher_logs_blocking_as_warning(instance, caplog):
    with caplog.at_level("INFO", logger="cadence.integrations.notifications"):
        LoggingNotificationDispatcher().notify(NotificationKind.APP_BLOCKING, instance, {"level": "blocking"})
    assert caplog.records[-1].levelname == "WARNING"
    assert "app_blocking" in caplog.records[-1].getMessage()
