"""Tests for environment-driven engine settings."""

import pytest

from cadence.config import EngineSettings
from cadence.engine.policy import EscalationPolicy
from cadence.models.escalation import EscalationLevel


def test_defaults(monkeypatch):
    for name in (
        "CADENCE_TICK_INTERVAL_SEC",
        "CADENCE_RETRY_ATTEMPTS",
        "CADENCE_NOTIFY_WEBHOOK_URL",
        "CADENCE_ESCALATION_THRESHOLDS",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = EngineSettings.from_env()

    assert settings.tick_interval_sec == 60
    assert settings.default_notification_interval_minutes == 10
    assert settings.retry_attempts == 3
    assert settings.notify_webhook_url is None
    assert settings.escalation_thresholds == {}


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("CADENCE_TICK_INTERVAL_SEC", "15")
    monkeypatch.setenv("CADENCE_RETRY_ATTEMPTS", "5")
    monkeypatch.setenv("CADENCE_NOTIFY_WEBHOOK_URL", "https://notify.example.com/hook")
    monkeypatch.setenv("CADENCE_ESCALATION_THRESHOLDS", '{"URGENT": [5, 10, null]}')

    settings = EngineSettings.from_env()

    assert settings.tick_interval_sec == 15
    assert settings.retry_attempts == 5
    assert settings.notify_webhook_url == "https://notify.example.com/hook"
    assert settings.escalation_thresholds == {"urgent": [5, 10, None]}
    policy = EscalationPolicy(settings.escalation_thresholds)
    assert policy.level_for("urgent", 1000) == EscalationLevel.CRITICAL


def test_invalid_number_falls_back_to_default(monkeypatch):
    monkeypatch.setenv("CADENCE_TICK_INTERVAL_SEC", "soon")
    assert EngineSettings.from_env().tick_interval_sec == 60


def test_invalid_thresholds_json(monkeypatch):
    monkeypatch.setenv("CADENCE_ESCALATION_THRESHOLDS", "[1, 2")
    with pytest.raises(ValueError):
        EngineSettings.from_env()


def test_settings_are_immutable():
    settings = EngineSettings()
    with pytest.raises(Exception):
        settings.retry_attempts = 10
