"""Unit tests for the notification engine."""

import pytest

from agriadvisor.core.models import DiseaseOutbreakDB
from agriadvisor.core.notification_engine import (
    LogChannel,
    Notification,
    NotificationEngine,
    WebhookChannel,
    build_notification_engine,
    format_alert_message,
)


def _notification() -> Notification:
    return Notification(id="n1", title="Rust outbreak", message="Check your crops", recipients=["u1", "u2"])


class TestNotificationEngine:
    @pytest.mark.asyncio
    async def test_sends_through_all_channels(self):
        engine = NotificationEngine()
        engine.add_channel(LogChannel())

        results = await engine.send_notification(_notification())

        assert results == {"log": True}
        assert len(engine.sent_notifications) == 1

    @pytest.mark.asyncio
    async def test_unknown_channel_reports_failure(self):
        engine = NotificationEngine()
        engine.add_channel(LogChannel())

        results = await engine.send_notification(_notification(), channels=["log", "sms"])

        assert results == {"log": True, "sms": False}

    @pytest.mark.asyncio
    async def test_webhook_without_url_is_skipped(self):
        assert await WebhookChannel("").send(_notification()) is False

    def test_build_from_config(self):
        config = {"notifications": {"channels": {"webhook": {"enabled": True, "url": "http://hooks.local/alerts"}}}}

        engine = build_notification_engine(config)

        assert set(engine.channels) == {"log", "webhook"}
        assert set(build_notification_engine({}).channels) == {"log"}

    def test_alert_message(self):
        outbreak = DiseaseOutbreakDB(disease="Blast", crop="Rice", address="Thrissur", confirmed_cases=12)

        assert format_alert_message(outbreak) == (
            "DISEASE ALERT: 12 farmers reported Blast in Rice near Thrissur. Check your crops immediately!"
        )
