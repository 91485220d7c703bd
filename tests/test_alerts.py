"""Tests for alert message building and routing."""

from datetime import datetime
import logging
from unittest.mock import Mock, patch

import pytest

from dfs_alert.alerts import (
    Level,
    LogDestination,
    MessageRouter,
    MqttDestination,
    WebhookDestination,
    deliver,
    error_message,
    notification_message,
)
from dfs_alert.config import Config
from dfs_alert.errors import NetworkError, RoutingError, UnknownNotificationType
from dfs_alert.models import Notification, NotificationKind

from tests.conftest import RecordingDestination

PUBLISHED = Notification(
    kind=NotificationKind.PUBLISHED,
    occurred_at=datetime(2022, 11, 28, 16, 0),
    description="Turn down between 17:00 and 18:00",
)


class TestMessages:
    def test_notification_message(self):
        message = notification_message("live", PUBLISHED)
        assert message.title == "Dfs Industry Notification - live"
        assert message.level == Level.WARNING
        assert message.component == "dfs/industry_notification"
        assert message.author == "dfs_alert"
        assert "Published at 2022-11-28 16:00" in message.body.text
        assert message.body.sections == {"Description": PUBLISHED.description}

    @pytest.mark.parametrize("kind", list(NotificationKind))
    def test_every_kind_renders(self, kind):
        message = notification_message("test", Notification(kind, PUBLISHED.occurred_at, "x"))
        assert kind.value in message.body.text

    def test_error_message(self):
        message = error_message("test", NetworkError("connection refused"))
        assert message.title == "Error checking demand flexibility service"
        assert message.level == Level.ERROR
        assert message.component == "dfs_alert/error"
        assert "test" in message.body.text
        assert "connection refused" in message.body.text
        assert message.body.sections["Error type"] == "NetworkError"

    def test_unknown_type_error_carries_label(self):
        message = error_message("live", UnknownNotificationType("Requirement Postponed"))
        assert message.body.sections["Unrecognised label"] == "Requirement Postponed"

    def test_to_dict(self):
        payload = notification_message("live", PUBLISHED).to_dict()
        assert payload["level"] == "warning"
        assert payload["sections"]["Description"] == PUBLISHED.description
        assert payload["timestamp"].endswith("Z")


class TestRouter:
    def test_routes_to_all(self):
        a, b = RecordingDestination("a"), RecordingDestination("b")
        router = MessageRouter([a, b])
        assert router.route(notification_message("live", PUBLISHED)) == 2
        assert len(a.messages) == len(b.messages) == 1

    def test_empty_router(self):
        assert MessageRouter().route(notification_message("live", PUBLISHED)) == 0

    def test_failures_are_aggregated(self):
        good = RecordingDestination("good")
        router = MessageRouter(
            [RecordingDestination("bad1", fail=True), good, RecordingDestination("bad2", fail=True)]
        )
        with pytest.raises(RoutingError) as exc:
            router.route(notification_message("live", PUBLISHED))
        assert exc.value.delivered == 1
        assert [name for name, _ in exc.value.errors] == ["bad1", "bad2"]
        assert len(good.messages) == 1

    def test_deliver_never_raises(self):
        router = MessageRouter([RecordingDestination("bad", fail=True), RecordingDestination()])
        assert deliver(router, error_message("live", NetworkError("x"))) == 1

    def test_publish_status_skips_destinations_without_status(self):
        recorder = RecordingDestination()
        router = MessageRouter([LogDestination(), recorder])
        router.publish_status({"status": "active"})
        assert recorder.statuses == [{"status": "active"}]

    def test_publish_status_failure_is_logged(self, caplog):
        broken = Mock()
        broken.name = "broken"
        broken.publish_status.side_effect = RuntimeError("offline")
        with caplog.at_level(logging.WARNING):
            MessageRouter([broken]).publish_status({"status": "active"})
        assert "offline" in caplog.text

    def test_from_config_dry_run_is_log_only(self):
        config = Config({"mqtt": {"enabled": True}, "alerts": {"webhooks": ["https://hook"]}})
        router = MessageRouter.from_config(config, dry_run=True)
        assert [d.name for d in router.destinations] == ["log"]

    def test_from_config_builds_destinations(self):
        config = Config(
            {
                "mqtt": {"enabled": True},
                "alerts": {"log": True, "webhooks": ["https://a.test/hook", "https://b.test/hook"]},
            }
        )
        names = [d.name for d in MessageRouter.from_config(config).destinations]
        assert names == ["log", "mqtt", "webhook:https://a.test/hook", "webhook:https://b.test/hook"]


def test_log_destination_uses_level(caplog):
    with caplog.at_level(logging.INFO, logger="dfs_alert.alerts"):
        LogDestination().send(error_message("live", NetworkError("down")))
    record = caplog.records[-1]
    assert record.levelno == logging.ERROR
    assert "Error checking demand flexibility service" in record.getMessage()


@patch("dfs_alert.alerts.requests.post")
def test_webhook_posts_json(mock_post):
    mock_post.return_value = Mock(raise_for_status=Mock())
    WebhookDestination("https://hook.test/x", timeout=3).send(
        notification_message("live", PUBLISHED)
    )
    args, kwargs = mock_post.call_args
    assert args[0] == "https://hook.test/x"
    assert kwargs["timeout"] == 3
    assert kwargs["json"]["title"] == "Dfs Industry Notification - live"


class DummyPublisher:
    published = []
    init_kwargs = None

    def __init__(self, **kwargs):
        DummyPublisher.init_kwargs = kwargs

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def publish(self, topic, payload, retain=False):
        DummyPublisher.published.append((topic, payload, retain))
        return True


class TestMqttDestination:
    def setup_method(self):
        DummyPublisher.published = []
        DummyPublisher.init_kwargs = None

    def _config(self, **mqtt):
        base = {"enabled": True, "broker_url": "broker.test", "broker_port": 1883}
        base.update(mqtt)
        return Config({"mqtt": base})

    def test_send_alert(self, monkeypatch):
        monkeypatch.setattr("dfs_alert.alerts.MQTTPublisher", DummyPublisher)
        MqttDestination(self._config()).send(notification_message("live", PUBLISHED))
        topic, payload, retain = DummyPublisher.published[0]
        assert topic == "dfs_alert/alerts"
        assert payload["component"] == "dfs/industry_notification"
        assert retain is False
        assert DummyPublisher.init_kwargs["broker_url"] == "broker.test"

    def test_status_is_retained(self, monkeypatch):
        monkeypatch.setattr("dfs_alert.alerts.MQTTPublisher", DummyPublisher)
        destination = MqttDestination(self._config(topics={"status": "custom/status"}))
        destination.publish_status({"status": "active"})
        assert DummyPublisher.published == [("custom/status", {"status": "active"}, True)]

    def test_unacknowledged_publish_raises(self, monkeypatch):
        class Refusing(DummyPublisher):
            def publish(self, topic, payload, retain=False):
                return False

        monkeypatch.setattr("dfs_alert.alerts.MQTTPublisher", Refusing)
        with pytest.raises(RuntimeError):
            MqttDestination(self._config()).send(notification_message("live", PUBLISHED))

    def test_permissive_tls_uses_paho_directly(self, monkeypatch):
        client = Mock()
        info = Mock(rc=0)
        client.publish.return_value = info
        monkeypatch.setattr("dfs_alert.alerts.mqtt.Client", Mock(return_value=client))
        monkeypatch.setattr("dfs_alert.alerts.MQTTPublisher", DummyPublisher)

        MqttDestination(self._config(tls=True, broker_port=8883)).send(
            notification_message("live", PUBLISHED)
        )

        client.tls_insecure_set.assert_called_once_with(True)
        client.connect.assert_called_once()
        topic = client.publish.call_args[0][0]
        assert topic == "dfs_alert/alerts"
        info.wait_for_publish.assert_called_once()
        client.disconnect.assert_called_once()
        assert DummyPublisher.published == []
