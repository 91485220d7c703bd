"""Outbound alert messages and routing.

A MessageRouter fans one AlertMessage out to every configured destination
(MQTT, webhooks, the log) and reports how many succeeded. Failures are
collected into a single RoutingError so one broken destination never hides
the others.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import json
import logging
import ssl
from typing import Any, Optional, Protocol

from ha_mqtt_publisher.publisher import MQTTPublisher
import paho.mqtt.client as mqtt
import requests

from .config import Config
from .errors import RoutingError, UnknownNotificationType
from .models import Notification, NotificationKind

logger = logging.getLogger(__name__)

AUTHOR = "dfs_alert"


class Level(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    Level.INFO: logging.INFO,
    Level.WARNING: logging.WARNING,
    Level.ERROR: logging.ERROR,
}


@dataclass
class MessageBody:
    raw: str
    text: str
    sections: dict[str, str] = field(default_factory=dict)


@dataclass
class AlertMessage:
    title: str
    level: Level
    body: MessageBody
    component: str
    author: str = AUTHOR

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "level": self.level.value,
            "component": self.component,
            "author": self.author,
            "raw": self.body.raw,
            "text": self.body.text,
            "sections": dict(self.body.sections),
            "timestamp": _utc_timestamp(),
        }


def _utc_timestamp() -> str:
    return (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


# Every NotificationKind must have an entry; the lookup below relies on it.
_KIND_PRESENTATION: dict[NotificationKind, tuple[str, Level]] = {
    NotificationKind.ANTICIPATED: ("DFS requirement anticipated", Level.INFO),
    NotificationKind.PUBLISHED: ("DFS requirement published", Level.WARNING),
    NotificationKind.CANCELLED: ("DFS requirement cancelled or not issued", Level.INFO),
    NotificationKind.TEST: ("DFS alert test message", Level.INFO),
}


def notification_message(feed_id: str, notification: Notification) -> AlertMessage:
    """Build the alert for a newly observed notification."""
    headline, level = _KIND_PRESENTATION[notification.kind]
    when = notification.occurred_at.strftime("%Y-%m-%d %H:%M")
    return AlertMessage(
        title=f"Dfs Industry Notification - {feed_id}",
        level=level,
        body=MessageBody(
            raw=f"{notification!r} - {feed_id}",
            text=f"{headline}: {notification.kind.value} at {when}",
            sections={"Description": notification.description},
        ),
        component="dfs/industry_notification",
    )


def error_message(feed_id: str, error: BaseException) -> AlertMessage:
    """Build the error-level alert for a failed feed check."""
    summary = f"Error checking for changes on {feed_id} resources, {error}"
    sections = {"Error type": type(error).__name__}
    if isinstance(error, UnknownNotificationType):
        sections["Unrecognised label"] = error.text
    return AlertMessage(
        title="Error checking demand flexibility service",
        level=Level.ERROR,
        body=MessageBody(raw=f"{summary} ({error!r})", text=summary, sections=sections),
        component="dfs_alert/error",
    )


class Destination(Protocol):
    name: str

    def send(self, message: AlertMessage) -> None: ...


class LogDestination:
    """Writes alerts to the ``dfs_alert.alerts`` logger."""

    name = "log"

    def send(self, message: AlertMessage) -> None:
        sections = " | ".join(f"{k}: {v}" for k, v in message.body.sections.items())
        logger.log(
            _LOG_LEVELS[message.level],
            "[%s] %s - %s%s",
            message.component,
            message.title,
            message.body.text,
            f" | {sections}" if sections else "",
        )


class WebhookDestination:
    """POSTs the alert as JSON to a URL."""

    def __init__(self, url: str, timeout: float = 30):
        self.url = url
        self.timeout = timeout
        self.name = f"webhook:{url}"

    def send(self, message: AlertMessage) -> None:
        response = requests.post(self.url, json=message.to_dict(), timeout=self.timeout)
        response.raise_for_status()


class MqttDestination:
    """Publishes alerts (and the retained service status) to MQTT."""

    name = "mqtt"

    def __init__(self, config: Config):
        self.config = config
        self.topics = config.get_mqtt_topics()

    def send(self, message: AlertMessage) -> None:
        self._publish(self.topics["alerts"], message.to_dict(), retain=False)

    def publish_status(self, payload: dict[str, Any]) -> None:
        self._publish(self.topics["status"], payload, retain=True)

    def _publish(self, topic: str, payload: dict[str, Any], retain: bool) -> None:
        mqtt_config = self.config.get_mqtt_config()
        tls = mqtt_config.get("tls")
        logger.debug(
            "mqtt_publish broker=%s port=%s topic=%s retain=%s",
            mqtt_config.get("broker_url"),
            mqtt_config.get("broker_port"),
            topic,
            retain,
        )
        if isinstance(tls, dict) and tls.get("verify") is False:
            self._publish_permissive_tls(mqtt_config, topic, payload, retain)
            return

        with MQTTPublisher(**mqtt_config) as publisher:
            result = publisher.publish(topic, payload, retain=retain)
        if result is False:
            raise RuntimeError(f"MQTT publish to {topic} was not acknowledged")

    def _publish_permissive_tls(
        self, mqtt_config: dict[str, Any], topic: str, payload: dict[str, Any], retain: bool
    ) -> None:
        """One-shot publish to a broker with a self-signed certificate."""
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=str(mqtt_config.get("client_id") or ""),
            protocol=mqtt.MQTTv5,
        )
        auth = mqtt_config.get("auth")
        if isinstance(auth, dict) and auth.get("username") and auth.get("password"):
            client.username_pw_set(auth["username"], auth["password"])
        client.tls_set(cert_reqs=ssl.CERT_NONE)
        client.tls_insecure_set(True)
        client.connect(
            host=str(mqtt_config.get("broker_url")),
            port=int(mqtt_config.get("broker_port") or 8883),
            keepalive=30,
        )
        client.loop_start()
        try:
            info = client.publish(topic, json.dumps(payload), qos=1, retain=retain)
            info.wait_for_publish(timeout=10)
            if info.rc != mqtt.MQTT_ERR_SUCCESS:
                raise RuntimeError(f"MQTT publish to {topic} failed rc={info.rc}")
        finally:
            client.loop_stop()
            client.disconnect()


class MessageRouter:
    """Fan-out of alert messages to all destinations."""

    def __init__(self, destinations: Optional[list[Any]] = None):
        self.destinations = list(destinations or [])

    @classmethod
    def from_config(cls, config: Config, dry_run: bool = False) -> MessageRouter:
        """Build destinations from config; dry runs only log."""
        if dry_run:
            return cls([LogDestination()])
        destinations: list[Any] = []
        if config.log_alerts_enabled:
            destinations.append(LogDestination())
        if config.mqtt_enabled:
            destinations.append(MqttDestination(config))
        for url in config.webhook_urls:
            destinations.append(WebhookDestination(url, timeout=config.http_timeout))
        return cls(destinations)

    def route(self, message: AlertMessage) -> int:
        """Send to every destination.

        Returns:
            Number of destinations notified.

        Raises:
            RoutingError: at least one destination failed.
        """
        delivered = 0
        errors: list[tuple[str, Any]] = []
        for destination in self.destinations:
            try:
                destination.send(message)
                delivered += 1
            except Exception as e:
                errors.append((destination.name, e))
        if errors:
            raise RoutingError(errors, delivered)
        return delivered

    def publish_status(self, payload: dict[str, Any]) -> None:
        """Push the service status to destinations that keep one (MQTT)."""
        for destination in self.destinations:
            publish = getattr(destination, "publish_status", None)
            if publish is None:
                continue
            try:
                publish(payload)
            except Exception as e:
                logger.warning("Failed publishing status via %s: %s", destination.name, e)


def deliver(router: MessageRouter, message: AlertMessage) -> int:
    """Route a message, logging (never raising) on routing failure."""
    try:
        count = router.route(message)
        logger.info("Informed %d destinations", count)
        return count
    except RoutingError as e:
        logger.error("Errors informing some destinations: %s", e)
        return e.delivered


__all__ = [
    "AlertMessage",
    "Level",
    "LogDestination",
    "MessageBody",
    "MessageRouter",
    "MqttDestination",
    "WebhookDestination",
    "deliver",
    "error_message",
    "notification_message",
]
