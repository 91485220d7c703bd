"""
Configuration management for DFS Alert.

YAML config with dot-notation access, DFS_ALERT_* environment overrides
and ${VAR} expansion, plus .env loading.
"""

import copy
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import dotenv_values
import yaml

from .errors import ConfigError
from .models import FeedConfig

# Lazy one-time .env loading flag
_ENV_LOADED = False

ENV_PREFIX = "DFS_ALERT_"

INDUSTRY_NOTIFICATION_PREFIXES = [
    "service_update_industry_notifications_",
    "dfs_industry_notification",
]

DEFAULTS: dict[str, Any] = {
    "feeds": [
        {
            "id": "live",
            "url": "https://data.nationalgrideso.com/dfs/demand-flexibility-service-live-events/datapackage.json",
            "accepted_name_prefixes": INDUSTRY_NOTIFICATION_PREFIXES,
        },
        {
            "id": "test",
            "url": "https://data.nationalgrideso.com/dfs/demand-flexibility-service-test-events/datapackage.json",
            "accepted_name_prefixes": INDUSTRY_NOTIFICATION_PREFIXES,
        },
    ],
    "http": {"timeout": 30, "max_retries": 3, "retry_delay": 5},
    "service": {"interval_seconds": 600},
    "state": {"file": "state.json"},
    "detection": {"advance_on_duplicate": False},
    "mqtt": {
        "enabled": False,
        "broker_url": "localhost",
        "broker_port": 1883,
        "tls": False,
        "client_id": "dfs_alert",
        "topics": {
            "alerts": "dfs_alert/alerts",
            "status": "dfs_alert/status",
        },
    },
    "alerts": {"log": True, "webhooks": []},
}


def _load_env_once() -> None:
    """Copy the project .env into os.environ once; real env vars win."""
    global _ENV_LOADED
    if _ENV_LOADED:
        return
    env_file = Path(__file__).parent.parent.parent / ".env"
    if env_file.exists():
        for name, value in dotenv_values(env_file).items():
            if name and value is not None:
                os.environ.setdefault(name, value)
    _ENV_LOADED = True


def _coerce(raw: str, like: Any) -> Any:
    """Convert an environment string to the type of the configured value."""
    if isinstance(like, bool):
        return raw.lower() in ("true", "1", "yes", "on")
    for kind in (int, float):
        if isinstance(like, kind):
            try:
                return kind(raw)
            except ValueError:
                return raw
    return raw


def _unset(value: Any) -> bool:
    """True for missing values and ${VAR} placeholders whose VAR is not set."""
    return value is None or value == "" or (
        isinstance(value, str) and value.startswith("${")
    )


class Config:
    """Configuration manager with validation and defaults."""

    config_path: Optional[str] = None

    def __init__(self, config_data: dict):
        """Initialize configuration from dictionary."""
        _load_env_once()
        self._data = config_data or {}
        self.config_path = None

    @classmethod
    def from_file(cls, config_path: str) -> "Config":
        """Load configuration from YAML file."""
        _load_env_once()
        path = Path(config_path)

        if not path.exists():
            # Try relative to project root
            project_root = Path(__file__).parent.parent.parent
            path = project_root / config_path

            if not path.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {path}")

        instance = cls(data)
        instance.config_path = str(path)
        return instance

    @classmethod
    def from_defaults(cls) -> "Config":
        """Create configuration with default values."""
        instance = cls(copy.deepcopy(DEFAULTS))
        instance.config_path = "defaults"
        return instance

    def get(self, key: str, default: Any = None) -> Any:
        """Look up ``a.b.c``; ``DFS_ALERT_A_B_C`` overrides and ${VAR} expands."""
        value: Any = self._data
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]

        override = os.getenv(ENV_PREFIX + key.upper().replace(".", "_"))
        if override is not None:
            return _coerce(override, value)

        if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
            return os.getenv(value[2:-1], value)
        return value

    @property
    def feeds(self) -> list[FeedConfig]:
        """Configured feeds, validated."""
        raw_feeds = self.get("feeds", DEFAULTS["feeds"])
        if not isinstance(raw_feeds, list) or not raw_feeds:
            raise ConfigError("'feeds' must be a non-empty list")

        feeds: list[FeedConfig] = []
        seen: set[str] = set()
        for idx, entry in enumerate(raw_feeds):
            if not isinstance(entry, dict):
                raise ConfigError(f"feeds[{idx}] must be a mapping")
            feed_id = str(entry.get("id") or "").strip()
            url = str(entry.get("url") or "").strip()
            if not feed_id or not url:
                raise ConfigError(f"feeds[{idx}] requires both 'id' and 'url'")
            if feed_id in seen:
                raise ConfigError(f"Duplicate feed id '{feed_id}'")
            seen.add(feed_id)
            prefixes = entry.get("accepted_name_prefixes") or INDUSTRY_NOTIFICATION_PREFIXES
            if isinstance(prefixes, str):
                prefixes = [prefixes]
            feeds.append(
                FeedConfig(
                    id=feed_id,
                    url=url,
                    accepted_name_prefixes=tuple(str(p) for p in prefixes),
                )
            )
        return feeds

    @property
    def http_timeout(self) -> float:
        return float(self.get("http.timeout", 30))

    @property
    def http_max_retries(self) -> int:
        return int(self.get("http.max_retries", 3))

    @property
    def http_retry_delay(self) -> float:
        return float(self.get("http.retry_delay", 5))

    def http_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for http_client fetch helpers."""
        return {
            "timeout": self.http_timeout,
            "max_retries": self.http_max_retries,
            "retry_delay": self.http_retry_delay,
        }

    @property
    def service_interval_seconds(self) -> int:
        return int(self.get("service.interval_seconds", 600))

    @property
    def state_file(self) -> str:
        """Get checkpoint file path."""
        return str(self.get("state.file", "state.json"))

    @property
    def advance_on_duplicate(self) -> bool:
        return bool(self.get("detection.advance_on_duplicate", False))

    @property
    def mqtt_enabled(self) -> bool:
        """Check if MQTT is enabled."""
        return bool(self.get("mqtt.enabled", False))

    @property
    def mqtt_broker(self) -> str:
        host = self.get("mqtt.broker_url")
        return "localhost" if _unset(host) else str(host)

    @property
    def mqtt_port(self) -> int:
        port = self.get("mqtt.broker_port")
        if _unset(port):
            return 1883
        try:
            return int(port)
        except (TypeError, ValueError):
            return 1883
        try:
            return int(val)
        except (TypeError, ValueError):
            return 1883

    @property
    def mqtt_tls(self) -> Any:
        """TLS setting: False, True or a dict of TLS options."""
        return self.get("mqtt.tls", False)

    @property
    def mqtt_username(self) -> Optional[str]:
        return self.get("mqtt.auth.username")

    @property
    def mqtt_password(self) -> Optional[str]:
        return self.get("mqtt.auth.password")

    @property
    def mqtt_client_id(self) -> str:
        return str(self.get("mqtt.client_id", "dfs_alert"))

    def get_mqtt_topics(self) -> dict:
        """Get MQTT topics configuration."""
        topics = dict(DEFAULTS["mqtt"]["topics"])
        topics.update(self.get("mqtt.topics", {}) or {})
        return topics

    def get_mqtt_config(self) -> dict:
        """Get keyword arguments for ha_mqtt_publisher's MQTTPublisher."""
        cfg: dict[str, Any] = {
            "broker_url": self.mqtt_broker,
            "broker_port": self.mqtt_port,
            "client_id": self.mqtt_client_id,
            "security": self.get("mqtt.security", "none"),
            "max_retries": self.get("mqtt.max_retries", 3),
        }
        tls = self.mqtt_tls
        if isinstance(tls, dict):
            cfg["tls"] = tls or {"verify": False}
        elif tls is True:
            cfg["tls"] = {"verify": False}
        username, password = self.mqtt_username, self.mqtt_password
        if cfg["security"] == "username" and not (_unset(username) or _unset(password)):
            cfg["auth"] = {
                "username": username,
                "password": password,
            }
        return cfg

    @property
    def webhook_urls(self) -> list[str]:
        hooks = self.get("alerts.webhooks", []) or []
        if isinstance(hooks, str):
            hooks = [hooks]
        return [str(h) for h in hooks if h]

    @property
    def log_alerts_enabled(self) -> bool:
        return bool(self.get("alerts.log", True))
