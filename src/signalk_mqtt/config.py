"""Publisher configuration for signalk_mqtt."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from signalk_mqtt._constants import (
    DEFAULT_RECONNECT_PERIOD,
    DEFAULT_REMOTE_HOST,
    DEFAULT_SEND_INTERVAL,
)
from signalk_mqtt.exceptions import SignalKMqttConfigError

SUPPORTED_SCHEMES: frozenset[str] = frozenset({"mqtt", "mqtts", "tcp", "ssl", "ws", "wss"})

# Fields masked when the configuration is written to logs.
_SECRET_FIELDS: frozenset[str] = frozenset({"username", "password"})


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _default_data_dir() -> str:
    # Same layout the Signal K server uses for plugin data.
    return str(Path.home() / ".signalk" / "plugin-config-data" / "signalk-to-mqtt")


@dataclasses.dataclass(frozen=True)
class PublisherConfig:
    """Publisher configuration.

    Parameters
    ----------
    send_to_remote : bool
        Master switch. When false the session starts but never connects
        to a broker.
    remote_host : str
        Broker URL. ``mqtt://``/``tcp://`` for plain TCP, ``mqtts://``/``ssl://``
        for TLS, ``ws://``/``wss://`` for MQTT over websockets.
    username : str or None
        Broker username.
    password : str or None
        Broker password.
    reject_unauthorized : bool
        Reject self-signed and otherwise invalid broker certificates.
    retain : bool
        Retain flag set on every publish.
    qos : int
        QoS level set on every publish (0, 1 or 2).
    send_interval : float
        Subscription period in seconds.
    message_as_key : bool
        Publish each value on its own ``signalk/keys/<path>`` topic.
    message_as_delta : bool
        Publish each value on the shared ``signalk/delta`` topic.
    reconnect_period : float
        Fixed delay in seconds between broker reconnect attempts.
    keepalive : int
        MQTT keepalive in seconds.
    client_id : str or None
        Overrides the identity derived from the vessel MMSI / self id.
    data_dir : str
        Directory holding the persistent outgoing store.
    max_queued : int or None
        Upper bound on stored, unacknowledged messages. Oldest messages are
        evicted first. ``None`` keeps everything.
    """

    send_to_remote: bool = False
    remote_host: str = DEFAULT_REMOTE_HOST
    username: str | None = None
    password: str | None = None
    reject_unauthorized: bool = False
    retain: bool = True
    qos: int = 1
    send_interval: float = DEFAULT_SEND_INTERVAL
    message_as_key: bool = False
    message_as_delta: bool = True
    reconnect_period: float = DEFAULT_RECONNECT_PERIOD
    keepalive: int = 60
    client_id: str | None = None
    data_dir: str = dataclasses.field(default_factory=_default_data_dir)
    max_queued: int | None = None

    def __post_init__(self) -> None:
        if self.qos not in (0, 1, 2):
            raise SignalKMqttConfigError(f"QoS must be 0, 1 or 2, got {self.qos!r}")
        if self.send_interval <= 0:
            raise SignalKMqttConfigError(f"sendInterval must be positive, got {self.send_interval!r}")
        if self.reconnect_period <= 0:
            raise SignalKMqttConfigError(f"reconnect_period must be positive, got {self.reconnect_period!r}")
        if self.max_queued is not None and self.max_queued <= 0:
            raise SignalKMqttConfigError(f"max_queued must be positive, got {self.max_queued!r}")
        scheme = urlsplit(self.remote_host).scheme.lower()
        if scheme not in SUPPORTED_SCHEMES:
            raise SignalKMqttConfigError(
                f"remoteHost must start with one of {sorted(SUPPORTED_SCHEMES)}, got {self.remote_host!r}"
            )

    @property
    def send_interval_ms(self) -> int:
        return int(self.send_interval * 1000)

    def validate(self) -> list[str]:
        """Return human-readable warnings for inconsistent but legal settings."""
        warnings: list[str] = []
        if self.send_to_remote and not (self.message_as_delta or self.message_as_key):
            warnings.append("Both messageAsDelta and messageAsKey are disabled, nothing will be published")
        if self.username and not self.password:
            warnings.append("Broker username is set without a password")
        return warnings

    def redacted(self) -> dict[str, Any]:
        """Configuration as a dict with credentials masked, for logging."""
        return {
            name: "<redacted>" if name in _SECRET_FIELDS and value is not None else value
            for name, value in dataclasses.asdict(self).items()
        }

    @classmethod
    def from_options(cls, options: Mapping[str, Any], **overrides: Any) -> PublisherConfig:
        """Create configuration from Signal K plugin options.

        Accepts the plugin schema spelling (``sendToRemote``, ``remoteHost``,
        ``QoS``, ...). Unknown keys are ignored. Explicit keyword arguments
        override option values.
        """
        _OPTION_MAP = {
            "sendToRemote": "send_to_remote",
            "remoteHost": "remote_host",
            "username": "username",
            "password": "password",
            "rejectUnauthorized": "reject_unauthorized",
            "retain": "retain",
            "QoS": "qos",
            "sendInterval": "send_interval",
            "messageAsKey": "message_as_key",
            "messageAsDelta": "message_as_delta",
            "reconnectPeriod": "reconnect_period",
            "clientId": "client_id",
            "dataDir": "data_dir",
            "maxQueued": "max_queued",
        }
        config_kwargs: dict[str, Any] = {}
        for option_key, field_name in _OPTION_MAP.items():
            value = options.get(option_key)
            if value is None:
                continue
            config_kwargs[field_name] = value

        # The plugin schema declares QoS as "number"; coerce 1.0 -> 1.
        if "qos" in config_kwargs:
            try:
                config_kwargs["qos"] = int(config_kwargs["qos"])
            except (TypeError, ValueError) as exc:
                raise SignalKMqttConfigError(f"QoS must be an integer, got {config_kwargs['qos']!r}") from exc

        config_kwargs.update(overrides)
        return cls(**config_kwargs)

    @classmethod
    def from_env(cls, **overrides: Any) -> PublisherConfig:
        """Create configuration from ``SIGNALK_MQTT_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "SIGNALK_MQTT_REMOTE_HOST": "remote_host",
            "SIGNALK_MQTT_USERNAME": "username",
            "SIGNALK_MQTT_PASSWORD": "password",
            "SIGNALK_MQTT_CLIENT_ID": "client_id",
            "SIGNALK_MQTT_DATA_DIR": "data_dir",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_BOOL_MAP = {
            "SIGNALK_MQTT_SEND_TO_REMOTE": ("send_to_remote", False),
            "SIGNALK_MQTT_REJECT_UNAUTHORIZED": ("reject_unauthorized", False),
            "SIGNALK_MQTT_RETAIN": ("retain", True),
            "SIGNALK_MQTT_MESSAGE_AS_KEY": ("message_as_key", False),
            "SIGNALK_MQTT_MESSAGE_AS_DELTA": ("message_as_delta", True),
        }
        for env_key, (field_name, default) in _ENV_BOOL_MAP.items():
            if field_name not in overrides:
                config_kwargs[field_name] = _env_bool(env.get(env_key), default)

        qos_env = env.get("SIGNALK_MQTT_QOS")
        if qos_env is not None and "qos" not in overrides:
            config_kwargs["qos"] = int(qos_env)

        interval_env = env.get("SIGNALK_MQTT_SEND_INTERVAL")
        if interval_env is not None and "send_interval" not in overrides:
            config_kwargs["send_interval"] = float(interval_env)

        reconnect_env = env.get("SIGNALK_MQTT_RECONNECT_PERIOD")
        if reconnect_env is not None and "reconnect_period" not in overrides:
            config_kwargs["reconnect_period"] = float(reconnect_env)

        max_queued_env = env.get("SIGNALK_MQTT_MAX_QUEUED")
        if max_queued_env is not None and "max_queued" not in overrides:
            config_kwargs["max_queued"] = int(max_queued_env)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
