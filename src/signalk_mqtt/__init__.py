"""signalk_mqtt - Republish Signal K vessel telemetry to MQTT with offline durability."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("signalk-mqtt")
except PackageNotFoundError:
    __version__ = "0+local"
from signalk_mqtt.config import PublisherConfig
from signalk_mqtt.connection import ConnectionObserver, reduce_state
from signalk_mqtt.exceptions import (
    SignalKMqttConfigError,
    SignalKMqttConnectionError,
    SignalKMqttError,
    SignalKMqttSourceError,
    SignalKMqttStoreError,
)
from signalk_mqtt.models import (
    ConnectionEvent,
    ConnectionEventKind,
    ConnectionState,
    ConnectionStatus,
    Entry,
    Message,
    PublishOutcome,
    PublishTarget,
    RawUpdate,
    StoredMessage,
    Subscription,
    VesselIdentity,
)
from signalk_mqtt.publisher import DurablePublisher
from signalk_mqtt.session import PublisherSession, TelemetrySource
from signalk_mqtt.store import OutgoingStore

__all__ = [
    "__version__",
    "ConnectionEvent",
    "ConnectionEventKind",
    "ConnectionObserver",
    "ConnectionState",
    "ConnectionStatus",
    "DurablePublisher",
    "Entry",
    "Message",
    "OutgoingStore",
    "PublishOutcome",
    "PublishTarget",
    "PublisherConfig",
    "PublisherSession",
    "RawUpdate",
    "SignalKMqttConfigError",
    "SignalKMqttConnectionError",
    "SignalKMqttError",
    "SignalKMqttSourceError",
    "SignalKMqttStoreError",
    "StoredMessage",
    "Subscription",
    "TelemetrySource",
    "VesselIdentity",
    "reduce_state",
]
