"""Data models for the Signal K to MQTT pipeline."""

from signalk_mqtt.models.connection import (
    ConnectionEvent,
    ConnectionEventKind,
    ConnectionState,
    ConnectionStatus,
)
from signalk_mqtt.models.identity import VesselIdentity
from signalk_mqtt.models.publish import PublishOutcome, PublishTarget, StoredMessage
from signalk_mqtt.models.subscription import Subscription
from signalk_mqtt.models.telemetry import Entry, Message, RawUpdate, format_signalk_timestamp

__all__ = [
    "ConnectionEvent",
    "ConnectionEventKind",
    "ConnectionState",
    "ConnectionStatus",
    "Entry",
    "Message",
    "PublishOutcome",
    "PublishTarget",
    "RawUpdate",
    "StoredMessage",
    "Subscription",
    "VesselIdentity",
    "format_signalk_timestamp",
]
