"""Build broker messages from publishable entries."""

from __future__ import annotations

from signalk_mqtt._constants import NULL_VALUE
from signalk_mqtt.models.identity import VesselIdentity
from signalk_mqtt.models.telemetry import Entry, Message


def craft_message(entry: Entry, identity: VesselIdentity) -> Message:
    # A null reading is kept as the string "null" rather than dropped.
    value = NULL_VALUE if entry.value is None else entry.value
    return Message(
        context=identity.context,
        time=entry.timestamp,
        path=entry.path,
        value=value,
    )
