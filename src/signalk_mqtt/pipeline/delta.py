"""Extract raw updates from Signal K delta documents.

A delta looks like::

    {
        "context": "vessels.urn:mrn:imo:mmsi:244123456",
        "updates": [
            {
                "timestamp": "2024-05-01T12:00:00.000Z",
                "values": [{"path": "navigation.speedOverGround", "value": 3.2}],
            }
        ],
    }
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import Any

from pydantic import ValidationError

from signalk_mqtt.models.telemetry import RawUpdate

_logger = logging.getLogger(__name__)


def iter_updates(delta: Mapping[str, Any]) -> Iterator[RawUpdate]:
    """Yield every path/value of *delta* in document order."""
    updates = delta.get("updates")
    if not isinstance(updates, list):
        return
    for update in updates:
        if not isinstance(update, Mapping):
            continue
        values = update.get("values")
        # Meta-only updates carry no values.
        if not values or not isinstance(values, list):
            continue
        timestamp = update.get("timestamp")
        for item in values:
            if not isinstance(item, Mapping) or not isinstance(item.get("path"), str):
                _logger.debug("Skipping malformed delta value %r", item)
                continue
            try:
                yield RawUpdate(path=item["path"], value=item.get("value"), timestamp=timestamp)
            except ValidationError:
                _logger.debug("Skipping delta value without usable timestamp path=%s", item["path"])


def updates_from_delta(delta: Mapping[str, Any]) -> list[RawUpdate]:
    return list(iter_updates(delta))
