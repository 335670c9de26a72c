"""Decide whether an incoming update can be published.

Only numbers, explicit nulls and the two composite paths with a known
decomposition get through. Everything else is dropped with a DEBUG
diagnostic; nothing here raises.
"""

from __future__ import annotations

import enum
import logging
import math
from collections.abc import Mapping
from typing import Any

from signalk_mqtt._constants import COMPOSITE_FIELDS
from signalk_mqtt.models.telemetry import RawUpdate

_logger = logging.getLogger(__name__)


class ValueKind(enum.StrEnum):
    SCALAR = "scalar"
    NULL = "null"
    STRUCTURED = "structured"
    DISCARDED = "discarded"


def is_finite_number(value: Any) -> bool:
    """True for finite ints and floats. Booleans are not numbers here."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def classify(update: RawUpdate) -> ValueKind:
    """Classify *update* as scalar, null, structured or discarded."""
    value = update.value
    # None has to be checked first, it must not reach the numeric test.
    if value is None:
        return ValueKind.NULL

    if isinstance(value, Mapping):
        if update.path in COMPOSITE_FIELDS:
            return ValueKind.STRUCTURED
        _logger.debug("Skipping unsupported path '%s'", update.path)
        return ValueKind.DISCARDED

    if is_finite_number(value):
        return ValueKind.SCALAR

    _logger.debug("Skipping path '%s' because value is invalid, '%s'", update.path, value)
    return ValueKind.DISCARDED
