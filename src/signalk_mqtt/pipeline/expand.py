"""Turn raw updates into publishable scalar entries."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from signalk_mqtt._constants import COMPOSITE_FIELDS
from signalk_mqtt.models.telemetry import Entry, RawUpdate
from signalk_mqtt.pipeline.classify import ValueKind, classify, is_finite_number

_logger = logging.getLogger(__name__)


def expand(update: RawUpdate) -> list[Entry]:
    """Decompose a structured position/attitude update into scalar entries.

    Missing sub-fields produce no entry. An explicit ``null`` sub-field
    produces an entry with value ``None``. Sub-fields that are not finite
    numbers are skipped.
    """
    fields = COMPOSITE_FIELDS.get(update.path)
    if fields is None or not isinstance(update.value, Mapping):
        return []

    entries: list[Entry] = []
    for name in fields:
        sub_path = f"{update.path}.{name}"
        if name not in update.value:
            continue
        sub_value = update.value[name]
        if sub_value is not None and not is_finite_number(sub_value):
            _logger.debug("Skipping path '%s' because value is invalid, '%s'", sub_path, sub_value)
            continue
        entries.append(Entry(path=sub_path, value=sub_value, timestamp=update.timestamp))
    return entries


def entries_for(update: RawUpdate) -> list[Entry]:
    """Filter and flatten one raw update into zero or more entries."""
    kind = classify(update)
    if kind == ValueKind.DISCARDED:
        return []
    if kind == ValueKind.STRUCTURED:
        return expand(update)
    return [Entry(path=update.path, value=update.value, timestamp=update.timestamp)]
