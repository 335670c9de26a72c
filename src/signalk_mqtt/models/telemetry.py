"""Telemetry records flowing through the publish pipeline.

A :class:`RawUpdate` is what the host subscription delivers. The filter and
expander turn it into zero or more :class:`Entry` records, and the crafter
wraps each entry into a :class:`Message` ready for serialization.
"""

from __future__ import annotations

import json
import math
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator


def format_signalk_timestamp(value: Any) -> Any:
    """Render datetimes the way Signal K does (UTC, millisecond precision, ``Z``).

    Strings are returned untouched so host timestamps pass through verbatim.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        text = value.astimezone(UTC).isoformat(timespec="milliseconds")
        return text.replace("+00:00", "Z")
    return value


class RawUpdate(BaseModel):
    """A single path/value pair as delivered by the subscription."""

    model_config = ConfigDict(frozen=True)

    path: str
    value: Any = None
    timestamp: str

    @field_validator("timestamp", mode="before")
    @classmethod
    def _normalize_timestamp(cls, value: Any) -> Any:
        return format_signalk_timestamp(value)


class Entry(BaseModel):
    """A publishable scalar: finite number, or ``None`` for an explicit null."""

    model_config = ConfigDict(frozen=True)

    path: str
    value: int | float | None
    timestamp: str

    @field_validator("value")
    @classmethod
    def _require_finite(cls, value: int | float | None) -> int | float | None:
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError("entry value must be finite")
        return value


class Message(BaseModel):
    """Flat message record published to the broker.

    ``value`` is a finite number or the literal string ``"null"``.
    """

    model_config = ConfigDict(frozen=True)

    context: str
    time: str
    path: str
    value: int | float | Literal["null"]

    def to_payload(self) -> str:
        """Serialize to compact JSON with a stable key order."""
        return json.dumps(self.model_dump(), separators=(",", ":"))
