"""Publish targets, outcomes and stored outgoing messages."""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict, Field


class PublishOutcome(enum.StrEnum):
    """Result of handing a target to the durable publisher."""

    ACCEPTED = "accepted"
    """Stored and handed to the broker connection for immediate delivery."""
    QUEUED = "queued"
    """Stored; delivered once the connection comes back."""
    REJECTED = "rejected"
    """Not stored (publisher stopped or store failure)."""


class PublishTarget(BaseModel):
    """One broker publish: topic, serialized payload and delivery flags."""

    model_config = ConfigDict(frozen=True)

    topic: str
    payload: str
    retain: bool = True
    qos: int = Field(default=1, ge=0, le=2)


class StoredMessage(BaseModel):
    """A row of the persistent outgoing store."""

    model_config = ConfigDict(frozen=True)

    seq: int
    topic: str
    payload: str
    qos: int
    retain: bool
    enqueued_at: float

    def as_target(self) -> PublishTarget:
        return PublishTarget(topic=self.topic, payload=self.payload, retain=self.retain, qos=self.qos)
