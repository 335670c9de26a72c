"""Map a message to the broker topics it is published on."""

from __future__ import annotations

from signalk_mqtt._constants import DELTA_TOPIC_SUFFIX, KEYS_TOPIC_SEGMENT
from signalk_mqtt.config import PublisherConfig
from signalk_mqtt.models.publish import PublishTarget
from signalk_mqtt.models.telemetry import Message


def delta_topic(context: str) -> str:
    """``vessels.<id>/signalk/delta``"""
    return f"{context}{DELTA_TOPIC_SUFFIX}"


def key_topic(context: str, path: str) -> str:
    """``vessels.<id>/signalk/keys/<path with dots as slashes>``"""
    return f"{context}{KEYS_TOPIC_SEGMENT}{path.replace('.', '/')}"


def route(message: Message, config: PublisherConfig) -> list[PublishTarget]:
    """Return one target per enabled addressing mode, delta first.

    Each mode is gated by its own flag, so with both flags off the
    result is empty.
    """
    payload = message.to_payload()
    topics: list[str] = []
    if config.message_as_delta:
        topics.append(delta_topic(message.context))
    if config.message_as_key:
        topics.append(key_topic(message.context, message.path))
    return [PublishTarget(topic=topic, payload=payload, retain=config.retain, qos=config.qos) for topic in topics]
