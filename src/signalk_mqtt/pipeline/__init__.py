"""Delta transformation pipeline.

This package holds the pure stages between the Signal K subscription and
the durable publisher: classify, expand, craft and route.
"""

from signalk_mqtt.pipeline.classify import ValueKind, classify, is_finite_number
from signalk_mqtt.pipeline.craft import craft_message
from signalk_mqtt.pipeline.delta import iter_updates, updates_from_delta
from signalk_mqtt.pipeline.expand import entries_for, expand
from signalk_mqtt.pipeline.route import delta_topic, key_topic, route

__all__ = [
    "ValueKind",
    "classify",
    "craft_message",
    "delta_topic",
    "entries_for",
    "expand",
    "is_finite_number",
    "iter_updates",
    "key_topic",
    "route",
    "updates_from_delta",
]
