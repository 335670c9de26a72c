from __future__ import annotations

from datetime import UTC, datetime

from signalk_mqtt.models import RawUpdate
from signalk_mqtt.pipeline import updates_from_delta


def test_every_value_of_every_update_is_extracted_in_order() -> None:
    delta = {
        "context": "vessels.urn:mrn:imo:mmsi:244123456",
        "updates": [
            {
                "timestamp": "2024-05-01T12:00:00.000Z",
                "values": [
                    {"path": "navigation.speedOverGround", "value": 3.2},
                    {"path": "navigation.courseOverGroundTrue", "value": 1.1},
                ],
            },
            {
                "timestamp": "2024-05-01T12:00:01.000Z",
                "values": [{"path": "navigation.position", "value": {"latitude": 60.1, "longitude": 24.9}}],
            },
        ],
    }

    updates = updates_from_delta(delta)

    assert updates == [
        RawUpdate(path="navigation.speedOverGround", value=3.2, timestamp="2024-05-01T12:00:00.000Z"),
        RawUpdate(path="navigation.courseOverGroundTrue", value=1.1, timestamp="2024-05-01T12:00:00.000Z"),
        RawUpdate(
            path="navigation.position",
            value={"latitude": 60.1, "longitude": 24.9},
            timestamp="2024-05-01T12:00:01.000Z",
        ),
    ]


def test_updates_without_values_are_skipped() -> None:
    delta = {
        "updates": [
            {"timestamp": "2024-05-01T12:00:00.000Z", "meta": [{"path": "a.b", "value": {"units": "m"}}]},
            {"timestamp": "2024-05-01T12:00:00.000Z", "values": []},
        ]
    }

    assert updates_from_delta(delta) == []


def test_malformed_values_are_skipped() -> None:
    delta = {
        "updates": [
            {
                "timestamp": "2024-05-01T12:00:00.000Z",
                "values": [{"value": 1}, "junk", {"path": "a.b", "value": 2}],
            },
            {"values": [{"path": "no.timestamp", "value": 3}]},
        ]
    }

    assert [update.path for update in updates_from_delta(delta)] == ["a.b"]


def test_delta_without_updates() -> None:
    assert updates_from_delta({"context": "vessels.self"}) == []


def test_datetime_timestamps_are_rendered_signalk_style() -> None:
    update = RawUpdate(path="a.b", value=1, timestamp=datetime(2024, 5, 1, 12, 0, 0, 250000, tzinfo=UTC))

    assert update.timestamp == "2024-05-01T12:00:00.250Z"
