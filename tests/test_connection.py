from __future__ import annotations

import pytest

from signalk_mqtt._mqtt import BrokerEndpoint, parse_broker_url
from signalk_mqtt.connection import ConnectionObserver, reduce_state
from signalk_mqtt.models import ConnectionEvent, ConnectionEventKind, ConnectionState, ConnectionStatus

HOST = "mqtt://broker.example.com"


@pytest.mark.parametrize(
    ("kind", "state"),
    [
        (ConnectionEventKind.CONNECT_REQUESTED, ConnectionState.CONNECTING),
        (ConnectionEventKind.CONNECTED, ConnectionState.CONNECTED),
        (ConnectionEventKind.ERROR, ConnectionState.ERRORED),
        (ConnectionEventKind.DISCONNECTED, ConnectionState.DISCONNECTED),
        (ConnectionEventKind.RECONNECT, ConnectionState.RECONNECTING),
        (ConnectionEventKind.OFFLINE, ConnectionState.OFFLINE),
        (ConnectionEventKind.CLOSED, ConnectionState.DISCONNECTED),
    ],
)
def test_each_event_selects_its_state(kind: ConnectionEventKind, state: ConnectionState) -> None:
    status = reduce_state(ConnectionStatus(), ConnectionEvent(kind=kind))

    assert status.state == state


def test_error_keeps_reason() -> None:
    status = reduce_state(
        ConnectionStatus(state=ConnectionState.CONNECTED),
        ConnectionEvent(kind=ConnectionEventKind.ERROR, reason="Not authorized"),
    )

    assert status == ConnectionStatus(state=ConnectionState.ERRORED, reason="Not authorized")


def test_error_without_reason() -> None:
    status = reduce_state(ConnectionStatus(), ConnectionEvent(kind=ConnectionEventKind.ERROR))

    assert status.reason == "unknown error"


def test_reason_is_cleared_when_leaving_error() -> None:
    errored = ConnectionStatus(state=ConnectionState.ERRORED, reason="boom")

    status = reduce_state(errored, ConnectionEvent(kind=ConnectionEventKind.CONNECTED))

    assert status == ConnectionStatus(state=ConnectionState.CONNECTED)


def test_repeated_event_returns_same_status() -> None:
    status = ConnectionStatus(state=ConnectionState.CONNECTED)

    assert reduce_state(status, ConnectionEvent(kind=ConnectionEventKind.CONNECTED)) is status


@pytest.mark.parametrize(
    ("status", "text"),
    [
        (ConnectionStatus(state=ConnectionState.CONNECTED), f"Connected to {HOST}"),
        (ConnectionStatus(state=ConnectionState.ERRORED, reason="Not authorized"), "Error Not authorized"),
        (ConnectionStatus(state=ConnectionState.DISCONNECTED), f"Disconnected from {HOST}"),
        (ConnectionStatus(state=ConnectionState.RECONNECTING), f"Reconnect started to {HOST}"),
        (ConnectionStatus(state=ConnectionState.OFFLINE), f"offline {HOST}"),
        (ConnectionStatus(state=ConnectionState.CONNECTING), f"Connecting to {HOST}"),
    ],
)
def test_observer_status_text(status: ConnectionStatus, text: str) -> None:
    assert ConnectionObserver(HOST).describe(status) == text


def test_observer_reports_changes_to_sink_once() -> None:
    lines: list[str] = []
    observer = ConnectionObserver(HOST, context="vessels.244123456", status_sink=lines.append)

    observer(ConnectionStatus(state=ConnectionState.CONNECTED))
    observer(ConnectionStatus(state=ConnectionState.CONNECTED))
    observer(ConnectionStatus(state=ConnectionState.OFFLINE))

    assert lines == [f"Connected to {HOST}", f"offline {HOST}"]


def test_observer_logs_topic_prefix_on_connect(caplog: pytest.LogCaptureFixture) -> None:
    observer = ConnectionObserver(HOST, context="vessels.244123456")

    with caplog.at_level("DEBUG", logger="signalk_mqtt.connection"):
        observer(ConnectionStatus(state=ConnectionState.CONNECTED))

    assert "clientId and topic prefix: vessels.244123456" in caplog.text


@pytest.mark.parametrize(
    ("url", "endpoint"),
    [
        ("mqtt://broker.example.com", BrokerEndpoint("broker.example.com", 1883, False, "tcp", "")),
        ("tcp://10.0.0.2:1884", BrokerEndpoint("10.0.0.2", 1884, False, "tcp", "")),
        ("mqtts://broker.example.com", BrokerEndpoint("broker.example.com", 8883, True, "tcp", "")),
        ("ssl://broker.example.com:8884", BrokerEndpoint("broker.example.com", 8884, True, "tcp", "")),
        ("ws://broker.example.com", BrokerEndpoint("broker.example.com", 80, False, "websockets", "/mqtt")),
        ("wss://broker.example.com/ws", BrokerEndpoint("broker.example.com", 443, True, "websockets", "/ws")),
    ],
)
def test_parse_broker_url(url: str, endpoint: BrokerEndpoint) -> None:
    assert parse_broker_url(url) == endpoint


@pytest.mark.parametrize("url", ["http://broker.example.com", "broker.example.com", "mqtt://"])
def test_parse_broker_url_rejects(url: str) -> None:
    with pytest.raises(ValueError):
        parse_broker_url(url)
