from __future__ import annotations

import json
from pathlib import Path

import pytest

from signalk_mqtt.models import (
    ConnectionEvent,
    ConnectionEventKind,
    ConnectionState,
    ConnectionStatus,
    PublishOutcome,
    PublishTarget,
)
from signalk_mqtt.publisher import DurablePublisher
from signalk_mqtt.store import OutgoingStore

_CONNECTED = ConnectionEvent(kind=ConnectionEventKind.CONNECTED)
_OFFLINE = ConnectionEvent(kind=ConnectionEventKind.OFFLINE)


class _FakeLink:
    def __init__(self) -> None:
        self.sent: list[tuple[int, str, str, int, bool]] = []
        self.refuse = False
        self._next_mid = 0

    def publish(self, topic: str, payload: str, qos: int, retain: bool) -> int | None:
        if self.refuse:
            return None
        self._next_mid += 1
        self.sent.append((self._next_mid, topic, payload, qos, retain))
        return self._next_mid

    def payloads(self) -> list[int]:
        return [json.loads(payload)["i"] for _mid, _topic, payload, _qos, _retain in self.sent]


class _EagerLink(_FakeLink):
    """Acks on the calling thread before ``publish`` returns, like paho does for QoS 0."""

    def __init__(self) -> None:
        super().__init__()
        self.publisher: DurablePublisher | None = None

    def publish(self, topic: str, payload: str, qos: int, retain: bool) -> int | None:
        mid = super().publish(topic, payload, qos, retain)
        assert self.publisher is not None
        assert mid is not None
        self.publisher.handle_published(mid)
        return mid


class _SessionLink(_FakeLink):
    """Keeps unacknowledged QoS 1/2 messages and resends them on reconnect."""

    def __init__(self) -> None:
        super().__init__()
        self.wire: list[int] = []
        self._unacked: dict[int, int] = {}

    def publish(self, topic: str, payload: str, qos: int, retain: bool) -> int | None:
        mid = super().publish(topic, payload, qos, retain)
        if mid is not None:
            self.wire.append(json.loads(payload)["i"])
            if qos > 0:
                self._unacked[mid] = json.loads(payload)["i"]
        return mid

    def resend_unacked(self) -> None:
        self.wire.extend(self._unacked.values())

    def ack(self, mid: int) -> None:
        self._unacked.pop(mid)


class _RefuseSecondLink(_FakeLink):
    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    def publish(self, topic: str, payload: str, qos: int, retain: bool) -> int | None:
        self.calls += 1
        if self.calls == 2:
            return None
        return super().publish(topic, payload, qos, retain)


def _target(i: int, *, qos: int = 1) -> PublishTarget:
    return PublishTarget(topic="vessels.244123456/signalk/delta", payload=json.dumps({"i": i}), qos=qos)


@pytest.fixture
def store(tmp_path: Path) -> OutgoingStore:
    return OutgoingStore(tmp_path / "outgoing.sqlite3")


def _publisher(store: OutgoingStore, link: _FakeLink) -> DurablePublisher:
    publisher = DurablePublisher(store)
    publisher.attach(link)
    return publisher


def test_publish_while_disconnected_is_queued(store: OutgoingStore) -> None:
    link = _FakeLink()
    publisher = _publisher(store, link)

    assert publisher.publish(_target(0)) == PublishOutcome.QUEUED
    assert link.sent == []
    assert store.count() == 1


def test_queued_messages_replay_in_order_on_connect(store: OutgoingStore) -> None:
    link = _FakeLink()
    publisher = _publisher(store, link)
    for i in range(3):
        publisher.publish(_target(i))

    publisher.handle_event(_CONNECTED)

    assert link.payloads() == [0, 1, 2]
    for mid, *_rest in link.sent:
        publisher.handle_published(mid)
    assert store.count() == 0
    assert publisher.stats()["published"] == 3


def test_connected_publish_is_removed_only_after_ack(store: OutgoingStore) -> None:
    link = _FakeLink()
    publisher = _publisher(store, link)
    publisher.handle_event(_CONNECTED)

    assert publisher.publish(_target(7)) == PublishOutcome.ACCEPTED
    assert store.count() == 1
    assert publisher.stats()["inflight"] == 1

    publisher.handle_published(link.sent[0][0])
    assert store.count() == 0
    assert publisher.stats()["inflight"] == 0


def test_publish_flags_are_passed_to_link(store: OutgoingStore) -> None:
    link = _FakeLink()
    publisher = _publisher(store, link)
    publisher.handle_event(_CONNECTED)

    publisher.publish(PublishTarget(topic="t", payload='{"i":1}', qos=2, retain=False))

    (_mid, topic, _payload, qos, retain) = link.sent[0]
    assert (topic, qos, retain) == ("t", 2, False)


def test_queued_messages_survive_restart(tmp_path: Path) -> None:
    path = tmp_path / "outgoing.sqlite3"
    first_store = OutgoingStore(path)
    first = _publisher(first_store, _FakeLink())
    first.publish(_target(0))
    first.publish(_target(1))
    first.close()
    first_store.close()

    with OutgoingStore(path) as second_store:
        link = _FakeLink()
        second = _publisher(second_store, link)
        second.handle_event(_CONNECTED)

        assert link.payloads() == [0, 1]


def test_backlog_is_sent_before_new_message(store: OutgoingStore) -> None:
    link = _FakeLink()
    publisher = _publisher(store, link)
    publisher.handle_event(_CONNECTED)

    link.refuse = True
    assert publisher.publish(_target(0)) == PublishOutcome.QUEUED
    link.refuse = False
    assert publisher.publish(_target(1)) == PublishOutcome.ACCEPTED

    assert link.payloads() == [0, 1]


def test_flush_replays_backlog(store: OutgoingStore) -> None:
    link = _FakeLink()
    publisher = _publisher(store, link)
    publisher.handle_event(_CONNECTED)
    link.refuse = True
    publisher.publish(_target(0))
    link.refuse = False

    assert publisher.flush() == 1
    assert link.payloads() == [0]


def test_qos0_inflight_is_resent_after_reconnect(store: OutgoingStore) -> None:
    link = _FakeLink()
    publisher = _publisher(store, link)
    publisher.handle_event(_CONNECTED)
    publisher.publish(_target(0, qos=0))

    publisher.handle_event(_OFFLINE)
    publisher.handle_event(_CONNECTED)

    assert link.payloads() == [0, 0]
    assert store.count() == 1


def test_replay_waits_for_resent_messages_after_reconnect(store: OutgoingStore) -> None:
    link = _SessionLink()
    publisher = _publisher(store, link)
    publisher.handle_event(_CONNECTED)
    publisher.publish(_target(0))

    publisher.handle_event(_OFFLINE)
    assert publisher.publish(_target(1)) == PublishOutcome.QUEUED
    publisher.handle_event(_CONNECTED)
    # The client puts its unacked copy back on the wire after the CONNACK callback.
    link.resend_unacked()
    assert publisher.publish(_target(2)) == PublishOutcome.QUEUED
    assert link.wire == [0, 0]

    old_mid = link.sent[0][0]
    link.ack(old_mid)
    publisher.handle_published(old_mid)

    assert link.wire == [0, 0, 1, 2]
    assert store.count() == 2


def test_stray_ack_does_not_complete_a_later_publish(store: OutgoingStore) -> None:
    link = _FakeLink()
    publisher = _publisher(store, link)
    publisher.handle_event(_CONNECTED)

    publisher.handle_published(1)
    publisher.publish(_target(0))

    assert link.sent[0][0] == 1
    assert store.count() == 1
    assert publisher.stats()["inflight"] == 1


def test_publish_many_stores_and_sends_in_order(store: OutgoingStore) -> None:
    link = _FakeLink()
    publisher = _publisher(store, link)
    publisher.handle_event(_CONNECTED)

    outcomes = publisher.publish_many([_target(i) for i in range(3)])

    assert outcomes == [PublishOutcome.ACCEPTED] * 3
    assert link.payloads() == [0, 1, 2]
    assert publisher.publish_many([]) == []


def test_publish_many_keeps_later_targets_after_a_refusal(store: OutgoingStore) -> None:
    link = _RefuseSecondLink()
    publisher = _publisher(store, link)
    publisher.handle_event(_CONNECTED)

    outcomes = publisher.publish_many([_target(i) for i in range(3)])

    assert outcomes == [PublishOutcome.ACCEPTED, PublishOutcome.QUEUED, PublishOutcome.QUEUED]
    assert link.payloads() == [0]
    assert store.count() == 3

    assert publisher.flush() == 2
    assert link.payloads() == [0, 1, 2]


def test_ack_before_publish_returns_is_honoured(store: OutgoingStore) -> None:
    link = _EagerLink()
    publisher = _publisher(store, link)
    link.publisher = publisher
    publisher.handle_event(_CONNECTED)

    assert publisher.publish(_target(0, qos=0)) == PublishOutcome.ACCEPTED
    assert store.count() == 0
    assert publisher.stats()["inflight"] == 0


def test_observer_sees_each_state_change_once(store: OutgoingStore) -> None:
    seen: list[ConnectionStatus] = []
    publisher = DurablePublisher(store, observer=seen.append)

    publisher.handle_event(_CONNECTED)
    publisher.handle_event(_CONNECTED)
    publisher.handle_event(_OFFLINE)

    assert [status.state for status in seen] == [ConnectionState.CONNECTED, ConnectionState.OFFLINE]
    assert publisher.status.state == ConnectionState.OFFLINE


def test_closed_publisher_rejects(store: OutgoingStore) -> None:
    publisher = _publisher(store, _FakeLink())
    publisher.close()

    assert publisher.publish(_target(0)) == PublishOutcome.REJECTED
    assert store.count() == 0


def test_store_failure_rejects(store: OutgoingStore) -> None:
    publisher = _publisher(store, _FakeLink())
    store.close()

    assert publisher.publish(_target(0)) == PublishOutcome.REJECTED
