"""Durable publisher: write-ahead store in front of the broker connection.

Every target is appended to the :class:`~signalk_mqtt.store.OutgoingStore`
before anything else happens. While connected the row is handed straight to
the broker link; the row is deleted when the link reports the publish done
(PUBACK for QoS 1/2, socket write for QoS 0). While not connected rows just
accumulate and are replayed in enqueue order on the next ``connect`` event.

The broker client keeps unacknowledged QoS 1/2 messages across a reconnect
and resends them right after the CONNACK. Those rows are always older than
anything still waiting in the store, so after a reconnect the replay is held
back until every such message has been acknowledged. Newer rows therefore
never overtake older ones on the wire.

Delivery is at-least-once: a message in flight when the connection drops
may be sent twice.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from typing import Any, Protocol

from signalk_mqtt.connection import reduce_state
from signalk_mqtt.exceptions import SignalKMqttStoreError
from signalk_mqtt.models.connection import ConnectionEvent, ConnectionState, ConnectionStatus
from signalk_mqtt.models.publish import PublishOutcome, PublishTarget
from signalk_mqtt.store import OutgoingStore

_logger = logging.getLogger(__name__)

_DOWN_STATES = frozenset({ConnectionState.OFFLINE, ConnectionState.DISCONNECTED, ConnectionState.ERRORED})


class BrokerLink(Protocol):
    """What the publisher needs from a broker connection."""

    def publish(self, topic: str, payload: str, qos: int, retain: bool) -> int | None:
        ...


class DurablePublisher:
    """Fire-and-forget publishing with offline durability.

    Thread-safe: connection events and acks arrive from the broker
    connection's dispatcher thread while publishes arrive from the
    subscription side, so a single re-entrant lock serializes state changes,
    store access and sends. The broker link must not call back into the
    publisher from another thread while ``publish`` runs.
    """

    def __init__(
        self,
        store: OutgoingStore,
        *,
        observer: Callable[[ConnectionStatus], None] | None = None,
    ) -> None:
        self._store = store
        self._observer = observer
        self._link: BrokerLink | None = None
        self._status = ConnectionStatus()
        self._lock = threading.RLock()
        # mid -> (seq, qos)
        self._inflight: dict[int, tuple[int, int]] = {}
        # Acks delivered while a send is still running; only valid for that send.
        self._early_acks: set[int] = set()
        self._sending = False
        self._awaiting_resend = False
        self._backlog = store.count() > 0
        self._published = 0
        self._closed = False

    def attach(self, link: BrokerLink) -> None:
        with self._lock:
            self._link = link

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def publish(self, target: PublishTarget) -> PublishOutcome:
        """Store *target* and send it now if the broker is connected."""
        return self.publish_many([target])[0]

    def publish_many(self, targets: Sequence[PublishTarget]) -> list[PublishOutcome]:
        """Store *targets* in one transaction, then send them in order."""
        if not targets:
            return []
        with self._lock:
            if self._closed:
                _logger.debug("Publisher closed, dropping %d message(s)", len(targets))
                return [PublishOutcome.REJECTED] * len(targets)
            try:
                seqs = self._store.append_many(targets)
            except SignalKMqttStoreError:
                _logger.warning("Could not store %d message(s)", len(targets), exc_info=True)
                return [PublishOutcome.REJECTED] * len(targets)

            if not self._can_send():
                self._backlog = True
                return [PublishOutcome.QUEUED] * len(targets)

            if self._backlog:
                # Older rows go first; the new rows are part of the replay.
                self._replay()
                inflight_seqs = self._inflight_seqs()
                return [PublishOutcome.ACCEPTED if seq in inflight_seqs else PublishOutcome.QUEUED for seq in seqs]

            outcomes: list[PublishOutcome] = []
            for seq, target in zip(seqs, targets):
                if not self._backlog and self._send(seq, target):
                    outcomes.append(PublishOutcome.ACCEPTED)
                    continue
                # Once one send is refused the rest wait so order is kept.
                self._backlog = True
                outcomes.append(PublishOutcome.QUEUED)
            return outcomes

    def _can_send(self) -> bool:
        return self._status.is_connected and self._link is not None and not self._awaiting_resend

    def _inflight_seqs(self) -> set[int]:
        return {seq for seq, _qos in self._inflight.values()}

    def _send(self, seq: int, target: PublishTarget) -> bool:
        assert self._link is not None  # noqa: S101
        self._sending = True
        try:
            mid = self._link.publish(target.topic, target.payload, target.qos, target.retain)
        finally:
            self._sending = False
            early_acks = self._early_acks
            self._early_acks = set()
        if mid is None:
            return False
        if mid in early_acks:
            self._complete(seq)
            return True
        self._inflight[mid] = (seq, target.qos)
        return True

    def _replay(self) -> int:
        """Send stored rows that are not already in flight, oldest first."""
        inflight_seqs = self._inflight_seqs()
        try:
            pending = [message for message in self._store.pending() if message.seq not in inflight_seqs]
        except SignalKMqttStoreError:
            _logger.warning("Could not read outgoing store for replay", exc_info=True)
            return 0

        sent = 0
        for message in pending:
            if not self._send(message.seq, message.as_target()):
                _logger.debug("Replay stopped after %d message(s), broker refused seq=%d", sent, message.seq)
                return sent
            sent += 1
        self._backlog = False
        if sent:
            _logger.info("Replayed %d stored message(s)", sent)
        return sent

    def flush(self) -> int:
        """Replay stored messages now if sending is possible. Returns how many were sent."""
        with self._lock:
            if self._closed or not self._can_send():
                return 0
            return self._replay()

    # ------------------------------------------------------------------
    # Broker callbacks
    # ------------------------------------------------------------------

    def handle_event(self, event: ConnectionEvent) -> None:
        """Apply a connection event; replays the store on (re)connect."""
        with self._lock:
            previous = self._status
            self._status = reduce_state(previous, event)
            if self._status != previous and self._observer is not None:
                self._observer(self._status)

            if self._status.state in _DOWN_STATES:
                # The client resends unacked QoS 1/2 itself; QoS 0 sends are lost.
                self._inflight = {mid: entry for mid, entry in self._inflight.items() if entry[1] > 0}
                self._awaiting_resend = False
                if self._inflight:
                    self._backlog = True

            if self._status.is_connected and not previous.is_connected and not self._closed and self._link is not None:
                if self._inflight:
                    self._awaiting_resend = True
                    self._backlog = True
                    _logger.debug("Holding replay until %d resent message(s) are acknowledged", len(self._inflight))
                else:
                    self._replay()

    def handle_published(self, mid: int) -> None:
        """The broker link finished delivering message *mid*."""
        with self._lock:
            entry = self._inflight.pop(mid, None)
            if entry is None:
                if self._sending:
                    self._early_acks.add(mid)
                else:
                    _logger.debug("Ignoring ack for unknown mid=%d", mid)
                return
            self._complete(entry[0])
            if self._awaiting_resend and not self._inflight:
                self._awaiting_resend = False
                if not self._closed and self._status.is_connected and self._link is not None:
                    self._replay()

    def _complete(self, seq: int) -> None:
        self._published += 1
        if self._closed:
            return
        try:
            self._store.remove(seq)
        except SignalKMqttStoreError:
            _logger.warning("Could not remove delivered message seq=%d", seq, exc_info=True)

    # ------------------------------------------------------------------
    # Lifecycle / introspection
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        with self._lock:
            queued = 0 if self._closed else self._store.count()
            return {
                "state": str(self._status.state),
                "queued": queued,
                "inflight": len(self._inflight),
                "published": self._published,
            }

    def close(self) -> None:
        """Stop accepting publishes. Stored rows stay for the next run."""
        with self._lock:
            self._closed = True
            self._link = None
            self._inflight.clear()
            self._early_acks.clear()
            self._awaiting_resend = False
