"""Publisher session: owns the subscription, broker connection and store.

Usage::

    with PublisherSession(config, identity, source) as session:
        ...  # deltas flow until the block exits

``start`` acquires the store, the broker connection and the subscription in
that order; ``stop`` (or any failure part-way through ``start``) releases
whatever was acquired, newest first.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Protocol

from signalk_mqtt._constants import STORE_FILENAME
from signalk_mqtt._mqtt import BrokerConnection
from signalk_mqtt.config import PublisherConfig
from signalk_mqtt.connection import ConnectionObserver, StatusSink
from signalk_mqtt.models.identity import VesselIdentity
from signalk_mqtt.models.publish import PublishOutcome, PublishTarget
from signalk_mqtt.models.subscription import Subscription
from signalk_mqtt.pipeline import craft_message, entries_for, iter_updates, route
from signalk_mqtt.publisher import DurablePublisher
from signalk_mqtt.store import OutgoingStore

_logger = logging.getLogger(__name__)

DeltaCallback = Callable[[Mapping[str, Any]], None]
ErrorCallback = Callable[[Exception], None]


class TelemetrySource(Protocol):
    """Host subscription mechanism delivering Signal K deltas."""

    def subscribe(
        self,
        subscription: Subscription,
        on_delta: DeltaCallback,
        on_error: ErrorCallback,
    ) -> Callable[[], None]:
        """Start delivering deltas; returns a callable that unsubscribes."""
        ...


class BrokerClient(Protocol):
    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...

    def publish(self, topic: str, payload: str, qos: int, retain: bool) -> int | None:
        ...


BrokerFactory = Callable[..., BrokerClient]


class PublisherSession:
    """Explicit start/stop lifecycle around the publish pipeline."""

    def __init__(
        self,
        config: PublisherConfig,
        identity: VesselIdentity,
        source: TelemetrySource,
        *,
        status_sink: StatusSink | None = None,
        broker_factory: BrokerFactory = BrokerConnection,
    ) -> None:
        self._config = config
        self._identity = identity
        self._source = source
        self._status_sink = status_sink
        self._broker_factory = broker_factory
        self._publisher: DurablePublisher | None = None
        self._resources: contextlib.ExitStack | None = None
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def publisher(self) -> DurablePublisher | None:
        return self._publisher

    @property
    def subscription(self) -> Subscription:
        return Subscription(period_ms=self._config.send_interval_ms)

    def _set_status(self, text: str) -> None:
        if self._status_sink is not None:
            self._status_sink(text)

    def start(self) -> None:
        """Open the store, connect to the broker and subscribe.

        On any error the partially acquired resources are released and
        the exception propagates.
        """
        if self._started:
            return
        _logger.debug("MQTT Publisher Started... config=%s", self._config.redacted())
        self._set_status("Initializing")

        for warning in self._config.validate():
            _logger.warning("%s", warning)
            self._set_status(warning)

        if self._config.send_to_remote:
            with contextlib.ExitStack() as stack:
                store = stack.enter_context(
                    OutgoingStore(
                        Path(self._config.data_dir) / STORE_FILENAME,
                        max_messages=self._config.max_queued,
                    )
                )
                observer = ConnectionObserver(
                    self._config.remote_host,
                    context=self._identity.context,
                    status_sink=self._status_sink,
                    logger=_logger,
                )
                publisher = DurablePublisher(store, observer=observer)
                stack.callback(self._drop_publisher)
                stack.callback(publisher.close)

                broker = self._broker_factory(
                    self._config,
                    self._identity.client_id,
                    on_event=publisher.handle_event,
                    on_published=publisher.handle_published,
                )
                publisher.attach(broker)
                self._publisher = publisher
                broker.start()
                stack.callback(broker.stop)

                unsubscribe = self._source.subscribe(
                    self.subscription,
                    self.handle_delta,
                    self._on_subscription_error,
                )
                stack.callback(unsubscribe)

                if store.count():
                    _logger.info("%d stored message(s) waiting for the broker", store.count())
                self._resources = stack.pop_all()

        self._set_status("Done initializing")
        self._started = True

    def _drop_publisher(self) -> None:
        self._publisher = None

    def stop(self) -> None:
        """Unsubscribe, close the broker connection and the store. Idempotent."""
        resources = self._resources
        self._resources = None
        was_started = self._started
        self._started = False
        if resources is not None:
            resources.close()
        if was_started:
            _logger.debug("MQTT Publisher stopped")

    def __enter__(self) -> PublisherSession:
        self.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.stop()

    def _on_subscription_error(self, error: Exception) -> None:
        _logger.error("Error: %s", error)

    def handle_delta(self, delta: Mapping[str, Any]) -> list[PublishOutcome]:
        """Run one subscription batch through the pipeline, in order.

        All targets of the batch are stored together and then sent.
        """
        targets: list[PublishTarget] = []
        for update in iter_updates(delta):
            for entry in entries_for(update):
                _logger.debug("Sending mqtt message for '%s'", entry.path)
                message = craft_message(entry, self._identity)
                targets.extend(route(message, self._config))

        publisher = self._publisher
        if publisher is None:
            return [PublishOutcome.REJECTED] * len(targets)
        return publisher.publish_many(targets)

