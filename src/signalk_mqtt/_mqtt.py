"""Internal paho-mqtt broker connection.

Wraps a threaded paho client and reports its lifecycle as
:class:`~signalk_mqtt.models.connection.ConnectionEvent` values. Reconnects
are left to paho, with a fixed delay between attempts. Callbacks reach the
caller on a dispatcher thread, never on paho's network thread.
"""

from __future__ import annotations

import functools
import logging
import queue
import ssl
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, cast
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt

from signalk_mqtt.config import PublisherConfig
from signalk_mqtt.exceptions import SignalKMqttConnectionError
from signalk_mqtt.models.connection import ConnectionEvent, ConnectionEventKind

_DEFAULT_PORTS: dict[str, int] = {
    "mqtt": 1883,
    "tcp": 1883,
    "mqtts": 8883,
    "ssl": 8883,
    "ws": 80,
    "wss": 443,
}
_TLS_SCHEMES = frozenset({"mqtts", "ssl", "wss"})
_WS_SCHEMES = frozenset({"ws", "wss"})


@dataclass(frozen=True)
class BrokerEndpoint:
    """Where and how to reach the broker."""

    host: str
    port: int
    tls: bool
    transport: str
    path: str


def parse_broker_url(url: str) -> BrokerEndpoint:
    """Split a broker URL like ``mqtts://broker:8883`` into connection parts."""
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        raise ValueError(f"Unsupported broker URL scheme: {url!r}")
    if not parts.hostname:
        raise ValueError(f"Broker URL has no host: {url!r}")
    websockets = scheme in _WS_SCHEMES
    return BrokerEndpoint(
        host=parts.hostname,
        port=parts.port or _DEFAULT_PORTS[scheme],
        tls=scheme in _TLS_SCHEMES,
        transport="websockets" if websockets else "tcp",
        path=(parts.path or "/mqtt") if websockets else "",
    )


class BrokerConnection:
    """Threaded paho-mqtt client with persistent session and fixed reconnect delay.

    paho runs its callbacks on the network thread while holding its own
    message locks. Events and acks are therefore only queued there and
    handed to ``on_event`` / ``on_published`` from a separate dispatcher
    thread, in the order paho produced them. ``stop`` returns after every
    queued callback has been delivered.
    """

    def __init__(
        self,
        config: PublisherConfig,
        client_id: str,
        *,
        on_event: Callable[[ConnectionEvent], None],
        on_published: Callable[[int], None],
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._client_id = client_id
        self._on_event = on_event
        self._on_published = on_published
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._callbacks: queue.SimpleQueue[Callable[[], None] | None] = queue.SimpleQueue()
        self._dispatcher: threading.Thread | None = None
        self._running = False
        self._stopping = False
        self._attempts = 0

    @property
    def is_running(self) -> bool:
        """Whether the network loop is active."""
        return self._running

    def _build_client(self, endpoint: BrokerEndpoint) -> mqtt.Client:
        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=self._client_id,
            clean_session=False,
            protocol=mqtt.MQTTv311,
            transport=endpoint.transport,
        )
        client.enable_logger(self._logger)
        if self._config.username:
            client.username_pw_set(self._config.username, self._config.password)
        if endpoint.tls:
            if self._config.reject_unauthorized:
                client.tls_set()
            else:
                client.tls_set(cert_reqs=ssl.CERT_NONE)
                client.tls_insecure_set(True)
        if endpoint.transport == "websockets":
            client.ws_set_options(path=endpoint.path)
        delay = max(1, int(self._config.reconnect_period))
        client.reconnect_delay_set(min_delay=delay, max_delay=delay)
        return client

    def _emit(self, kind: ConnectionEventKind, reason: str | None = None) -> None:
        self._callbacks.put(functools.partial(self._on_event, ConnectionEvent(kind=kind, reason=reason)))

    def _dispatch(self, callbacks: queue.SimpleQueue[Callable[[], None] | None]) -> None:
        while True:
            callback = callbacks.get()
            if callback is None:
                return
            try:
                callback()
            except Exception:
                self._logger.exception("MQTT callback handler failed")

    def start(self) -> None:
        """Begin connecting in the background. Does not wait for the broker."""
        self.stop()
        try:
            endpoint = parse_broker_url(self._config.remote_host)
            client = self._build_client(endpoint)
        except (ValueError, OSError, ssl.SSLError) as exc:
            raise SignalKMqttConnectionError(
                f"Cannot set up broker client: {exc}",
                url=self._config.remote_host,
            ) from exc

        self._logger.debug(
            "MQTT connection start requested host=%s port=%s transport=%s tls=%s client_id=%s",
            endpoint.host,
            endpoint.port,
            endpoint.transport,
            endpoint.tls,
            self._client_id,
        )

        def on_pre_connect(_c: mqtt.Client, _userdata: Any) -> None:
            self._attempts += 1
            kind = ConnectionEventKind.CONNECT_REQUESTED if self._attempts == 1 else ConnectionEventKind.RECONNECT
            self._emit(kind)

        def on_connect(
            _c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.is_failure:
                self._logger.warning("MQTT connect refused: %s", reason_code)
                self._emit(ConnectionEventKind.ERROR, str(reason_code))
                return
            self._emit(ConnectionEventKind.CONNECTED)

        def on_connect_fail(_c: mqtt.Client, _userdata: Any) -> None:
            self._emit(ConnectionEventKind.ERROR, "connection failed")

        def on_disconnect(
            _c: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._stopping:
                self._emit(ConnectionEventKind.DISCONNECTED)
                return
            self._logger.debug("MQTT connection lost: %s", reason_code)
            self._emit(ConnectionEventKind.OFFLINE)

        def on_publish(
            _c: mqtt.Client,
            _userdata: Any,
            mid: int,
            _reason_code: Any,
            _properties: Any,
        ) -> None:
            self._callbacks.put(functools.partial(self._on_published, mid))

        client.on_pre_connect = on_pre_connect
        client.on_connect = on_connect
        client.on_connect_fail = on_connect_fail
        client.on_disconnect = on_disconnect
        client.on_publish = on_publish

        try:
            client.connect_async(endpoint.host, endpoint.port, keepalive=self._config.keepalive)
        except (ValueError, OSError) as exc:
            raise SignalKMqttConnectionError(
                f"Cannot connect to broker: {exc}",
                url=self._config.remote_host,
            ) from exc

        self._callbacks = queue.SimpleQueue()
        self._dispatcher = threading.Thread(
            target=self._dispatch,
            args=(self._callbacks,),
            name=f"signalk-mqtt-callbacks-{self._client_id}",
            daemon=True,
        )
        self._dispatcher.start()
        client.loop_start()

        self._client = client
        self._running = True
        self._stopping = False
        self._logger.debug("MQTT network loop started")

    def publish(self, topic: str, payload: str, qos: int, retain: bool) -> int | None:
        """Hand a message to paho. Returns the message id, or None if refused.

        While the connection is down paho keeps QoS 1/2 messages and sends
        them after the next CONNACK, so those count as accepted.
        """
        client = self._client
        if client is None:
            return None
        info = client.publish(topic, payload, qos=qos, retain=retain)
        if info.rc == mqtt.MQTT_ERR_SUCCESS:
            return int(info.mid)
        if info.rc == mqtt.MQTT_ERR_NO_CONN and qos > 0:
            self._logger.debug("MQTT publish held by client until reconnect topic=%s mid=%s", topic, info.mid)
            return int(info.mid)
        self._logger.debug("MQTT publish refused topic=%s rc=%s", topic, info.rc)
        return None

    def stop(self) -> None:
        """Disconnect, stop the network loop and drain pending callbacks."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        self._stopping = True
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")
            self._emit(ConnectionEventKind.CLOSED)
            self._callbacks.put(None)
            dispatcher = self._dispatcher
            self._dispatcher = None
            if dispatcher is not None and dispatcher is not threading.current_thread():
                dispatcher.join()
