"""Broker connection state machine and status reporting.

The broker client reports raw events (connect, error, offline, ...).
:func:`reduce_state` folds them into a :class:`ConnectionStatus`; the
publisher owns the status and is the only caller. A
:class:`ConnectionObserver` turns each new status into a human-readable
line for the host status sink.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from signalk_mqtt.models.connection import (
    ConnectionEvent,
    ConnectionEventKind,
    ConnectionState,
    ConnectionStatus,
)

_logger = logging.getLogger(__name__)

_EVENT_STATES: dict[ConnectionEventKind, ConnectionState] = {
    ConnectionEventKind.CONNECT_REQUESTED: ConnectionState.CONNECTING,
    ConnectionEventKind.CONNECTED: ConnectionState.CONNECTED,
    ConnectionEventKind.ERROR: ConnectionState.ERRORED,
    ConnectionEventKind.DISCONNECTED: ConnectionState.DISCONNECTED,
    ConnectionEventKind.RECONNECT: ConnectionState.RECONNECTING,
    ConnectionEventKind.OFFLINE: ConnectionState.OFFLINE,
    ConnectionEventKind.CLOSED: ConnectionState.DISCONNECTED,
}


def reduce_state(status: ConnectionStatus, event: ConnectionEvent) -> ConnectionStatus:
    """Return the status that follows *status* after *event*."""
    state = _EVENT_STATES[event.kind]
    if state == ConnectionState.ERRORED:
        return ConnectionStatus(state=state, reason=event.reason or "unknown error")
    if state == status.state and status.reason is None:
        return status
    return ConnectionStatus(state=state)


StatusSink = Callable[[str], None]


class ConnectionObserver:
    """Report connection status changes to a status sink and the debug log."""

    def __init__(
        self,
        host: str,
        *,
        context: str = "",
        status_sink: StatusSink | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._host = host
        self._context = context
        self._status_sink = status_sink
        self._logger = logger or _logger
        self._last: ConnectionStatus | None = None

    def describe(self, status: ConnectionStatus) -> str:
        state = status.state
        if state == ConnectionState.CONNECTED:
            return f"Connected to {self._host}"
        if state == ConnectionState.ERRORED:
            return f"Error {status.reason}"
        if state == ConnectionState.RECONNECTING:
            return f"Reconnect started to {self._host}"
        if state == ConnectionState.OFFLINE:
            return f"offline {self._host}"
        if state == ConnectionState.CONNECTING:
            return f"Connecting to {self._host}"
        return f"Disconnected from {self._host}"

    def __call__(self, status: ConnectionStatus) -> None:
        if status == self._last:
            return
        self._last = status
        text = self.describe(status)
        if status.state == ConnectionState.CONNECTED and self._context:
            self._logger.debug("%s, clientId and topic prefix: %s", text, self._context)
        else:
            self._logger.debug("%s", text)
        if self._status_sink is not None:
            self._status_sink(text)
