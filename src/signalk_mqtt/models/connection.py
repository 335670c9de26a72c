"""Broker connection state."""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict


class ConnectionState(enum.StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    OFFLINE = "offline"
    ERRORED = "errored"


class ConnectionEventKind(enum.StrEnum):
    """Events reported by the broker connection."""

    CONNECT_REQUESTED = "connect_requested"
    CONNECTED = "connect"
    ERROR = "error"
    DISCONNECTED = "disconnect"
    RECONNECT = "reconnect"
    OFFLINE = "offline"
    CLOSED = "close"


class ConnectionEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ConnectionEventKind
    reason: str | None = None


class ConnectionStatus(BaseModel):
    """Current connection state plus the reason for ``ERRORED``."""

    model_config = ConfigDict(frozen=True)

    state: ConnectionState = ConnectionState.DISCONNECTED
    reason: str | None = None

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED
