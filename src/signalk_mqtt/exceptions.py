"""Custom exception hierarchy for signalk_mqtt."""

from __future__ import annotations


class SignalKMqttError(Exception):
    """Base exception for all signalk_mqtt errors."""


class SignalKMqttConfigError(SignalKMqttError):
    """Invalid or missing configuration."""


class SignalKMqttStoreError(SignalKMqttError):
    """The persistent outgoing store could not be read or written."""

    def __init__(self, message: str, *, path: str = "") -> None:
        self.path = path
        super().__init__(message)


class SignalKMqttConnectionError(SignalKMqttError):
    """Broker connection could not be set up.

    Transient network failures are not raised; the broker client retries
    them on its own. This covers failures while building the client
    (bad TLS material, unresolvable URL, and so on).
    """

    def __init__(self, message: str, *, url: str = "") -> None:
        self.url = url
        super().__init__(message)


class SignalKMqttSourceError(SignalKMqttError):
    """Signal K server request failed (network, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)
