"""Signal K server access over aiohttp.

:class:`SignalKStreamSource` implements the subscription side of the
pipeline on top of the Signal K websocket stream API, and
:func:`fetch_identity` resolves the vessel identity from the REST API.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import aiohttp

from signalk_mqtt._constants import SELF_API_PATH, STREAM_PATH
from signalk_mqtt.exceptions import SignalKMqttSourceError
from signalk_mqtt.models.identity import VesselIdentity
from signalk_mqtt.models.subscription import Subscription
from signalk_mqtt.session import DeltaCallback, ErrorCallback

_logger = logging.getLogger(__name__)


def _auth_headers(token: str | None) -> dict[str, str]:
    if not token:
        return {}
    return {"authorization": f"Bearer {token}"}


def stream_url(base_url: str) -> str:
    """``http://host:3000`` -> ``ws://host:3000/signalk/v1/stream?subscribe=none``"""
    parts = urlsplit(base_url.rstrip("/"))
    scheme = {"http": "ws", "https": "wss"}.get(parts.scheme.lower(), parts.scheme.lower())
    if scheme not in {"ws", "wss"}:
        raise ValueError(f"Unsupported Signal K URL scheme: {base_url!r}")
    return urlunsplit((scheme, parts.netloc, f"{parts.path}{STREAM_PATH}", "subscribe=none", ""))


def parse_identity(data: Any) -> VesselIdentity:
    """Build a vessel identity from a ``/vessels/self`` document."""
    if not isinstance(data, dict):
        raise SignalKMqttSourceError("Vessel document is not an object", endpoint=SELF_API_PATH)
    mmsi = data.get("mmsi")
    self_id = data.get("uuid")
    if isinstance(mmsi, dict):
        # Some servers return full leaf objects for every key.
        mmsi = mmsi.get("value")
    if not mmsi and not self_id:
        raise SignalKMqttSourceError("Vessel document has neither mmsi nor uuid", endpoint=SELF_API_PATH)
    return VesselIdentity(mmsi=mmsi, self_id=self_id)


async def fetch_identity(
    http_session: aiohttp.ClientSession,
    base_url: str,
    *,
    token: str | None = None,
) -> VesselIdentity:
    """Look up the self vessel's MMSI / uuid on the Signal K server."""
    url = f"{base_url.rstrip('/')}{SELF_API_PATH}"
    _logger.debug("GET %s", url)
    try:
        async with http_session.get(url, headers=_auth_headers(token)) as resp:
            text = await resp.text()
            if resp.status != 200:
                raise SignalKMqttSourceError(
                    f"HTTP {resp.status} from {SELF_API_PATH}: {text[:200]}",
                    status_code=resp.status,
                    endpoint=SELF_API_PATH,
                )
    except SignalKMqttSourceError:
        raise
    except aiohttp.ClientError as exc:
        raise SignalKMqttSourceError(
            f"Request to {SELF_API_PATH} failed: {exc}",
            endpoint=SELF_API_PATH,
        ) from exc

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SignalKMqttSourceError(
            f"Invalid JSON from {SELF_API_PATH}: {text[:200]}",
            endpoint=SELF_API_PATH,
        ) from exc
    return parse_identity(data)


class SignalKStreamSource:
    """Subscription source backed by the Signal K websocket stream.

    ``subscribe`` must be called from inside a running event loop. The
    stream reconnects after ``retry_interval`` seconds whenever it fails;
    each failure is reported through ``on_error``. A websocket ping every
    ``heartbeat`` seconds detects a stream that went silent.
    """

    def __init__(
        self,
        base_url: str,
        *,
        http_session: aiohttp.ClientSession,
        token: str | None = None,
        retry_interval: float = 10.0,
        heartbeat: float = 30.0,
    ) -> None:
        self._url = stream_url(base_url)
        self._http = http_session
        self._token = token
        self._retry_interval = retry_interval
        self._heartbeat = heartbeat

    @property
    def url(self) -> str:
        return self._url

    def subscribe(
        self,
        subscription: Subscription,
        on_delta: DeltaCallback,
        on_error: ErrorCallback,
    ) -> Callable[[], None]:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(subscription, on_delta, on_error))

        def unsubscribe() -> None:
            task.cancel()

        return unsubscribe

    async def _run(
        self,
        subscription: Subscription,
        on_delta: DeltaCallback,
        on_error: ErrorCallback,
    ) -> None:
        while True:
            try:
                await self._stream(subscription, on_delta)
            except (aiohttp.ClientError, TimeoutError, SignalKMqttSourceError) as exc:
                on_error(exc)
            await asyncio.sleep(self._retry_interval)

    async def _stream(self, subscription: Subscription, on_delta: DeltaCallback) -> None:
        _logger.debug("Opening Signal K stream %s", self._url)
        async with self._http.ws_connect(
            self._url,
            headers=_auth_headers(self._token),
            heartbeat=self._heartbeat,
        ) as ws:
            await ws.send_json(subscription.to_message())
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except json.JSONDecodeError:
                        _logger.debug("Ignoring non-JSON stream frame %r", msg.data[:200])
                        continue
                    # The hello frame and meta-only frames carry no updates.
                    if isinstance(data, dict) and "updates" in data:
                        on_delta(data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    raise SignalKMqttSourceError(f"Stream error: {ws.exception()}", endpoint=STREAM_PATH)
            if ws.exception() is not None:
                # Missed heartbeat pongs end the stream with an exception set.
                raise SignalKMqttSourceError(f"Stream failed: {ws.exception()}", endpoint=STREAM_PATH)
        _logger.info("Signal K stream closed by server, reconnecting in %ss", self._retry_interval)
