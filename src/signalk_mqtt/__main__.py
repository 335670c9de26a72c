"""Command-line bridge: Signal K server -> MQTT broker.

Reads publisher options from a JSON file in Signal K plugin format (or from
``SIGNALK_MQTT_*`` environment variables), resolves the vessel identity,
subscribes to the Signal K stream and publishes until interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

import aiohttp

from signalk_mqtt.config import PublisherConfig
from signalk_mqtt.exceptions import SignalKMqttError
from signalk_mqtt.models.identity import VesselIdentity
from signalk_mqtt.session import PublisherSession
from signalk_mqtt.source import SignalKStreamSource, fetch_identity

_LOG = logging.getLogger("signalk_mqtt")
_STATUS_LOG = logging.getLogger("signalk_mqtt.status")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="signalk-mqtt",
        description="Send self Signal K numeric data, navigation.position and navigation.attitude to MQTT.",
    )
    parser.add_argument(
        "--signalk-url",
        default="http://localhost:3000",
        help="Signal K server base URL.",
    )
    parser.add_argument(
        "--token",
        default=None,
        help="Signal K access token (if the server requires authentication).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON file with plugin options (sendToRemote, remoteHost, QoS, ...).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args(argv)


def _load_config(path: Path | None) -> PublisherConfig:
    if path is None:
        return PublisherConfig.from_env()
    options = json.loads(path.read_text(encoding="utf-8"))
    # Accept both a bare options object and the server's {"configuration": {...}} file.
    if isinstance(options, dict) and isinstance(options.get("configuration"), dict):
        options = options["configuration"]
    return PublisherConfig.from_options(options)


async def _run(args: argparse.Namespace, config: PublisherConfig) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:  # pragma: no cover - Windows
            pass

    async with aiohttp.ClientSession() as http:
        if config.client_id:
            identity = VesselIdentity(self_id=config.client_id)
        else:
            identity = await fetch_identity(http, args.signalk_url, token=args.token)
        _LOG.info("Publishing as %s", identity.context)

        source = SignalKStreamSource(args.signalk_url, http_session=http, token=args.token)
        with PublisherSession(config, identity, source, status_sink=_STATUS_LOG.info):
            await stop_event.wait()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = _load_config(args.config)
    except (OSError, ValueError, SignalKMqttError) as exc:
        print(f"signalk-mqtt: invalid configuration: {exc}", file=sys.stderr)
        return 2

    try:
        asyncio.run(_run(args, config))
    except SignalKMqttError as exc:
        print(f"signalk-mqtt: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
