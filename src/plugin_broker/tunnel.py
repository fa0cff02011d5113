"""JSON-RPC control channel to the workspace controller."""

from __future__ import annotations

import json
import logging
import ssl
import sys
from typing import Any

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from plugin_broker.events import ALL_EVENT_TYPES, BrokerEvent, EventBus

logger = logging.getLogger(__name__)


class TunnelClosedError(Exception):
    """Notification attempted on a closed control channel."""


class JsonRpcTunnel:
    """Outbound JSON-RPC 2.0 notifications over a WebSocket connection."""

    def __init__(self, connection: ClientConnection, endpoint: str = "") -> None:
        self._connection = connection
        self.endpoint = endpoint
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def notify(self, method: str, params: Any) -> None:
        if self._closed:
            raise TunnelClosedError(f"Tunnel to '{self.endpoint}' is closed")
        message = json.dumps({"jsonrpc": "2.0", "method": method, "params": params})
        try:
            await self._connection.send(message)
        except ConnectionClosed as e:
            self._closed = True
            raise TunnelClosedError(f"Tunnel to '{self.endpoint}' is closed: {e}") from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._connection.close()


async def connect_tunnel(
    endpoint: str,
    token: str | None = None,
    ssl_context: ssl.SSLContext | None = None,
) -> JsonRpcTunnel:
    """Open the control channel.

    Args:
        endpoint: ws:// or wss:// URL of the controller
        token: Machine token sent as a bearer Authorization header
        ssl_context: Trust configuration for wss:// endpoints

    Returns:
        Connected tunnel
    """
    headers = {"Authorization": f"Bearer {token}"} if token else None
    kwargs: dict[str, Any] = {"additional_headers": headers}
    if endpoint.startswith("wss") and ssl_context is not None:
        kwargs["ssl"] = ssl_context

    logger.info("Connecting to control channel %s", endpoint)
    connection = await connect(endpoint, **kwargs)
    return JsonRpcTunnel(connection, endpoint)


class TunnelBroadcaster:
    """Bus subscriber forwarding every event as a JSON-RPC notification.

    Losing the control channel is unrecoverable: the controller would never
    learn the outcome of the run, so the process exits.
    """

    def __init__(self, tunnel: JsonRpcTunnel) -> None:
        self.tunnel = tunnel

    async def accept(self, event: BrokerEvent) -> None:
        try:
            await self.tunnel.notify(event.event_type, event.to_params())
        except TunnelClosedError:
            logger.critical(
                "Trying to send event of type '%s' to closed tunnel '%s'",
                event.event_type,
                self.tunnel.endpoint,
            )
            sys.exit(1)

    async def close(self) -> None:
        await self.tunnel.close()


def push_events(bus: EventBus, tunnel: JsonRpcTunnel) -> TunnelBroadcaster:
    """Subscribe a broadcaster for the broker's event types."""
    broadcaster = TunnelBroadcaster(tunnel)
    bus.subscribe(broadcaster, *ALL_EVENT_TYPES)
    return broadcaster
