from __future__ import annotations
import asyncio
from typing import Any, Mapping, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.protocol import State

from pow_client.transport import ConnectionState, Payload, TransportEvents
from pow_shared.errors import TransportError
from pow_shared.log import get_logger
from pow_shared.messages import ABNORMAL_CLOSURE

logger = get_logger(__name__)

_STATES = {
    State.CONNECTING: ConnectionState.CONNECTING,
    State.OPEN: ConnectionState.OPEN,
    State.CLOSING: ConnectionState.CLOSING,
    State.CLOSED: ConnectionState.CLOSED,
}


class WebSocketTransport:
    """
    Transport over a websockets client connection.

    Reads the connection in a background task and reports open, every
    message, and finally the close (or error) to the events receiver.
    """

    def __init__(self, websocket: websockets.ClientConnection, events: TransportEvents) -> None:
        self.websocket = websocket
        self.events = events
        self._reader: Optional[asyncio.Task] = None

    @property
    def state(self) -> ConnectionState:
        return _STATES[self.websocket.protocol.state]

    def start(self) -> None:
        self._reader = asyncio.create_task(self._read_loop())

    async def send(self, payload: Payload) -> None:
        try:
            await self.websocket.send(payload)
        except ConnectionClosed as e:
            raise TransportError(f"Connection closed while sending: {e}") from e

    async def close(self) -> None:
        """Close the WebSocket connection"""
        await self.websocket.close()

    def terminate(self) -> None:
        """Drop the TCP connection without a close handshake"""
        logger.debug("Aborting websocket transport")
        self.websocket.transport.abort()

    async def _read_loop(self) -> None:
        await self.events.on_open(self)
        try:
            async for raw in self.websocket:
                await self.events.on_message(raw)
        except ConnectionClosed:
            pass
        except (WebSocketException, OSError) as e:
            logger.error("Failed to read from websocket: %s", e)
            error = TransportError(f"websocket error: {e}")
            error.__cause__ = e
            await self.events.on_error(error)
            return

        # the closing handshake may still be running; terminate() ends a stuck one
        await self.websocket.wait_closed()
        code = self.websocket.close_code
        reason = self.websocket.close_reason
        await self.events.on_close(ABNORMAL_CLOSURE if code is None else code, reason or "")


async def open_websocket(
    url: str,
    protocol: str,
    headers: Mapping[str, str],
    events: TransportEvents,
    **ws_kwargs: Any,
) -> WebSocketTransport:
    """
    Connect to a websocket endpoint speaking the given subprotocol.

    Extra keyword arguments are passed to websockets.connect()
    (e.g. ping_interval, ping_timeout, open_timeout).
    """
    try:
        websocket = await websockets.connect(
            url,
            subprotocols=[protocol],
            additional_headers=dict(headers) or None,
            **ws_kwargs,
        )
    except (WebSocketException, OSError, asyncio.TimeoutError) as e:
        raise TransportError(f"Failed to connect to {url}: {e}") from e

    transport = WebSocketTransport(websocket, events)
    transport.start()
    return transport
