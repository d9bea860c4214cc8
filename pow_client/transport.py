"""Transport boundary used by CallSession.

A transport adapter opens a duplex (or polling) connection and reports what
happens on it through a TransportEvents object. CallSession only ever talks
to a connection through these two protocols, so the websocket and the http
adapters are interchangeable.
"""

from __future__ import annotations

from enum import Enum
from typing import Awaitable, Callable, Mapping, Protocol, Union

__all__ = ["ConnectionState", "Payload", "Transport", "TransportEvents", "TransportOpener"]

Payload = Union[str, bytes]


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Transport(Protocol):
    """An opened connection."""

    @property
    def state(self) -> ConnectionState:
        ...

    async def send(self, payload: Payload) -> None:
        """Send a text (str) or binary (bytes) message. Raises TransportError."""
        ...

    async def close(self) -> None:
        """Start a graceful close."""
        ...

    def terminate(self) -> None:
        """Abort the connection immediately, bypassing the close handshake."""
        ...


class TransportEvents(Protocol):
    """
    Receiver of connection events.

    Adapters call on_open exactly once, then on_message for every message,
    then on_close or on_error. All calls happen on the running event loop,
    one at a time.
    """

    async def on_open(self, transport: Transport) -> None:
        ...

    async def on_message(self, payload: Payload) -> None:
        ...

    async def on_error(self, error: BaseException) -> None:
        ...

    async def on_close(self, code: int, reason: str) -> None:
        ...


# (url, protocol, headers, events) -> opened transport; raises TransportError
TransportOpener = Callable[[str, str, Mapping[str, str], TransportEvents], Awaitable[Transport]]
