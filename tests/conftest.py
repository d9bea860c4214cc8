import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
import websockets

from pow_client.transport import ConnectionState
from pow_shared.errors import TransportError


class FakeTransport:
    """In-memory transport; tests drive the events by hand."""

    def __init__(self, events) -> None:
        self.events = events
        self.sent: List[Any] = []
        self.state = ConnectionState.OPEN
        self.closed = False
        self.terminations = 0
        self.fail_send: Optional[Exception] = None
        self.close_on_terminate = True
        self._tasks: List[asyncio.Task] = []

    async def send(self, payload) -> None:
        if self.fail_send is not None:
            raise self.fail_send
        self.sent.append(payload)

    async def close(self) -> None:
        self.closed = True
        self.state = ConnectionState.CLOSED

    def terminate(self) -> None:
        self.terminations += 1
        self.state = ConnectionState.CLOSED
        if self.close_on_terminate:
            self._tasks.append(asyncio.ensure_future(self.events.on_close(1006, "")))

    # event injection
    async def open(self) -> None:
        await self.events.on_open(self)

    async def message(self, payload) -> None:
        await self.events.on_message(payload)

    async def error(self, error: BaseException) -> None:
        await self.events.on_error(error)

    async def remote_close(self, code: int, reason: str) -> None:
        self.state = ConnectionState.CLOSED
        await self.events.on_close(code, reason)


class FakeOpener:
    def __init__(self, fail: Optional[Exception] = None) -> None:
        self.fail = fail
        self.calls: List[Tuple[str, str, Dict[str, str]]] = []
        self.transport: Optional[FakeTransport] = None

    async def __call__(self, url, protocol, headers, events):
        self.calls.append((url, protocol, dict(headers)))
        if self.fail is not None:
            raise self.fail
        self.transport = FakeTransport(events)
        return self.transport

    async def start(self, session, *, open_transport: bool = True):
        """Run session.connect() in a task and (optionally) deliver the open event."""
        task = asyncio.create_task(session.connect())
        await asyncio.sleep(0)
        assert self.transport is not None
        if open_transport:
            await self.transport.open()
        return task, self.transport


@pytest.fixture
def opener() -> FakeOpener:
    return FakeOpener()


@pytest.fixture
def failing_opener() -> FakeOpener:
    return FakeOpener(fail=TransportError("connection refused"))


# ========================================
#           WEBSOCKET TEST SERVER
# ========================================

def _reason(success: bool, data: Any) -> str:
    return json.dumps({"success": success, "data": data}, separators=(",", ":"))


async def pow_handler(ws) -> None:
    """Minimal pow-1 server: echo, fail, whoami, binary, record, abort"""
    call = json.loads(await ws.recv())
    name = call["call"]

    if name == "echo":
        lines = []
        async for msg in ws:
            if isinstance(msg, bytes):
                signal = json.loads(msg)["signal"]
                if signal == "close":
                    break
                await ws.close(1000, _reason(False, "client requested cancellation"))
                return
            lines.append(msg)
            await ws.send(msg)
        await ws.close(1000, _reason(True, lines))
    elif name == "fail":
        await ws.close(1000, _reason(False, " ".join(call["params"])))
    elif name == "whoami":
        await ws.close(1000, _reason(True, ws.request.headers.get("Authorization")))
    elif name == "binary":
        await ws.send(b"\x00\x01")
        await ws.send("after binary")
        await ws.close(1000, _reason(True, None))
    elif name == "record":
        # only a cancel ends the call; its reason lists every frame received
        frames = []
        async for msg in ws:
            if isinstance(msg, bytes):
                frames.append(json.loads(msg)["signal"])
                if frames[-1] == "cancel":
                    break
            else:
                frames.append(msg)
        await ws.close(1000, _reason(False, json.dumps(frames)))
    elif name == "abort":
        ws.transport.abort()
    else:
        await ws.close(4000, "unknown process")


@pytest_asyncio.fixture
async def pow_server():
    async with websockets.serve(pow_handler, "127.0.0.1", 0, subprotocols=["pow-1"]) as server:
        port = server.sockets[0].getsockname()[1]
        yield f"ws://127.0.0.1:{port}"
