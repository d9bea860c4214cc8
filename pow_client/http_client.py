"""HTTP polling transport.

Performs a call against the REST flavour of the protocol:

    POST /new               body: call message, returns the process id (JSON string)
    GET  /status/{id}       {"buffer": "<recent output lines>", "result": {...}}
    POST /input/{id}        body: raw input text
    POST /closeInput/{id}
    POST /cancel/{id}

and presents it as a Transport, so that CallSession drives it exactly like a
websocket. The final status is translated into a normal closure whose reason
holds {"success": ..., "data": ...}.
"""

from __future__ import annotations
import asyncio
import json
from typing import Any, Dict, Mapping, Optional, Tuple

import httpx

from pow_client.state import LineCursor
from pow_client.transport import ConnectionState, Payload, TransportEvents, TransportOpener
from pow_shared.errors import TransportError
from pow_shared.log import get_logger
from pow_shared.messages import ABNORMAL_CLOSURE, NORMAL_CLOSURE, Signal

__all__ = ["HttpPollingTransport", "open_http", "http_opener", "close_reason_for"]

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 0.5


def close_reason_for(result: Any) -> Optional[str]:
    """
    Close reason equivalent to a status result, or None while it is pending.

    {"status": "fulfilled", "value": V}   -> {"success": true, "data": V}
    {"status": "rejected", "reason": "m"} -> {"success": false, "data": "m"}
    """
    if not isinstance(result, dict):
        raise TransportError(f"malformed result in status: {result!r}")

    status = result.get("status")
    if status == "pending":
        return None

    body: Dict[str, Any]
    if status == "fulfilled":
        body = {"success": True}
        if "value" in result:
            body["data"] = result["value"]
    elif status == "rejected":
        body = {"success": False}
        if "reason" in result:
            body["data"] = result["reason"]
    else:
        raise TransportError(f"unknown result status: {status!r}")
    return json.dumps(body, separators=(',', ':'))


class HttpPollingTransport:

    def __init__(
        self,
        client: httpx.AsyncClient,
        events: TransportEvents,
        *,
        protocol: Optional[str] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.client = client
        self.events = events
        self.protocol = protocol
        self.poll_interval = poll_interval
        self.process_id: Optional[str] = None

        self._state = ConnectionState.CONNECTING
        self._cursor = LineCursor()
        self._started = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._terminated = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    def start(self) -> None:
        # there is no handshake; the process is created by the first message
        self._state = ConnectionState.OPEN
        self._task = asyncio.create_task(self._run())

    async def send(self, payload: Payload) -> None:
        if self._state is not ConnectionState.OPEN:
            raise TransportError("connection is not open")

        if self.process_id is None:
            await self._start_process(payload)
            return

        if isinstance(payload, str):
            await self._request("POST", f"/input/{self.process_id}", content=payload.encode("utf-8"))
            return

        try:
            signal = Signal.decode(payload)
        except ValueError as e:
            raise TransportError(f"Unsupported binary message: {e}") from e

        if signal is Signal.CANCEL:
            await self._request("POST", f"/cancel/{self.process_id}")
        else:
            await self._request("POST", f"/closeInput/{self.process_id}")

    async def close(self) -> None:
        if self._state is ConnectionState.CLOSED:
            return
        self._state = ConnectionState.CLOSED
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
        await self.client.aclose()

    def terminate(self) -> None:
        """Stop polling; reported as an abnormal closure"""
        self._terminated = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _start_process(self, payload: Payload) -> None:
        if not isinstance(payload, bytes):
            raise TransportError("first message must be the call message")

        process_id = await self._request("POST", "/new", content=payload, expect_json=True)
        if not isinstance(process_id, str) or not process_id:
            raise TransportError(f"server returned an invalid process id: {process_id!r}")

        logger.debug("Started process %s", process_id)
        self.process_id = process_id
        self._started.set()

    async def _request(self, method: str, path: str, *, content: Optional[bytes] = None,
                       expect_json: bool = False) -> Any:
        try:
            response = await self.client.request(method, path, content=content)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        if not expect_json:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"{method} {path} returned invalid JSON") from e

    async def _run(self) -> None:
        try:
            await self.events.on_open(self)
            if self._state is ConnectionState.CLOSED:
                return
            await self._started.wait()
        except asyncio.CancelledError:
            # stopped before the process was polled
            self._state = ConnectionState.CLOSED
            await asyncio.shield(self.client.aclose())
            if not self._terminated:
                raise
            await self.events.on_close(ABNORMAL_CLOSURE, "connection terminated")
            return

        try:
            code, reason = await self._poll()
        except TransportError as e:
            logger.error("Polling process %s failed: %s", self.process_id, e)
            self._state = ConnectionState.CLOSED
            await self.client.aclose()
            await self.events.on_error(e)
            return
        except asyncio.CancelledError:
            if not self._terminated:
                raise
            code, reason = ABNORMAL_CLOSURE, "connection terminated"

        self._state = ConnectionState.CLOSING
        try:
            await self.client.aclose()
        except asyncio.CancelledError:
            if not self._terminated:
                raise
            code, reason = ABNORMAL_CLOSURE, "connection terminated"
        self._state = ConnectionState.CLOSED
        await self.events.on_close(code, reason)

    async def _poll(self) -> Tuple[int, str]:
        while True:
            status = await self._request("GET", f"/status/{self.process_id}", expect_json=True)
            if not isinstance(status, dict):
                raise TransportError(f"malformed status: {status!r}")

            for line in self._cursor.advance(status.get("buffer") or ""):
                await self.events.on_message(line)

            reason = close_reason_for(status.get("result"))
            if reason is not None:
                return NORMAL_CLOSURE, reason

            await asyncio.sleep(self.poll_interval)


async def open_http(
    url: str,
    protocol: str,
    headers: Mapping[str, str],
    events: TransportEvents,
    *,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    **client_kwargs: Any,
) -> HttpPollingTransport:
    """
    Open an http polling transport against the REST server at url.

    Extra keyword arguments are passed to httpx.AsyncClient (e.g. timeout, transport).
    """
    client = httpx.AsyncClient(base_url=url, headers=dict(headers), **client_kwargs)
    transport = HttpPollingTransport(client, events, protocol=protocol, poll_interval=poll_interval)
    transport.start()
    return transport


def http_opener(poll_interval: float = DEFAULT_POLL_INTERVAL, **client_kwargs: Any) -> TransportOpener:
    async def opener(url, protocol, headers, events):
        return await open_http(url, protocol, headers, events, poll_interval=poll_interval, **client_kwargs)
    return opener
