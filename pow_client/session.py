from __future__ import annotations
import asyncio
from dataclasses import dataclass, fields
from enum import Enum
import inspect
import uuid
from typing import TYPE_CHECKING, Any, Callable, FrozenSet, Optional, Set

from pow_client.result import OneShot, Result, interpret_close
from pow_client.transport import Payload, Transport, TransportOpener
from pow_client.watchdog import CLOSE_TIMEOUT, STATE_POLL_INTERVAL, CloseWatchdog
from pow_client.ws_client import open_websocket
from pow_shared.errors import AlreadyConnected, NotConnected, TransportError
from pow_shared.log import get_logger, log_call_event
from pow_shared.messages import PROTOCOL, CallSpec, RemoteDescriptor, Signal

if TYPE_CHECKING:
    from pow_shared.config import ClientConfig

logger = get_logger(__name__)


# Hooks receive the session as their first argument and may be plain
# functions or coroutine functions.
Hook = Callable[..., Any]


@dataclass(frozen=True)
class CallHooks:
    """
    Optional callbacks invoked during the lifetime of a call.

    before_call(session)          right before the call message is sent
    on_connect(session)           right after the call message was sent; a
                                  coroutine returned here runs as its own task,
                                  so it may stream input for as long as it likes
    after_call(session, result)   once the connection closed, before connect() returns
    on_error(session, error)      on a transport error, before connect() raises it
    on_log_line(session, line)    for every log line sent by the remote
    """
    before_call: Optional[Hook] = None
    on_connect: Optional[Hook] = None
    after_call: Optional[Hook] = None
    on_error: Optional[Hook] = None
    on_log_line: Optional[Hook] = None

    def active(self) -> FrozenSet[str]:
        """Names of the hooks that are set"""
        return frozenset(f.name for f in fields(self) if getattr(self, f.name) is not None)


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class CallSession:
    """
    Performs a single call over a single connection.

    connect() opens the transport, sends the call and waits for the remote to
    close the connection; the close code and reason are turned into the
    Result. While the call runs, send_text(), cancel() and close_input() talk
    to the remote and log lines are passed to the on_log_line hook.

    Transport failures make connect() raise the TransportError instead of
    returning a Result.
    """

    def __init__(
        self,
        remote: RemoteDescriptor,
        call: CallSpec,
        hooks: Optional[CallHooks] = None,
        *,
        opener: Optional[TransportOpener] = None,
        poll_interval: float = STATE_POLL_INTERVAL,
        close_timeout: float = CLOSE_TIMEOUT,
    ) -> None:
        self.remote = remote
        self.call = call
        self.hooks = hooks or CallHooks()
        self.session_id = uuid.uuid4().hex[:8]

        self._opener: TransportOpener = opener or open_websocket
        self._poll_interval = poll_interval
        self._close_timeout = close_timeout

        self._connected = False
        self._state = SessionState.IDLE
        self._transport: Optional[Transport] = None
        self._watchdog: Optional[CloseWatchdog] = None
        self._result: OneShot[Result] = OneShot()
        self._background_tasks: Set[asyncio.Future] = set()
        self._hook_tasks: Set[asyncio.Future] = set()

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        call: CallSpec,
        hooks: Optional[CallHooks] = None,
    ) -> 'CallSession':
        """Create a session using the transport and timings from the configuration"""
        if config.transport == "http":
            from pow_client.http_client import http_opener
            opener = http_opener(poll_interval=config.http_poll_interval)
        else:
            opener = open_websocket_with(ping_interval=config.ping_interval, ping_timeout=config.ping_timeout)
        return cls(
            config.remote(),
            call,
            hooks,
            opener=opener,
            poll_interval=config.poll_interval,
            close_timeout=config.close_timeout,
        )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def connected(self) -> bool:
        """True once connect() has been called"""
        return self._connected

    @property
    def watchdog(self) -> Optional[CloseWatchdog]:
        return self._watchdog

    # ========================================
    #           CALLER OPERATIONS
    # ========================================

    async def connect(self) -> Result:
        """
        Perform the call and wait for its result.

        Returns a Success or Failure once the remote closed the connection.
        Raises AlreadyConnected when called twice, and the TransportError
        (or hook exception) that ended the call otherwise.
        """
        # ensure that connect is only run once, even while the first one is in flight
        if self._connected:
            raise AlreadyConnected("connect() may only be called once")
        self._connected = True
        self._state = SessionState.CONNECTING

        log_call_event(logger, "info", "Connecting", session=self)
        try:
            await self._opener(self.remote.url, PROTOCOL, self.remote.auth_headers(), self)
        except TransportError as e:
            await self.on_error(e)

        try:
            return await self._result.wait()
        except asyncio.CancelledError:
            self._abandon()
            raise

    async def send_text(self, line: str) -> None:
        """Send a line of input to the remote"""
        if not isinstance(line, str):
            raise TypeError(f"line must be a string, got {type(line).__name__}")
        await self._send(line, "text")

    async def cancel(self) -> None:
        """Ask the remote to cancel the call; the result still arrives through connect()"""
        await self._send(Signal.CANCEL.encode(), "cancel signal")

    async def close_input(self) -> None:
        """Tell the remote that no further input will be sent"""
        await self._send(Signal.CLOSE.encode(), "close signal")

    async def _send(self, payload: Payload, kind: str) -> None:
        transport = self._transport
        if transport is None:
            raise NotConnected("websocket not connected")
        log_call_event(logger, "debug", f"Sending {kind}", session=self)
        await transport.send(payload)

    # ========================================
    #           TRANSPORT EVENTS
    # ========================================

    async def on_open(self, transport: Transport) -> None:
        if self._state is not SessionState.CONNECTING:
            # connect() was abandoned while the transport was opening
            transport.terminate()
            return
        self._state = SessionState.OPEN
        self._transport = transport
        log_call_event(logger, "debug", "Connection open", session=self)

        self._watchdog = CloseWatchdog(
            transport,
            poll_interval=self._poll_interval,
            close_timeout=self._close_timeout,
        )
        self._watchdog.start()

        try:
            await self._invoke(self.hooks.before_call)
            await self._send(self.call.encode(), "call")
            self._start_hook(self.hooks.on_connect)
        except Exception as e:
            await self.on_error(e)

    async def on_message(self, payload: Payload) -> None:
        # no log lines once the call is finishing
        if self._state is not SessionState.OPEN:
            return

        if not isinstance(payload, str):
            self._on_binary_message(payload)
            return

        try:
            await self._invoke(self.hooks.on_log_line, payload)
        except Exception as e:
            await self.on_error(e)

    async def on_error(self, error: BaseException) -> None:
        if self._state in (SessionState.CLOSING, SessionState.CLOSED):
            logger.debug("Ignoring error after the call finished: %s", error)
            return
        self._state = SessionState.CLOSING
        log_call_event(logger, "error", f"Call failed: {error}", session=self)

        transport = self._release()
        if transport is not None:
            try:
                await transport.close()
            except TransportError as e:
                logger.debug("Error closing failed transport: %s", e)

        try:
            await self._invoke(self.hooks.on_error, error)
        except Exception:
            logger.exception("on_error hook failed")

        self._finish()
        self._result.reject(error)

    async def on_close(self, code: int, reason: str) -> None:
        if self._state in (SessionState.CLOSING, SessionState.CLOSED):
            return
        self._state = SessionState.CLOSING
        self._release()

        result = interpret_close(code, reason)
        log_call_event(
            logger, "info",
            f"Call finished (code {code}): {'success' if result.success else 'failure'}",
            session=self,
        )

        try:
            await self._invoke(self.hooks.after_call, result)
        except Exception:
            logger.exception("after_call hook failed")

        self._finish()
        self._result.resolve(result)

    def _on_binary_message(self, payload: bytes) -> None:
        # binary messages from the remote are reserved for future protocol versions
        log_call_event(logger, "debug", f"Ignoring binary message ({len(payload)} bytes)", session=self)

    # ========================================
    #           INTERNALS
    # ========================================

    def _release(self) -> Optional[Transport]:
        """Stop the watchdog and drop the transport handle; returns the old handle"""
        if self._watchdog is not None:
            self._watchdog.stop()
        transport, self._transport = self._transport, None
        return transport

    def _finish(self) -> None:
        self._state = SessionState.CLOSED
        # input streaming started by on_connect has nowhere to go anymore
        current = asyncio.current_task()
        for task in list(self._hook_tasks):
            if task is not current:
                task.cancel()

    def _abandon(self) -> None:
        """connect() was cancelled: tear everything down without a result"""
        transport = self._release()
        if transport is not None:
            transport.terminate()
        self._finish()

    async def _invoke(self, hook: Optional[Hook], *args: Any) -> None:
        if hook is None:
            return
        result = hook(self, *args)
        if inspect.isawaitable(result):
            await result

    def _start_hook(self, hook: Optional[Hook]) -> None:
        if hook is None:
            return
        result = hook(self)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._hook_tasks.add(task)
            self._track(task)
            task.add_done_callback(self._hook_done)

    def _track(self, task: asyncio.Future) -> None:
        """Keep a strong reference to background tasks until completion."""
        self._background_tasks.add(task)

        def _discard(_task: asyncio.Future) -> None:
            self._background_tasks.discard(_task)

        task.add_done_callback(_discard)

    def _hook_done(self, task: asyncio.Future) -> None:
        self._hook_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        if self._state is SessionState.OPEN:
            self._track(asyncio.ensure_future(self.on_error(error)))
        else:
            logger.warning("on_connect hook failed after the call finished: %s", error)


def open_websocket_with(**ws_kwargs: Any) -> TransportOpener:
    """Websocket opener passing extra keyword arguments to websockets.connect()"""
    async def opener(url, protocol, headers, events):
        return await open_websocket(url, protocol, headers, events, **ws_kwargs)
    return opener
