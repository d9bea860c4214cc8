"""
Stuck-close watchdog.

Some websocket implementations occasionally never finish their close
handshake and stay in the CLOSING state forever, which would leave the caller
waiting for a result that never comes. The watchdog polls the connection
state and aborts a connection that lingers in CLOSING for too long. The
abort produces an abnormal close which is reported as a failure.

    IDLE --start()--> POLLING --state is CLOSING--> TIMING_OUT --timer--> DONE
                         |                                                  ^
                         +-------- state is CLOSED (or stop()) ------------+
"""

from __future__ import annotations
import asyncio
from enum import Enum
from typing import Optional

from pow_client.transport import ConnectionState, Transport
from pow_shared.log import get_logger

logger = get_logger(__name__)

STATE_POLL_INTERVAL = 0.1  # how often to poll the state (seconds)
CLOSE_TIMEOUT = 0.5        # how long to let the close finish on its own (seconds)


class WatchdogState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    TIMING_OUT = "timing-out"
    DONE = "done"


class CloseWatchdog:

    def __init__(
        self,
        transport: Transport,
        *,
        poll_interval: float = STATE_POLL_INTERVAL,
        close_timeout: float = CLOSE_TIMEOUT,
    ) -> None:
        self.transport = transport
        self.poll_interval = poll_interval
        self.close_timeout = close_timeout
        self.state = WatchdogState.IDLE
        self.terminated = False
        self._handle: Optional[asyncio.TimerHandle] = None

    def start(self) -> None:
        if self.state is not WatchdogState.IDLE:
            return
        self.state = WatchdogState.POLLING
        self._schedule(self.poll_interval, self._poll)

    def stop(self) -> None:
        """Cancel any pending poll or timeout; the watchdog never acts again."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.state = WatchdogState.DONE

    def _schedule(self, delay: float, callback) -> None:
        self._handle = asyncio.get_running_loop().call_later(delay, callback)

    def _poll(self) -> None:
        self._handle = None
        if self.state is not WatchdogState.POLLING:
            return

        state = self.transport.state
        if state in (ConnectionState.OPEN, ConnectionState.CONNECTING):
            self._schedule(self.poll_interval, self._poll)
            return

        # closed on its own, nothing to do
        if state is not ConnectionState.CLOSING:
            self.state = WatchdogState.DONE
            return

        self.state = WatchdogState.TIMING_OUT
        self._schedule(self.close_timeout, self._expire)

    def _expire(self) -> None:
        self._handle = None
        if self.state is not WatchdogState.TIMING_OUT:
            return
        self.state = WatchdogState.DONE

        if self.transport.state is ConnectionState.CLOSING:
            logger.warning("websocket client misbehaved: still in closing state")
            self.terminated = True
            self.transport.terminate()
