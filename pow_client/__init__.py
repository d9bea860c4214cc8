"""Client for the pow-1 process-over-websocket protocol."""

from pow_client.result import Failure, Result, Success, interpret_close
from pow_client.session import CallHooks, CallSession, SessionState
from pow_shared.errors import AlreadyConnected, NotConnected, PowError, TransportError, UsageError
from pow_shared.messages import CallSpec, RemoteDescriptor

__all__ = [
    "AlreadyConnected",
    "CallHooks",
    "CallSession",
    "CallSpec",
    "Failure",
    "NotConnected",
    "PowError",
    "RemoteDescriptor",
    "Result",
    "SessionState",
    "Success",
    "TransportError",
    "UsageError",
    "interpret_close",
]
