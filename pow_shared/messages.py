from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple, Union
import json

from pow_shared.errors import InvalidCallSpec

# Subprotocol negotiated when opening a connection
PROTOCOL = "pow-1"

# Close code used by the remote when the call finished and the reason holds the result
NORMAL_CLOSURE = 1000

# Close code reported when the connection went away without a close frame
ABNORMAL_CLOSURE = 1006


def _compact(data: Dict[str, Any]) -> str:
    return json.dumps(data, separators=(',', ':'))


@dataclass(frozen=True)
class RemoteDescriptor:
    """
    Endpoint a call is performed against.

    url:   websocket (ws://, wss://) or http(s) base url of the remote
    token: optional bearer credential attached when connecting
    """
    url: str
    token: Optional[str] = None

    def auth_headers(self) -> Dict[str, str]:
        """Headers to send when opening the connection"""
        if isinstance(self.token, str):
            return {"Authorization": "Bearer " + self.token}
        return {}


@dataclass(frozen=True)
class CallSpec:
    """
    The call to perform, sent as the first message after the connection opens:
    {
    "call":   "STRING",
    "params": ["STRING", ...]
    }
    """
    call: str
    params: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not isinstance(self.call, str):
            raise InvalidCallSpec("'call' must be a string")
        if isinstance(self.params, str):
            raise InvalidCallSpec("'params' must be a sequence of strings, not a string")
        params = tuple(self.params)
        for p in params:
            if not isinstance(p, str):
                raise InvalidCallSpec(f"'params' must only contain strings, got {type(p).__name__}")
        # frozen dataclass: normalise lists into a tuple
        object.__setattr__(self, "params", params)

    @classmethod
    def create(cls, call: str, *params: str) -> 'CallSpec':
        return cls(call=call, params=tuple(params))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CallSpec':
        """Create CallSpec from dictionary, validating required fields"""
        if not isinstance(data, dict):
            raise InvalidCallSpec("call spec must be an object")
        if 'call' not in data:
            raise InvalidCallSpec("Missing required field: 'call'")
        params: Sequence[Any] = data.get('params') or ()
        if not isinstance(params, (list, tuple)):
            raise InvalidCallSpec("'params' must be a list")
        return cls(call=data['call'], params=tuple(params))

    def to_dict(self) -> Dict[str, Any]:
        return {'call': self.call, 'params': list(self.params)}

    def to_json(self) -> str:
        return _compact(self.to_dict())

    def encode(self) -> bytes:
        """Wire form of the call message (sent as a binary frame)"""
        return self.to_json().encode('utf-8')


class Signal(str, Enum):
    """Out-of-band control messages sent on the same channel as the call."""

    CANCEL = "cancel"   # ask the remote to cancel the ongoing call
    CLOSE = "close"     # no further input will be sent

    def to_json(self) -> str:
        return _compact({'signal': self.value})

    def encode(self) -> bytes:
        """Wire form of the signal message (sent as a binary frame)"""
        return self.to_json().encode('utf-8')

    @classmethod
    def decode(cls, payload: Union[str, bytes]) -> 'Signal':
        """Parse a signal message, raise ValueError if it is not one"""
        if isinstance(payload, bytes):
            payload = payload.decode('utf-8')
        data = json.loads(payload)
        if not isinstance(data, dict) or 'signal' not in data:
            raise ValueError("not a signal message")
        try:
            return cls(data['signal'])
        except ValueError:
            raise ValueError(f"Unknown signal: {data['signal']!r}")
