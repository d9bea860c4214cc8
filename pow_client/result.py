from __future__ import annotations
import asyncio
from dataclasses import dataclass
import json
from typing import Any, ClassVar, Dict, Generic, Optional, TypeVar, Union

from pow_shared.messages import NORMAL_CLOSURE

# Diagnostics reported when the close reason of a normal closure is malformed.
# Tooling matches on these strings, do not change them.
ERR_UNPARSABLE_REASON = "protocol error: unable to parse reason field"
ERR_REASON_NOT_OBJECT = "protocol error: reason field is not an object"
ERR_SUCCESS_NOT_BOOL = "protocol error: success field not a boolean"
ERR_DATA_NOT_MESSAGE = "protocol error: data field does not contain a message"


@dataclass(frozen=True)
class Success:
    """The call ran and returned data (any JSON value)."""
    data: Any = None
    success: ClassVar[bool] = True

    def to_dict(self) -> Dict[str, Any]:
        return {'success': True, 'data': self.data}


@dataclass(frozen=True)
class Failure:
    """The call ran (or the connection closed) and failed with a message."""
    message: str
    success: ClassVar[bool] = False

    def to_dict(self) -> Dict[str, Any]:
        return {'success': False, 'data': self.message}


Result = Union[Success, Failure]


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON
    raise ValueError(f"invalid JSON constant {name}")


def interpret_close(code: int, reason: str) -> Result:
    """
    Turn the close code and reason of a finished connection into a Result.

    Any close code other than a normal closure is a failure carrying the
    reason verbatim. A normal closure carries a JSON object in the reason:
    {"success": true, "data": <any>} or {"success": false, "data": "<message>"}.
    """
    if code != NORMAL_CLOSURE:
        return Failure(reason)

    try:
        parsed = json.loads(reason, parse_constant=_reject_constant)
    except ValueError:
        return Failure(ERR_UNPARSABLE_REASON)

    if not isinstance(parsed, dict):
        return Failure(ERR_REASON_NOT_OBJECT)

    success = parsed.get('success')
    data = parsed.get('data')

    if not isinstance(success, bool):
        return Failure(ERR_SUCCESS_NOT_BOOL)

    if success is False:
        if not isinstance(data, str):
            return Failure(ERR_DATA_NOT_MESSAGE)
        return Failure(data)

    return Success(data)


T = TypeVar("T")


class OneShot(Generic[T]):
    """
    Single-resolution result channel: produced once (value or error), observed once.

    Producing or observing a second time raises RuntimeError.
    """

    def __init__(self) -> None:
        self._future: Optional[asyncio.Future] = None
        self._settled = False
        self._observed = False

    def _ensure_future(self) -> asyncio.Future:
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
        return self._future

    @property
    def settled(self) -> bool:
        return self._settled

    def resolve(self, value: T) -> None:
        if self._settled:
            raise RuntimeError("result already settled")
        self._settled = True
        self._ensure_future().set_result(value)

    def reject(self, error: BaseException) -> None:
        if self._settled:
            raise RuntimeError("result already settled")
        self._settled = True
        self._ensure_future().set_exception(error)

    async def wait(self) -> T:
        if self._observed:
            raise RuntimeError("result already observed")
        self._observed = True
        return await self._ensure_future()
