import asyncio

import pytest

from pow_client.result import (
    ERR_DATA_NOT_MESSAGE,
    ERR_REASON_NOT_OBJECT,
    ERR_SUCCESS_NOT_BOOL,
    ERR_UNPARSABLE_REASON,
    Failure,
    OneShot,
    Success,
    interpret_close,
)


@pytest.mark.parametrize("code,reason,expected", [
    (1000, '{"success":true,"data":42}', Success(42)),
    (1000, '{"success":true,"data":{"lines":["a","b"]}}', Success({"lines": ["a", "b"]})),
    (1000, '{"success":true}', Success(None)),
    (1000, '{"success":false,"data":"bad params"}', Failure("bad params")),
    (1000, "not-json", Failure(ERR_UNPARSABLE_REASON)),
    (1000, "", Failure(ERR_UNPARSABLE_REASON)),
    (1000, "NaN", Failure(ERR_UNPARSABLE_REASON)),
    (1000, '"42"', Failure(ERR_REASON_NOT_OBJECT)),
    (1000, "null", Failure(ERR_REASON_NOT_OBJECT)),
    (1000, "[true]", Failure(ERR_REASON_NOT_OBJECT)),
    (1000, '{"success":"yes"}', Failure(ERR_SUCCESS_NOT_BOOL)),
    (1000, '{"data":1}', Failure(ERR_SUCCESS_NOT_BOOL)),
    (1000, '{"success":1,"data":1}', Failure(ERR_SUCCESS_NOT_BOOL)),
    (1000, '{"success":false,"data":7}', Failure(ERR_DATA_NOT_MESSAGE)),
    (1000, '{"success":false}', Failure(ERR_DATA_NOT_MESSAGE)),
    (1006, "connection reset", Failure("connection reset")),
    (1011, '{"success":true,"data":42}', Failure('{"success":true,"data":42}')),
    (4000, "", Failure("")),
])
def test_interpret_close(code, reason, expected):
    assert interpret_close(code, reason) == expected


def test_result_shapes():
    assert Success(1).success is True
    assert Failure("no").success is False
    assert Success([1]).to_dict() == {"success": True, "data": [1]}
    assert Failure("no").to_dict() == {"success": False, "data": "no"}


def test_diagnostic_strings_are_stable():
    assert ERR_UNPARSABLE_REASON == "protocol error: unable to parse reason field"
    assert ERR_REASON_NOT_OBJECT == "protocol error: reason field is not an object"
    assert ERR_SUCCESS_NOT_BOOL == "protocol error: success field not a boolean"
    assert ERR_DATA_NOT_MESSAGE == "protocol error: data field does not contain a message"


@pytest.mark.asyncio
async def test_oneshot_resolves_once():
    channel = OneShot()
    assert channel.settled is False

    channel.resolve(Success(1))
    assert channel.settled is True
    with pytest.raises(RuntimeError):
        channel.resolve(Success(2))
    with pytest.raises(RuntimeError):
        channel.reject(ValueError("late"))

    assert await channel.wait() == Success(1)
    with pytest.raises(RuntimeError):
        await channel.wait()


@pytest.mark.asyncio
async def test_oneshot_reject_is_raised_to_the_observer():
    channel = OneShot()
    waiter = asyncio.create_task(channel.wait())
    await asyncio.sleep(0)

    channel.reject(ConnectionError("gone"))
    with pytest.raises(ConnectionError):
        await waiter
