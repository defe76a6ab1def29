import asyncio

import pytest

from skill_devkit.core.stream import ArrayStream, DeviceStream


@pytest.mark.asyncio
async def test_items_are_delivered_in_order_until_end():
    stream: DeviceStream[int] = DeviceStream()
    stream.push(1)
    stream.push(2)
    stream.end()
    stream.push(3)

    assert [item async for item in stream] == [1, 2]


@pytest.mark.asyncio
async def test_reader_waits_for_pushed_items():
    stream: DeviceStream[str] = DeviceStream()

    async def produce():
        await asyncio.sleep(0.01)
        stream.push("late")

    producer = asyncio.create_task(produce())
    item = await asyncio.wait_for(stream.__anext__(), timeout=1.0)
    await producer

    assert item == "late"


@pytest.mark.asyncio
async def test_failure_is_raised_once_and_stream_continues():
    stream: DeviceStream[str] = DeviceStream()
    errors = []
    stream.add_listener("error", errors.append)

    failure = RuntimeError("poll failed")
    stream.push("before")
    stream.fail(failure)
    stream.push("after")

    assert await stream.__anext__() == "before"
    with pytest.raises(RuntimeError, match="poll failed"):
        await stream.__anext__()
    assert await stream.__anext__() == "after"
    assert errors == [failure]


@pytest.mark.asyncio
async def test_array_stream_yields_all_records():
    stream = ArrayStream([{"a": 1}, {"a": 2}])

    assert [item async for item in stream] == [{"a": 1}, {"a": 2}]


def test_destroy_is_idempotent():
    stream: DeviceStream[int] = DeviceStream()
    stream.destroy()
    stream.destroy()

    assert stream.destroyed


def test_data_listener_starts_the_stream():
    received = []
    stream = ArrayStream([{"a": 1}, {"a": 2}])

    stream.add_listener("data", received.append)

    assert received == [{"a": 1}, {"a": 2}]
