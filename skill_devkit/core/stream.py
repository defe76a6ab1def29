"""Push-style result streams returned by ``subscribe_*`` methods."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict, Generic, Optional, Tuple, TypeVar

from .events import Observable

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_ITEM = "item"
_ERROR = "error"
_END = "end"


class DeviceStream(Observable, Generic[T]):
    """An async-iterable sequence of events.

    Producers call :meth:`push`, :meth:`fail` and :meth:`end`. Consumers
    iterate with ``async for`` or ``await anext(stream)``. A failure is a
    stream-level error event: it is raised from the next read, after any
    items pushed before it, and the stream stays usable afterwards. Error
    listeners registered with ``add_listener("error", cb)`` receive it too.

    Subclasses override :meth:`_start_reading` to begin producing when the
    first read happens or the first ``data`` listener is attached. Items
    pushed while only listeners consume the stream are not buffered.
    """

    def __init__(self) -> None:
        super().__init__()
        self._buffer: Deque[Tuple[str, Any]] = deque()
        self._waiter: Optional[asyncio.Future[None]] = None
        self._reading = False
        self._flowing = False
        self._iterating = False
        self._ended = False
        self._destroyed = False

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def _start_reading(self) -> None:
        """Hook invoked on the first read or when the first ``data`` listener is added."""

    def _begin(self) -> None:
        if not self._reading:
            self._reading = True
            self._start_reading()

    def add_listener(self, event: str, callback: Any) -> None:
        super().add_listener(event, callback)
        if event == "data":
            self._flowing = True
            self._begin()

    def _wake(self) -> None:
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_result(None)

    def push(self, item: T) -> None:
        if self._ended:
            return
        # items delivered to data listeners are not kept for iteration
        if not self._flowing or self._iterating:
            self._buffer.append((_ITEM, item))
        self.emit("data", item)
        self._wake()

    def fail(self, error: BaseException) -> None:
        if self._ended:
            return
        if self.listener_count("error"):
            self.emit("error", error)
        self._buffer.append((_ERROR, error))
        self._wake()

    def end(self) -> None:
        if self._ended:
            return
        self._buffer.append((_END, None))
        self._ended = True
        self._wake()

    def destroy(self) -> None:
        """Stop producing new events. Idempotent."""
        self._destroyed = True

    def __aiter__(self) -> "DeviceStream[T]":
        return self

    async def __anext__(self) -> T:
        self._iterating = True
        self._begin()

        while not self._buffer:
            loop = asyncio.get_running_loop()
            self._waiter = loop.create_future()
            try:
                await self._waiter
            finally:
                self._waiter = None

        kind, value = self._buffer.popleft()
        if kind == _END:
            self._buffer.appendleft((kind, value))
            raise StopAsyncIteration
        if kind == _ERROR:
            raise value
        return value


class ArrayStream(DeviceStream[Dict[str, Any]]):
    """A finite stream over a precomputed list of records."""

    def __init__(self, items: Any) -> None:
        super().__init__()
        self._items = list(items)

    def _start_reading(self) -> None:
        for item in self._items:
            self.push(item)
        self.end()
