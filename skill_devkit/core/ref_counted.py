"""Reference-counted open/close lifecycle."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from ..errors import BookkeepingError

LOGGER = logging.getLogger(__name__)


class LifecycleState(Enum):
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"


class RefCounted:
    """Base class for an object whose underlying resource is shared by several users.

    The object starts with a use count of 0; ``open()`` must be called before
    use. The ``_do_open`` hook runs when the count goes from 0 to 1 and
    ``_do_close`` when it goes back to 0.

    Transitions are serialised by a single lock: an ``open()`` issued while a
    close is in flight waits for the close to finish and then opens the
    resource again, and a ``close()`` issued while an open is in flight waits
    for the open. At most one hook body executes at any time.

    Thread-safety: This class is NOT thread-safe. All calls should occur
    on the same event loop thread.
    """

    def __init__(self) -> None:
        self._use_count = 0
        self._state = LifecycleState.CLOSED
        self._transition_lock = asyncio.Lock()

    @property
    def use_count(self) -> int:
        return self._use_count

    @property
    def state(self) -> LifecycleState:
        return self._state

    async def _do_open(self) -> None:
        """Acquire the underlying resource. Called on the 0 -> 1 transition."""

    async def _do_close(self) -> None:
        """Release the underlying resource. Called on the 1 -> 0 transition."""

    async def open(self) -> None:
        """Obtain a reference, initializing the resource if this is the first one."""

        async with self._transition_lock:
            self._use_count += 1
            if self._use_count > 1:
                return

            if self._state is not LifecycleState.CLOSED:
                raise BookkeepingError(
                    f"open hook invoked in state {self._state.value}"
                )

            LOGGER.debug("Opening %s", type(self).__name__)
            self._state = LifecycleState.OPENING
            try:
                await self._do_open()
            except BaseException:
                self._use_count -= 1
                self._state = LifecycleState.CLOSED
                raise
            self._state = LifecycleState.OPEN

    async def close(self) -> None:
        """Release a reference, closing the resource when no users remain."""

        async with self._transition_lock:
            if self._use_count <= 0:
                raise BookkeepingError("invalid close: use count is already 0")

            self._use_count -= 1
            if self._use_count > 0:
                return

            if self._state is not LifecycleState.OPEN:
                raise BookkeepingError(
                    f"close hook invoked in state {self._state.value}"
                )

            LOGGER.debug("Closing %s", type(self).__name__)
            self._state = LifecycleState.CLOSING
            try:
                await self._do_close()
            finally:
                self._state = LifecycleState.CLOSED
