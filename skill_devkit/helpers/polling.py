"""Turn a periodic poll callback into a timestamped push stream."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Protocol, Union

from ..constants import LAST_POLL_KEY
from ..core.stream import DeviceStream

LOGGER = logging.getLogger(__name__)

PollResult = Iterable[Dict[str, Any]]
PollCallback = Callable[[], Union[PollResult, Awaitable[PollResult]]]


class StateBinder(Protocol):
    """Persisted per-subscription state, owned by the host engine."""

    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryStateBinder:
    """Dict-backed :class:`StateBinder`."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._state: Dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any:
        return self._state.get(key)

    def set(self, key: str, value: Any) -> None:
        self._state[key] = value


def now_ms() -> int:
    return int(time.time() * 1000)


def next_poll_delay(last_poll: Optional[float], interval: float, now: float) -> float:
    """Milliseconds until the next poll.

    The cadence is anchored on the last poll timestamp, not on when the
    previous callback finished: ``max(1, last_poll + interval - now)``. With
    no previous poll the stream fires right away.
    """
    if last_poll is None:
        next_poll = now
    else:
        next_poll = last_poll + interval
    return max(1, next_poll - now)


class PollingStream(DeviceStream[Dict[str, Any]]):
    """A stream that calls ``callback`` every ``interval`` milliseconds.

    Each item produced by a poll is tagged with ``__timestamp``, the time
    (ms since epoch) at which that poll fired, which is also stored in the
    state binder under ``last-poll``. At most one callback runs at a time:
    the next poll is armed only after the current one settles, whether it
    succeeded or failed.

    Destroying the stream cancels the pending timer. A callback already in
    flight is not cancelled; its results are pushed to a stream that nobody
    reads any more.
    """

    def __init__(
        self,
        state: StateBinder,
        interval: float,
        callback: PollCallback,
        *,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        super().__init__()
        self.state = state
        self.interval = interval
        self._callback = callback
        self._clock = clock or now_ms
        self._timer: Optional[asyncio.TimerHandle] = None
        self._poll_task: Optional[asyncio.Task[None]] = None

    @property
    def scheduled(self) -> bool:
        return self._timer is not None

    def destroy(self) -> None:
        if self._destroyed:
            return
        super().destroy()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _start_reading(self) -> None:
        if self._timer is None and self._poll_task is None:
            self._arm()

    def _arm(self) -> None:
        if self._destroyed:
            return
        delay = next_poll_delay(self.state.get(LAST_POLL_KEY), self.interval, self._clock())
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay / 1000.0, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if self._destroyed:
            return
        timestamp = self._clock()
        self.state.set(LAST_POLL_KEY, timestamp)
        self._poll_task = asyncio.get_running_loop().create_task(self._poll(timestamp))

    async def _poll(self, timestamp: float) -> None:
        try:
            results = self._callback()
            if inspect.isawaitable(results):
                results = await results
            if hasattr(results, "__aiter__"):
                results = [item async for item in results]
            for item in results:
                item["__timestamp"] = timestamp
                self.push(item)
        except Exception as exc:
            LOGGER.warning("Poll callback failed: %s", exc)
            self.fail(exc)
        finally:
            self._poll_task = None
            self._arm()
