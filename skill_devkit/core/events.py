"""Minimal listener registry used by object sets, streams and devices."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from typing import Any, Callable, Dict, List

LOGGER = logging.getLogger(__name__)

Listener = Callable[..., Any]


class Observable:
    """Dispatches named events to registered callbacks.

    Callbacks run synchronously in registration order. A coroutine
    returned by a callback is scheduled on the running loop.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}

    def add_listener(self, event: str, callback: Listener) -> None:
        callbacks = self._listeners.setdefault(event, [])
        if callback in callbacks:
            raise ValueError("Callback already registered")
        callbacks.append(callback)

    def remove_listener(self, event: str, callback: Listener) -> None:
        with contextlib.suppress(ValueError, KeyError):
            self._listeners[event].remove(callback)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners.get(event, ())):
            try:
                result = callback(*args)
                if inspect.iscoroutine(result):
                    asyncio.get_running_loop().create_task(result)
            except Exception:
                LOGGER.exception("Listener for %s failed", event)

