"""Wrap device implementations so they honour the calling conventions.

Actions are ``do_<name>(params, env=None)`` coroutines, queries are
``get_<name>(params, hints=None, env=None)`` coroutines resolving to an
iterable of records, and subscriptions are synchronous
``subscribe_<name>(params, state, hints=None, env=None)`` calls returning a
:class:`~skill_devkit.core.stream.DeviceStream`.
"""

from __future__ import annotations

import functools
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional, Type, TypeVar

from .core.stream import DeviceStream
from .errors import ImplementationError, NotMonitorableError
from .helpers.polling import PollingStream
from .manifest import ClassManifest, get_poll_interval, iterate_functions

if TYPE_CHECKING:
    from .device import BaseDevice

LOGGER = logging.getLogger(__name__)

DeviceClass = TypeVar("DeviceClass", bound="Type[BaseDevice]")


class FunctionKind(str, Enum):
    ACTION = "action"
    QUERY = "query"
    SUBSCRIBE = "subscribe"
    HISTORY = "history"
    SEQUENCE = "sequence"


_PREFIXES = {
    FunctionKind.ACTION: "do_",
    FunctionKind.QUERY: "get_",
    FunctionKind.SUBSCRIBE: "subscribe_",
    FunctionKind.HISTORY: "history_",
    FunctionKind.SEQUENCE: "sequence_",
}


@dataclass(frozen=True, slots=True)
class FunctionEntry:
    """One callable exposed by a device class."""

    name: str
    kind: FunctionKind
    handler: str  # attribute name on the device

    def bind(self, device: "BaseDevice") -> Callable[..., Any]:
        return getattr(device, self.handler)


def attribute_name(kind: FunctionKind, name: str) -> str:
    return _PREFIXES[kind] + name


def _is_iterable_result(result: Any) -> bool:
    if result is None or isinstance(result, (str, bytes, Mapping)):
        return False
    return hasattr(result, "__iter__") or hasattr(result, "__aiter__")


def safe_wrap_action(action: Callable[..., Any]) -> Callable[..., Any]:
    """Make ``action`` a coroutine function whose failures surface on await."""

    @functools.wraps(action)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        result = action(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    return wrapper


def safe_wrap_query(query: Callable[..., Any], name: str) -> Callable[..., Any]:
    """Make ``query`` a coroutine function that rejects non-iterable results."""

    @functools.wraps(query)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        result = query(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        if not _is_iterable_result(result):
            raise ImplementationError(
                f"The query {name} must return an async-iterable or iterable object (eg. a list), got {result!r}"
            )
        return result

    return wrapper


def safe_wrap_subscribe(subscribe: Callable[..., Any], name: str) -> Callable[..., Any]:
    """Check synchronously that ``subscribe`` returns a stream handle.

    An awaitable is rejected: the caller attaches listeners to the returned
    stream straight away.
    """

    @functools.wraps(subscribe)
    def wrapper(*args: Any, **kwargs: Any) -> DeviceStream[Any]:
        result = subscribe(*args, **kwargs)
        if not isinstance(result, DeviceStream):
            if inspect.iscoroutine(result):
                result.close()
            raise ImplementationError(
                f"The subscribe function for {name} must return a DeviceStream, got {result!r}"
            )
        return result

    return wrapper


def make_polling_subscribe(query: str, interval: int) -> Callable[..., DeviceStream[Any]]:
    """Build a ``subscribe_<query>`` that polls ``get_<query>`` every ``interval`` ms."""

    getter_name = attribute_name(FunctionKind.QUERY, query)

    def subscribe(
        self: "BaseDevice",
        params: Mapping[str, Any],
        state: Any,
        hints: Any = None,
        env: Any = None,
    ) -> DeviceStream[Any]:
        getter = getattr(self, getter_name)
        return PollingStream(state, interval, lambda: getter(params, hints, env))

    subscribe.__name__ = attribute_name(FunctionKind.SUBSCRIBE, query)
    return subscribe


def make_unmonitorable_subscribe() -> Callable[..., DeviceStream[Any]]:
    def subscribe(self: "BaseDevice", *args: Any, **kwargs: Any) -> DeviceStream[Any]:
        raise NotMonitorableError()

    return subscribe


async def _not_supported(self: "BaseDevice", *args: Any, **kwargs: Any) -> None:
    return None


def _has_function(device_class: type, attribute: str) -> bool:
    return callable(getattr(device_class, attribute, None))


def build_function_table(
    device_class: type,
    manifest: ClassManifest,
    parents: Mapping[str, ClassManifest],
) -> Dict[str, FunctionEntry]:
    """List the callables of ``device_class``, keyed by attribute name."""

    table: Dict[str, FunctionEntry] = {}

    def add(kind: FunctionKind, name: str, handler: Optional[str] = None) -> None:
        attribute = handler or attribute_name(kind, name)
        if _has_function(device_class, attribute):
            table[attribute_name(kind, name)] = FunctionEntry(name, kind, attribute)

    for action, _fndef in iterate_functions(manifest, "actions", parents):
        add(FunctionKind.ACTION, action)

    for query, fndef in iterate_functions(manifest, "queries", parents):
        if fndef.annotation("handle_thingtalk"):
            add(FunctionKind.QUERY, query, "query")
            if fndef.is_monitorable:
                add(FunctionKind.SUBSCRIBE, query, "subscribe")
            continue
        add(FunctionKind.QUERY, query)
        add(FunctionKind.SUBSCRIBE, query)
        add(FunctionKind.HISTORY, query)
        add(FunctionKind.SEQUENCE, query)

    return table


def wrap_device_functions(
    device_class: DeviceClass,
    manifest: ClassManifest,
    parents: Mapping[str, ClassManifest],
) -> DeviceClass:
    """Return a subclass of ``device_class`` with every declared function wrapped.

    Raises :class:`ImplementationError` when a declared action or query has
    no implementation, or when a query with a poll interval of 0 has no
    subscribe function.
    """

    namespace: Dict[str, Any] = {"__module__": device_class.__module__}

    for action, _fndef in iterate_functions(manifest, "actions", parents):
        attribute = attribute_name(FunctionKind.ACTION, action)
        if not _has_function(device_class, attribute):
            raise ImplementationError(f"Implementation for action {action} missing")
        namespace[attribute] = safe_wrap_action(getattr(device_class, attribute))

    for query, fndef in iterate_functions(manifest, "queries", parents):
        if fndef.annotation("handle_thingtalk"):
            if not _has_function(device_class, "query"):
                raise ImplementationError(
                    "Implementation for the query function to handle ThingTalk is missing"
                )
            if fndef.is_monitorable and not _has_function(device_class, "subscribe"):
                raise ImplementationError(
                    "Implementation for the subscribe function to handle ThingTalk is missing"
                )
            continue

        interval = get_poll_interval(fndef)
        getter = attribute_name(FunctionKind.QUERY, query)
        subscriber = attribute_name(FunctionKind.SUBSCRIBE, query)
        has_subscribe = _has_function(device_class, subscriber)

        if interval == 0 and not has_subscribe:
            raise ImplementationError(
                f"Poll interval is 0 but no subscribe function was found for {query}"
            )
        if not _has_function(device_class, getter):
            raise ImplementationError(f"Implementation for query {query} missing")

        namespace[getter] = safe_wrap_query(getattr(device_class, getter), query)
        if has_subscribe:
            namespace[subscriber] = safe_wrap_subscribe(getattr(device_class, subscriber), query)
        elif interval > 0:
            namespace[subscriber] = make_polling_subscribe(query, interval)
        else:
            namespace[subscriber] = make_unmonitorable_subscribe()

        for kind in (FunctionKind.HISTORY, FunctionKind.SEQUENCE):
            attribute = attribute_name(kind, query)
            if not _has_function(device_class, attribute):
                namespace[attribute] = _not_supported

    wrapped = type(device_class.__name__, (device_class,), namespace)
    wrapped.__qualname__ = device_class.__qualname__
    wrapped.function_table = build_function_table(wrapped, manifest, parents)
    LOGGER.debug(
        "Wrapped %d functions for %s", len(wrapped.function_table), manifest.kind
    )
    return wrapped
