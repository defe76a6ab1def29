"""Observable sets of uniquely identified live objects."""

from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Generic, Iterable, List, Optional, Protocol, TypeVar, Union

from .events import Observable

OBJECT_ADDED = "object-added"
OBJECT_REMOVED = "object-removed"


class Identified(Protocol):
    @property
    def unique_id(self) -> Optional[str]: ...


T = TypeVar("T", bound=Identified)


class ObjectSet(Observable, ABC, Generic[T]):
    """A set that can be monitored for additions and removals.

    Listeners registered for ``object-added`` and ``object-removed``
    receive the affected object.
    """

    def _object_added(self, obj: T) -> None:
        self.emit(OBJECT_ADDED, obj)

    def _object_removed(self, obj: T) -> None:
        self.emit(OBJECT_REMOVED, obj)

    @abstractmethod
    def values(self) -> List[T]:
        """List all objects currently in the set."""

    @abstractmethod
    async def start(self) -> None:
        """Start tracking objects, for sets whose content changes dynamically."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop tracking objects."""


class SimpleObjectSet(ObjectSet[T]):
    """ObjectSet backed by a dict keyed on ``unique_id``."""

    def __init__(self) -> None:
        super().__init__()
        self._objects: Dict[str, T] = {}

    def values(self) -> List[T]:
        return list(self._objects.values())

    def __len__(self) -> int:
        return len(self._objects)

    def __contains__(self, unique_id: object) -> bool:
        return unique_id in self._objects

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    def _store(self, obj: Optional[T]) -> None:
        if obj is None:
            return
        key = obj.unique_id
        if key in self._objects:
            return
        self._objects[key] = obj
        self._object_added(obj)

    async def add_one(self, obj: Union[T, Awaitable[Optional[T]], None]) -> None:
        """Add an object, or the result of an awaitable resolving to one.

        The first object stored under a given id wins; later additions with
        the same id, including pending ones that resolve afterwards, are
        ignored.
        """
        if obj is None:
            return
        if inspect.isawaitable(obj):
            obj = await obj
        self._store(obj)

    async def add_many(self, objs: Iterable[Union[T, Awaitable[Optional[T]], None]]) -> None:
        await asyncio.gather(*(self.add_one(obj) for obj in objs))

    def get_by_id(self, unique_id: str) -> Optional[T]:
        return self._objects.get(unique_id)

    def remove_one(self, obj: T) -> None:
        self.remove_by_id(obj.unique_id)

    def remove_by_id(self, unique_id: str) -> None:
        old = self._objects.pop(unique_id, None)
        if old is None:
            return
        self._object_removed(old)

    def remove_if(self, predicate: Callable[[T], bool]) -> List[T]:
        removed = [obj for obj in self._objects.values() if predicate(obj)]
        for obj in removed:
            del self._objects[obj.unique_id]
            self._object_removed(obj)
        return removed

    def remove_all(self) -> List[T]:
        removed = self.values()
        self._objects.clear()
        for obj in removed:
            self._object_removed(obj)
        return removed
