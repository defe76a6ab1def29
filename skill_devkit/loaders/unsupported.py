"""Placeholder for builtin classes that this installation does not provide."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional, Type

from ..device import Availability, BaseDevice, DeviceState, Engine
from ..errors import UnsupportedError
from ..manifest import ClassManifest
from ..wrapping import build_function_table
from .base import BaseLoader, Parents, install_base

if TYPE_CHECKING:
    from ..registry import ModuleRegistry


class UnsupportedDevice(BaseDevice):
    def __init__(self, engine: Engine, state: DeviceState) -> None:
        super().__init__(engine, state)
        self.unique_id = self.kind

    async def check_available(self) -> Availability:
        return Availability.OWNER_UNAVAILABLE


async def _unsupported(self: BaseDevice, *args: Any, **kwargs: Any) -> Any:
    raise UnsupportedError()


def _unsupported_subscribe(self: BaseDevice, *args: Any, **kwargs: Any) -> Any:
    raise UnsupportedError()


class UnsupportedBuiltinLoader(BaseLoader):
    """Every function raises :class:`UnsupportedError`; the version is always 0."""

    def __init__(
        self,
        kind: str,
        manifest: ClassManifest,
        parents: Optional[Parents] = None,
        registry: Optional["ModuleRegistry"] = None,
    ) -> None:
        super().__init__(kind, manifest.with_annotations(version=0), parents, registry)
        self._config = None

        namespace: Dict[str, Any] = {"__module__": __name__}
        for action in self._manifest.actions:
            namespace["do_" + action] = _unsupported
        for query in self._manifest.queries:
            namespace["get_" + query] = _unsupported
            namespace["subscribe_" + query] = _unsupported_subscribe

        device_class = type("UnsupportedDevice", (UnsupportedDevice,), namespace)
        self._loaded: Type[BaseDevice] = install_base(device_class, self._manifest, None)
        self._loaded.function_table = build_function_table(self._loaded, self._manifest, {})

    async def get_device_class(self) -> Type[BaseDevice]:
        return self._loaded
