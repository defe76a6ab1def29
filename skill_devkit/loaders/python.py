"""Loaders for device classes implemented as Python code."""

from __future__ import annotations

import asyncio
import importlib.util
import logging
import re
import sys
from abc import abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional, Type

from ..device import BaseDevice
from ..errors import ImplementationError, UnsupportedError
from ..manifest import ClassManifest
from ..wrapping import wrap_device_functions
from .base import BaseLoader, Parents, install_base

if TYPE_CHECKING:
    from ..registry import ModuleRegistry

LOGGER = logging.getLogger(__name__)

MODULE_NAMESPACE = "skill_devkit_modules"
DEVICE_CLASS_ATTRIBUTE = "DEVICE_CLASS"
VERSION_ATTRIBUTE = "THINGPEDIA_VERSION"


class PythonModuleLoader(BaseLoader):
    """Loads a hand-written device class and wraps its functions.

    Concurrent calls to :meth:`get_device_class` share one load; a failed
    load is forgotten so the next call retries.
    """

    def __init__(
        self,
        kind: str,
        manifest: ClassManifest,
        parents: Optional[Parents] = None,
        registry: Optional["ModuleRegistry"] = None,
    ) -> None:
        super().__init__(kind, manifest, parents, registry)
        self._loading: Optional[asyncio.Future[Type[BaseDevice]]] = None

    @abstractmethod
    async def _do_get_device_class(self) -> Type[BaseDevice]:
        """Produce the raw implementation and pass it to :meth:`_complete_loading`."""

    async def get_device_class(self) -> Type[BaseDevice]:
        if self._loading is None:
            self._loading = asyncio.ensure_future(self._do_get_device_class())
        loading = self._loading
        try:
            return await loading
        except Exception:
            if self._loading is loading:
                self._loading = None
            raise

    def clear_cache(self) -> None:
        self._loading = None

    async def _complete_loading(self, device_class: Type[BaseDevice]) -> Type[BaseDevice]:
        device_class = install_base(device_class, self._manifest, self._config)
        device_class = wrap_device_functions(device_class, self._manifest, self._parents)
        await self._load_children(device_class)
        return device_class

    async def _load_children(self, device_class: Type[BaseDevice]) -> None:
        child_types = self._manifest.child_types
        if not child_types:
            return
        if self._registry is None:
            LOGGER.warning("Cannot load child devices of %s without a registry", self._id)
            return

        declared = dict(device_class.subdevices or {})

        async def load_child(child_id: str) -> Optional[Type[BaseDevice]]:
            if child_id not in declared:
                LOGGER.warning(
                    "Child device %s is not declared in %s.subdevices, this will cause unexpected behavior",
                    child_id,
                    device_class.__name__,
                )
                return None
            manifest, parents = await self._registry.load_class(child_id)
            submodule = PreloadedLoader(child_id, manifest, parents, self._registry, declared[child_id])
            child_class = await submodule.get_device_class()
            self._registry.inject_module(child_id, submodule)
            return child_class

        loaded = await asyncio.gather(*(load_child(child_id) for child_id in child_types))
        subdevices: Dict[str, Type[BaseDevice]] = dict(declared)
        for child_id, child_class in zip(child_types, loaded):
            if child_class is not None:
                subdevices[child_id] = child_class
        device_class.subdevices = subdevices


class PreloadedLoader(PythonModuleLoader):
    """Wraps a device class that is already imported."""

    def __init__(
        self,
        kind: str,
        manifest: ClassManifest,
        parents: Optional[Parents],
        registry: Optional["ModuleRegistry"],
        device_class: Type[BaseDevice],
    ) -> None:
        super().__init__(kind, manifest, parents, registry)
        self._device_class = device_class

    async def _do_get_device_class(self) -> Type[BaseDevice]:
        return await self._complete_loading(self._device_class)


class BuiltinLoader(PreloadedLoader):
    """Device classes shipped with the host; their version is always 0."""

    def __init__(
        self,
        kind: str,
        manifest: ClassManifest,
        parents: Optional[Parents],
        registry: Optional["ModuleRegistry"],
        device_class: Type[BaseDevice],
    ) -> None:
        super().__init__(kind, manifest.with_annotations(version=0), parents, registry, device_class)


def _module_name(kind: str) -> str:
    return MODULE_NAMESPACE + "." + re.sub(r"\W", "_", kind)


class OnDiskLoader(PythonModuleLoader):
    """Imports ``<module_dir>/<kind>/__init__.py``.

    The package must define ``DEVICE_CLASS``. When it also defines
    ``THINGPEDIA_VERSION``, that value must match the manifest's
    ``package_version`` annotation (``version`` when absent).
    """

    def __init__(
        self,
        kind: str,
        manifest: ClassManifest,
        parents: Optional[Parents] = None,
        registry: Optional["ModuleRegistry"] = None,
        *,
        module_dir: Optional[Path] = None,
    ) -> None:
        if manifest.implementation_annotation("package_version") is None:
            manifest = manifest.with_annotations(package_version=manifest.version)
        super().__init__(kind, manifest, parents, registry)
        if module_dir is None and registry is not None:
            module_dir = registry.module_dir
        self._module_dir = module_dir
        self._module_name = _module_name(kind)

    @property
    def package_version(self) -> int:
        return int(self._manifest.implementation_annotation("package_version"))

    @property
    def module_path(self) -> Optional[Path]:
        if self._module_dir is None:
            return None
        return self._module_dir / self._id

    def clear_cache(self) -> None:
        super().clear_cache()
        prefix = self._module_name + "."
        for name in [name for name in sys.modules if name == self._module_name or name.startswith(prefix)]:
            LOGGER.debug("Evicting %s from the module cache", name)
            del sys.modules[name]

    def _import(self, module_path: Path) -> object:
        init_file = module_path / "__init__.py"
        spec = importlib.util.spec_from_file_location(
            self._module_name, init_file, submodule_search_locations=[str(module_path)]
        )
        if spec is None or spec.loader is None:
            raise ImplementationError(f"Cannot import device module at {module_path}")
        module = importlib.util.module_from_spec(spec)
        sys.modules[self._module_name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            del sys.modules[self._module_name]
            raise
        return module

    async def _do_get_device_class(self) -> Type[BaseDevice]:
        module_path = self.module_path
        if module_path is None or not (module_path / "__init__.py").is_file():
            raise UnsupportedError(
                f"Device module {self._id} is not installed and code download is not supported"
            )

        module = self._import(module_path)
        version = getattr(module, VERSION_ATTRIBUTE, None)
        if version is not None and int(version) != self.package_version:
            LOGGER.info(
                "Cached module %s is out of date (found %s, want %s)",
                self._id,
                version,
                self.package_version,
            )
            self.clear_cache()
            raise UnsupportedError(
                f"Device module {self._id} is out of date and code download is not supported"
            )

        device_class = getattr(module, DEVICE_CLASS_ATTRIBUTE, None)
        if not isinstance(device_class, type) or not issubclass(device_class, BaseDevice):
            raise ImplementationError(
                f"Module {self._id} must define {DEVICE_CLASS_ATTRIBUTE} as a BaseDevice subclass"
            )
        LOGGER.debug("Imported %s from %s", self._id, module_path)
        return await self._complete_loading(device_class)
