"""Shared loader interface and helpers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional, Tuple, Type

from ..compat import FORM_MODULE, OAUTH2_MODULE, make_base_device_metadata
from ..core.utils import find_mixin_arg
from ..device import Availability, BaseDevice, DeviceState, Engine
from ..manifest import ClassManifest, FunctionDef, iterate_functions
from ..mixins import BaseConfigMixin, get_config_mixin

if TYPE_CHECKING:
    from ..registry import ModuleRegistry

LOGGER = logging.getLogger(__name__)

Parents = Mapping[str, ClassManifest]


class BaseLoader(ABC):
    """Turns a manifest into a ready-to-instantiate device class."""

    def __init__(
        self,
        kind: str,
        manifest: ClassManifest,
        parents: Optional[Parents] = None,
        registry: Optional["ModuleRegistry"] = None,
    ) -> None:
        self._id = kind
        self._manifest = manifest
        self._parents: Dict[str, ClassManifest] = dict(parents or {})
        self._registry = registry
        self._config = get_config_mixin(manifest)

    @property
    def id(self) -> str:
        return self._id

    @property
    def manifest(self) -> ClassManifest:
        return self._manifest

    @property
    def parents(self) -> Dict[str, ClassManifest]:
        return self._parents

    @property
    def version(self) -> int:
        return self._manifest.version

    @property
    def config(self) -> Optional[BaseConfigMixin]:
        return self._config

    def iterate_functions(self, ftype: str) -> Iterator[Tuple[str, FunctionDef]]:
        return iterate_functions(self._manifest, ftype, self._parents)

    def clear_cache(self) -> None:
        """Drop any cached device class so the next load starts over."""

    @abstractmethod
    async def get_device_class(self) -> Type[BaseDevice]:
        """Return the device class, loading it on first use."""


def install_base(
    device_class: Type[BaseDevice],
    manifest: ClassManifest,
    config: Optional[BaseConfigMixin],
) -> Type[BaseDevice]:
    """Apply the config mixin and attach the manifest and normalized metadata."""

    if config is not None:
        device_class = config.install(device_class)
    installed = type(
        device_class.__name__,
        (device_class,),
        {
            "__module__": device_class.__module__,
            "manifest": manifest,
            "metadata": make_base_device_metadata(manifest),
        },
    )
    installed.__qualname__ = device_class.__qualname__
    return installed


def _generic_param_names(config: Optional[BaseConfigMixin]) -> List[str]:
    if config is None or config.mixin is None:
        return []
    if config.module == FORM_MODULE:
        return list(find_mixin_arg(config.mixin, "params") or {})
    if config.module == OAUTH2_MODULE:
        return list(find_mixin_arg(config.mixin, "profile") or [])
    return []


def make_generic_device_class(
    manifest: ClassManifest,
    config: Optional[BaseConfigMixin],
    namespace: Optional[Mapping[str, Any]] = None,
) -> Type[BaseDevice]:
    """Create the device class used by the declarative loaders.

    ``namespace`` supplies the generated ``do_*``/``get_*``/``subscribe_*``
    methods.
    """

    param_names = _generic_param_names(config)

    def __init__(self: BaseDevice, engine: Engine, state: DeviceState) -> None:
        BaseDevice.__init__(self, engine, state)
        self.params = [state.get(name) for name in param_names]

    async def check_available(self: BaseDevice) -> Availability:
        return Availability.AVAILABLE

    body: Dict[str, Any] = {
        "__module__": __name__,
        "__init__": __init__,
        "check_available": check_available,
    }
    body.update(namespace or {})
    return type("GenericDevice", (BaseDevice,), body)
