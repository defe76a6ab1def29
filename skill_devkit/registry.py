"""Per-kind cache of module loaders."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type

from .client import ApiClient
from .device import BaseDevice
from .errors import ImplementationError
from .loaders import BUILTIN_LOADER, LOADERS, BaseLoader, BuiltinLoader, ProxyLoader, UnsupportedBuiltinLoader
from .manifest import ClassManifest

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class BuiltinModule:
    manifest: ClassManifest
    device_class: Type[BaseDevice]


class ModuleRegistry:
    """Resolves device kinds to loaders, loading each kind at most once.

    Concurrent requests for the same kind share one load. A failed load is
    not cached, so the next request tries again.
    """

    def __init__(
        self,
        client: ApiClient,
        *,
        builtins: Optional[Mapping[str, BuiltinModule]] = None,
        module_dir: Optional[Path] = None,
    ) -> None:
        self.client = client
        self.module_dir = module_dir
        self._builtins: Dict[str, BuiltinModule] = dict(builtins or {})
        self._loaded: Dict[str, BaseLoader] = {}
        self._pending: Dict[str, "asyncio.Future[BaseLoader]"] = {}

    async def _load_manifest(self, kind: str) -> ClassManifest:
        builtin = self._builtins.get(kind)
        if builtin is not None:
            return builtin.manifest
        return await self.client.get_manifest(kind)

    async def _load_parents(self, manifest: ClassManifest, into: Dict[str, ClassManifest]) -> None:
        async def load_parent(parent: str) -> None:
            if parent in into:
                return
            parent_manifest = await self._load_manifest(parent)
            into[parent] = parent_manifest
            await self._load_parents(parent_manifest, into)

        await asyncio.gather(*(load_parent(parent) for parent in manifest.extends))

    async def load_class(self, kind: str) -> Tuple[ClassManifest, Dict[str, ClassManifest]]:
        """Return the manifest of ``kind`` and the manifests of all its ancestors."""

        manifest = await self._load_manifest(kind)
        parents: Dict[str, ClassManifest] = {}
        await self._load_parents(manifest, parents)
        return manifest, parents

    async def _do_load_module(self, kind: str) -> BaseLoader:
        manifest, parents = await self.load_class(kind)
        loader_type = manifest.loader.module if manifest.loader is not None else None

        if loader_type == BUILTIN_LOADER:
            builtin = self._builtins.get(kind)
            if builtin is not None:
                return BuiltinLoader(kind, manifest, parents, self, builtin.device_class)
            LOGGER.info("No implementation available for builtin %s", kind)
            return UnsupportedBuiltinLoader(kind, manifest, parents, self)

        loader_class = LOADERS.get(loader_type or "")
        if loader_class is None:
            raise ImplementationError(f"Unknown loader {loader_type} for {kind}")

        loader = loader_class(kind, manifest, parents, self)
        config = loader.config
        if config is not None and config.has_missing_keys():
            LOGGER.info("Loaded proxy class for %s due to missing API keys", kind)
            return ProxyLoader(kind, manifest, parents, self)

        LOGGER.info(
            "Loaded class definition for %s, loader type: %s, version: %s",
            kind,
            loader_type,
            manifest.version,
        )
        return loader

    async def get_module(self, kind: str) -> BaseLoader:
        loader = self._loaded.get(kind)
        if loader is not None:
            return loader

        pending = self._pending.get(kind)
        if pending is None:
            pending = asyncio.ensure_future(self._do_load_module(kind))
            self._pending[kind] = pending

        try:
            loader = await pending
        except Exception:
            if self._pending.get(kind) is pending:
                del self._pending[kind]
            raise

        if self._pending.get(kind) is pending:
            del self._pending[kind]
            self._loaded[kind] = loader
        return self._loaded.get(kind, loader)

    async def get_device_class(self, kind: str) -> Type[BaseDevice]:
        loader = await self.get_module(kind)
        return await loader.get_device_class()

    def inject_module(self, kind: str, loader: BaseLoader) -> None:
        """Register an already-built loader, replacing any cached one."""

        self._pending.pop(kind, None)
        self._loaded[kind] = loader

    async def update_module(self, kind: str) -> None:
        """Reload ``kind``, keeping the old loader when the version did not change."""

        old = self._loaded.pop(kind, None)
        pending = self._pending.pop(kind, None)
        if old is None and pending is not None:
            try:
                old = await pending
            except Exception as exc:
                LOGGER.debug("Previous load of %s had failed: %s", kind, exc)

        new = await self.get_module(kind)
        if old is None:
            return
        if old.version == new.version:
            self._loaded[kind] = old
        else:
            old.clear_cache()

    async def get_cached_metas(self) -> List[Dict[str, Any]]:
        for kind in list(self._pending):
            try:
                await self.get_module(kind)
            except Exception as exc:
                LOGGER.debug("Skipping %s in cached metadata: %s", kind, exc)
        return [{"name": loader.id, "version": loader.version} for loader in self._loaded.values()]
