"""Default configuration mixin."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Type

from ..manifest import ClassManifest, MixinDecl

if TYPE_CHECKING:
    from ..device import BaseDevice


class BaseConfigMixin:
    """Applies the ``config`` declaration of a manifest to a device class.

    :meth:`install` returns the class to use in place of ``device_class``;
    the default implementation returns it unchanged.
    """

    def __init__(self, manifest: ClassManifest) -> None:
        self._manifest = manifest
        self._mixin = manifest.config

    @property
    def manifest(self) -> ClassManifest:
        return self._manifest

    @property
    def kind(self) -> str:
        return self._manifest.kind

    @property
    def mixin(self) -> Optional[MixinDecl]:
        return self._mixin

    @property
    def module(self) -> Optional[str]:
        return self._mixin.module if self._mixin is not None else None

    def has_missing_keys(self) -> bool:
        return self._mixin is not None and self._mixin.has_missing_keys()

    def install(self, device_class: Type["BaseDevice"]) -> Type["BaseDevice"]:
        return device_class
