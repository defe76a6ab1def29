"""Configuration mixins keyed by the module name of a ``config`` declaration."""

from __future__ import annotations

from typing import Dict, Optional, Type

from ..manifest import ClassManifest
from .base import BaseConfigMixin
from .basic_auth import BasicAuthConfigMixin
from .oauth2 import OAuth2ConfigMixin

MIXINS: Dict[str, Type[BaseConfigMixin]] = {
    "org.thingpedia.config.oauth2": OAuth2ConfigMixin,
    "org.thingpedia.config.basic_auth": BasicAuthConfigMixin,
}


def get_config_mixin(manifest: ClassManifest) -> Optional[BaseConfigMixin]:
    """Select the mixin for ``manifest``; abstract classes have none."""

    if manifest.is_abstract:
        return None
    module = manifest.config.module if manifest.config is not None else None
    mixin_class = MIXINS.get(module or "", BaseConfigMixin)
    return mixin_class(manifest)


__all__ = [
    "BaseConfigMixin",
    "BasicAuthConfigMixin",
    "MIXINS",
    "OAuth2ConfigMixin",
    "get_config_mixin",
]
