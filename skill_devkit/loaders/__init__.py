"""Module loaders, keyed by the module name of a ``loader`` declaration."""

from __future__ import annotations

from typing import Dict, Type

from .base import BaseLoader, install_base, make_generic_device_class
from .generic import DeclarativeLoader, GenericRestLoader
from .proxy import ProxyLoader
from .python import BuiltinLoader, OnDiskLoader, PreloadedLoader, PythonModuleLoader
from .rss import RssLoader
from .unsupported import UnsupportedBuiltinLoader

BUILTIN_LOADER = "org.thingpedia.builtin"
UNSUPPORTED_LOADER = "org.thingpedia.builtin.unsupported"
PROXY_LOADER = "org.thingpedia.proxied"

LOADERS: Dict[str, Type[BaseLoader]] = {
    BUILTIN_LOADER: BuiltinLoader,
    UNSUPPORTED_LOADER: UnsupportedBuiltinLoader,
    PROXY_LOADER: ProxyLoader,
    "org.thingpedia.v2": OnDiskLoader,
    "org.thingpedia.rss": RssLoader,
    "org.thingpedia.generic_rest.v1": GenericRestLoader,
}

__all__ = [
    "BUILTIN_LOADER",
    "BaseLoader",
    "BuiltinLoader",
    "DeclarativeLoader",
    "GenericRestLoader",
    "LOADERS",
    "OnDiskLoader",
    "PROXY_LOADER",
    "PreloadedLoader",
    "ProxyLoader",
    "PythonModuleLoader",
    "RssLoader",
    "UNSUPPORTED_LOADER",
    "UnsupportedBuiltinLoader",
    "install_base",
    "make_generic_device_class",
]
