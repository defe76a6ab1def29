"""Derive normalized device metadata from a class manifest."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Tuple

from .device import DeviceMetadata
from .manifest import MISSING, ClassManifest

OAUTH2_MODULE = "org.thingpedia.config.oauth2"
CUSTOM_OAUTH_MODULE = "org.thingpedia.config.custom_oauth"
BASIC_AUTH_MODULE = "org.thingpedia.config.basic_auth"
FORM_MODULE = "org.thingpedia.config.form"
NONE_MODULE = "org.thingpedia.config.none"
BUILTIN_MODULE = "org.thingpedia.config.builtin"
INTERACTIVE_MODULE = "org.thingpedia.config.interactive"
BLUETOOTH_MODULE = "org.thingpedia.config.discovery.bluetooth"
UPNP_MODULE = "org.thingpedia.config.discovery.upnp"

_AUTH_TYPES = {
    OAUTH2_MODULE: "oauth2",
    CUSTOM_OAUTH_MODULE: "custom_oauth",
    BASIC_AUTH_MODULE: "basic",
    BLUETOOTH_MODULE: "discovery",
    UPNP_MODULE: "discovery",
    INTERACTIVE_MODULE: "interactive",
    BUILTIN_MODULE: "builtin",
}
_DISCOVERY_TYPES = {
    BLUETOOTH_MODULE: "bluetooth",
    UPNP_MODULE: "upnp",
}


def get_params(manifest: ClassManifest) -> Dict[str, Any]:
    """Names of the configuration form fields, each mapped to ``None``."""

    params: Dict[str, Any] = {}
    config = manifest.config
    if manifest.is_abstract or config is None:
        return params

    if config.module in (FORM_MODULE, BASIC_AUTH_MODULE) and len(config.in_params) == 1:
        _name, arg_map = config.in_params[0]
        if isinstance(arg_map, Mapping):
            for name in arg_map:
                params[name] = None
    return params


def _upnp_type(search_target: str) -> str:
    return "upnp-" + re.sub(r"^urn:", "", search_target.lower()).replace(":", "-")


def get_auth(manifest: ClassManifest) -> Tuple[Dict[str, Any], List[str]]:
    """Return the ``auth`` metadata and the extra discovery types of a class."""

    auth: Dict[str, Any] = {"type": "none"}
    extra_types: List[str] = []
    config = manifest.config
    if manifest.is_abstract or config is None:
        return auth, extra_types

    for name, value in config.in_params:
        if isinstance(value, Mapping):
            continue
        if name == "device_class":
            extra_types.append(f"bluetooth-class-{value}")
        elif name == "uuids":
            extra_types.extend(f"bluetooth-uuid-{uuid.lower()}" for uuid in value)
        elif name == "search_target":
            extra_types.extend(_upnp_type(target) for target in value)
        else:
            auth[name] = None if value is MISSING else value

    if config.module in _AUTH_TYPES:
        auth["type"] = _AUTH_TYPES[config.module]
    if config.module in _DISCOVERY_TYPES:
        auth["discoveryType"] = _DISCOVERY_TYPES[config.module]
    return auth, extra_types


def get_category(manifest: ClassManifest) -> str:
    if manifest.implementation_annotation("system"):
        return "system"
    config = manifest.config
    if config is None:
        return "data"
    if config.module in (BUILTIN_MODULE, NONE_MODULE, FORM_MODULE):
        return "data"
    if config.module in (BLUETOOTH_MODULE, UPNP_MODULE):
        return "physical"
    return "online"


def make_base_device_metadata(manifest: ClassManifest) -> DeviceMetadata:
    auth, extra_types = get_auth(manifest)
    return DeviceMetadata(
        kind=manifest.kind,
        version=manifest.version,
        name=manifest.name,
        description=manifest.description,
        types=list(manifest.extends) + extra_types,
        category=get_category(manifest),
        auth=auth,
        params=get_params(manifest),
    )
