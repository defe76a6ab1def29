"""Core utility functions shared by the loaders."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote

from ..manifest import FunctionDef, MixinDecl
from .values import cast

_INTERPOLATION = re.compile(r"\$(?:(\$)|\{(\w+)(?::([^}]*))?\}|(\w+))")


def split_prop_chain(chain: str) -> List[str]:
    """Split a textual chain of properties separated with ``.``.

    A backslash escapes the next ``.`` or ``\\``; any other escaped
    character loses its backslash.

    Examples:
        >>> split_prop_chain("foo.bar")
        ['foo', 'bar']
        >>> split_prop_chain("foo\\\\.bar")
        ['foo.bar']
    """
    parts: List[str] = []
    buffer: List[str] = []
    escape = False

    for char in chain:
        if escape:
            buffer.append(char)
            escape = False
        elif char == "\\":
            escape = True
        elif char == ".":
            parts.append("".join(buffer))
            buffer = []
        else:
            buffer.append(char)

    parts.append("".join(buffer))
    return parts


def get_path(obj: Any, chain: str) -> Any:
    """Follow a ``.``-separated key path through dicts and lists."""
    for prop in split_prop_chain(chain):
        if obj is None:
            return None
        if isinstance(obj, list):
            obj = obj[int(prop)]
        else:
            obj = obj.get(prop)
    return obj


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _format_value(value: Any, option: Optional[str]) -> str:
    if value is None:
        return ""
    if option == "url":
        return quote(str(value), safe="")
    if option == "%" and isinstance(value, (int, float)):
        return _format_number(round(value * 100, 10))
    if option == "iso-date" and isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return _format_number(value)
    return str(value)


def format_string(
    template: str,
    device_params: Optional[Mapping[str, Any]],
    function_params: Optional[Mapping[str, Any]] = None,
) -> str:
    """Interpolate ``$name`` and ``${name[:option]}`` placeholders.

    Function parameters take precedence over device parameters; a missing
    value renders as an empty string, and ``$$`` renders a literal ``$``.
    """

    device_params = device_params or {}

    def lookup(name: str) -> Any:
        if function_params:
            value = function_params.get(name)
            if value:
                return value
        return device_params.get(name)

    def replace(match: re.Match[str]) -> str:
        if match.group(1):
            return "$"
        name = match.group(2) or match.group(4)
        return _format_value(lookup(name), match.group(3))

    return _INTERPOLATION.sub(replace, template)


def parse_generic_response(json: Any, fndef: FunctionDef) -> List[Dict[str, Any]]:
    """Map a JSON response onto the output arguments of ``fndef``."""

    def extract_one(result: Any) -> Dict[str, Any]:
        extracted: Dict[str, Any] = {}
        for arg in fndef.iterate_arguments():
            if arg.is_input:
                continue
            json_key = arg.annotations.get("json_key")
            if json_key:
                raw = get_path(result, str(json_key))
            else:
                raw = result.get(arg.name) if isinstance(result, Mapping) else None
            extracted[arg.name] = cast(raw, arg.type)
        return extracted

    json_key = fndef.annotation("json_key")
    if json_key:
        json = get_path(json, str(json_key))

    if isinstance(json, list):
        return [extract_one(item) for item in json]
    return [extract_one(json)]


def get_mixin_args(mixin: MixinDecl) -> Dict[str, Any]:
    return mixin.args()


def find_mixin_arg(mixin: MixinDecl, name: str) -> Any:
    for param_name, value in mixin.in_params:
        if param_name == name:
            return value
    return None
