"""Read-only model of a parsed device class manifest.

Manifests are produced by an external schema parser. This module only
describes the shape the loaders consume, plus ``from_dict`` helpers for the
JSON form returned by manifest providers.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Mapping, Optional, Set, Tuple

from .constants import NON_DETERMINISTIC_POLL_INTERVAL

LOGGER = logging.getLogger(__name__)

MISSING_MARKER = "$?"


class _Missing:
    """Placeholder for a config value whose secret was not provided."""

    _instance: Optional["_Missing"] = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return MISSING_MARKER

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


@dataclass(frozen=True, slots=True)
class ArgumentDef:
    name: str
    type: str = "String"
    direction: str = "out"  # in_req, in_opt or out
    annotations: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_input(self) -> bool:
        return self.direction != "out"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ArgumentDef":
        return cls(
            name=str(data["name"]),
            type=str(data.get("type", "String")),
            direction=str(data.get("direction", "out")),
            annotations=dict(data.get("annotations") or {}),
        )


@dataclass(frozen=True, slots=True)
class FunctionDef:
    name: str
    kind: str  # "action" or "query"
    args: Tuple[ArgumentDef, ...] = ()
    annotations: Mapping[str, Any] = field(default_factory=dict)
    is_monitorable: bool = True
    is_list: bool = True

    def annotation(self, name: str, default: Any = None) -> Any:
        return self.annotations.get(name, default)

    def iterate_arguments(self) -> Iterator[ArgumentDef]:
        return iter(self.args)

    @classmethod
    def from_dict(cls, name: str, kind: str, data: Mapping[str, Any]) -> "FunctionDef":
        return cls(
            name=name,
            kind=kind,
            args=tuple(ArgumentDef.from_dict(arg) for arg in data.get("args") or ()),
            annotations=dict(data.get("annotations") or {}),
            is_monitorable=bool(data.get("is_monitorable", kind == "query")),
            is_list=bool(data.get("is_list", True)),
        )


@dataclass(frozen=True, slots=True)
class MixinDecl:
    """An ``import config/loader from @module(...)`` statement."""

    module: str
    in_params: Tuple[Tuple[str, Any], ...] = ()

    def has_missing_keys(self) -> bool:
        return any(value is MISSING for _, value in self.in_params)

    def args(self) -> Dict[str, Any]:
        return {name: value for name, value in self.in_params}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MixinDecl":
        params = data.get("params") or {}
        return cls(
            module=str(data["module"]),
            in_params=tuple(
                (str(name), MISSING if value == MISSING_MARKER else value)
                for name, value in params.items()
            ),
        )


@dataclass(frozen=True, slots=True)
class ClassManifest:
    kind: str
    actions: Mapping[str, FunctionDef] = field(default_factory=dict)
    queries: Mapping[str, FunctionDef] = field(default_factory=dict)
    config: Optional[MixinDecl] = None
    loader: Optional[MixinDecl] = None
    extends: Tuple[str, ...] = ()
    is_abstract: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict)
    annotations: Mapping[str, Any] = field(default_factory=dict)

    @property
    def version(self) -> int:
        return int(self.annotations.get("version", 0))

    @property
    def name(self) -> str:
        return str(self.metadata.get("name", ""))

    @property
    def description(self) -> str:
        return str(self.metadata.get("description", ""))

    @property
    def child_types(self) -> Tuple[str, ...]:
        return tuple(self.annotations.get("child_types") or ())

    def implementation_annotation(self, name: str, default: Any = None) -> Any:
        return self.annotations.get(name, default)

    def with_annotations(self, **updates: Any) -> "ClassManifest":
        """Return a copy with some implementation annotations replaced."""
        annotations = dict(self.annotations)
        annotations.update(updates)
        return dataclasses.replace(self, annotations=annotations)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClassManifest":
        config = data.get("config")
        loader = data.get("loader")
        return cls(
            kind=str(data["kind"]),
            actions={
                name: FunctionDef.from_dict(name, "action", fn)
                for name, fn in (data.get("actions") or {}).items()
            },
            queries={
                name: FunctionDef.from_dict(name, "query", fn)
                for name, fn in (data.get("queries") or {}).items()
            },
            config=MixinDecl.from_dict(config) if config else None,
            loader=MixinDecl.from_dict(loader) if loader else None,
            extends=tuple(data.get("extends") or ()),
            is_abstract=bool(data.get("is_abstract", False)),
            metadata=dict(data.get("metadata") or {}),
            annotations=dict(data.get("annotations") or {}),
        )


def iterate_functions(
    manifest: ClassManifest,
    ftype: str,
    parents: Mapping[str, ClassManifest],
    visited: Optional[Set[str]] = None,
) -> Iterator[Tuple[str, FunctionDef]]:
    """Yield every action or query declared by the class or its parents, once."""

    if visited is None:
        visited = set()

    functions: Mapping[str, FunctionDef] = getattr(manifest, ftype)
    for name, fndef in functions.items():
        if name in visited:
            continue
        visited.add(name)
        yield name, fndef

    for parent in manifest.extends:
        parent_class = parents.get(parent)
        if parent_class is None:
            LOGGER.warning(
                "Parent class %s of %s was not loaded correctly", parent, manifest.kind
            )
            continue
        yield from iterate_functions(parent_class, ftype, parents, visited)


def get_poll_interval(fndef: FunctionDef) -> int:
    """Return the declared poll interval in milliseconds, or -1 when absent."""

    value = fndef.annotation("poll_interval")
    if value is None:
        return NON_DETERMINISTIC_POLL_INTERVAL
    return int(value)
