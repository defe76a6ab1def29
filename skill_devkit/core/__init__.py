"""Core primitives for skill-devkit."""

from .events import Observable
from .object_set import OBJECT_ADDED, OBJECT_REMOVED, ObjectSet, SimpleObjectSet
from .ref_counted import LifecycleState, RefCounted
from .stream import ArrayStream, DeviceStream
from .utils import find_mixin_arg, format_string, get_mixin_args, parse_generic_response, split_prop_chain
from .values import Currency, Entity, Location, cast

__all__ = [
    "ArrayStream",
    "Currency",
    "DeviceStream",
    "Entity",
    "LifecycleState",
    "Location",
    "OBJECT_ADDED",
    "OBJECT_REMOVED",
    "ObjectSet",
    "Observable",
    "RefCounted",
    "SimpleObjectSet",
    "cast",
    "find_mixin_arg",
    "format_string",
    "get_mixin_args",
    "parse_generic_response",
    "split_prop_chain",
]
