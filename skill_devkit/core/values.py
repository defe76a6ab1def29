"""Structured values produced by generic REST responses."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional, Tuple

_LOOSE_DATE_FORMATS = ("%d %b %Y", "%d %B %Y", "%b %d %Y", "%B %d %Y", "%Y/%m/%d")


@dataclass(frozen=True, slots=True)
class Entity:
    value: str
    display: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Currency:
    value: float
    code: str = "usd"


@dataclass(frozen=True, slots=True)
class Location:
    lat: float
    lon: float
    display: Optional[str] = None


def split_type(type_str: str) -> Tuple[str, Optional[str]]:
    """Split ``Array(Entity(tt:url))`` into ``("Array", "Entity(tt:url)")``."""

    type_str = type_str.strip()
    paren = type_str.find("(")
    if paren < 0 or not type_str.endswith(")"):
        return type_str, None
    return type_str[:paren], type_str[paren + 1 : -1]


def parse_date(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)

    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in _LOOSE_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        return parsedate_to_datetime(text)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid date value {value!r}") from exc


def _to_location(value: Any) -> Location:
    display = value.get("display")
    if "x" in value and "y" in value:
        return Location(float(value["y"]), float(value["x"]), display)
    if "latitude" in value and "longitude" in value:
        return Location(float(value["latitude"]), float(value["longitude"]), display)
    return Location(float(value["lat"]), float(value["lon"]), display)


def cast(value: Any, type_str: str) -> Any:
    """Convert a raw JSON value to the runtime representation of ``type_str``."""

    base, inner = split_type(type_str)

    if base == "Array":
        elem = inner or "String"
        if isinstance(value, str):
            return [cast(item.strip(), elem) for item in value.split(",")]
        if value is None:
            return []
        return [cast(item, elem) for item in value]
    if value is None:
        return None
    if base == "Date":
        return parse_date(value)
    if base in ("Number", "Measure") and isinstance(value, str):
        return float(value)
    if base == "Currency":
        if isinstance(value, (int, float)):
            return Currency(float(value))
        if isinstance(value, str):
            return Currency(float(value))
        return Currency(float(value["value"]), str(value.get("unit", value.get("code", "usd"))))
    if base == "Entity":
        if isinstance(value, str):
            return Entity(value)
        return Entity(str(value["value"]), value.get("display"))
    if base == "Location":
        return _to_location(value)

    return value
