"""Query parameters accepted by the strategy endpoints."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_COMPONENT = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}
_MISSING = object()


class RequestBindingError(ValueError):
    """A request parameter could not be read."""


def parse_duration(value: Any) -> float:
    """Return a duration in seconds.

    Numbers are taken as seconds; strings use the unit form such as
    ``"1h30m"``, ``"10s"`` or ``"500ms"``.
    """
    if isinstance(value, bool):
        raise RequestBindingError(f"invalid duration {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    sign = 1.0
    if text[:1] in ("+", "-"):
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if text == "0":
        return 0.0
    total = 0.0
    position = 0
    for match in _COMPONENT.finditer(text):
        if match.start() != position:
            raise RequestBindingError(f'invalid duration "{value}"')
        total += float(match.group(1)) * _UNITS[match.group(2)]
        position = match.end()
    if position == 0 or position != len(text):
        raise RequestBindingError(f'invalid duration "{value}"')
    return sign * total


def _raw(data: Mapping[str, Any], key: str) -> Any:
    getlist = getattr(data, "getlist", None)
    if callable(getlist):
        values = getlist(key)
        return values[0] if values else _MISSING
    value = data.get(key, _MISSING)
    if isinstance(value, (list, tuple)):
        return value[0] if value else _MISSING
    return value


def _names(data: Mapping[str, Any], key: str) -> list[str] | None:
    getlist = getattr(data, "getlist", None)
    if callable(getlist):
        values = getlist(key)
        return [str(v) for v in values] if values else None
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value)
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise RequestBindingError(f'invalid boolean "{value}"')


def _bind(default: Any, data: Mapping[str, Any], fields: Mapping[str, Any]) -> Any:
    changes: dict[str, Any] = {}
    for key, parse in fields.items():
        if key == "names":
            names = _names(data, key)
            if names is not None:
                changes[key] = names
            continue
        value = _raw(data, key)
        if value is not _MISSING and value is not None:
            changes[key] = parse(value)
    return replace(default, **changes)


@dataclass
class DynamicRequest:
    """Parameters of the dynamic strategy; durations in seconds."""

    group: str = ""
    names: list[str] = field(default_factory=list)
    show_details: bool = False
    display_name: str = ""
    theme: str = ""
    session_duration: float = 0.0
    refresh_frequency: float = 0.0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], default: "DynamicRequest | None" = None) -> "DynamicRequest":
        """Read parameters from ``data``, keeping ``default`` for absent ones."""
        return _bind(
            default if default is not None else cls(),
            data,
            {
                "group": str,
                "names": None,
                "show_details": _parse_bool,
                "display_name": str,
                "theme": str,
                "session_duration": parse_duration,
                "refresh_frequency": parse_duration,
            },
        )


@dataclass
class BlockingRequest:
    """Parameters of the blocking strategy; durations in seconds."""

    names: list[str] = field(default_factory=list)
    group: str = ""
    session_duration: float = 0.0
    timeout: float = 0.0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], default: "BlockingRequest | None" = None) -> "BlockingRequest":
        """Read parameters from ``data``, keeping ``default`` for absent ones."""
        return _bind(
            default if default is not None else cls(),
            data,
            {
                "names": None,
                "group": str,
                "session_duration": parse_duration,
                "timeout": parse_duration,
            },
        )