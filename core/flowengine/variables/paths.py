"""Variable path formatting, parsing and resolution.

Paths address values inside a node output: ``user.name``, ``items[0]``,
``headers["content-type"]``. Keys that are valid bare identifiers use dotted
segments, anything else is bracket-quoted with JSON string escaping.
"""

import json
import re
from collections.abc import Mapping, Sequence
from typing import Any

IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z_$][a-zA-Z0-9_$]*$")

# One path segment: bare key, [index] or ["quoted key"]
_SEGMENT_PATTERN = re.compile(
    r"""
    (?P<key>[^.\[\]]+)
    | \[(?P<index>-?\d+)\]
    | \[(?P<quoted>"(?:[^"\\]|\\.)*")\]
    | \[(?P<single>'(?:[^'\\]|\\.)*')\]
    | (?P<dot>\.)
    """,
    re.VERBOSE,
)

_MISSING = object()


def format_key(parent: str, key: str) -> str:
    """Append a mapping key to ``parent``."""
    if IDENTIFIER_PATTERN.match(key):
        return f"{parent}.{key}" if parent else key
    return f"{parent}[{json.dumps(key)}]"


def format_index(parent: str, index: int) -> str:
    """Append a sequence index to ``parent``."""
    return f"{parent}[{index}]"


def parse_path(path: str) -> list[str | int]:
    """
    Split a path into segments.

    ``a.b[0]["x-y"]`` -> ``["a", "b", 0, "x-y"]``. Raises ValueError on text
    that is not a path.
    """
    segments: list[str | int] = []
    position = 0
    while position < len(path):
        match = _SEGMENT_PATTERN.match(path, position)
        if match is None:
            raise ValueError(f"Invalid variable path: {path!r}")
        position = match.end()
        if match.group("dot"):
            continue
        if match.group("key") is not None:
            segments.append(match.group("key").strip())
        elif match.group("index") is not None:
            segments.append(int(match.group("index")))
        elif match.group("quoted") is not None:
            segments.append(json.loads(match.group("quoted")))
        else:
            segments.append(match.group("single")[1:-1])
    return segments


def resolve_path(value: Any, path: str | list[str | int], default: Any = None) -> Any:
    """Walk ``path`` into ``value``; return ``default`` when any step is missing."""
    try:
        segments = parse_path(path) if isinstance(path, str) else path
    except ValueError:
        return default

    current = value
    for segment in segments:
        current = _step(current, segment)
        if current is _MISSING:
            return default
    return current


def _step(current: Any, segment: str | int) -> Any:
    if isinstance(current, Mapping):
        if segment in current:
            return current[segment]
        if isinstance(segment, int) and str(segment) in current:
            return current[str(segment)]
        return _MISSING

    if isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
        if segment == "length":
            return len(current)
        index = segment
        if isinstance(segment, str):
            if not segment.lstrip("-").isdigit():
                return _MISSING
            index = int(segment)
        try:
            return current[index]
        except IndexError:
            return _MISSING

    if isinstance(current, str) and segment == "length":
        return len(current)

    return _MISSING


def stringify(value: Any) -> str:
    """Render a resolved value for insertion into text."""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return str(value)
