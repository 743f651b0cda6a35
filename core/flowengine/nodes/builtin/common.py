"""Helpers shared by the built-in node plugins."""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


def passthrough(input: Any, **fields: Any) -> dict[str, Any]:
    """Carry a mapping input forward with ``fields`` added on top.

    Non-mapping inputs are kept under ``input`` so the output is always a
    mapping downstream nodes can address.
    """
    base = dict(input) if isinstance(input, Mapping) else {"input": input}
    base.update(fields)
    return base


def coerce_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
