"""
Nested variable extraction.

Flattens an arbitrary node output into addressable paths so downstream
nodes can reference ``{node.user.tags[0]}`` without a declared schema.

Every container is recorded as a variable of its own and then walked. The
walk is bounded by depth, per-level fan-out, serialized size and a total
variable cap; hitting any bound stops that subtree quietly. Cycles are cut
by tracking the containers on the current descent path.
"""

import json
import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from flowengine.variables.models import RuntimeVariable, VariableType
from flowengine.variables.paths import format_index, format_key

logger = logging.getLogger(__name__)

STRING_PREVIEW_LENGTH = 100
ARRAY_PREVIEW_ITEMS = 3
OBJECT_PREVIEW_SIZE = 200
OBJECT_PREVIEW_KEYS = 3


@dataclass
class ExtractionOptions:
    """Safety bounds for one extraction call."""

    max_depth: int = 6
    max_array_items: int = 10
    max_properties_per_level: int = 50
    max_value_size: int = 1024 * 1024  # bytes of JSON
    max_total_variables: int = 500


@dataclass
class _ExtractionState:
    source_node_id: str
    extracted_at: datetime
    variables: list[RuntimeVariable] = field(default_factory=list)
    visiting: set[int] = field(default_factory=set)


class _CapReached(Exception):
    """Raised internally to unwind once the total variable cap is hit."""


class VariableExtractor:
    """
    Bounded, cycle-safe flattener for node outputs.

    Example:
        extractor = VariableExtractor()
        variables = extractor.extract({"user": {"name": "Ann"}}, "node_1")
        [v.path for v in variables]  # ["user", "user.name"]
    """

    def __init__(self, options: ExtractionOptions | None = None):
        self.options = options or ExtractionOptions()

    def extract(
        self,
        value: Any,
        source_node_id: str,
        path_prefix: str = "",
    ) -> list[RuntimeVariable]:
        """
        Extract runtime variables from ``value``.

        Without a prefix the top-level keys sit at depth 0; with one the value
        itself is recorded at ``path_prefix`` (depth 0) and its children at 1.
        """
        state = _ExtractionState(source_node_id=source_node_id, extracted_at=datetime.now())
        try:
            if path_prefix:
                self._visit(value, path_prefix, 0, state)
            elif self._within_limits(value):
                self._walk_children(value, "", 0, state)
        except _CapReached:
            logger.debug(
                f"Variable cap of {self.options.max_total_variables} reached "
                f"for node '{source_node_id}'"
            )
        return state.variables

    def get_stats(self) -> dict:
        return asdict(self.options)

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _visit(self, value: Any, path: str, depth: int, state: _ExtractionState) -> None:
        if not self._should_extract(value, depth, state):
            return

        self._record(path, value, depth, state)

        if isinstance(value, list | tuple):
            self._record(f"{path}.length", len(value), depth + 1, state)

        self._walk_children(value, path, depth + 1, state)

    def _walk_children(self, value: Any, path: str, depth: int, state: _ExtractionState) -> None:
        if not isinstance(value, Mapping | list | tuple):
            return
        if id(value) in state.visiting:
            return

        state.visiting.add(id(value))
        try:
            if isinstance(value, Mapping):
                for i, (key, child) in enumerate(value.items()):
                    if i >= self.options.max_properties_per_level:
                        break
                    self._visit(child, format_key(path, str(key)), depth, state)
            else:
                for i, child in enumerate(value):
                    if i >= self.options.max_array_items:
                        break
                    self._visit(child, format_index(path, i), depth, state)
        finally:
            state.visiting.discard(id(value))

    def _should_extract(self, value: Any, depth: int, state: _ExtractionState) -> bool:
        if depth >= self.options.max_depth:
            return False
        if value is None or callable(value):
            return False
        if isinstance(value, Mapping | list | tuple):
            if id(value) in state.visiting:
                return False
            return self._within_limits(value)
        return isinstance(value, str | int | float | bool)

    def _record(self, path: str, value: Any, depth: int, state: _ExtractionState) -> None:
        if len(state.variables) >= self.options.max_total_variables:
            raise _CapReached
        state.variables.append(
            RuntimeVariable(
                name=path,
                path=path,
                full_path=f"{state.source_node_id}.{path}",
                type=infer_type(value),
                description=f"Dynamic variable extracted from {state.source_node_id}",
                example=preview_value(value),
                actual_value=value,
                source_node_id=state.source_node_id,
                depth=depth,
                extracted_at=state.extracted_at,
            )
        )

    def _within_limits(self, value: Any) -> bool:
        """Containers must have JSON-compatible keys and fit in max_value_size."""
        if isinstance(value, Mapping) and not all(_is_json_key(k) for k in value):
            return False
        return self._serialized_size(value) <= self.options.max_value_size

    @staticmethod
    def _serialized_size(value: Any) -> int:
        try:
            return len(json.dumps(value, default=str))
        except (TypeError, ValueError):
            # Circular structure or nested non-JSON keys; repr() still sizes it
            return len(repr(value))


def _is_json_key(key: Any) -> bool:
    return key is None or isinstance(key, str | int | float | bool)


def infer_type(value: Any) -> VariableType:
    if isinstance(value, bool):
        return VariableType.BOOLEAN
    if isinstance(value, int | float):
        return VariableType.NUMBER
    if isinstance(value, str):
        return VariableType.STRING
    if isinstance(value, list | tuple):
        return VariableType.ARRAY
    if isinstance(value, Mapping):
        return VariableType.OBJECT
    return VariableType.ANY


def preview_value(value: Any) -> Any:
    """Shorten a value for display; the full value is kept separately."""
    if isinstance(value, str) and len(value) > STRING_PREVIEW_LENGTH:
        return value[:STRING_PREVIEW_LENGTH] + "..."

    if isinstance(value, list | tuple):
        if len(value) > ARRAY_PREVIEW_ITEMS:
            return [*value[:ARRAY_PREVIEW_ITEMS], "..."]
        return list(value)

    if isinstance(value, Mapping):
        try:
            size = len(json.dumps(value, default=str))
        except (TypeError, ValueError):
            size = OBJECT_PREVIEW_SIZE + 1
        if size > OBJECT_PREVIEW_SIZE:
            keys = [str(k) for k in value]
            more = ", ..." if len(keys) > OBJECT_PREVIEW_KEYS else ""
            return "{" + ", ".join(keys[:OBJECT_PREVIEW_KEYS]) + more + "}"

    return value
