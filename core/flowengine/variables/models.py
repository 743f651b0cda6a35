"""Data types shared by the variable extractor and registry."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class VariableType(StrEnum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"
    ANY = "any"


class VariableSource(StrEnum):
    STATIC = "static"
    RUNTIME = "runtime"


class OutputField(BaseModel):
    """One entry of a node type's declared output schema."""

    name: str
    type: VariableType = VariableType.ANY
    description: str = ""
    example: Any = None

    model_config = {"extra": "allow"}


@dataclass
class RuntimeVariable:
    """A value path discovered in an actual node output."""

    name: str
    path: str
    full_path: str
    type: VariableType
    description: str
    example: Any
    actual_value: Any
    source_node_id: str
    depth: int
    is_nested: bool = True
    extracted_at: datetime = field(default_factory=datetime.now)


@dataclass
class AvailableVariable:
    """A variable a node may reference, static or runtime."""

    node_id: str
    node_label: str
    node_type: str
    variable_name: str
    variable_type: VariableType
    description: str
    full_path: str
    source: VariableSource
    example: Any = None
    actual_value: Any = None
    depth: int = 0
    extracted_at: datetime | None = None

    @property
    def is_runtime(self) -> bool:
        return self.source == VariableSource.RUNTIME

    def to_dict(self) -> dict:
        return {
            "node_id": self.node_id,
            "node_label": self.node_label,
            "node_type": self.node_type,
            "variable_name": self.variable_name,
            "variable_type": str(self.variable_type),
            "description": self.description,
            "full_path": self.full_path,
            "source": str(self.source),
            "example": self.example,
            "depth": self.depth,
        }


class VariableReference(BaseModel):
    """A ``{nodeId.path}`` reference found in text."""

    match: str
    node_id: str
    variable_name: str
    full_path: str


class ReferenceCheck(BaseModel):
    """Validation outcome for one reference."""

    reference: VariableReference
    is_valid: bool
    error: str | None = None


class ReferenceValidation(BaseModel):
    is_valid: bool
    checks: list[ReferenceCheck] = Field(default_factory=list)

    @property
    def errors(self) -> list[str]:
        return [c.error for c in self.checks if c.error]
