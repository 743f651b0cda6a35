"""Variable extraction, resolution and the variable registry."""

from flowengine.variables.extractor import ExtractionOptions, VariableExtractor
from flowengine.variables.models import (
    AvailableVariable,
    OutputField,
    ReferenceCheck,
    ReferenceValidation,
    RuntimeVariable,
    VariableReference,
    VariableSource,
    VariableType,
)
from flowengine.variables.paths import parse_path, resolve_path
from flowengine.variables.registry import VariableRegistry, substitute_template

__all__ = [
    "AvailableVariable",
    "ExtractionOptions",
    "OutputField",
    "ReferenceCheck",
    "ReferenceValidation",
    "RuntimeVariable",
    "VariableExtractor",
    "VariableReference",
    "VariableRegistry",
    "VariableSource",
    "VariableType",
    "parse_path",
    "resolve_path",
    "substitute_template",
]
