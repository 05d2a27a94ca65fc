# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""CQL source generation from guideline artifacts."""

import logging
from typing import Any, Callable, Protocol

from cgb.model import (
    DEFAULT_VERSION,
    FHIR_VERSION,
    BaseElement,
    CqlFunction,
    GuidelineArtifact,
    Parameter,
)

logger = logging.getLogger(__name__)


class SourceGenerator(Protocol):
    """Define source text generation for an artifact."""

    def generate(self, artifact: GuidelineArtifact) -> str:
        """Generate logic source text from an artifact."""


class CqlGenerator:
    """Generate CQL library text from the builder model."""

    def generate(self, artifact: GuidelineArtifact) -> str:
        """Generate CQL text.

        Args:
            artifact: Guideline artifact to render.

        Returns:
            Complete CQL library source.
        """
        metadata = artifact.metadata
        name = metadata.name or "NewGuideline"
        version = metadata.version or DEFAULT_VERSION
        cql = (
            f"library {name} version '{version}'\n\n"
            f"using FHIR version '{FHIR_VERSION}'\n\n"
            "context Patient\n\n"
        )

        if artifact.parameters:
            cql += "".join(_parameter(param) for param in artifact.parameters)
            cql += "\n"
        if artifact.functions:
            cql += "".join(_function(func) for func in artifact.functions)
            cql += "\n"
        if artifact.base_elements:
            cql += "".join(
                _define(element, index)
                for index, element in enumerate(artifact.base_elements)
            )
        else:
            cql += 'define "Example":\n  true\n\n'

        logger.debug(
            f"Generated CQL (library={name} version={version} chars={len(cql)})"
        )
        return cql


def _parameter(param: Parameter) -> str:
    name = param.name or "UnnamedParameter"
    type_name = param.type or "String"
    line = f'parameter "{name}" {type_name}'
    if param.default_value is not None:
        line += f" default {format_literal(param.default_value, type_name)}"
    return line + "\n"


def _function(func: CqlFunction) -> str:
    name = func.name or "UnnamedFunction"
    return_type = func.return_type or "Boolean"
    arguments = ", ".join(
        f"{arg.name or 'param'} {arg.type or 'Boolean'}" for arg in func.arguments
    )
    body = expression(func.body) if func.body else "null"
    return f'define function "{name}"({arguments}): {return_type}\n  return {body}\n\n'


def _define(element: BaseElement, index: int) -> str:
    name = element.name or f"Element{index + 1}"
    return f'define "{name}":\n  {expression(element)}\n\n'


def expression(element: BaseElement) -> str:
    """Render one builder element as a CQL expression."""
    if element.conjunction and element.child_instances:
        operator = "and" if element.name == "And" else "or"
        parts = [expression(child) for child in element.child_instances]
        return "(" + f" {operator} ".join(parts) + ")"

    if element.type == "baseElement":
        reference = _field(element, lambda f: f.get("type") == "reference")
        if reference and reference.get("value"):
            return f'"{reference["value"]}"'
        name_field = _field(element, lambda f: f.get("id") == "element_name")
        element_name = (name_field or {}).get("value") or element.name or "Unknown"
        return f"exists([{element_name}])"
    if element.type == "parameter":
        return element.name or "null"
    if element.type == "externalCqlElement":
        ref = _field(element, lambda f: f.get("id") == "externalCqlReference")
        value = (ref or {}).get("value")
        if isinstance(value, dict):
            return f"{value.get('library') or ''}.{value.get('element') or ''}"
        return "null"

    value_field = _field(
        element, lambda f: f.get("type") in ("number", "string", "boolean")
    )
    if value_field is not None and "value" in value_field:
        return format_literal(value_field["value"], value_field.get("type") or "string")
    return "true"


def format_literal(value: Any, type_name: str) -> str:
    """Format a Python value as a CQL literal of the given type."""
    if value is None:
        return "null"
    kind = type_name.lower()
    if kind == "string":
        escaped = str(value).replace("'", "''")
        return f"'{escaped}'"
    if kind == "boolean":
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)
    if kind in ("integer", "decimal", "number"):
        return str(value)
    if kind in ("date", "datetime"):
        return f"@{value}"
    return f"'{value}'"


def _field(
    element: BaseElement, predicate: Callable[[dict[str, Any]], bool]
) -> dict[str, Any] | None:
    for item in element.fields:
        if isinstance(item, dict) and predicate(item):
            return item
    return None
