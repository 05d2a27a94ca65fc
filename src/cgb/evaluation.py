# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Logic evaluation and test subject abstractions."""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class EvaluationError(RuntimeError):
    """Represent a failed evaluation for one subject.

    Attributes:
        payload: Error payload returned by the evaluator, when any.
    """

    def __init__(self, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.payload = payload


@dataclass(frozen=True)
class Subject:
    """Represent one test subject.

    Attributes:
        id: Subject resource id.
        display_name: Name shown in rosters and results.
        resource: Raw subject resource.
    """

    id: str
    display_name: str
    resource: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_patient(cls, patient: dict[str, Any]) -> "Subject":
        return cls(
            id=str(patient.get("id") or ""),
            display_name=subject_display_name(patient),
            resource=patient,
        )


class Evaluator(Protocol):
    """Define logic evaluation against a compiled library."""

    async def evaluate(self, library_id: str, parameters: dict[str, Any]) -> Any:
        """Evaluate a library.

        Raises:
            EvaluationError: If the evaluation fails.
        """


class SubjectSource(Protocol):
    """Define the roster provider for test subjects."""

    async def search(self, term: str) -> list[Subject]:
        """Return subjects matching ``term``; an empty term lists all."""


def subject_parameters(subject_id: str) -> dict[str, Any]:
    """Build the evaluation parameters payload for one subject."""
    return {
        "resourceType": "Parameters",
        "parameter": [{"name": "subject", "valueString": f"Patient/{subject_id}"}],
    }


def subject_display_name(patient: dict[str, Any]) -> str:
    """Return ``family given...`` for a patient, or ``Patient <id>``."""
    names = patient.get("name") or []
    if names:
        first = names[0] or {}
        parts: list[str] = []
        if first.get("family"):
            parts.append(first["family"])
        parts.extend(first.get("given") or [])
        return " ".join(parts) or f"Patient {patient.get('id')}"
    return f"Patient {patient.get('id') or 'Unknown'}"


def result_value(outcome: Any, key: str) -> Any:
    """Return the value of a named output parameter, or ``None``."""
    if not isinstance(outcome, dict):
        return None
    for param in outcome.get("parameter") or []:
        if param.get("name") != key:
            continue
        for value_key in ("valueBoolean", "valueString", "value"):
            if param.get(value_key) is not None:
                return param[value_key]
        return None
    return None


def format_result_value(value: Any) -> str:
    """Render an output value for display."""
    if value is None:
        return "No Value"
    if isinstance(value, bool):
        return "Yes" if value else "No"
    return str(value)
