# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Domain models for guideline artifacts."""

import json
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any

from cgb.library import Library

logger = logging.getLogger(__name__)

DEFAULT_VERSION: str = "1.0.0"
FHIR_VERSION: str = "4.0.1"


@dataclass(frozen=True)
class ArtifactMetadata:
    """Represent authoring metadata of a guideline.

    Attributes:
        name: Computable library name.
        title: Display title.
        version: Semantic version string.
        description: Optional description.
        url: Canonical library URL.
        fhir_version: FHIR model version the logic targets.
    """

    name: str = "NewGuideline"
    title: str = "New Guideline"
    version: str = DEFAULT_VERSION
    description: str | None = ""
    url: str | None = ""
    fhir_version: str = FHIR_VERSION

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ArtifactMetadata":
        return cls(
            name=data.get("name") or "",
            title=data.get("title") or "",
            version=data.get("version") or "",
            description=data.get("description"),
            url=data.get("url"),
            fhir_version=data.get("fhirVersion") or FHIR_VERSION,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "version": self.version,
            "description": self.description,
            "url": self.url,
            "fhirVersion": self.fhir_version,
        }


@dataclass(frozen=True)
class BaseElement:
    """Represent one builder expression element.

    Conjunction groups carry ``conjunction=True``, a name of ``And`` or ``Or``
    and their children in ``child_instances``.
    """

    unique_id: str
    type: str
    name: str
    fields: list[dict[str, Any]] = field(default_factory=list)
    modifiers: list[Any] = field(default_factory=list)
    return_type: str | None = None
    conjunction: bool = False
    child_instances: list["BaseElement"] = field(default_factory=list)
    path: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BaseElement":
        return cls(
            unique_id=data.get("uniqueId") or "",
            type=data.get("type") or "",
            name=data.get("name") or "",
            fields=list(data.get("fields") or []),
            modifiers=list(data.get("modifiers") or []),
            return_type=data.get("returnType"),
            conjunction=bool(data.get("conjunction")),
            child_instances=[
                cls.from_dict(child) for child in data.get("childInstances") or []
            ],
            path=data.get("path"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "uniqueId": self.unique_id,
            "type": self.type,
            "name": self.name,
            "fields": self.fields,
            "modifiers": self.modifiers,
        }
        if self.return_type is not None:
            data["returnType"] = self.return_type
        if self.conjunction:
            data["conjunction"] = True
            data["childInstances"] = [
                child.to_dict() for child in self.child_instances
            ]
        if self.path is not None:
            data["path"] = self.path
        return data


@dataclass(frozen=True)
class Parameter:
    """Represent a library parameter declaration."""

    name: str
    type: str
    default_value: Any = None
    description: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Parameter":
        return cls(
            name=data.get("name") or "",
            type=data.get("type") or "",
            default_value=data.get("defaultValue"),
            description=data.get("description"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "defaultValue": self.default_value,
            "description": self.description,
        }


@dataclass(frozen=True)
class FunctionArgument:
    """Represent one argument of a library function."""

    name: str
    type: str


@dataclass(frozen=True)
class CqlFunction:
    """Represent a library function with an optional expression body."""

    id: str
    name: str
    return_type: str
    arguments: list[FunctionArgument] = field(default_factory=list)
    body: BaseElement | None = None
    description: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CqlFunction":
        body = data.get("body")
        return cls(
            id=data.get("id") or "",
            name=data.get("name") or "",
            return_type=data.get("returnType") or "",
            arguments=[
                FunctionArgument(name=arg.get("name") or "", type=arg.get("type") or "")
                for arg in data.get("parameters") or []
            ],
            body=BaseElement.from_dict(body) if body else None,
            description=data.get("description"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "returnType": self.return_type,
            "parameters": [
                {"name": arg.name, "type": arg.type} for arg in self.arguments
            ],
            "body": self.body.to_dict() if self.body else None,
            "description": self.description,
        }


@dataclass(frozen=True)
class Recommendation:
    """Represent a guideline recommendation."""

    id: str
    label: str
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "label": self.label, "description": self.description}


def _conjunction_group(unique_id: str) -> BaseElement:
    return BaseElement(
        unique_id=unique_id,
        type="conjunction",
        name="And",
        return_type="boolean",
        conjunction=True,
        path="",
    )


@dataclass(frozen=True)
class GuidelineArtifact:
    """Represent the builder-native form of a guideline.

    Attributes:
        metadata: Authoring metadata.
        exp_tree_include: Inclusion criteria conjunction tree.
        exp_tree_exclude: Exclusion criteria conjunction tree.
        subpopulations: Subpopulation definitions.
        base_elements: Reusable expression elements, one ``define`` each.
        recommendations: Recommendations shown for matching subjects.
        parameters: Library parameters.
        functions: Library functions.
        error_statement: Optional error statement tree.
        external_cql: Referenced external libraries.
    """

    metadata: ArtifactMetadata
    exp_tree_include: BaseElement
    exp_tree_exclude: BaseElement
    subpopulations: list[dict[str, Any]] = field(default_factory=list)
    base_elements: list[BaseElement] = field(default_factory=list)
    recommendations: list[Recommendation] = field(default_factory=list)
    parameters: list[Parameter] = field(default_factory=list)
    functions: list[CqlFunction] = field(default_factory=list)
    error_statement: dict[str, Any] | None = None
    external_cql: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "GuidelineArtifact":
        """Build an empty artifact with default metadata."""
        stamp = int(time.time() * 1000)
        return cls(
            metadata=ArtifactMetadata(),
            exp_tree_include=_conjunction_group(f"include-{stamp}"),
            exp_tree_exclude=_conjunction_group(f"exclude-{stamp}"),
        )

    def with_metadata(self, **changes: Any) -> "GuidelineArtifact":
        """Return a copy with metadata fields replaced."""
        return replace(self, metadata=replace(self.metadata, **changes))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GuidelineArtifact":
        """Build an artifact from its builder JSON form.

        Raises:
            ValueError: If ``data`` is not a JSON object.
        """
        if not isinstance(data, dict):
            raise ValueError("Artifact snapshot must be a JSON object.")
        empty = cls.empty()
        include = data.get("expTreeInclude")
        exclude = data.get("expTreeExclude")
        return cls(
            metadata=ArtifactMetadata.from_dict(data.get("metadata") or {}),
            exp_tree_include=(
                BaseElement.from_dict(include) if include else empty.exp_tree_include
            ),
            exp_tree_exclude=(
                BaseElement.from_dict(exclude) if exclude else empty.exp_tree_exclude
            ),
            subpopulations=list(data.get("subpopulations") or []),
            base_elements=[
                BaseElement.from_dict(item) for item in data.get("baseElements") or []
            ],
            recommendations=[
                Recommendation(
                    id=item.get("id") or "",
                    label=item.get("label") or "",
                    description=item.get("description"),
                )
                for item in data.get("recommendations") or []
            ],
            parameters=[
                Parameter.from_dict(item) for item in data.get("parameters") or []
            ],
            functions=[
                CqlFunction.from_dict(item) for item in data.get("functions") or []
            ],
            error_statement=data.get("errorStatement"),
            external_cql=list(data.get("externalCql") or []),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the builder JSON form."""
        return {
            "expTreeInclude": self.exp_tree_include.to_dict(),
            "expTreeExclude": self.exp_tree_exclude.to_dict(),
            "subpopulations": self.subpopulations,
            "baseElements": [element.to_dict() for element in self.base_elements],
            "recommendations": [item.to_dict() for item in self.recommendations],
            "parameters": [item.to_dict() for item in self.parameters],
            "functions": [item.to_dict() for item in self.functions],
            "errorStatement": self.error_statement,
            "externalCql": self.external_cql,
            "metadata": self.metadata.to_dict(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def restore_artifact(library: Library, library_url: str) -> GuidelineArtifact:
    """Recover the editable artifact of a persisted library.

    The builder snapshot stored in the metadata extension wins; missing
    metadata is filled from the library itself. Libraries without a usable
    snapshot get an empty artifact carrying the library metadata.

    Args:
        library: Library being opened.
        library_url: Canonical URL to use when the library carries none.

    Returns:
        Artifact for the editing session.
    """
    url = library.url or library_url
    artifact: GuidelineArtifact | None = None
    snapshot = library.builder_metadata()
    if snapshot is not None and snapshot.value_string:
        try:
            artifact = GuidelineArtifact.from_dict(json.loads(snapshot.value_string))
        except (ValueError, TypeError, AttributeError) as exc:
            logger.warning(
                f"Ignoring unreadable builder metadata (library_id={library.id} error={exc})"
            )

    if artifact is None:
        artifact = GuidelineArtifact.empty()
        if library.name:
            artifact = artifact.with_metadata(
                name=library.name,
                title=library.title or library.name,
                version=library.version or DEFAULT_VERSION,
                description=library.description,
                url=url,
            )
        return artifact

    if library.name and not artifact.metadata.name:
        return artifact.with_metadata(
            name=library.name,
            title=library.title or library.name,
            version=library.version or DEFAULT_VERSION,
            description=library.description or artifact.metadata.description,
            url=url or artifact.metadata.url or "",
        )
    return artifact.with_metadata(
        url=artifact.metadata.url or url or "",
        version=artifact.metadata.version or library.version or DEFAULT_VERSION,
    )
