# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Persisted logic-library resource model."""

import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

CQL_CONTENT_TYPE: str = "text/cql"
ELM_XML_CONTENT_TYPE: str = "application/elm+xml"
BUILDER_METADATA_URL: str = (
    "http://cqframework.org/fhir/StructureDefinition/guidelines-builder-metadata"
)
LIBRARY_TYPE_SYSTEM: str = "http://terminology.hl7.org/CodeSystem/library-type"
LOGIC_LIBRARY_CODE: str = "logic-library"


@dataclass(frozen=True)
class Coding:
    """Represent one type coding of a library."""

    code: str | None
    system: str | None = None
    display: str | None = None


@dataclass(frozen=True)
class LibraryContent:
    """Represent one content part of a library.

    Attributes:
        content_type: MIME type tag of the part.
        data: Base64 encoded payload, or ``None`` when absent.
    """

    content_type: str | None
    data: str | None


@dataclass(frozen=True)
class Extension:
    """Represent one string-valued extension entry."""

    url: str | None
    value_string: str | None = None


@dataclass(frozen=True)
class Library:
    """Represent a persisted logic-library resource.

    Attributes:
        id: Stable resource identifier.
        name: Computable library name.
        title: Human readable title.
        version: Library version.
        status: Publication status.
        url: Canonical URL.
        description: Free text description.
        type: Library type codings.
        content: Content parts keyed by content type.
        extension: Extension entries.
    """

    id: str | None = None
    name: str | None = None
    title: str | None = None
    version: str | None = None
    status: str | None = None
    url: str | None = None
    description: str | None = None
    type: list[Coding] = field(default_factory=list)
    content: list[LibraryContent] = field(default_factory=list)
    extension: list[Extension] = field(default_factory=list)

    def content_for(self, content_type: str) -> LibraryContent | None:
        """Return the first content part with a payload for a content type."""
        for part in self.content:
            if part.content_type == content_type and part.data:
                return part
        return None

    def cql_text(self) -> str:
        """Return decoded CQL source, or an empty string when unavailable."""
        for part in self.content:
            if part.content_type != CQL_CONTENT_TYPE or not part.data:
                continue
            try:
                return decode_content(part.data)
            except ValueError as exc:
                logger.warning(
                    f"Could not decode CQL content (library_id={self.id} error={exc})"
                )
        return ""

    def builder_metadata(self) -> Extension | None:
        """Return the builder metadata extension when present."""
        for ext in self.extension:
            if ext.url == BUILDER_METADATA_URL:
                return ext
        return None

    def has_type_code(self, code: str) -> bool:
        """Check whether any type coding carries ``code``."""
        return any(coding.code == code for coding in self.type)

    @classmethod
    def from_resource(cls, resource: dict[str, Any]) -> "Library":
        """Build a library from FHIR JSON.

        Args:
            resource: FHIR R4 ``Library`` resource mapping.

        Returns:
            Parsed library.
        """
        type_obj = resource.get("type") or {}
        return cls(
            id=resource.get("id"),
            name=resource.get("name"),
            title=resource.get("title"),
            version=resource.get("version"),
            status=resource.get("status"),
            url=resource.get("url"),
            description=resource.get("description"),
            type=[
                Coding(
                    code=coding.get("code"),
                    system=coding.get("system"),
                    display=coding.get("display"),
                )
                for coding in type_obj.get("coding") or []
            ],
            content=[
                LibraryContent(
                    content_type=part.get("contentType"), data=part.get("data")
                )
                for part in resource.get("content") or []
            ],
            extension=[
                Extension(url=ext.get("url"), value_string=ext.get("valueString"))
                for ext in resource.get("extension") or []
            ],
        )

    def to_resource(self) -> dict[str, Any]:
        """Serialize to FHIR JSON, omitting empty members."""
        resource: dict[str, Any] = {"resourceType": "Library"}
        for key in ("id", "name", "title", "version", "status", "url", "description"):
            value = getattr(self, key)
            if value is not None:
                resource[key] = value
        if self.type:
            resource["type"] = {
                "coding": [
                    {
                        key: value
                        for key, value in (
                            ("system", coding.system),
                            ("code", coding.code),
                            ("display", coding.display),
                        )
                        if value is not None
                    }
                    for coding in self.type
                ]
            }
        if self.content:
            resource["content"] = [
                {
                    key: value
                    for key, value in (
                        ("contentType", part.content_type),
                        ("data", part.data),
                    )
                    if value is not None
                }
                for part in self.content
            ]
        if self.extension:
            resource["extension"] = [
                {
                    key: value
                    for key, value in (
                        ("url", ext.url),
                        ("valueString", ext.value_string),
                    )
                    if value is not None
                }
                for ext in self.extension
            ]
        return resource


def logic_library_type() -> list[Coding]:
    """Return the type codings of a logic library."""
    return [
        Coding(
            code=LOGIC_LIBRARY_CODE,
            system=LIBRARY_TYPE_SYSTEM,
            display="Logic Library",
        )
    ]


def encode_content(text: str) -> str:
    """Encode text as a base64 content payload."""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_content(data: str) -> str:
    """Decode a base64 content payload to text.

    Raises:
        ValueError: If the payload is not valid base64 UTF-8 text.
    """
    try:
        return base64.b64decode(data, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ValueError(f"Invalid content payload: {exc}") from exc
