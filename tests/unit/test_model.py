# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for the library resource model and artifact restore."""

import json

import pytest

from cgb.library import (
    BUILDER_METADATA_URL,
    CQL_CONTENT_TYPE,
    ELM_XML_CONTENT_TYPE,
    Extension,
    Library,
    LibraryContent,
    decode_content,
    encode_content,
)
from cgb.model import GuidelineArtifact, restore_artifact


def _resource() -> dict:
    return {
        "resourceType": "Library",
        "id": "lib-1",
        "name": "Lib",
        "title": "Library One",
        "version": "2.0.0",
        "status": "active",
        "type": {
            "coding": [
                {
                    "system": "http://terminology.hl7.org/CodeSystem/library-type",
                    "code": "logic-library",
                }
            ]
        },
        "content": [
            {"contentType": "text/cql", "data": encode_content("library Lib")},
            {"contentType": "application/elm+xml", "data": encode_content("<elm/>")},
        ],
        "extension": [{"url": "http://example.org/foreign", "valueString": "x"}],
    }


def test_model_001_resource_mapping_keeps_wire_shape() -> None:
    resource = _resource()

    library = Library.from_resource(resource)

    assert library.has_type_code("logic-library")
    assert library.cql_text() == "library Lib"
    assert library.content_for(ELM_XML_CONTENT_TYPE) is not None
    assert library.to_resource() == resource


def test_model_002_cql_text_skips_undecodable_parts() -> None:
    library = Library(
        content=[
            LibraryContent(content_type=CQL_CONTENT_TYPE, data="!!not-base64!!"),
            LibraryContent(content_type=CQL_CONTENT_TYPE, data=encode_content("ok")),
        ]
    )

    assert library.cql_text() == "ok"


def test_model_003_decode_content_rejects_invalid_payload() -> None:
    with pytest.raises(ValueError):
        decode_content("%%%")


def test_model_004_artifact_json_uses_builder_keys() -> None:
    artifact = GuidelineArtifact.empty().with_metadata(name="Lib", version="1.2.3")

    payload = json.loads(artifact.to_json())

    assert payload["metadata"]["name"] == "Lib"
    assert payload["metadata"]["fhirVersion"] == "4.0.1"
    assert payload["expTreeInclude"]["conjunction"] is True
    assert payload["expTreeInclude"]["name"] == "And"
    assert GuidelineArtifact.from_dict(payload) == artifact


def test_model_005_restore_prefers_builder_snapshot() -> None:
    artifact = GuidelineArtifact.empty().with_metadata(
        name="Snap", title="Snapshot", version="3.0.0", url="http://x/Library/snap"
    )
    library = Library(
        id="snap",
        name="Other",
        version="9.9.9",
        extension=[
            Extension(url=BUILDER_METADATA_URL, value_string=artifact.to_json())
        ],
    )

    restored = restore_artifact(library, "Library/snap")

    assert restored.metadata.name == "Snap"
    assert restored.metadata.version == "3.0.0"
    assert restored.metadata.url == "http://x/Library/snap"


def test_model_006_restore_fills_missing_metadata_from_library() -> None:
    snapshot = GuidelineArtifact.empty().to_dict()
    snapshot["metadata"] = {}
    library = Library(
        id="lib-1",
        name="Lib",
        title="Library One",
        version="2.0.0",
        extension=[
            Extension(url=BUILDER_METADATA_URL, value_string=json.dumps(snapshot))
        ],
    )

    restored = restore_artifact(library, "http://fhir/Library/lib-1")

    assert restored.metadata.name == "Lib"
    assert restored.metadata.title == "Library One"
    assert restored.metadata.version == "2.0.0"
    assert restored.metadata.url == "http://fhir/Library/lib-1"


def test_model_007_restore_ignores_malformed_snapshot() -> None:
    library = Library(
        id="lib-1",
        name="Lib",
        version="2.0.0",
        extension=[Extension(url=BUILDER_METADATA_URL, value_string="{broken")],
    )

    restored = restore_artifact(library, "Library/lib-1")

    assert restored.metadata.name == "Lib"
    assert restored.metadata.title == "Lib"
    assert restored.metadata.url == "Library/lib-1"
    assert restored.base_elements == []


@pytest.mark.parametrize(
    "snapshot",
    ['{"metadata": "x"}', '{"baseElements": [null]}', "[1, 2]", '"text"'],
)
def test_model_008_restore_ignores_wrong_shape_snapshot(snapshot: str) -> None:
    library = Library(
        id="lib-1",
        name="Lib",
        version="2.0.0",
        extension=[Extension(url=BUILDER_METADATA_URL, value_string=snapshot)],
    )

    restored = restore_artifact(library, "Library/lib-1")

    assert restored.metadata.name == "Lib"
    assert restored.metadata.version == "2.0.0"
    assert restored.base_elements == []
