# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for the HTTP translator client."""

import httpx
import pytest

from cgb.translation import HttpTranslator, parse_annotations
from cgb.translator import TranslationError

ELM_OK = (
    '<library xmlns="urn:hl7-org:elm:r1" '
    'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">'
    "<identifier id=\"Lib\" version=\"1.0.0\"/>"
    "</library>"
)

ELM_WITH_ERRORS = (
    '<library xmlns="urn:hl7-org:elm:r1" '
    'xmlns:a="urn:hl7-org:cql-annotations:r1" '
    'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">'
    '<annotation xsi:type="a:CqlToElmError" message="Could not resolve X" '
    'errorSeverity="error" startLine="3" startChar="2" endLine="3" endChar="7"/>'
    '<annotation xsi:type="a:CqlToElmError" message="Deprecated" '
    'errorSeverity="warning" startLine="1" startChar="0"/>'
    '<annotation xsi:type="a:Annotation"/>'
    "</library>"
)


def _translator(handler) -> HttpTranslator:
    return HttpTranslator(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.asyncio
async def test_tr_001_posts_cql_and_returns_elm() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=ELM_OK)

    elm = await _translator(handler).translate("library Lib", "http://translator/")

    assert elm == ELM_OK
    assert str(seen[0].url) == "http://translator/cql/translator"
    assert seen[0].method == "POST"
    assert seen[0].headers["content-type"] == "application/cql"
    assert seen[0].headers["accept"] == "application/elm+xml"
    assert seen[0].content == b"library Lib"


@pytest.mark.asyncio
async def test_tr_002_error_annotations_raise_with_exceptions() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=ELM_WITH_ERRORS)

    with pytest.raises(TranslationError) as excinfo:
        await _translator(handler).translate("library Lib", "http://translator")

    exceptions = excinfo.value.exceptions
    assert [item.message for item in exceptions] == ["Could not resolve X"]
    assert exceptions[0].locator == {
        "startLine": 3,
        "startChar": 2,
        "endLine": 3,
        "endChar": 7,
    }


@pytest.mark.asyncio
async def test_tr_003_http_error_status_raises_translation_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    with pytest.raises(TranslationError, match="HTTP 503"):
        await _translator(handler).translate("library Lib", "http://translator")


@pytest.mark.asyncio
async def test_tr_004_transport_failure_raises_translation_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TranslationError) as excinfo:
        await _translator(handler).translate("library Lib", "http://translator")

    assert excinfo.value.exceptions == []


def test_tr_005_parse_annotations_keeps_warnings_with_severity() -> None:
    exceptions = parse_annotations(ELM_WITH_ERRORS)

    assert [(item.message, item.severity) for item in exceptions] == [
        ("Could not resolve X", "error"),
        ("Deprecated", "warning"),
    ]


def test_tr_006_malformed_elm_raises_translation_error() -> None:
    with pytest.raises(TranslationError):
        parse_annotations("<library>")
