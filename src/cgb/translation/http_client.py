# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Translator implementation for the CQL translation service REST API."""

import logging
import xml.etree.ElementTree as ET

import httpx

from cgb.translator import CompilerException, TranslationError

logger = logging.getLogger(__name__)

TRANSLATOR_PATH: str = "/cql/translator"
XSI_TYPE: str = "{http://www.w3.org/2001/XMLSchema-instance}type"
POSITION_ATTRIBUTES: tuple[str, ...] = ("startLine", "startChar", "endLine", "endChar")


class HttpTranslator:
    """Translate CQL through a remote translation service."""

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize translator configuration.

        Args:
            timeout_seconds: Request timeout used for owned clients.
            client: Optional shared client; one is created per call otherwise.
        """
        self._timeout_seconds = timeout_seconds
        self._client = client

    async def translate(self, cql: str, base_url: str) -> str:
        """Translate CQL to ELM XML.

        Args:
            cql: CQL library source.
            base_url: Translation service base URL.

        Returns:
            Compiled ELM XML.

        Raises:
            TranslationError: If the request fails or the ELM carries errors.
        """
        url = base_url.rstrip("/") + TRANSLATOR_PATH
        headers = {"Content-Type": "application/cql", "Accept": "application/elm+xml"}
        try:
            if self._client is not None:
                response = await self._client.post(url, content=cql, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                    response = await client.post(url, content=cql, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                f"Translation request rejected (url={url} status={exc.response.status_code})"
            )
            raise TranslationError(
                f"Translation service returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(f"Translation request failed (url={url} error={exc})")
            raise TranslationError(f"Translation request failed: {exc}") from exc

        elm_xml = response.text
        errors = [
            exception
            for exception in parse_annotations(elm_xml)
            if exception.severity == "error"
        ]
        if errors:
            logger.warning(
                f"Translation reported errors (url={url} error_count={len(errors)})"
            )
            raise TranslationError(
                f"Translation produced {len(errors)} error(s)", exceptions=errors
            )
        return elm_xml


def parse_annotations(elm_xml: str) -> list[CompilerException]:
    """Extract translator diagnostics from ELM XML.

    Args:
        elm_xml: ELM XML document.

    Returns:
        Diagnostics in document order.

    Raises:
        TranslationError: If the document is not well-formed XML.
    """
    try:
        root = ET.fromstring(elm_xml)
    except ET.ParseError as exc:
        raise TranslationError(f"Translator returned malformed ELM: {exc}") from exc

    exceptions: list[CompilerException] = []
    for element in root.iter():
        if not element.tag.endswith("annotation"):
            continue
        if not element.get(XSI_TYPE, "").endswith("CqlToElmError"):
            continue
        locator: dict[str, int] = {}
        for name in POSITION_ATTRIBUTES:
            raw = element.get(name)
            if raw is not None and raw.lstrip("-").isdigit():
                locator[name] = int(raw)
        exceptions.append(
            CompilerException(
                message=element.get("message") or "Unknown error",
                severity=(element.get("errorSeverity") or "error").lower(),
                locator=locator or None,
            )
        )
    return exceptions
