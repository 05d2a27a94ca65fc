# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""CQL-to-ELM translator abstractions."""

import logging
from dataclasses import dataclass
from typing import Protocol

from cgb.locator import format_locator, locator_info_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompilerException:
    """Represent one diagnostic reported by the translator.

    Attributes:
        message: Diagnostic text.
        severity: Translator severity label, for example ``error``.
        locator: Opaque position object with unstable field names.
    """

    message: str
    severity: str = "error"
    locator: object = None


class TranslationError(RuntimeError):
    """Represent a failed translation.

    Attributes:
        exceptions: Translator diagnostics, empty for transport failures.
    """

    def __init__(
        self, message: str, exceptions: list[CompilerException] | None = None
    ) -> None:
        super().__init__(message)
        self.exceptions = list(exceptions or [])


class Translator(Protocol):
    """Define CQL translation behavior for a translator endpoint."""

    async def translate(self, cql: str, base_url: str) -> str:
        """Translate CQL source to ELM XML.

        Args:
            cql: CQL library source.
            base_url: Translator endpoint base URL.

        Returns:
            Compiled ELM XML.

        Raises:
            TranslationError: If the request fails or the source has errors.
        """


def describe_exception(exception: CompilerException) -> str:
    """Render a diagnostic with its decoded position."""
    message = exception.message or "Unknown error"
    position = format_locator(locator_info_for(exception))
    return f"{message} {position}" if position else message
