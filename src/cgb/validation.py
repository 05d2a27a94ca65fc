# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Guideline format checks for persisted libraries."""

from dataclasses import dataclass, field

from cgb.library import CQL_CONTENT_TYPE, LOGIC_LIBRARY_CODE, Library


@dataclass(frozen=True)
class ValidationResult:
    """Represent the outcome of a guideline format check.

    Attributes:
        is_valid: ``True`` when no issue was found.
        issues: Human readable findings in check order.
    """

    is_valid: bool
    issues: list[str] = field(default_factory=list)


def validate_format(library: Library) -> ValidationResult:
    """Check a library against the guideline builder format.

    Every check runs; findings accumulate in a fixed order.

    Args:
        library: Library to inspect.

    Returns:
        Validation result listing every finding.
    """
    issues: list[str] = []
    if not library.name:
        issues.append("Library name is missing")
    if not library.version:
        issues.append("Library version is missing")
    if library.content_for(CQL_CONTENT_TYPE) is None:
        issues.append("Library does not contain CQL content")
    if library.builder_metadata() is None:
        issues.append(
            "Library does not appear to be created with the Guidelines visual builder"
        )
    if not library.has_type_code(LOGIC_LIBRARY_CODE):
        issues.append(f'Library type is not "{LOGIC_LIBRARY_CODE}"')
    return ValidationResult(is_valid=not issues, issues=issues)


def can_open_cleanly(library: Library) -> bool:
    """Check whether a library opens for editing without conversion.

    The library type coding is not part of this check, so a library may open
    cleanly while ``validate_format`` still reports it invalid.

    Args:
        library: Library to inspect.

    Returns:
        ``True`` when builder metadata, CQL content, name and version exist.
    """
    return (
        library.builder_metadata() is not None
        and library.content_for(CQL_CONTENT_TYPE) is not None
        and bool(library.name)
        and bool(library.version)
    )
