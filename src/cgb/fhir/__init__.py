# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""FHIR server collaborators for the guidelines builder."""

from cgb.fhir.client import (
    FhirClient,
    FhirEvaluator,
    FhirLibraryStore,
    FhirSubjectSource,
)

__all__ = ["FhirClient", "FhirEvaluator", "FhirLibraryStore", "FhirSubjectSource"]
