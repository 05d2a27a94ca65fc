# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Translator implementations for the guidelines builder."""

from cgb.translation.http_client import HttpTranslator, parse_annotations

__all__ = ["HttpTranslator", "parse_annotations"]
