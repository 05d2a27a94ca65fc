# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Database backends for the guidelines builder."""

from cgb.database.sqlite import SQLiteLibraryStore

__all__ = ["SQLiteLibraryStore"]
