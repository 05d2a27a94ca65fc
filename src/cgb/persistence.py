# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Persistence contracts."""

import logging
from dataclasses import dataclass, field
from typing import Literal, Protocol

from cgb.library import Library

logger = logging.getLogger(__name__)

SortKey = Literal["name", "version", "date"]
SortOrder = Literal["asc", "desc"]


class PersistenceError(RuntimeError):
    """Represent a failed library store operation."""


class LibraryNotFoundError(PersistenceError):
    """Represent a lookup of an unknown library id."""


@dataclass(frozen=True)
class LibraryPage:
    """Represent one page of a library listing.

    Attributes:
        items: Libraries on this page.
        total: Total number of libraries when the store reports it.
        has_next: Whether a following page exists.
    """

    items: list[Library] = field(default_factory=list)
    total: int | None = None
    has_next: bool = False


class LibraryStore(Protocol):
    """Define the contract for storing logic-library resources."""

    async def get(self, library_id: str) -> Library:
        """Fetch one library; raise ``LibraryNotFoundError`` when unknown."""

    async def search(self, term: str) -> list[Library]:
        """Search libraries by name or title."""

    async def create(self, library: Library) -> Library:
        """Persist a new library and return the stored form."""

    async def update(self, library: Library) -> Library:
        """Replace an existing library and return the stored form."""

    async def delete(self, library: Library) -> None:
        """Delete a library."""

    async def list_page(
        self, page: int, size: int, sort_by: SortKey, sort_order: SortOrder
    ) -> LibraryPage:
        """List one page of libraries (``page`` is 1-based)."""
