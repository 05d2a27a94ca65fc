# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Paged library listing backed by a library store."""

import logging
import math

from cgb.library import Library
from cgb.persistence import LibraryStore, PersistenceError, SortKey, SortOrder

logger = logging.getLogger(__name__)


class LibraryBrowser:
    """Hold one listing page of libraries with search and sorting."""

    def __init__(self, store: LibraryStore, page_size: int = 10) -> None:
        """Initialize the listing.

        Args:
            store: Library store to list from.
            page_size: Number of libraries per page.

        Raises:
            ValueError: If ``page_size`` is not greater than zero.
        """
        if page_size <= 0:
            raise ValueError("page_size must be > 0")
        self._store = store
        self.page_size = page_size
        self.libraries: list[Library] = []
        self.current_page = 1
        self.total_pages = 0
        self.total_libraries = 0
        self.search_term = ""
        self.sort_by: SortKey = "name"
        self.sort_order: SortOrder = "asc"
        self.is_loading = False
        self.error: str | None = None

    async def reload(self) -> None:
        """Load the current page from the store."""
        self.is_loading = True
        try:
            page = await self._store.list_page(
                self.current_page, self.page_size, self.sort_by, self.sort_order
            )
        except PersistenceError as exc:
            logger.warning(
                f"Library listing failed (page={self.current_page} error={exc})"
            )
            self.libraries = []
            self.total_pages = 0
            self.total_libraries = 0
            self.error = str(exc)
            return
        finally:
            self.is_loading = False

        self.error = None
        self.libraries = list(page.items)
        if page.total:
            self.total_libraries = page.total
            self.total_pages = math.ceil(page.total / self.page_size)
        elif page.has_next:
            self.total_libraries = self.current_page * self.page_size + 1
            self.total_pages = self.current_page + 1
        else:
            self.total_libraries = (self.current_page - 1) * self.page_size + len(
                self.libraries
            )
            self.total_pages = self.current_page

    async def search(self, term: str) -> None:
        """Search by name; an empty term returns to the paged listing."""
        self.search_term = term
        if not term.strip():
            await self.reload()
            return
        self.is_loading = True
        try:
            libraries = await self._store.search(term)
        except PersistenceError as exc:
            logger.warning(f"Library search failed (term={term!r} error={exc})")
            self.libraries = []
            self.error = str(exc)
            return
        finally:
            self.is_loading = False
        self.error = None
        self.libraries = libraries
        self.total_libraries = len(libraries)
        self.total_pages = 1
        self.current_page = 1

    async def clear_search(self) -> None:
        self.search_term = ""
        self.current_page = 1
        await self.reload()

    async def go_to_page(self, page: int) -> None:
        if 1 <= page <= self.total_pages:
            self.current_page = page
            await self.reload()

    async def sort(self, column: SortKey) -> None:
        """Sort by ``column``; sorting the same column again flips the order."""
        if self.sort_by == column:
            self.sort_order = "desc" if self.sort_order == "asc" else "asc"
        else:
            self.sort_by = column
            self.sort_order = "asc"
        self.current_page = 1
        await self.reload()
