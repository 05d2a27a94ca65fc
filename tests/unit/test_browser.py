# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for the paged library listing."""

import pytest

from cgb.browser import LibraryBrowser
from cgb.library import Library
from cgb.persistence import LibraryPage, PersistenceError


class _Store:
    def __init__(self, libraries: list[Library], report_total: bool = True) -> None:
        self.libraries = libraries
        self.report_total = report_total
        self.fail = False
        self.page_calls: list[tuple[int, int, str, str]] = []
        self.search_terms: list[str] = []

    async def list_page(
        self, page: int, size: int, sort_by: str, sort_order: str
    ) -> LibraryPage:
        self.page_calls.append((page, size, sort_by, sort_order))
        if self.fail:
            raise PersistenceError("server down")
        ordered = sorted(
            self.libraries,
            key=lambda library: library.name or "",
            reverse=sort_order == "desc",
        )
        start = (page - 1) * size
        items = ordered[start : start + size]
        return LibraryPage(
            items=items,
            total=len(self.libraries) if self.report_total else None,
            has_next=start + size < len(self.libraries),
        )

    async def search(self, term: str) -> list[Library]:
        self.search_terms.append(term)
        return [lib for lib in self.libraries if term.lower() in (lib.name or "").lower()]


def _libraries(count: int) -> list[Library]:
    return [Library(id=f"l{i:02d}", name=f"Lib{i:02d}") for i in range(count)]


@pytest.mark.asyncio
async def test_browse_001_reload_uses_server_total() -> None:
    browser = LibraryBrowser(_Store(_libraries(23)), page_size=10)

    await browser.reload()

    assert len(browser.libraries) == 10
    assert browser.total_libraries == 23
    assert browser.total_pages == 3


@pytest.mark.asyncio
async def test_browse_002_totals_fall_back_to_next_link() -> None:
    store = _Store(_libraries(23), report_total=False)
    browser = LibraryBrowser(store, page_size=10)

    await browser.reload()
    assert browser.total_pages == 2
    assert browser.total_libraries == 11

    await browser.go_to_page(2)
    await browser.go_to_page(3)
    assert browser.current_page == 3
    assert [lib.id for lib in browser.libraries] == ["l20", "l21", "l22"]
    assert browser.total_pages == 3
    assert browser.total_libraries == 23


@pytest.mark.asyncio
async def test_browse_003_go_to_page_ignores_out_of_range() -> None:
    store = _Store(_libraries(5))
    browser = LibraryBrowser(store, page_size=10)
    await browser.reload()

    await browser.go_to_page(2)
    await browser.go_to_page(0)

    assert browser.current_page == 1
    assert len(store.page_calls) == 1


@pytest.mark.asyncio
async def test_browse_004_sort_toggles_order_and_resets_page() -> None:
    store = _Store(_libraries(30))
    browser = LibraryBrowser(store, page_size=10)
    await browser.reload()
    await browser.go_to_page(2)

    await browser.sort("name")
    assert (browser.sort_by, browser.sort_order, browser.current_page) == (
        "name",
        "desc",
        1,
    )
    assert browser.libraries[0].id == "l29"

    await browser.sort("version")
    assert (browser.sort_by, browser.sort_order) == ("version", "asc")


@pytest.mark.asyncio
async def test_browse_005_search_is_single_page_and_empty_term_reloads() -> None:
    store = _Store(_libraries(30))
    browser = LibraryBrowser(store, page_size=10)

    await browser.search("lib2")
    assert [lib.id for lib in browser.libraries] == [f"l2{i}" for i in range(10)]
    assert (browser.total_pages, browser.total_libraries) == (1, 10)

    await browser.search("")
    assert store.search_terms == ["lib2"]
    assert len(store.page_calls) == 1

    await browser.clear_search()
    assert browser.search_term == ""
    assert len(store.page_calls) == 2


@pytest.mark.asyncio
async def test_browse_006_load_failure_empties_listing() -> None:
    store = _Store(_libraries(3))
    browser = LibraryBrowser(store)
    await browser.reload()
    store.fail = True

    await browser.reload()

    assert browser.libraries == []
    assert browser.total_pages == 0
    assert browser.error == "server down"
    assert browser.is_loading is False


def test_browse_007_page_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        LibraryBrowser(_Store([]), page_size=0)
