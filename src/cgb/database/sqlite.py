# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Library store SQLite implementation."""

import asyncio
import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, TypeVar

from cgb.library import Library
from cgb.persistence import (
    LibraryNotFoundError,
    LibraryPage,
    PersistenceError,
    SortKey,
    SortOrder,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SORT_COLUMNS: dict[str, str] = {
    "name": "name COLLATE NOCASE",
    "version": "version",
    "date": "updated_at",
}


class SQLiteLibraryStore:
    """Store library resources as JSON documents in a SQLite database."""

    def __init__(self, db_path: Path) -> None:
        """Initialize store backend.

        Args:
            db_path: SQLite database file path.
        """
        self._db_path = db_path

    async def get(self, library_id: str) -> Library:
        return await asyncio.to_thread(self._run, self._get, library_id)

    async def search(self, term: str) -> list[Library]:
        return await asyncio.to_thread(self._run, self._search, term)

    async def create(self, library: Library) -> Library:
        return await asyncio.to_thread(self._run, self._create, library)

    async def update(self, library: Library) -> Library:
        return await asyncio.to_thread(self._run, self._update, library)

    async def delete(self, library: Library) -> None:
        await asyncio.to_thread(self._run, self._delete, library)

    async def list_page(
        self, page: int, size: int, sort_by: SortKey, sort_order: SortOrder
    ) -> LibraryPage:
        return await asyncio.to_thread(
            self._run, self._list_page, page, size, sort_by, sort_order
        )

    def _run(self, operation: Callable[..., T], *args: Any) -> T:
        """Run one operation inside a transaction.

        Args:
            operation: Callable receiving the open connection and ``args``.
            *args: Operation arguments.

        Returns:
            Operation result.

        Raises:
            PersistenceError: If schema setup or the operation fails.
        """
        try:
            connection = sqlite3.connect(self._db_path)
        except sqlite3.Error as exc:
            logger.warning(
                f"SQLite library store unavailable (db_path={self._db_path} error={exc})"
            )
            raise PersistenceError(str(exc)) from exc
        try:
            self._ensure_schema(connection=connection)
            result = operation(connection, *args)
            connection.commit()
            return result
        except sqlite3.DatabaseError as exc:
            connection.rollback()
            logger.warning(
                f"SQLite library store failed (db_path={self._db_path} error={exc})"
            )
            raise PersistenceError(str(exc)) from exc
        except PersistenceError:
            connection.rollback()
            raise
        finally:
            connection.close()

    def _get(self, connection: sqlite3.Connection, library_id: str) -> Library:
        row = connection.execute(
            "SELECT resource FROM libraries WHERE id = ?", (library_id,)
        ).fetchone()
        if row is None:
            raise LibraryNotFoundError(f"Library not found: {library_id}")
        return Library.from_resource(json.loads(row[0]))

    def _search(self, connection: sqlite3.Connection, term: str) -> list[Library]:
        pattern = f"%{term.strip().lower()}%"
        rows = connection.execute(
            "SELECT resource FROM libraries "
            "WHERE lower(name) LIKE ? OR lower(title) LIKE ? "
            "ORDER BY name COLLATE NOCASE",
            (pattern, pattern),
        ).fetchall()
        return [Library.from_resource(json.loads(row[0])) for row in rows]

    def _create(self, connection: sqlite3.Connection, library: Library) -> Library:
        if not library.id:
            raise PersistenceError("Cannot create a library without an id.")
        exists = connection.execute(
            "SELECT 1 FROM libraries WHERE id = ?", (library.id,)
        ).fetchone()
        if exists is not None:
            raise PersistenceError(f"Library already exists: {library.id}")
        connection.execute(
            "INSERT INTO libraries (id, name, title, version, updated_at, resource) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            _row(library),
        )
        return library

    def _update(self, connection: sqlite3.Connection, library: Library) -> Library:
        if not library.id:
            raise PersistenceError("Cannot update a library without an id.")
        cursor = connection.execute(
            "UPDATE libraries SET name = ?, title = ?, version = ?, updated_at = ?, "
            "resource = ? WHERE id = ?",
            (*_row(library)[1:], library.id),
        )
        if cursor.rowcount == 0:
            raise LibraryNotFoundError(f"Library not found: {library.id}")
        return library

    def _delete(self, connection: sqlite3.Connection, library: Library) -> None:
        if not library.id:
            raise PersistenceError("Cannot delete a library without an id.")
        cursor = connection.execute(
            "DELETE FROM libraries WHERE id = ?", (library.id,)
        )
        if cursor.rowcount == 0:
            raise LibraryNotFoundError(f"Library not found: {library.id}")

    def _list_page(
        self,
        connection: sqlite3.Connection,
        page: int,
        size: int,
        sort_by: SortKey,
        sort_order: SortOrder,
    ) -> LibraryPage:
        column = SORT_COLUMNS.get(sort_by, SORT_COLUMNS["name"])
        direction = "DESC" if sort_order == "desc" else "ASC"
        offset = max(page - 1, 0) * size
        total = connection.execute("SELECT COUNT(*) FROM libraries").fetchone()[0]
        rows = connection.execute(
            f"SELECT resource FROM libraries ORDER BY {column} {direction}, id "
            "LIMIT ? OFFSET ?",
            (size, offset),
        ).fetchall()
        items = [Library.from_resource(json.loads(row[0])) for row in rows]
        return LibraryPage(
            items=items, total=int(total), has_next=offset + len(items) < total
        )

    def _ensure_schema(self, connection: sqlite3.Connection) -> None:
        """Create required tables and indexes when missing.

        Args:
            connection: Open SQLite connection.
        """
        connection.execute(
            "CREATE TABLE IF NOT EXISTS libraries ("
            "id TEXT PRIMARY KEY, "
            "name TEXT, "
            "title TEXT, "
            "version TEXT, "
            "updated_at TEXT NOT NULL, "
            "resource TEXT NOT NULL"
            ")"
        )
        connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_libraries_name ON libraries(name)"
        )


def _row(library: Library) -> tuple[str | None, ...]:
    return (
        library.id,
        library.name,
        library.title,
        library.version,
        datetime.now(tz=timezone.utc).isoformat(),
        json.dumps(library.to_resource(), sort_keys=True),
    )
