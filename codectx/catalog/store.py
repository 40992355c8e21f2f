# codectx/catalog/store.py

import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

from loguru import logger

from codectx.config import get_settings
from codectx.errors import StorageUnavailable
from codectx.catalog.schema import GlobalCacheEntry, TagCatalogEntry

T = TypeVar("T")

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS tag_catalog (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        dir TEXT NOT NULL,
        branch TEXT NOT NULL,
        artifactId TEXT NOT NULL,
        path TEXT NOT NULL,
        cacheKey TEXT NOT NULL,
        lastUpdated INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS global_cache (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        cacheKey TEXT NOT NULL,
        dir TEXT NOT NULL,
        branch TEXT NOT NULL,
        artifactId TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_tag_catalog_scope
    ON tag_catalog(dir, branch, artifactId, path)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_global_cache_scope
    ON global_cache(dir, branch, artifactId)
    """,
]


class HandleCell(Generic[T]):
    """
    Lazily filled cache cell. The cached value is only handed out while
    ``is_alive(value)`` holds; otherwise callers must rebuild it.
    """

    def __init__(self, is_alive: Callable[[T], bool]):
        self._value: Optional[T] = None
        self._is_alive = is_alive

    def get(self) -> Optional[T]:
        if self._value is not None and self._is_alive(self._value):
            return self._value
        return None

    def set(self, value: T) -> None:
        self._value = value

    def clear(self) -> Optional[T]:
        """Drop and return whatever was cached, alive or not."""
        value, self._value = self._value, None
        return value


class CatalogHandle:
    """An open connection to the catalog database, safe to use from worker threads."""

    def __init__(self, conn: sqlite3.Connection, path: Path):
        self.conn = conn
        self.path = path
        self.closed = False
        self._lock = threading.Lock()

    def is_alive(self) -> bool:
        return not self.closed and self.path.exists()

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self._lock:
            try:
                return self.conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StorageUnavailable(self.path, e) from e

    def insert(self, sql: str, params: Sequence[Any]) -> int:
        """Run one INSERT in its own transaction and return the new row id."""
        with self._lock:
            try:
                with self.conn:
                    cur = self.conn.execute(sql, params)
                return cur.lastrowid
            except sqlite3.Error as e:
                raise StorageUnavailable(self.path, e) from e

    def close(self) -> None:
        with self._lock:
            if not self.closed:
                self.conn.close()
                self.closed = True


class IndexCatalogStore:
    """
    Durable record of what has been indexed (tag_catalog) and of every built
    index artifact (global_cache). Both tables are append-only; lookups always
    read the newest matching row.
    """

    def __init__(self, db_path: Optional[Path] = None):
        if db_path is None:
            db_path = get_settings().catalog_path
        self.db_path = Path(db_path)
        self._cell: HandleCell[CatalogHandle] = HandleCell(lambda h: h.is_alive())
        self._open_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Handle management
    # ------------------------------------------------------------------

    async def open(self) -> CatalogHandle:
        """Ensure the database file and both tables exist; return the shared handle."""
        return await asyncio.to_thread(self._open_sync)

    async def get_handle(self) -> CatalogHandle:
        handle = self._cell.get()
        if handle is not None:
            return handle
        return await self.open()

    def _open_sync(self) -> CatalogHandle:
        with self._open_lock:
            handle = self._cell.get()
            if handle is not None:
                return handle

            stale = self._cell.clear()
            if stale is not None:
                logger.debug("Catalog store {} vanished, re-opening", self.db_path)
                stale.close()

            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.db_path, timeout=30, check_same_thread=False)
            except (OSError, sqlite3.Error) as e:
                raise StorageUnavailable(self.db_path, e) from e

            conn.row_factory = sqlite3.Row
            try:
                with conn:
                    for statement in _SCHEMA:
                        conn.execute(statement)
            except sqlite3.Error as e:
                conn.close()
                raise StorageUnavailable(self.db_path, e) from e

            handle = CatalogHandle(conn, self.db_path)
            self._cell.set(handle)
            logger.debug("Opened catalog store {}", self.db_path)
            return handle

    def close(self) -> None:
        handle = self._cell.clear()
        if handle is not None:
            handle.close()

    # ------------------------------------------------------------------
    # tag_catalog
    # ------------------------------------------------------------------

    async def record_tag(self, entry: TagCatalogEntry) -> None:
        handle = await self.get_handle()
        # Clamp lastUpdated so it never goes backwards for a path.
        await asyncio.to_thread(
            handle.insert,
            """
            INSERT INTO tag_catalog (dir, branch, artifactId, path, cacheKey, lastUpdated)
            SELECT ?, ?, ?, ?, ?, MAX(?, COALESCE(
                (SELECT MAX(lastUpdated) FROM tag_catalog
                 WHERE dir = ? AND branch = ? AND artifactId = ? AND path = ?), 0))
            """,
            (
                entry.directory, entry.branch, entry.artifact_id, entry.path,
                entry.cache_key, entry.last_updated,
                entry.directory, entry.branch, entry.artifact_id, entry.path,
            ),
        )

    async def lookup_tag(
        self,
        directory: str,
        branch: str,
        artifact_id: str,
        path: Optional[str] = None,
    ) -> Optional[str]:
        """
        Cache key of the most recently recorded tag row in the scope (optionally
        for one path). Rows are append-only, so insert order is recency.
        """
        handle = await self.get_handle()
        sql = "SELECT cacheKey FROM tag_catalog WHERE dir = ? AND branch = ? AND artifactId = ?"
        params: List[Any] = [directory, branch, artifact_id]
        if path is not None:
            sql += " AND path = ?"
            params.append(path)
        sql += " ORDER BY id DESC LIMIT 1"
        rows = await asyncio.to_thread(handle.query, sql, params)
        return rows[0]["cacheKey"] if rows else None

    async def latest_tags(
        self, directory: str, branch: str, artifact_id: str
    ) -> Dict[str, TagCatalogEntry]:
        """Newest tag row per path in the scope."""
        handle = await self.get_handle()
        rows = await asyncio.to_thread(
            handle.query,
            """
            SELECT dir, branch, artifactId, path, cacheKey, lastUpdated
            FROM tag_catalog
            WHERE dir = ? AND branch = ? AND artifactId = ?
            ORDER BY lastUpdated ASC, id ASC
            """,
            (directory, branch, artifact_id),
        )
        latest: Dict[str, TagCatalogEntry] = {}
        for row in rows:
            latest[row["path"]] = TagCatalogEntry(
                directory=row["dir"],
                branch=row["branch"],
                artifact_id=row["artifactId"],
                path=row["path"],
                cache_key=row["cacheKey"],
                last_updated=row["lastUpdated"],
            )
        return latest

    # ------------------------------------------------------------------
    # global_cache
    # ------------------------------------------------------------------

    async def record_global_cache(self, entry: GlobalCacheEntry) -> None:
        handle = await self.get_handle()
        await asyncio.to_thread(
            handle.insert,
            "INSERT INTO global_cache (cacheKey, dir, branch, artifactId) VALUES (?, ?, ?, ?)",
            (entry.cache_key, entry.directory, entry.branch, entry.artifact_id),
        )

    async def lookup_global_cache(
        self, directory: str, branch: str, artifact_id: str
    ) -> Optional[str]:
        handle = await self.get_handle()
        rows = await asyncio.to_thread(
            handle.query,
            """
            SELECT cacheKey FROM global_cache
            WHERE dir = ? AND branch = ? AND artifactId = ?
            ORDER BY id DESC LIMIT 1
            """,
            (directory, branch, artifact_id),
        )
        return rows[0]["cacheKey"] if rows else None

    async def list_global_cache(self, directory: Optional[str] = None) -> List[GlobalCacheEntry]:
        handle = await self.get_handle()
        sql = "SELECT cacheKey, dir, branch, artifactId FROM global_cache"
        params: List[Any] = []
        if directory is not None:
            sql += " WHERE dir = ?"
            params.append(directory)
        sql += " ORDER BY id"
        rows = await asyncio.to_thread(handle.query, sql, params)
        return [
            GlobalCacheEntry(
                cache_key=row["cacheKey"],
                directory=row["dir"],
                branch=row["branch"],
                artifact_id=row["artifactId"],
            )
            for row in rows
        ]


# --------------------------------------------------------------------------------
# Process-wide store per database path
# --------------------------------------------------------------------------------

_stores: Dict[Path, IndexCatalogStore] = {}

def get_catalog_store(db_path: Optional[Path] = None) -> IndexCatalogStore:
    path = Path(db_path) if db_path is not None else get_settings().catalog_path
    store = _stores.get(path)
    if store is None:
        store = _stores[path] = IndexCatalogStore(path)
    return store
