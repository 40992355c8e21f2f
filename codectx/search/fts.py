# codectx/search/fts.py

import asyncio
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, List, Optional, Sequence

from loguru import logger

from codectx.config import get_settings
from codectx.schema import Chunk, IndexTag

# --------------------------------------------------------------------------------
# SQLite FTS5 engine storing chunks per index tag. bm25() is negative; more
# negative means more relevant.
# --------------------------------------------------------------------------------

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS fts_metadata (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        tag TEXT NOT NULL,
        path TEXT NOT NULL,
        language TEXT NOT NULL,
        start_line INTEGER NOT NULL,
        end_line INTEGER NOT NULL,
        chunk_index INTEGER NOT NULL,
        digest TEXT NOT NULL,
        content TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_fts_metadata_tag ON fts_metadata(tag)",
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS fts USING fts5(
        path,
        content,
        tokenize='unicode61'
    )
    """,
]


def _like_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def normalize_directory(directory: str) -> str:
    d = directory.replace("\\", "/").strip()
    while d.startswith("./"):
        d = d[2:]
    return d.rstrip("/")


class FullTextSearchIndex:
    def __init__(self, db_path: Optional[Path] = None):
        if db_path is None:
            db_path = get_settings().fts_path
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        with self._get_db() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)
            conn.commit()

    @contextmanager
    def _get_db(self):
        """Get a database connection"""
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def replace_tag(self, tag: IndexTag, chunks: Sequence[Chunk]) -> int:
        """Drop everything stored under ``tag`` and store ``chunks`` instead."""
        return await asyncio.to_thread(self._replace_tag_sync, tag.tag_string(), list(chunks))

    def _replace_tag_sync(self, tag: str, chunks: List[Chunk]) -> int:
        with self._get_db() as conn:
            conn.execute(
                "DELETE FROM fts WHERE rowid IN (SELECT id FROM fts_metadata WHERE tag = ?)",
                (tag,),
            )
            conn.execute("DELETE FROM fts_metadata WHERE tag = ?", (tag,))
            for chunk in chunks:
                cur = conn.execute(
                    """
                    INSERT INTO fts_metadata
                    (tag, path, language, start_line, end_line, chunk_index, digest, content)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        tag, chunk.filepath, chunk.language, chunk.start_line,
                        chunk.end_line, chunk.index, chunk.digest, chunk.content,
                    ),
                )
                conn.execute(
                    "INSERT INTO fts (rowid, path, content) VALUES (?, ?, ?)",
                    (cur.lastrowid, chunk.filepath, chunk.content),
                )
            conn.commit()
        logger.debug("Stored {} chunks under {}", len(chunks), tag)
        return len(chunks)

    def count(self, tag: Optional[IndexTag] = None) -> int:
        with self._get_db() as conn:
            if tag is None:
                row = conn.execute("SELECT COUNT(*) AS n FROM fts_metadata").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) AS n FROM fts_metadata WHERE tag = ?",
                    (tag.tag_string(),),
                ).fetchone()
            return row["n"]

    # ------------------------------------------------------------------
    # Querying
    # ------------------------------------------------------------------

    async def retrieve(
        self,
        tags: Sequence[IndexTag],
        query: str,
        limit: int,
        directory_filter: Optional[str] = None,
        file_filter: Optional[Sequence[str]] = None,
        score_threshold: float = -2.5,
        language_filter: Optional[str] = None,
    ) -> List[Chunk]:
        """
        Run an FTS5 MATCH ``query`` over the chunks stored under ``tags``.
        Results are ordered by bm25 and rows scoring above ``score_threshold``
        are dropped, so fewer than ``limit`` chunks may come back.
        Raises sqlite3.Error for queries FTS5 cannot parse.
        """
        return await asyncio.to_thread(
            self._retrieve_sync,
            [t.tag_string() for t in tags],
            query,
            limit,
            directory_filter,
            list(file_filter) if file_filter is not None else None,
            score_threshold,
            language_filter,
        )

    def _retrieve_sync(
        self,
        tags: List[str],
        query: str,
        limit: int,
        directory_filter: Optional[str],
        file_filter: Optional[List[str]],
        score_threshold: float,
        language_filter: Optional[str],
    ) -> List[Chunk]:
        if not tags or limit <= 0:
            return []

        clauses = ["fts MATCH ?", f"m.tag IN ({', '.join('?' for _ in tags)})"]
        params: List[Any] = [query, *tags]
        if directory_filter:
            directory = normalize_directory(directory_filter)
            if directory:
                clauses.append("(m.path = ? OR m.path LIKE ? ESCAPE '\\')")
                params.extend([directory, _like_escape(directory) + "/%"])
        if file_filter is not None:
            if not file_filter:
                return []
            clauses.append(f"m.path IN ({', '.join('?' for _ in file_filter)})")
            params.extend(file_filter)
        if language_filter:
            clauses.append("m.language = ?")
            params.append(language_filter)
        where_sql = " AND ".join(clauses)
        sql = f"""
            SELECT
                m.path,
                m.language,
                m.content,
                m.start_line,
                m.end_line,
                m.chunk_index,
                m.digest,
                bm25(fts) AS bm25_score
            FROM fts
            JOIN fts_metadata m ON m.id = fts.rowid
            WHERE {where_sql}
            ORDER BY bm25_score
            LIMIT ?
        """
        params.append(limit)

        with self._get_db() as conn:
            rows = conn.execute(sql, params).fetchall()

        return [
            Chunk(
                filepath=row["path"],
                language=row["language"],
                content=row["content"],
                start_line=row["start_line"],
                end_line=row["end_line"],
                index=row["chunk_index"],
                digest=row["digest"],
                score=-float(row["bm25_score"]),
            )
            for row in rows
            if row["bm25_score"] <= score_threshold
        ]
