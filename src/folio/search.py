"""Full-text search index over articles and notes (SQLite FTS5).

The index lives in ``{index_dir}/index.db``. Stored fields (slug, title,
description, category) sit in ``documents``; the tokenized fields sit in
``documents_fts`` under the same rowid. Notes are indexed with a ``notes/``
slug prefix so both collections share one keyspace.

Every write runs inside a single transaction: a failure rolls back and the
previously committed index stays visible to readers.
"""

from __future__ import annotations

import logging
import re
import sqlite3
import threading
from collections import Counter, deque
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from folio.db import Database, run_migrations
from folio.errors import IndexerError
from folio.models import SearchDocument, SearchEvent, SearchResult

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.db"
DEFAULT_HEAP_SIZE = 50_000_000
RECENT_SEARCHES = 1000
HIGHLIGHT_WINDOW = 50

# Columns a query matches against; category is tokenized but not queried.
_QUERY_COLUMNS = "{title content description tags}"


def build_match_expression(query: str) -> str:
    """Turn free text into an FTS5 MATCH expression.

    Punctuation is stripped; each remaining token becomes a quoted phrase
    restricted to the default query columns, and tokens are OR-combined.
    Returns "" when nothing searchable remains.

    Example:
        "rust, async!" -> '{title content description tags} : "rust" OR
                           {title content description tags} : "async"'
    """
    tokens = re.sub(r"[^\w\s]", " ", query).split()
    return " OR ".join(f'{_QUERY_COLUMNS} : "{tok}"' for tok in tokens)


def make_highlights(query: str, title: str, description: str) -> list[str]:
    """Title marker plus a window of the description around the first match."""
    needle = query.lower()
    highlights: list[str] = []
    if needle in title.lower():
        highlights.append(f"Title: {title}")
    pos = description.lower().find(needle)
    if pos >= 0:
        start = max(0, pos - HIGHLIGHT_WINDOW)
        end = min(len(description), pos + len(needle) + HIGHLIGHT_WINDOW)
        highlights.append(f"...{description[start:end]}...")
    return highlights


class SearchIndex:
    """Writer and reader for the FTS5 index, plus in-memory query statistics.

    All database access is serialised by an internal lock, so one instance can
    be shared by the indexer worker and any number of request threads.
    """

    def __init__(self, conn: sqlite3.Connection, path: Path) -> None:
        self._conn = conn
        self.path = path
        self._lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._counts: Counter[str] = Counter()
        self._recent: deque[SearchEvent] = deque(maxlen=RECENT_SEARCHES)

    @classmethod
    def open_or_create(cls, index_dir: Path | str) -> SearchIndex:
        """Open the index under *index_dir*, creating directory and schema if needed.

        Raises:
            IndexerError: if the directory or database cannot be opened.
        """
        index_dir = Path(index_dir)
        try:
            index_dir.mkdir(parents=True, exist_ok=True)
            path = index_dir / INDEX_FILENAME
            conn = Database(path).connect(shared=True)
            run_migrations(conn)
        except (OSError, sqlite3.Error) as exc:
            raise IndexerError(f"cannot open search index in {index_dir}: {exc}") from exc
        logger.info("opened search index at %s", path)
        return cls(conn, path)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def rebuild(self, docs: Iterable[SearchDocument], heap: int = DEFAULT_HEAP_SIZE) -> int:
        """Replace the whole index with *docs* (drafts skipped).

        Documents sharing a slug (same-named notes in different categories)
        replace one another in order. Returns the number of documents indexed.
        """
        docs = list(docs)

        def _write(conn: sqlite3.Connection) -> int:
            conn.execute("DELETE FROM documents_fts")
            conn.execute("DELETE FROM documents")
            for doc in docs:
                self._delete(conn, doc.slug)
                self._add(conn, doc)
            return conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]

        added = self._write(_write, heap, "rebuild")
        logger.info("rebuilt search index with %d documents", added)
        return added

    def upsert(self, doc: SearchDocument, heap: int = DEFAULT_HEAP_SIZE) -> None:
        """Replace the document for ``doc.slug``; a draft only deletes."""

        def _write(conn: sqlite3.Connection) -> None:
            self._delete(conn, doc.slug)
            self._add(conn, doc)

        self._write(_write, heap, f"upsert {doc.slug}")

    def remove(self, slug: str, heap: int = DEFAULT_HEAP_SIZE) -> None:
        self._write(lambda conn: self._delete(conn, slug), heap, f"remove {slug}")

    def apply_batch(
        self,
        upserts: Iterable[SearchDocument],
        removes: Iterable[str],
        heap: int = DEFAULT_HEAP_SIZE,
    ) -> None:
        """Apply many changes in one transaction.

        All removals run first, then upserts in order; each upsert deletes its
        slug before adding, so the last upsert for a slug wins.
        """
        upserts = list(upserts)
        removes = list(removes)

        def _write(conn: sqlite3.Connection) -> None:
            for slug in removes:
                self._delete(conn, slug)
            for doc in upserts:
                self._delete(conn, doc.slug)
                self._add(conn, doc)

        self._write(_write, heap, "batch")
        logger.info(
            "search index updated: %d upserts, %d removals", len(upserts), len(removes)
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def search(self, query: str, limit: int = 20, highlights: bool = False) -> list[SearchResult]:
        """Top *limit* documents by BM25 relevance (higher score = better).

        Raises:
            IndexerError: if the query cannot be executed.
        """
        expression = build_match_expression(query)
        if not expression or limit <= 0:
            return []
        try:
            with self._lock:
                rows = self._conn.execute(
                    """
                    SELECT d.slug, d.title, d.description, bm25(documents_fts) AS rank
                    FROM documents_fts
                    JOIN documents d ON d.rowid = documents_fts.rowid
                    WHERE documents_fts MATCH ?
                    ORDER BY rank
                    LIMIT ?
                    """,
                    (expression, limit),
                ).fetchall()
        except sqlite3.Error as exc:
            raise IndexerError(f"search failed for {query!r}: {exc}") from exc

        return [
            SearchResult(
                slug=row["slug"],
                title=row["title"],
                description=row["description"],
                score=-row["rank"],
                highlights=(
                    make_highlights(query, row["title"], row["description"])
                    if highlights
                    else None
                ),
            )
            for row in rows
        ]

    def count(self) -> int:
        try:
            with self._lock:
                return self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
        except sqlite3.Error as exc:
            raise IndexerError(f"cannot count documents: {exc}") from exc

    def slugs(self) -> set[str]:
        """Every indexed slug (notes carry their ``notes/`` prefix)."""
        try:
            with self._lock:
                rows = self._conn.execute("SELECT slug FROM documents").fetchall()
        except sqlite3.Error as exc:
            raise IndexerError(f"cannot list documents: {exc}") from exc
        return {row["slug"] for row in rows}

    # ------------------------------------------------------------------
    # Query statistics
    # ------------------------------------------------------------------

    def record_search(self, query: str) -> None:
        query = query.strip()
        if not query:
            return
        with self._stats_lock:
            self._counts[query] += 1
            self._recent.append(
                SearchEvent(
                    query=query,
                    timestamp=datetime.now(timezone.utc),
                    count=self._counts[query],
                )
            )

    def top_searches(self, k: int = 10) -> list[tuple[str, int]]:
        """The *k* most frequent queries as (query, count), most frequent first."""
        with self._stats_lock:
            return self._counts.most_common(k)

    def recent_searches(self) -> list[SearchEvent]:
        with self._stats_lock:
            return list(self._recent)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _write(self, fn, heap: int, what: str):
        try:
            with self._lock:
                self._conn.execute(f"PRAGMA cache_size = -{max(1, heap // 1024)}")
                with self._conn:
                    return fn(self._conn)
        except sqlite3.Error as exc:
            raise IndexerError(f"search index {what} failed: {exc}") from exc

    @staticmethod
    def _add(conn: sqlite3.Connection, doc: SearchDocument) -> int:
        if doc.draft:
            return 0
        cur = conn.execute(
            "INSERT INTO documents (slug, title, description, category) VALUES (?, ?, ?, ?)",
            (doc.slug, doc.title, doc.description, doc.category),
        )
        conn.execute(
            """
            INSERT INTO documents_fts (rowid, title, content, description, tags, category)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (cur.lastrowid, doc.title, doc.content, doc.description, doc.tags, doc.category),
        )
        return 1

    @staticmethod
    def _delete(conn: sqlite3.Connection, slug: str) -> None:
        row = conn.execute("SELECT rowid FROM documents WHERE slug = ?", (slug,)).fetchone()
        if row is None:
            return
        conn.execute("DELETE FROM documents_fts WHERE rowid = ?", (row[0],))
        conn.execute("DELETE FROM documents WHERE rowid = ?", (row[0],))
