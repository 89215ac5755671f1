"""
Item store using SQLite.

Stores notes, the profile and content chunks in one database file.
DocumentStore is the synchronous owner of the connection; ItemStore is the
async view of a single item kind that the retrieval engine consumes. Every
SQLite error is raised as StoreError.
"""

import asyncio
import json
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Sequence

from .errors import StoreError
from .text import LIKE_ESCAPE, escape_like
from .types import ITEM_KINDS, PROFILE, Chunk, Item, utc_now

logger = logging.getLogger(__name__)

_ITEM_COLUMNS = "id, kind, title, content, tags_json, embedding_json, created_at, updated_at"


def _row_to_item(row: sqlite3.Row) -> Item:
    embedding = row["embedding_json"]
    return Item(
        id=row["id"],
        kind=row["kind"],
        title=row["title"],
        content=row["content"],
        tags=json.loads(row["tags_json"]),
        embedding=json.loads(embedding) if embedding else None,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _casefold(value):
    return value.casefold() if isinstance(value, str) else value


def _like(term: str) -> str:
    return f"%{escape_like(term.casefold())}%"


class DocumentStore:
    """
    SQLite-backed store for items and chunks.

    Items are keyed by (id, kind). There is at most one profile: storing a
    profile replaces any other.
    """

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = Path(db_path)
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            # LIKE only folds ASCII; patterns and columns are compared casefolded
            self._conn.create_function("casefold", 1, _casefold, deterministic=True)

            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS items (
                    id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    title TEXT NOT NULL DEFAULT '',
                    content TEXT NOT NULL DEFAULT '',
                    tags_json TEXT NOT NULL DEFAULT '[]',
                    embedding_json TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (id, kind)
                )
            """)

            # Index for recency ordering within a kind
            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_items_kind_updated
                ON items(kind, updated_at)
            """)

            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS chunks (
                    id TEXT PRIMARY KEY,
                    parent_id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    content TEXT NOT NULL,
                    embedding_json TEXT NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_chunks_parent
                ON chunks(parent_id, chunk_index)
            """)

            self._conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise StoreError(f"Cannot open item database {self._db_path}: {e}") from e

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Connection]:
        """Serialize access to the connection and map SQLite errors."""
        if self._conn is None:
            raise StoreError("Item database is closed")
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as e:
                self._conn.rollback()
                raise StoreError(f"Item database error: {e}") from e

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def upsert(self, item: Item) -> Item:
        """
        Insert or update an item.

        Preserves created_at on update. Storing a profile removes any other
        profile.
        """
        if item.kind not in ITEM_KINDS:
            raise StoreError(f"Unknown item kind: {item.kind!r}")
        tags_json = json.dumps(list(item.tags), ensure_ascii=False)
        embedding_json = json.dumps(list(item.embedding)) if item.embedding else None

        with self._cursor() as conn:
            existing = conn.execute(
                "SELECT created_at FROM items WHERE id = ? AND kind = ?",
                (item.id, item.kind),
            ).fetchone()
            created_at = existing["created_at"] if existing else item.created_at

            if item.kind == PROFILE:
                conn.execute(
                    "DELETE FROM items WHERE kind = ? AND id != ?", (PROFILE, item.id)
                )
            conn.execute(f"""
                INSERT OR REPLACE INTO items ({_ITEM_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (item.id, item.kind, item.title, item.content, tags_json,
                  embedding_json, created_at, item.updated_at))
            conn.commit()

        return Item(
            id=item.id, kind=item.kind, title=item.title, content=item.content,
            tags=item.tags, embedding=item.embedding,
            created_at=created_at, updated_at=item.updated_at,
        )

    def update_embedding(self, kind: str, id: str, embedding: Sequence[float]) -> bool:
        """
        Replace an item's embedding without touching updated_at.

        Returns:
            True if the item was found and updated
        """
        with self._cursor() as conn:
            cursor = conn.execute(
                "UPDATE items SET embedding_json = ? WHERE id = ? AND kind = ?",
                (json.dumps([float(v) for v in embedding]), id, kind),
            )
            conn.commit()
            return cursor.rowcount > 0

    def delete(self, kind: str, id: str) -> bool:
        """Delete an item. Its chunks are left in place."""
        with self._cursor() as conn:
            cursor = conn.execute(
                "DELETE FROM items WHERE id = ? AND kind = ?", (id, kind)
            )
            conn.commit()
            return cursor.rowcount > 0

    def insert_chunk(self, kind: str, chunk: Chunk) -> str:
        """Insert a chunk and return its id."""
        chunk_id = chunk.id or uuid.uuid4().hex
        with self._cursor() as conn:
            conn.execute("""
                INSERT INTO chunks
                (id, parent_id, kind, content, embedding_json, chunk_index, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (chunk_id, chunk.parent_id, kind, chunk.content,
                  json.dumps(list(chunk.embedding)), chunk.chunk_index, utc_now()))
            conn.commit()
        return chunk_id

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, kind: str, id: str) -> Optional[Item]:
        with self._cursor() as conn:
            row = conn.execute(
                f"SELECT {_ITEM_COLUMNS} FROM items WHERE id = ? AND kind = ?",
                (id, kind),
            ).fetchone()
        return _row_to_item(row) if row else None

    def _select(self, kind: str, where: str, params: tuple, limit: int, offset: int = 0) -> list[Item]:
        sql = f"""
            SELECT {_ITEM_COLUMNS} FROM items
            WHERE kind = ? {where}
            ORDER BY updated_at DESC, id
            LIMIT ? OFFSET ?
        """
        with self._cursor() as conn:
            rows = conn.execute(sql, (kind, *params, limit, offset)).fetchall()
        return [_row_to_item(r) for r in rows]

    def recent(self, kind: str, limit: int, offset: int = 0) -> list[Item]:
        """Most recently updated items of a kind."""
        return self._select(kind, "", (), limit, offset)

    def list_with_embedding(self, kind: str, limit: int,
                            exclude_id: Optional[str] = None) -> list[Item]:
        if exclude_id is None:
            return self._select(kind, "AND embedding_json IS NOT NULL", (), limit)
        return self._select(
            kind, "AND embedding_json IS NOT NULL AND id != ?", (exclude_id,), limit,
        )

    def list_without_embedding(self, kind: str, limit: int) -> list[Item]:
        return self._select(kind, "AND embedding_json IS NULL", (), limit)

    def list_with_tags(self, kind: str, limit: int) -> list[Item]:
        return self._select(kind, "AND tags_json != '[]'", (), limit)

    def keyword_search(
        self,
        kind: str,
        keywords: Sequence[str],
        tags: Sequence[str],
        limit: int,
        offset: int = 0,
        phrase: Optional[str] = None,
    ) -> list[Item]:
        """
        Case-insensitive (Unicode casefold) substring search, newest first.

        Any keyword may match title, content or tags. ``phrase`` matches
        title or content and is used when there are no keywords. Each tag
        must appear in the item's tags. Wildcards in the input are escaped.
        """
        clauses = []
        params: list[str] = []
        escape = f"ESCAPE '{LIKE_ESCAPE}'"

        if keywords:
            keyword_clauses = []
            for keyword in keywords:
                pattern = _like(keyword)
                keyword_clauses.append(
                    f"(casefold(title) LIKE ? {escape} OR casefold(content) LIKE ? {escape} "
                    f"OR casefold(tags_json) LIKE ? {escape})"
                )
                params.extend([pattern, pattern, pattern])
            clauses.append("(" + " OR ".join(keyword_clauses) + ")")
        elif phrase:
            pattern = _like(phrase)
            clauses.append(f"(casefold(title) LIKE ? {escape} OR casefold(content) LIKE ? {escape})")
            params.extend([pattern, pattern])

        for tag in tags:
            clauses.append(f"casefold(tags_json) LIKE ? {escape}")
            params.append(_like(tag))

        where = "".join(f" AND {c}" for c in clauses)
        return self._select(kind, where, tuple(params), limit, offset)

    def list_chunks(self, parent_id: str) -> list[Chunk]:
        with self._cursor() as conn:
            rows = conn.execute("""
                SELECT id, parent_id, content, embedding_json, chunk_index
                FROM chunks WHERE parent_id = ? ORDER BY chunk_index
            """, (parent_id,)).fetchall()
        return [
            Chunk(
                id=r["id"],
                parent_id=r["parent_id"],
                content=r["content"],
                embedding=tuple(json.loads(r["embedding_json"])),
                chunk_index=r["chunk_index"],
            )
            for r in rows
        ]

    def count(self, kind: str) -> int:
        with self._cursor() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM items WHERE kind = ?", (kind,)
            ).fetchone()
        return row[0]

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class ItemStore:
    """
    Async view of one item kind in a DocumentStore.

    SQLite calls run in a worker thread so the event loop is never blocked.
    """

    def __init__(self, documents: DocumentStore, kind: str):
        if kind not in ITEM_KINDS:
            raise ValueError(f"Unknown item kind: {kind!r}")
        self.documents = documents
        self.kind = kind

    async def get_by_id(self, id: str) -> Optional[Item]:
        return await asyncio.to_thread(self.documents.get, self.kind, id)

    async def list_with_embedding(self, limit: int) -> list[Item]:
        return await asyncio.to_thread(self.documents.list_with_embedding, self.kind, limit)

    async def list_other_with_embedding(self, exclude_id: str, limit: int) -> list[Item]:
        return await asyncio.to_thread(
            self.documents.list_with_embedding, self.kind, limit, exclude_id,
        )

    async def list_with_tags(self, limit: int) -> list[Item]:
        return await asyncio.to_thread(self.documents.list_with_tags, self.kind, limit)

    async def list_without_embedding(self, limit: int) -> list[Item]:
        return await asyncio.to_thread(self.documents.list_without_embedding, self.kind, limit)

    async def keyword_search(
        self,
        keywords: Sequence[str],
        tags: Sequence[str],
        limit: int,
        offset: int,
        *,
        phrase: Optional[str] = None,
    ) -> list[Item]:
        return await asyncio.to_thread(
            self.documents.keyword_search,
            self.kind, list(keywords), list(tags), limit, offset, phrase,
        )

    async def recent(self, limit: int, offset: int = 0) -> list[Item]:
        return await asyncio.to_thread(self.documents.recent, self.kind, limit, offset)

    async def update_embedding(self, id: str, embedding: Sequence[float]) -> None:
        updated = await asyncio.to_thread(
            self.documents.update_embedding, self.kind, id, embedding,
        )
        if not updated:
            logger.debug("No %s %s to update embedding for", self.kind, id)

    async def insert_chunk(self, chunk: Chunk) -> str:
        return await asyncio.to_thread(self.documents.insert_chunk, self.kind, chunk)

    async def upsert(self, item: Item) -> Item:
        if item.kind != self.kind:
            raise StoreError(f"Cannot store a {item.kind} in the {self.kind} store")
        return await asyncio.to_thread(self.documents.upsert, item)

    async def delete(self, id: str) -> bool:
        return await asyncio.to_thread(self.documents.delete, self.kind, id)

    async def list_chunks(self, parent_id: str) -> list[Chunk]:
        return await asyncio.to_thread(self.documents.list_chunks, parent_id)

    async def count(self) -> int:
        return await asyncio.to_thread(self.documents.count, self.kind)
