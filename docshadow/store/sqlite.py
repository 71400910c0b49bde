"""
SQLite document store for docshadow.

This module manages one SQLite database file per connection (one per
tenant) holding every collection registered on that connection.

Invariants:
    - One SQLite file per tenant
    - All writes run in a single BEGIN IMMEDIATE transaction
    - conditional_update() reads and writes under the same transaction,
      so concurrent writers (other processes included) serialize on it
    - sqlite3 errors surface as StoreError
    - Field values must be JSON-serializable; anything else raises
      StoreError before the row is written

How to change safely:
    - Schema migrations must be backward compatible
    - Filters are evaluated in Python over the collection's rows; add
      json_extract indexes before relying on large collections

Table schema:
    documents:
        - collection TEXT
        - doc_id TEXT
        - payload_json TEXT
        - created_at INTEGER (Unix ms)
        - updated_at INTEGER (Unix ms)
        - PRIMARY KEY (collection, doc_id)
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from ..config import StorageConfig
from ..errors import DocumentNotFoundError, DuplicateKeyError, StoreError
from ..schema.registry import ModelRegistry
from ..schema.types import ModelSchema
from .base import (
    Document,
    generate_id,
    insert_template,
    matches,
    normalize_id,
    to_storable,
)

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class SqliteCollection:
    """One collection inside a tenant SQLite database.

    Attributes:
        name: Collection name
        schema: Model schema registered for this collection
    """

    def __init__(self, schema: ModelSchema, connection: SqliteConnection) -> None:
        self.schema = schema
        self.name = schema.collection_name
        self._conn = connection

    def _row_to_document(self, row: sqlite3.Row) -> Document:
        return Document(id=row["doc_id"], data=json.loads(row["payload_json"]))

    def _select(self, conn: sqlite3.Connection, filter: Mapping[str, Any]) -> Iterator[Document]:
        doc_id = filter.get("_id")
        if doc_id is not None:
            cursor = conn.execute(
                "SELECT doc_id, payload_json FROM documents WHERE collection = ? AND doc_id = ?",
                (self.name, normalize_id(doc_id)),
            )
        else:
            cursor = conn.execute(
                "SELECT doc_id, payload_json FROM documents WHERE collection = ? ORDER BY rowid",
                (self.name,),
            )
        for row in cursor:
            doc = self._row_to_document(row)
            if matches(doc, filter):
                yield doc

    def _payload(self, document: Document, operation: str) -> str:
        """Serialize document fields; the payload column holds JSON only."""
        try:
            return json.dumps(to_storable(document.data))
        except (TypeError, ValueError) as e:
            raise StoreError(
                f"Document {document.id} is not JSON-serializable: {e}",
                operation=operation,
                collection=self.name,
            ) from e

    def _insert_row(self, conn: sqlite3.Connection, document: Document) -> None:
        payload = self._payload(document, "insert")
        now = _now_ms()
        try:
            conn.execute(
                """
                INSERT INTO documents (collection, doc_id, payload_json, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (self.name, document.id, payload, now, now),
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateKeyError(document.id, self.name) from e

    def _write_row(self, conn: sqlite3.Connection, document: Document) -> int:
        payload = self._payload(document, "update")
        cursor = conn.execute(
            """
            UPDATE documents SET payload_json = ?, updated_at = ?
            WHERE collection = ? AND doc_id = ?
            """,
            (payload, _now_ms(), self.name, document.id),
        )
        return cursor.rowcount

    async def find(self, filter: Optional[Mapping[str, Any]] = None) -> List[Document]:
        """All documents matching the filter, in insertion order."""
        with self._conn.cursor("find", self.name) as conn:
            return list(self._select(conn, filter or {}))

    async def find_by_id(self, doc_id: Any) -> Optional[Document]:
        """Document with this id, or None."""
        key = normalize_id(doc_id)
        if key is None:
            return None
        with self._conn.cursor("find_by_id", self.name) as conn:
            return next(self._select(conn, {"_id": key}), None)

    async def find_one(self, filter: Mapping[str, Any]) -> Optional[Document]:
        """First document matching the filter, or None."""
        with self._conn.cursor("find_one", self.name) as conn:
            return next(self._select(conn, filter), None)

    async def insert(self, document: Document) -> Document:
        """Insert a document, assigning an id if it has none."""
        doc = document.copy()
        doc.id = doc.id or generate_id()
        with self._conn.transaction("insert", self.name) as conn:
            self._insert_row(conn, doc)

        logger.debug(
            "Inserted document",
            extra={"tenant_id": self._conn.tenant_id, "collection": self.name, "doc_id": doc.id},
        )
        return Document(id=doc.id, data=to_storable(doc.data))

    async def update(self, document: Document) -> Document:
        """Replace the stored fields of an existing document."""
        if document.id is None:
            raise DocumentNotFoundError(None, self.name)
        with self._conn.transaction("update", self.name) as conn:
            if self._write_row(conn, document) == 0:
                raise DocumentNotFoundError(document.id, self.name)
        return Document(id=document.id, data=to_storable(document.copy().data))

    async def conditional_update(
        self,
        filter: Mapping[str, Any],
        patch: Mapping[str, Any],
        *,
        upsert: bool = False,
        return_new: bool = False,
        on_insert: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Document]:
        """Atomically patch the first matching document (or upsert)."""
        with self._conn.transaction("conditional_update", self.name) as conn:
            before = next(self._select(conn, filter), None)
            if before is not None:
                after = before.copy()
                after.data.update(to_storable(dict(patch)))
                self._write_row(conn, after)
                return after if return_new else before

            if not upsert:
                return None

            created = insert_template(filter, on_insert)
            created.data.update(to_storable(dict(patch)))
            self._insert_row(conn, created)

        logger.debug(
            "Upserted document",
            extra={"tenant_id": self._conn.tenant_id, "collection": self.name, "doc_id": created.id},
        )
        return created if return_new else None

    async def remove(self, filter: Mapping[str, Any]) -> int:
        """Delete all documents matching the filter."""
        with self._conn.transaction("remove", self.name) as conn:
            doomed = [doc.id for doc in self._select(conn, filter)]
            for doc_id in doomed:
                conn.execute(
                    "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                    (self.name, doc_id),
                )
        return len(doomed)

    async def count(self, filter: Optional[Mapping[str, Any]] = None) -> int:
        """Number of documents matching the filter."""
        with self._conn.cursor("count", self.name) as conn:
            return sum(1 for _ in self._select(conn, filter or {}))


class SqliteConnection:
    """Per-tenant SQLite database implementing the Connection protocol.

    Thread safety:
        Each operation opens its own sqlite3 connection.
        SQLite handles concurrent access via WAL mode.

    Example:
        >>> connection = SqliteConnection("/var/lib/docshadow", "tenant_123")
        >>> stories = connection.register_model(Story)
        >>> doc = await stories.insert(Document(data={"title": "My Story"}))
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        data_dir: str,
        tenant_id: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        cache_size_pages: int = -64000,
    ) -> None:
        """Initialize the connection and create the schema if needed.

        Args:
            data_dir: Directory for SQLite database files
            tenant_id: Tenant identifier (one database file per tenant)
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            cache_size_pages: SQLite cache size (negative = KB)
        """
        self.data_dir = Path(data_dir)
        self.tenant_id = tenant_id
        self.name = f"sqlite:{tenant_id}"
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.cache_size_pages = cache_size_pages
        self.registry = ModelRegistry()
        self._collections: Dict[str, SqliteCollection] = {}

        with self.transaction("initialize", None) as conn:
            self._create_schema(conn)
        logger.info(f"Initialized tenant database: {tenant_id}")

    @classmethod
    def from_config(cls, config: StorageConfig, tenant_id: str) -> SqliteConnection:
        """Create a connection from storage configuration."""
        return cls(
            config.data_dir,
            tenant_id,
            wal_mode=config.wal_mode,
            busy_timeout_ms=config.busy_timeout_ms,
            cache_size_pages=config.cache_size_pages,
        )

    @property
    def db_path(self) -> Path:
        """Database file path for this tenant."""
        # Sanitize tenant_id to prevent path traversal
        safe_id = "".join(c for c in self.tenant_id if c.isalnum() or c in "-_")
        return self.data_dir / f"tenant_{safe_id}.db"

    @contextmanager
    def _open(self) -> Iterator[sqlite3.Connection]:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute(f"PRAGMA cache_size = {self.cache_size_pages}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def cursor(self, operation: str, collection: Optional[str]) -> Iterator[sqlite3.Connection]:
        """Read-only access; sqlite3 errors become StoreError."""
        try:
            with self._open() as conn:
                yield conn
        except sqlite3.Error as e:
            raise StoreError(f"SQLite {operation} failed: {e}", operation=operation, collection=collection) from e

    @contextmanager
    def transaction(self, operation: str, collection: Optional[str]) -> Iterator[sqlite3.Connection]:
        """Run a block inside BEGIN IMMEDIATE ... COMMIT.

        Any exception rolls back; sqlite3 errors become StoreError.
        """
        try:
            with self._open() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    yield conn
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise
        except sqlite3.Error as e:
            raise StoreError(f"SQLite {operation} failed: {e}", operation=operation, collection=collection) from e

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                doc_id TEXT NOT NULL,
                payload_json TEXT NOT NULL DEFAULT '{}',
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                PRIMARY KEY (collection, doc_id)
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_documents_updated ON documents(collection, updated_at DESC)"
        )
        conn.execute(
            "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
            (self.SCHEMA_VERSION, _now_ms()),
        )

    def register_model(self, schema: ModelSchema) -> SqliteCollection:
        """Register a model and return its collection handle."""
        self.registry.register(schema)
        collection = SqliteCollection(schema, self)
        self._collections[schema.name] = collection
        logger.debug(
            "Model registered on SQLite connection",
            extra={"tenant_id": self.tenant_id, "model": schema.name},
        )
        return collection

    def get_model(self, name: str) -> Optional[SqliteCollection]:
        """Collection handle of a registered model, or None."""
        return self._collections.get(name)

    async def close(self) -> None:
        """Nothing to release; connections are per operation."""
        self._collections.clear()
