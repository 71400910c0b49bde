"""
In-memory document store implementation for testing.

This module provides a simple in-memory backend for:
- Unit tests
- Integration tests (including interleaved concurrent writers)
- Local development without external dependencies

Invariants:
    - All data is lost when the connection is dropped
    - Documents are stored and returned as copies
    - Every operation yields to the event loop once before running, so
      concurrent coroutines interleave between store round-trips
    - conditional_update() runs under the collection lock (atomic)

How to change safely:
    - This is test-oriented code, changes don't affect production backends
    - Keep interface compatible with the Collection protocol
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, List, Mapping, Optional

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


class InMemoryCollection:
    """In-memory implementation of the Collection protocol.

    Attributes:
        name: Collection name
        schema: Model schema registered for this collection

    Example:
        >>> connection = InMemoryConnection()
        >>> stories = connection.register_model(Story)
        >>> doc = await stories.insert(Document(data={"title": "A"}))
    """

    def __init__(self, schema: ModelSchema, storage: Dict[str, Dict[str, Any]]) -> None:
        """Initialize a collection over shared storage.

        Args:
            schema: Model schema
            storage: Mapping of document id to stored fields (owned by the connection)
        """
        self.schema = schema
        self.name = schema.collection_name
        self._docs = storage
        self._lock = asyncio.Lock()
        self._failures: Dict[str, List[Exception]] = defaultdict(list)

    async def _enter(self, operation: str) -> None:
        """Yield once, then raise any injected failure for this operation."""
        await asyncio.sleep(0)
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def _load(self, doc_id: str) -> Document:
        return Document(id=doc_id, data=to_storable(self._docs[doc_id]))

    async def find(self, filter: Optional[Mapping[str, Any]] = None) -> List[Document]:
        """All documents matching the filter, in insertion order."""
        await self._enter("find")
        filter = filter or {}
        results = []
        for doc_id in list(self._docs):
            doc = self._load(doc_id)
            if matches(doc, filter):
                results.append(doc)
        return results

    async def find_by_id(self, doc_id: Any) -> Optional[Document]:
        """Document with this id, or None."""
        await self._enter("find_by_id")
        key = normalize_id(doc_id)
        if key is None or key not in self._docs:
            return None
        return self._load(key)

    async def find_one(self, filter: Mapping[str, Any]) -> Optional[Document]:
        """First document matching the filter, or None."""
        await self._enter("find_one")
        for doc_id in list(self._docs):
            doc = self._load(doc_id)
            if matches(doc, filter):
                return doc
        return None

    async def insert(self, document: Document) -> Document:
        """Insert a document, assigning an id if it has none."""
        await self._enter("insert")
        async with self._lock:
            doc_id = document.id or generate_id()
            if doc_id in self._docs:
                raise DuplicateKeyError(doc_id, self.name)
            self._docs[doc_id] = to_storable(document.copy().data)

        logger.debug(
            "Inserted document",
            extra={"collection": self.name, "doc_id": doc_id},
        )
        return self._load(doc_id)

    async def update(self, document: Document) -> Document:
        """Replace the stored fields of an existing document."""
        await self._enter("update")
        async with self._lock:
            if document.id is None or document.id not in self._docs:
                raise DocumentNotFoundError(document.id, self.name)
            self._docs[document.id] = to_storable(document.copy().data)
        return self._load(document.id)

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
        await self._enter("conditional_update")
        async with self._lock:
            for doc_id in list(self._docs):
                before = self._load(doc_id)
                if not matches(before, filter):
                    continue
                after = before.copy()
                after.data.update(to_storable(dict(patch)))
                self._docs[doc_id] = after.data
                return self._load(doc_id) if return_new else before

            if not upsert:
                return None

            created = insert_template(filter, on_insert)
            created.data.update(to_storable(dict(patch)))
            if created.id in self._docs:
                raise DuplicateKeyError(created.id, self.name)
            self._docs[created.id] = to_storable(created.data)

        logger.debug(
            "Upserted document",
            extra={"collection": self.name, "doc_id": created.id},
        )
        return self._load(created.id) if return_new else None

    async def remove(self, filter: Mapping[str, Any]) -> int:
        """Delete all documents matching the filter."""
        await self._enter("remove")
        async with self._lock:
            doomed = [doc_id for doc_id in list(self._docs) if matches(self._load(doc_id), filter)]
            for doc_id in doomed:
                del self._docs[doc_id]
        return len(doomed)

    async def count(self, filter: Optional[Mapping[str, Any]] = None) -> int:
        """Number of documents matching the filter."""
        await self._enter("count")
        filter = filter or {}
        return sum(1 for doc_id in list(self._docs) if matches(self._load(doc_id), filter))

    # Testing helpers

    def inject_failure(self, operation: str, exception: Optional[Exception] = None, times: int = 1) -> None:
        """Make the next `times` calls of an operation raise.

        Args:
            operation: Method name (insert, update, remove, ...)
            exception: Exception to raise (defaults to a StoreError)
            times: Number of consecutive calls to fail
        """
        for _ in range(times):
            self._failures[operation].append(
                exception
                or StoreError(f"Injected {operation} failure", operation=operation, collection=self.name)
            )

    def clear_failures(self) -> None:
        """Drop all pending injected failures."""
        self._failures.clear()

    def all_documents(self) -> List[Document]:
        """Every stored document, without going through the event loop."""
        return [self._load(doc_id) for doc_id in list(self._docs)]


class InMemoryConnection:
    """In-memory implementation of the Connection protocol.

    Each connection is an isolated database: two connections never share
    documents, even for models of the same name.

    Example:
        >>> tenant_a = InMemoryConnection("tenant_a")
        >>> tenant_b = InMemoryConnection("tenant_b")
    """

    def __init__(self, name: str = "memory") -> None:
        """Initialize an empty in-memory database.

        Args:
            name: Connection name (used in logs)
        """
        self.name = name
        self.registry = ModelRegistry()
        self._storage: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._collections: Dict[str, InMemoryCollection] = {}

    def register_model(self, schema: ModelSchema) -> InMemoryCollection:
        """Register a model and return its collection handle."""
        self.registry.register(schema)
        collection = InMemoryCollection(schema, self._storage[schema.collection_name])
        self._collections[schema.name] = collection
        logger.debug(
            "Model registered on in-memory connection",
            extra={"connection": self.name, "model": schema.name},
        )
        return collection

    def get_model(self, name: str) -> Optional[InMemoryCollection]:
        """Collection handle of a registered model, or None."""
        return self._collections.get(name)

    async def close(self) -> None:
        """Clear all data."""
        for docs in self._storage.values():
            docs.clear()
        self._storage.clear()
        self._collections.clear()
        logger.debug("InMemoryConnection closed", extra={"connection": self.name})
