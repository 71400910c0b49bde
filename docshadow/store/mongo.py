"""
MongoDB document store implementation.

Uses motor for async access. Each MongoConnection wraps one database;
multi-tenant deployments open one connection per tenant database.

Invariants:
    - Document ids are stored as string _id values
    - conditional_update() maps to a single find_one_and_update call
      ($set + $setOnInsert), which MongoDB applies atomically
    - pymongo errors surface as StoreError

How to change safely:
    - Test against a real MongoDB (tests/e2e) before releasing
    - Keep filter semantics identical to store.base.matches()
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError as MongoDuplicateKeyError
from pymongo.errors import PyMongoError

from ..errors import DocumentNotFoundError, DuplicateKeyError, StoreError
from ..schema.registry import ModelRegistry
from ..schema.types import ID_FIELD, ModelSchema
from .base import Document, generate_id, normalize_id, to_storable

logger = logging.getLogger(__name__)


def _to_query(filter: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    query = to_storable(dict(filter or {}))
    if ID_FIELD in query:
        query[ID_FIELD] = normalize_id(query[ID_FIELD])
    return query


def _from_raw(raw: Optional[Mapping[str, Any]]) -> Optional[Document]:
    if raw is None:
        return None
    return Document.from_mapping(raw)


class MongoCollection:
    """MongoDB implementation of the Collection protocol.

    Attributes:
        name: Collection name
        schema: Model schema registered for this collection
    """

    def __init__(self, schema: ModelSchema, collection: AsyncIOMotorCollection) -> None:
        self.schema = schema
        self.name = schema.collection_name
        self._collection = collection

    def _error(self, operation: str, e: Exception) -> StoreError:
        return StoreError(f"MongoDB {operation} failed: {e}", operation=operation, collection=self.name)

    async def find(self, filter: Optional[Mapping[str, Any]] = None) -> List[Document]:
        """All documents matching the filter, in natural order."""
        try:
            cursor = self._collection.find(_to_query(filter))
            return [_from_raw(raw) async for raw in cursor]
        except PyMongoError as e:
            raise self._error("find", e) from e

    async def find_by_id(self, doc_id: Any) -> Optional[Document]:
        """Document with this id, or None."""
        key = normalize_id(doc_id)
        if key is None:
            return None
        return await self.find_one({ID_FIELD: key})

    async def find_one(self, filter: Mapping[str, Any]) -> Optional[Document]:
        """First document matching the filter, or None."""
        try:
            return _from_raw(await self._collection.find_one(_to_query(filter)))
        except PyMongoError as e:
            raise self._error("find_one", e) from e

    async def insert(self, document: Document) -> Document:
        """Insert a document, assigning an id if it has none."""
        raw = to_storable(document.snapshot())
        raw[ID_FIELD] = raw[ID_FIELD] or generate_id()
        try:
            await self._collection.insert_one(raw)
        except MongoDuplicateKeyError as e:
            raise DuplicateKeyError(raw[ID_FIELD], self.name) from e
        except PyMongoError as e:
            raise self._error("insert", e) from e
        return Document.from_mapping(raw)

    async def update(self, document: Document) -> Document:
        """Replace the stored fields of an existing document."""
        if document.id is None:
            raise DocumentNotFoundError(None, self.name)
        raw = to_storable(document.snapshot())
        try:
            result = await self._collection.replace_one({ID_FIELD: document.id}, raw)
        except PyMongoError as e:
            raise self._error("update", e) from e
        if result.matched_count == 0:
            raise DocumentNotFoundError(document.id, self.name)
        return Document.from_mapping(raw)

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
        query = _to_query(filter)
        set_fields = to_storable({k: v for k, v in patch.items() if k != ID_FIELD})

        update: Dict[str, Any] = {}
        if set_fields:
            update["$set"] = set_fields
        if upsert:
            # Equality terms of the query are copied into the new document by MongoDB
            insert_only = {
                k: v
                for k, v in to_storable(dict(on_insert or {})).items()
                if k not in set_fields and k not in query
            }
            if ID_FIELD not in query:
                insert_only[ID_FIELD] = normalize_id(insert_only.get(ID_FIELD)) or generate_id()
            if insert_only:
                update["$setOnInsert"] = insert_only
        elif not update:
            return await self.find_one(filter)

        try:
            raw = await self._collection.find_one_and_update(
                query,
                update,
                upsert=upsert,
                return_document=ReturnDocument.AFTER if return_new else ReturnDocument.BEFORE,
            )
        except MongoDuplicateKeyError as e:
            doc_id = update.get("$setOnInsert", {}).get(ID_FIELD) or query.get(ID_FIELD)
            raise DuplicateKeyError(str(doc_id), self.name) from e
        except PyMongoError as e:
            raise self._error("conditional_update", e) from e
        return _from_raw(raw)

    async def remove(self, filter: Mapping[str, Any]) -> int:
        """Delete all documents matching the filter."""
        try:
            result = await self._collection.delete_many(_to_query(filter))
        except PyMongoError as e:
            raise self._error("remove", e) from e
        return result.deleted_count

    async def count(self, filter: Optional[Mapping[str, Any]] = None) -> int:
        """Number of documents matching the filter."""
        try:
            return await self._collection.count_documents(_to_query(filter))
        except PyMongoError as e:
            raise self._error("count", e) from e


class MongoConnection:
    """MongoDB implementation of the Connection protocol.

    Example:
        >>> connection = MongoConnection("mongodb://localhost:27017", "tenant_a")
        >>> stories = connection.register_model(Story)
    """

    def __init__(self, url: str, database: str, client: Optional[AsyncIOMotorClient] = None) -> None:
        """Open a client for one database.

        Args:
            url: MongoDB connection URL
            database: Database name
            client: Existing client to share between connections
        """
        self.name = f"mongo:{database}"
        self.registry = ModelRegistry()
        self._owns_client = client is None
        self.client = client or AsyncIOMotorClient(url)
        self.database = self.client[database]
        self._collections: Dict[str, MongoCollection] = {}
        logger.info("Connected to MongoDB", extra={"database": database})

    def register_model(self, schema: ModelSchema) -> MongoCollection:
        """Register a model and return its collection handle."""
        self.registry.register(schema)
        collection = MongoCollection(schema, self.database[schema.collection_name])
        self._collections[schema.name] = collection
        return collection

    def get_model(self, name: str) -> Optional[MongoCollection]:
        """Collection handle of a registered model, or None."""
        return self._collections.get(name)

    async def close(self) -> None:
        """Close the client if this connection opened it."""
        self._collections.clear()
        if self._owns_client:
            self.client.close()
            logger.info("Disconnected from MongoDB", extra={"connection": self.name})
