"""
Document store abstraction for docshadow.

This module provides a pluggable store interface supporting:
- MongoDB (motor)
- SQLite (one database file per tenant)
- In-memory (for testing)

Invariants:
    - Every backend implements the Collection and Connection protocols
    - Identifiers cross the store boundary as canonical strings
    - conditional_update() is atomic per call in every backend
    - Backend failures surface as StoreError

How to change safely:
    - New backends must implement the protocols in base.py
    - Run tests/integration against the new backend before use
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import (
    Collection,
    Connection,
    Document,
    VersionToken,
    generate_id,
    matches,
    normalize_id,
    same_token,
    snapshot,
)
from .memory import InMemoryCollection, InMemoryConnection
from .mongo import MongoCollection, MongoConnection
from .sqlite import SqliteCollection, SqliteConnection

if TYPE_CHECKING:
    from ..config import Settings


def create_connection(settings: "Settings", tenant_id: str = "default") -> Connection:
    """Factory function to create a store connection from configuration.

    Args:
        settings: docshadow settings
        tenant_id: Tenant the connection serves (SQLite file / Mongo database suffix)

    Returns:
        Connection for the configured backend

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend

    if settings.backend == StoreBackend.MEMORY:
        return InMemoryConnection(tenant_id)
    elif settings.backend == StoreBackend.SQLITE:
        return SqliteConnection.from_config(settings.storage_config(), tenant_id)
    elif settings.backend == StoreBackend.MONGO:
        return MongoConnection(settings.mongo_url, f"{settings.mongo_database}_{tenant_id}")
    else:
        raise ValueError(f"Unsupported store backend: {settings.backend}")


__all__ = [
    # Protocol and types
    "Collection",
    "Connection",
    "Document",
    "VersionToken",
    "generate_id",
    "matches",
    "normalize_id",
    "same_token",
    "snapshot",
    # Factory
    "create_connection",
    # Implementations
    "InMemoryCollection",
    "InMemoryConnection",
    "SqliteCollection",
    "SqliteConnection",
    "MongoCollection",
    "MongoConnection",
]
