"""
docshadow - Version history for document-store models.

Every versioned model gets a shadow collection holding its version
records. Writes go through the version protocol instead of the primary
collection, so each active document always points at the version it
currently shows and older versions stay retrievable:
- Schema mirroring (primary + "<Model>Shadow" shapes)
- Per-connection shadow resolution
- Save/activate/delete of versions with optimistic concurrency tokens
- In-memory, SQLite and MongoDB stores

Example:
    >>> from docshadow import InMemoryConnection, ModelSchema, VersioningPlugin, field
    >>>
    >>> Story = ModelSchema("Story", fields=(field("title", "str", required=True),))
    >>> stories = VersioningPlugin(Story).bind(InMemoryConnection())
    >>>
    >>> v1 = await stories.save_version({"title": "A"})
    >>> story_id = v1["versionOfId"]
    >>> v2 = await stories.save_new_version_of(story_id, {"title": "B"})
    >>> await stories.activate_version(v2.id)

Invariants:
    - An active document's versionId always names a stored version record
    - Active versions are never deleted through delete_version()
    - Stale tokens fail with ConcurrencyConflictError; nothing is retried
"""

from ._version import __version__
from .config import Settings, StoreBackend, VersioningOptions
from .errors import (
    AmbiguousMatchError,
    ConcurrencyConflictError,
    ConfigurationError,
    DocShadowError,
    DocumentNotFoundError,
    DuplicateKeyError,
    InconsistentVersionsError,
    NotFoundError,
    StoreError,
    VersionTokenRequiredError,
)
from .logsetup import setup_logging
from .schema import (
    FieldDef,
    FieldKind,
    ModelSchema,
    field,
    load_schema_file,
    mirror_schema,
)
from .store import (
    Document,
    InMemoryConnection,
    MongoConnection,
    SqliteConnection,
    VersionToken,
    create_connection,
)
from .versioning import (
    DeleteResult,
    VersionedModel,
    VersioningPlugin,
    VersionList,
)

__all__ = [
    "__version__",
    # Config
    "Settings",
    "StoreBackend",
    "VersioningOptions",
    "setup_logging",
    # Errors
    "DocShadowError",
    "ConfigurationError",
    "NotFoundError",
    "ConcurrencyConflictError",
    "VersionTokenRequiredError",
    "AmbiguousMatchError",
    "InconsistentVersionsError",
    "StoreError",
    "DuplicateKeyError",
    "DocumentNotFoundError",
    # Schema
    "FieldDef",
    "FieldKind",
    "ModelSchema",
    "field",
    "load_schema_file",
    "mirror_schema",
    # Store
    "Document",
    "VersionToken",
    "InMemoryConnection",
    "SqliteConnection",
    "MongoConnection",
    "create_connection",
    # Versioning
    "VersioningPlugin",
    "VersionedModel",
    "VersionList",
    "DeleteResult",
]
