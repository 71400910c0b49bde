"""
Version history for document models.

- VersioningPlugin: mirrors a schema and binds it to connections
- VersionedModel: the version protocol operations
- ShadowStoreAccessor: per-connection shadow collection resolution
"""

from .model import VersionedModel
from .plugin import VersioningPlugin
from .results import DeleteResult, SaveVersionRequest, VersionList
from .shadow import ShadowStoreAccessor

__all__ = [
    "VersioningPlugin",
    "VersionedModel",
    "ShadowStoreAccessor",
    "VersionList",
    "DeleteResult",
    "SaveVersionRequest",
]
