"""
Versioning plugin: attach version history to a model schema.

The plugin mirrors the schema once, at construction, and binds the
mirrored primary and shadow models to any number of connections.

Invariants:
    - Schema mirroring happens once per plugin; option errors surface here
    - bind() is idempotent per connection (models are registered once)

Example:
    >>> plugin = VersioningPlugin(story_schema, VersioningOptions(append_only=True))
    >>> stories = plugin.bind(connection)
    >>> await stories.upsert_version({"title": "A"})
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import Settings, VersioningOptions
from ..errors import ConfigurationError
from ..schema.mirror import mirror_schema
from ..schema.types import ModelSchema
from ..store.base import Connection
from .model import VersionedModel
from .shadow import ShadowStoreAccessor

logger = logging.getLogger(__name__)


class VersioningPlugin:
    """Versioning for one model schema.

    Attributes:
        schema: Declared schema
        options: Versioning options
        primary_schema: Schema of the active documents (with versionId)
        shadow_schema: Schema of the version records
    """

    def __init__(self, schema: ModelSchema, options: Optional[VersioningOptions] = None) -> None:
        """Mirror the schema.

        Raises:
            ConfigurationError: If the options are invalid or clash with
                declared fields
        """
        self.schema = schema
        self.options = options or VersioningOptions()
        mirrored = mirror_schema(schema, self.options)
        self.primary_schema = mirrored.primary
        self.shadow_schema = mirrored.shadow
        self.shadow_accessor = ShadowStoreAccessor(mirrored.shadow)

    @classmethod
    def from_settings(cls, schema: ModelSchema, settings: Settings) -> VersioningPlugin:
        """Create a plugin using the versioning options from settings."""
        return cls(schema, settings.versioning_options())

    def bind(self, connection: Connection) -> VersionedModel:
        """Register the primary and shadow models on a connection.

        Returns:
            VersionedModel operating on the connection's collections

        Raises:
            ConfigurationError: If the connection holds a different model
                under the primary or shadow name
        """
        primary = connection.get_model(self.primary_schema.name)
        if primary is None:
            primary = connection.register_model(self.primary_schema)
        elif primary.schema != self.primary_schema:
            raise ConfigurationError(
                f"Connection '{connection.name}' already registers a different "
                f"model named '{self.primary_schema.name}'"
            )

        shadow = self.shadow_accessor.resolve(connection)
        logger.debug(
            f"Bound versioned model {self.schema.name}",
            extra={
                "connection": connection.name,
                "collection": primary.name,
                "shadow_collection": shadow.name,
            },
        )
        return VersionedModel(self.schema.name, primary, shadow, self.options)
