"""
Shadow collection resolution per store connection.

A versioned model keeps its version records in a shadow model named
"<ModelName>Shadow". The shadow model has to be registered on every
connection the model is used with, exactly once per connection.

Invariants:
    - resolve() is idempotent per connection
    - Handles are cached per connection identity; connections never share one
    - A shadow model already registered on a connection is adopted, not re-registered

Example:
    >>> accessor = ShadowStoreAccessor(mirrored.shadow)
    >>> shadow_a = accessor.resolve(tenant_a)
    >>> accessor.resolve(tenant_a) is shadow_a
    True
"""

from __future__ import annotations

import logging
import threading
import weakref

from ..errors import ConfigurationError
from ..schema.registry import DuplicateRegistrationError
from ..schema.types import ModelSchema
from ..store.base import Collection, Connection

logger = logging.getLogger(__name__)


class ShadowStoreAccessor:
    """Resolves and caches the shadow collection of one model per connection.

    Attributes:
        schema: Shadow model schema to register
    """

    def __init__(self, schema: ModelSchema) -> None:
        self.schema = schema
        self._handles: weakref.WeakKeyDictionary[Connection, Collection] = weakref.WeakKeyDictionary()
        self._lock = threading.Lock()

    def resolve(self, connection: Connection) -> Collection:
        """Get the shadow collection handle for a connection.

        The first call registers the shadow model on the connection; later
        calls return the cached handle.

        Raises:
            ConfigurationError: If the connection holds a different model
                under the shadow name
        """
        with self._lock:
            handle = self._handles.get(connection)
            if handle is not None:
                return handle

            try:
                handle = connection.register_model(self.schema)
                logger.debug(
                    f"Registered shadow model {self.schema.name}",
                    extra={"connection": connection.name, "collection": self.schema.collection_name},
                )
            except DuplicateRegistrationError:
                handle = connection.get_model(self.schema.name)
                if handle is None or handle.schema != self.schema:
                    raise ConfigurationError(
                        f"Connection '{connection.name}' already registers a different "
                        f"model named '{self.schema.name}'"
                    )
                logger.debug(
                    f"Adopted existing shadow model {self.schema.name}",
                    extra={"connection": connection.name},
                )

            self._handles[connection] = handle
            return handle

    def forget(self, connection: Connection) -> None:
        """Drop the cached handle for a connection."""
        with self._lock:
            self._handles.pop(connection, None)

    def cached_connections(self) -> int:
        """Number of connections with a cached handle."""
        return len(self._handles)
