"""
Model registry for docshadow connections.

Every store connection owns one ModelRegistry holding the schemas of the
models registered on it. It provides:
- Registration of model schemas
- Lookup by name
- Schema fingerprinting for consistency checks

Invariants:
    - One registry per connection; there is no process-wide registry
    - Model names are unique per registry
    - Fingerprint changes when the registered schemas change

Example:
    >>> registry = ModelRegistry()
    >>> registry.register(Story)
    >>> registry.get("Story")
    ModelSchema(name='Story', ...)
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from typing import Dict, Iterator, Optional

from .types import ModelSchema

logger = logging.getLogger(__name__)


class DuplicateRegistrationError(Exception):
    """Raised when attempting to register a model name twice."""
    pass


class ModelRegistry:
    """Registry of the model schemas registered on one connection.

    Thread-safety:
        Registration is thread-safe (uses internal lock); lookups are lock-free.

    Example:
        >>> registry = ModelRegistry()
        >>> registry.register(Story)
        >>> registry.register(StoryShadow)
        >>> registry.names()
        ['Story', 'StoryShadow']
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._models: Dict[str, ModelSchema] = {}
        self._lock = threading.Lock()

    def register(self, schema: ModelSchema) -> None:
        """Register a model schema.

        Args:
            schema: The model schema to register

        Raises:
            DuplicateRegistrationError: If a model with this name is registered
        """
        with self._lock:
            if schema.name in self._models:
                raise DuplicateRegistrationError(
                    f"Model name '{schema.name}' already registered"
                )
            self._models[schema.name] = schema
            logger.debug(
                f"Registered model: {schema.name} (collection={schema.collection_name})"
            )

    def get(self, name: str) -> Optional[ModelSchema]:
        """Get a model schema by name."""
        return self._models.get(name)

    def names(self) -> list[str]:
        """Registered model names in registration order."""
        return list(self._models)

    def __contains__(self, name: object) -> bool:
        return name in self._models

    def __len__(self) -> int:
        return len(self._models)

    def __iter__(self) -> Iterator[ModelSchema]:
        yield from self._models.values()

    def fingerprint(self) -> str:
        """Compute SHA-256 fingerprint of the registered schemas.

        Returns:
            Fingerprint string in format 'sha256:<hash>'
        """
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(',', ':'))
        hash_bytes = hashlib.sha256(canonical.encode('utf-8')).hexdigest()
        return f"sha256:{hash_bytes}"

    def to_dict(self) -> dict:
        """Convert registry to dictionary representation, sorted by name."""
        return {
            "models": [self._models[name].to_dict() for name in sorted(self._models)],
        }
