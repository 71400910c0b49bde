"""
Schema module for docshadow.

This module provides the model declarations the versioning layer works on:
- Type definitions (ModelSchema, FieldDef, FieldKind)
- Schema mirroring (primary + shadow shapes for a versioned model)
- Per-connection model registry
- YAML/JSON declaration loading

Invariants:
    - "_id" is reserved for the primary identifier
    - Link fields never collide with declared fields
    - Registries belong to connections, never to the process
"""

from .loader import load_schema_file, parse_schema
from .mirror import MirroredSchemas, mirror_schema, shadow_model_name
from .registry import DuplicateRegistrationError, ModelRegistry
from .types import ID_FIELD, FieldDef, FieldKind, ModelSchema, field

__all__ = [
    # Types
    "ID_FIELD",
    "FieldDef",
    "FieldKind",
    "ModelSchema",
    "field",
    # Mirror
    "MirroredSchemas",
    "mirror_schema",
    "shadow_model_name",
    # Registry
    "ModelRegistry",
    "DuplicateRegistrationError",
    # Loader
    "load_schema_file",
    "parse_schema",
]
