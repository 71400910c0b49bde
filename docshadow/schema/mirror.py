"""
Schema mirroring for versioned models.

Derives the two shapes a versioned model needs from the model the caller
declared:
- primary: the declared fields plus the active-version pointer (versionId)
- shadow: every declared field plus the back-reference (versionOfId) and,
  when configured, the delete flag

Invariants:
    - The primary identifier is never copied (it is not a declared field)
    - The shadow model is named "<ModelName>Shadow"
    - A link field that collides with a declared field is a load-time
      ConfigurationError, never silently reused

Example:
    >>> mirrored = mirror_schema(Story, VersioningOptions())
    >>> mirrored.shadow.name
    'StoryShadow'
    >>> mirrored.primary.has_field("versionId")
    True
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..errors import ConfigurationError
from .types import FieldDef, FieldKind, ModelSchema

if TYPE_CHECKING:
    from ..config import VersioningOptions

logger = logging.getLogger(__name__)

SHADOW_SUFFIX = "Shadow"


@dataclass(frozen=True)
class MirroredSchemas:
    """Result of mirroring a model schema.

    Attributes:
        primary: Declared schema augmented with the version pointer
        shadow: Derived schema for version records
    """

    primary: ModelSchema
    shadow: ModelSchema


def shadow_model_name(model_name: str) -> str:
    """Deterministic name of the shadow model for a model."""
    return f"{model_name}{SHADOW_SUFFIX}"


def mirror_schema(schema: ModelSchema, options: VersioningOptions) -> MirroredSchemas:
    """Derive primary and shadow shapes for a versioned model.

    Args:
        schema: Declared model schema
        options: Versioning options naming the link fields

    Returns:
        MirroredSchemas with both augmented shapes

    Raises:
        ConfigurationError: If options are invalid or a link field name
            collides with a declared field
    """
    options.validate()

    collisions = [
        name
        for name in (options.version_id_field, options.version_of_id_field, options.delete_flag)
        if name is not None and schema.has_field(name)
    ]
    if collisions:
        raise ConfigurationError(
            f"Model '{schema.name}' already declares versioning field(s) {collisions}",
            errors=[f"field '{name}' collides with a link field" for name in collisions],
        )

    shadow_name = shadow_model_name(schema.name)

    primary = schema.with_fields(
        (
            FieldDef(
                name=options.version_id_field,
                kind=FieldKind.REFERENCE,
                ref_model=shadow_name,
                indexed=True,
                description="Id of the active version in the shadow collection",
            ),
        )
    )

    shadow_fields = [
        FieldDef(
            name=options.version_of_id_field,
            kind=FieldKind.REFERENCE,
            ref_model=schema.name,
            indexed=True,
            description="Id of the document this version belongs to",
        )
    ]
    if options.delete_flag:
        shadow_fields.append(
            FieldDef(
                name=options.delete_flag,
                kind=FieldKind.BOOLEAN,
                default=False,
                description="Set on the terminal version of a deleted document",
            )
        )

    shadow = ModelSchema(
        name=shadow_name,
        fields=schema.fields + tuple(shadow_fields),
        collection=options.collection,
        description=f"Version records of {schema.name}",
    )

    logger.debug(
        f"Mirrored schema {schema.name} -> {shadow.name}",
        extra={"model": schema.name, "shadow_collection": shadow.collection_name},
    )
    return MirroredSchemas(primary=primary, shadow=shadow)
