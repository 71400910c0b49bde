"""
Core type definitions for docshadow model schemas.

This module defines the field declarations the versioning layer reads
and augments:
- FieldKind: Supported field kinds
- FieldDef: Individual field within a model
- ModelSchema: Named set of fields stored in one collection

Invariants:
    - Field names are unique within a model
    - "_id" is the primary identifier and is never a declared field
    - ModelSchema is immutable; augmentation produces a new instance

How to change safely:
    - Add new kinds at the end of FieldKind
    - Keep to_dict()/from_dict() symmetric (schema files depend on it)

Example:
    >>> from docshadow.schema.types import ModelSchema, field
    >>> Story = ModelSchema(
    ...     name="Story",
    ...     fields=(
    ...         field("title", "str", required=True),
    ...         field("status", "enum", enum_values=("draft", "published")),
    ...     ),
    ... )
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any, Iterable

ID_FIELD = "_id"


class FieldKind(Enum):
    """Supported field kinds in a model schema."""

    STRING = "str"
    INTEGER = "int"
    FLOAT = "float"
    BOOLEAN = "bool"
    TIMESTAMP = "timestamp"  # Unix milliseconds
    JSON = "json"
    BYTES = "bytes"
    ENUM = "enum"
    REFERENCE = "ref"  # Id of a document in another model
    LIST_STRING = "list_str"
    LIST_INT = "list_int"
    LIST_REF = "list_ref"

    @classmethod
    def from_str(cls, value: str) -> FieldKind:
        """Convert string representation to FieldKind.

        Raises:
            ValueError: If value is not a valid field kind
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid field kind '{value}'. Valid kinds: {valid}")


@dataclass(frozen=True)
class FieldDef:
    """Declaration of a single field within a model.

    Attributes:
        name: Field name as stored in documents
        kind: The data type of the field
        required: Whether the field must be present on save
        default: Default value if not provided
        enum_values: Valid values if kind is ENUM
        ref_model: Target model name if kind is REFERENCE
        indexed: Whether backends should index this field
        description: Human-readable description
    """

    name: str
    kind: FieldKind
    required: bool = False
    default: Any = None
    enum_values: tuple[str, ...] | None = None
    ref_model: str | None = None
    indexed: bool = False
    description: str = ""

    def __post_init__(self) -> None:
        """Validate field declaration."""
        if not self.name:
            raise ValueError("Field name cannot be empty")
        if self.name == ID_FIELD:
            raise ValueError(f"'{ID_FIELD}' is the primary identifier and cannot be declared")
        if self.kind == FieldKind.ENUM and not self.enum_values:
            raise ValueError(f"enum_values required for ENUM field '{self.name}'")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation for serialization."""
        result: dict[str, Any] = {
            "name": self.name,
            "kind": self.kind.value,
        }
        if self.required:
            result["required"] = True
        if self.default is not None:
            result["default"] = self.default
        if self.enum_values:
            result["enum_values"] = list(self.enum_values)
        if self.ref_model is not None:
            result["ref_model"] = self.ref_model
        if self.indexed:
            result["indexed"] = True
        if self.description:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldDef:
        """Create from dictionary representation."""
        return cls(
            name=data["name"],
            kind=FieldKind.from_str(data["kind"]),
            required=data.get("required", False),
            default=data.get("default"),
            enum_values=tuple(data["enum_values"]) if data.get("enum_values") else None,
            ref_model=data.get("ref_model"),
            indexed=data.get("indexed", False),
            description=data.get("description", ""),
        )


def field(
    name: str,
    kind: str | FieldKind,
    *,
    required: bool = False,
    default: Any = None,
    enum_values: tuple[str, ...] | None = None,
    ref_model: str | None = None,
    indexed: bool = False,
    description: str = "",
) -> FieldDef:
    """Convenience function to create a FieldDef.

    Example:
        >>> title = field("title", "str", required=True)
        >>> owner = field("owner", "ref", ref_model="User")
    """
    if isinstance(kind, str):
        kind = FieldKind.from_str(kind)
    return FieldDef(
        name=name,
        kind=kind,
        required=required,
        default=default,
        enum_values=enum_values,
        ref_model=ref_model,
        indexed=indexed,
        description=description,
    )


@dataclass(frozen=True)
class ModelSchema:
    """Declaration of a model stored in one collection.

    Attributes:
        name: Model name, unique per connection
        fields: Tuple of field declarations
        collection: Collection name override (defaults to name)
        description: Human-readable description

    Example:
        >>> Story = ModelSchema(name="Story", fields=(field("title", "str"),))
        >>> Story.collection_name
        'Story'
    """

    name: str
    fields: tuple[FieldDef, ...] = dataclass_field(default_factory=tuple)
    collection: str | None = None
    description: str = ""

    def __post_init__(self) -> None:
        """Validate model declaration."""
        if not self.name:
            raise ValueError("Model name cannot be empty")

        names = [f.name for f in self.fields]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate field name in model '{self.name}'")

    @property
    def collection_name(self) -> str:
        """Collection the model's documents live in."""
        return self.collection or self.name

    def field_names(self) -> list[str]:
        """Get list of all field names in declaration order."""
        return [f.name for f in self.fields]

    def get_field(self, name: str) -> FieldDef | None:
        """Get a field by name."""
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def has_field(self, name: str) -> bool:
        """Whether a field with this name is declared."""
        return self.get_field(name) is not None

    def with_fields(
        self,
        extra: Iterable[FieldDef] = (),
        *,
        name: str | None = None,
        collection: str | None = None,
    ) -> ModelSchema:
        """Return a copy with extra fields appended.

        Raises:
            ValueError: If an extra field name is already declared
        """
        return ModelSchema(
            name=name or self.name,
            fields=self.fields + tuple(extra),
            collection=collection if collection is not None else self.collection,
            description=self.description,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        result: dict[str, Any] = {
            "name": self.name,
            "fields": [f.to_dict() for f in self.fields],
        }
        if self.collection:
            result["collection"] = self.collection
        if self.description:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelSchema:
        """Create from dictionary representation."""
        return cls(
            name=data["name"],
            fields=tuple(FieldDef.from_dict(f) for f in data.get("fields", [])),
            collection=data.get("collection"),
            description=data.get("description", ""),
        )
