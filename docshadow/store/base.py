"""
Base protocol and types for the document store abstraction.

This module defines the Collection and Connection protocols every backend
implements, along with the value types that cross the store boundary:
- VersionToken: canonical, value-compared identifier
- Document: an id plus a plain field mapping
- snapshot(): the one conversion point from caller values to plain dicts

Invariants:
    - Ids and link fields cross the boundary as strings; backends
      normalize on the way in and out
    - Documents returned by a backend are copies; mutating them never
      changes stored state until insert()/update()
    - conditional_update() is atomic per call

How to change safely:
    - Protocol changes require updating all backends
    - Keep matches() in sync with backend-native filtering (Mongo)
"""

from __future__ import annotations

import copy
import uuid
from abc import abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    runtime_checkable,
)

from pydantic import BaseModel

from ..schema.registry import ModelRegistry
from ..schema.types import ID_FIELD, ModelSchema


def generate_id() -> str:
    """Generate a new document id client-side."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class VersionToken:
    """Identifier used for optimistic-concurrency comparison.

    Tokens compare by value of their canonical string form, so an id read
    back from a store equals the id that was written regardless of the
    object type the backend or caller used (str, UUID, BSON ObjectId).

    Example:
        >>> VersionToken.of("abc") == VersionToken.of(VersionToken("abc"))
        True
        >>> VersionToken.of(None) is None
        True
    """

    value: str

    @classmethod
    def of(cls, raw: Any) -> Optional[VersionToken]:
        """Normalize a raw identifier, or None if absent."""
        if raw is None:
            return None
        if isinstance(raw, VersionToken):
            return raw
        if isinstance(raw, uuid.UUID):
            return cls(raw.hex)
        value = str(raw)
        if not value:
            return None
        return cls(value)

    def __str__(self) -> str:
        return self.value


def normalize_id(raw: Any) -> Optional[str]:
    """Canonical string form of an identifier (None if absent)."""
    token = VersionToken.of(raw)
    return token.value if token else None


def same_token(a: Any, b: Any) -> bool:
    """Whether two raw identifiers denote the same token."""
    token_a = VersionToken.of(a)
    return token_a is not None and token_a == VersionToken.of(b)


@dataclass
class Document:
    """A stored document: identifier plus field values.

    Attributes:
        id: Document identifier (None until first insert)
        data: Field values, never containing "_id"
    """

    id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.id = normalize_id(self.id)
        if ID_FIELD in self.data:
            data = dict(self.data)
            raw_id = data.pop(ID_FIELD)
            if self.id is None:
                self.id = normalize_id(raw_id)
            self.data = data

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> Document:
        """Create from a mapping that may carry "_id"."""
        data = dict(mapping)
        doc_id = data.pop(ID_FIELD, None)
        return cls(id=doc_id, data=data)

    def get(self, key: str, default: Any = None) -> Any:
        if key == ID_FIELD:
            return self.id
        return self.data.get(key, default)

    def __getitem__(self, key: str) -> Any:
        if key == ID_FIELD:
            return self.id
        return self.data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        if key == ID_FIELD:
            self.id = normalize_id(value)
        else:
            self.data[key] = value

    def __contains__(self, key: object) -> bool:
        if key == ID_FIELD:
            return self.id is not None
        return key in self.data

    def snapshot(self) -> Dict[str, Any]:
        """Plain dict copy of the document including "_id"."""
        result = copy.deepcopy(self.data)
        result[ID_FIELD] = self.id
        return result

    def copy(self) -> Document:
        """Independent copy of this document."""
        return Document(id=self.id, data=copy.deepcopy(self.data))


def snapshot(value: Any) -> Dict[str, Any]:
    """Convert a caller-supplied value into a plain field dict.

    Accepts a Document, any Mapping, or a pydantic model. This is the
    only place caller values are inspected; everything past it works on
    plain dicts.

    Raises:
        TypeError: If the value has no structured representation
    """
    if isinstance(value, Document):
        return value.snapshot()
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, Mapping):
        return copy.deepcopy(dict(value))
    raise TypeError(
        f"Expected a Document, mapping or pydantic model, got {type(value).__name__}"
    )


def matches(document: Document, filter: Mapping[str, Any]) -> bool:
    """Equality filter evaluation shared by the Python-side backends.

    "_id" addresses the document id; a None value matches a missing or
    null field. Identifiers in filters are compared in canonical form.
    """
    for key, expected in filter.items():
        if key == ID_FIELD:
            if document.id != normalize_id(expected):
                return False
            continue
        actual = document.data.get(key)
        if expected is None:
            if actual is not None:
                return False
        elif isinstance(expected, (VersionToken, uuid.UUID)):
            if normalize_id(actual) != normalize_id(expected):
                return False
        elif actual != expected:
            return False
    return True


def insert_template(filter: Mapping[str, Any], on_insert: Optional[Mapping[str, Any]]) -> Document:
    """Document an upsert creates from its filter terms and on-insert values."""
    data = {k: v for k, v in filter.items() if k != ID_FIELD}
    doc_id = filter.get(ID_FIELD)
    if on_insert:
        extra = dict(on_insert)
        doc_id = extra.pop(ID_FIELD, None) or doc_id
        data.update(extra)
    return Document(id=doc_id or generate_id(), data=data)


def to_storable(value: Any) -> Any:
    """Replace VersionToken/UUID values with their canonical strings."""
    if isinstance(value, (VersionToken, uuid.UUID)):
        return normalize_id(value)
    if isinstance(value, dict):
        return {k: to_storable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_storable(v) for v in value]
    return value


@runtime_checkable
class Collection(Protocol):
    """Protocol for one model's collection in a document store.

    All operations are coroutines and report failures by raising
    StoreError (or a subclass).

    Example:
        >>> stories = connection.register_model(Story)
        >>> doc = await stories.insert(Document(data={"title": "A"}))
        >>> await stories.find_by_id(doc.id)
    """

    name: str
    schema: ModelSchema

    @abstractmethod
    async def find(self, filter: Optional[Mapping[str, Any]] = None) -> List[Document]:
        """All documents matching an equality filter, in store order."""
        ...

    @abstractmethod
    async def find_by_id(self, doc_id: Any) -> Optional[Document]:
        """Document with this id, or None."""
        ...

    @abstractmethod
    async def find_one(self, filter: Mapping[str, Any]) -> Optional[Document]:
        """First document matching the filter, or None."""
        ...

    @abstractmethod
    async def insert(self, document: Document) -> Document:
        """Insert a document, assigning an id if it has none.

        Raises:
            DuplicateKeyError: If the id already exists
        """
        ...

    @abstractmethod
    async def update(self, document: Document) -> Document:
        """Replace the stored fields of an existing document.

        Raises:
            DocumentNotFoundError: If the id is not stored
        """
        ...

    @abstractmethod
    async def conditional_update(
        self,
        filter: Mapping[str, Any],
        patch: Mapping[str, Any],
        *,
        upsert: bool = False,
        return_new: bool = False,
        on_insert: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Document]:
        """Atomically patch the first document matching the filter.

        On a match, sets the fields in patch and returns the document as
        it was before (or after, with return_new). With no match and
        upsert, inserts a document built from the filter's terms,
        on_insert and patch, and returns it only if return_new.

        Returns:
            Matched/inserted document per the rules above, else None
        """
        ...

    @abstractmethod
    async def remove(self, filter: Mapping[str, Any]) -> int:
        """Delete all documents matching the filter; returns the count."""
        ...

    @abstractmethod
    async def count(self, filter: Optional[Mapping[str, Any]] = None) -> int:
        """Number of documents matching the filter."""
        ...


@runtime_checkable
class Connection(Protocol):
    """Protocol for a store connection (one database, one tenant).

    Models are registered per connection. Registering a name twice raises
    DuplicateRegistrationError; callers that want idempotence use
    get_model() first.
    """

    name: str
    registry: ModelRegistry

    @abstractmethod
    def register_model(self, schema: ModelSchema) -> Collection:
        """Register a model and return its collection handle.

        Raises:
            DuplicateRegistrationError: If the model name is taken
        """
        ...

    @abstractmethod
    def get_model(self, name: str) -> Optional[Collection]:
        """Collection handle of a registered model, or None."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        ...
