"""
Error types for docshadow.

This module defines all exception types raised by the library:
- DocShadowError: Base exception
- ConfigurationError: Load-time wiring and schema problems
- NotFoundError: Referenced active document or version record is absent
- ConcurrencyConflictError: Supplied version token is stale
- StoreError: Underlying document store operation failed

Invariants:
    - All errors inherit from DocShadowError
    - Errors carry a stable code plus details for programmatic handling
    - Store errors are raised by the backends and propagated verbatim
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DocShadowError(Exception):
    """Base exception for all docshadow errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "DOCSHADOW_ERROR"
        self.details = details or {}


class ConfigurationError(DocShadowError):
    """Invalid setup. Fatal, never retried.

    Raised when:
    - A link field name collides with a declared field
    - Versioning options are contradictory or incomplete
    - A schema declaration file cannot be parsed
    """

    def __init__(self, message: str, errors: Optional[list[str]] = None) -> None:
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details={"errors": errors or []},
        )
        self.errors = errors or []


class NotFoundError(DocShadowError):
    """Resource not found.

    Raised when:
    - A version record to activate doesn't exist
    - The active document a version points at doesn't exist
    - A soft delete targets a document that doesn't exist
    """

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConcurrencyConflictError(DocShadowError):
    """The caller's copy is not up-to-date.

    Raised when the version token supplied with a write does not match
    the active document's current versionId. Never retried automatically.

    Attributes:
        expected_token: Token the caller supplied
        actual_token: Token currently stored, when known
    """

    def __init__(
        self,
        message: str,
        expected_token: Optional[str] = None,
        actual_token: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONCURRENCY_CONFLICT",
            details={
                "expected_token": expected_token,
                "actual_token": actual_token,
            },
        )
        self.expected_token = expected_token
        self.actual_token = actual_token

    @classmethod
    def stale(cls, expected_token: Optional[str], actual_token: Optional[str] = None) -> ConcurrencyConflictError:
        """Build the standard stale-copy error for a token."""
        return cls(
            f"Your copy of the data set with revision {expected_token} is not up-to-date, "
            "please refresh first, then try again.",
            expected_token=expected_token,
            actual_token=actual_token,
        )


class VersionTokenRequiredError(ConcurrencyConflictError):
    """A write needs the expected version token but none was supplied."""

    def __init__(self, field_name: str) -> None:
        super().__init__(
            f"Please specify the revision you would like to change ('{field_name}' is required).",
        )
        self.code = "VERSION_TOKEN_REQUIRED"
        self.field_name = field_name


class AmbiguousMatchError(DocShadowError):
    """A single-document operation matched more than one document."""

    def __init__(self, message: str, matched: int) -> None:
        super().__init__(message, code="AMBIGUOUS_MATCH", details={"matched": matched})
        self.matched = matched


class InconsistentVersionsError(DocShadowError):
    """An active document references a version record that is missing."""

    def __init__(self, message: str, version_id: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="INCONSISTENT_VERSIONS",
            details={"version_id": version_id},
        )
        self.version_id = version_id


class StoreError(DocShadowError):
    """Underlying document store operation failed.

    Attributes:
        operation: Store operation name (insert, update, ...)
        collection: Collection the operation targeted
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        collection: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="STORE_ERROR",
            details={"operation": operation, "collection": collection},
        )
        self.operation = operation
        self.collection = collection


class DuplicateKeyError(StoreError):
    """Insert of a document whose id already exists."""

    def __init__(self, doc_id: str, collection: Optional[str] = None) -> None:
        super().__init__(
            f"Document '{doc_id}' already exists in '{collection}'",
            operation="insert",
            collection=collection,
        )
        self.code = "DUPLICATE_KEY"
        self.doc_id = doc_id


class DocumentNotFoundError(StoreError):
    """Update of a document id that is not stored."""

    def __init__(self, doc_id: Optional[str], collection: Optional[str] = None) -> None:
        super().__init__(
            f"Document '{doc_id}' not found in '{collection}'",
            operation="update",
            collection=collection,
        )
        self.code = "DOCUMENT_NOT_FOUND"
        self.doc_id = doc_id
