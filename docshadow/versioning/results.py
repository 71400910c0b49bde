"""
Request and result types for the versioning protocol.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from ..store.base import Document, normalize_id, snapshot


@dataclass
class VersionList:
    """Versions of one active document.

    Attributes:
        active_id: versionId of the active document (None if it doesn't exist)
        versions: Version records linked to it, in store order
    """

    active_id: Optional[str] = None
    versions: list[Document] = field(default_factory=list)


@dataclass(frozen=True)
class DeleteResult:
    """Outcome of delete_version."""

    success: bool

    def __bool__(self) -> bool:
        return self.success


class SaveVersionRequest(BaseModel):
    """Validated input of save_version.

    Accepts the data as a Document, mapping or pydantic model and the two
    tokens in any identifier form; everything is normalized once here.
    """

    data: dict[str, Any] = Field(default_factory=dict, description="Field values to store")
    version_id: Optional[str] = Field(None, description="Version record to overwrite (None = new)")
    version_of_id: Optional[str] = Field(None, description="Active document the version belongs to")

    @field_validator("data", mode="before")
    @classmethod
    def _snapshot_data(cls, value: Any) -> dict[str, Any]:
        if value is None:
            return {}
        return snapshot(value)

    @field_validator("version_id", "version_of_id", mode="before")
    @classmethod
    def _normalize_token(cls, value: Any) -> Optional[str]:
        return normalize_id(value)
