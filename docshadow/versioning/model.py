"""
Version protocol for one versioned model on one connection.

A VersionedModel replaces the raw save/delete of the primary collection.
Every active document in the primary collection points (versionId) at one
version record in the shadow collection; version records point back
(versionOfId) at their active document.

Invariants:
    - A version record referenced by an active document's versionId is
      never deleted through delete_version()
    - save_version() persists the version record before touching the
      active document, so an active document never points at a version
      that was not written
    - Only edits to the currently active version are promoted to the
      active document; edits to other versions are stored, not promoted
    - Tokens are compared by value (VersionToken), never by identity
    - Nothing is rolled back; speculative version records are removed
      best-effort on failure paths and cleanup failures are only logged

Concurrency:
    Operations are short chains of store round-trips without locks.
    Update paths rely on versionId tokens; creation and append-only paths
    rely on the store's atomic conditional_update(). Two concurrent
    save_version() calls that both target the active version race on the
    final active-document write (last write wins).

Example:
    >>> stories = plugin.bind(connection)
    >>> v1 = await stories.save_version({"title": "A"})
    >>> listing = await stories.find_versions(v1["versionOfId"])
    >>> listing.active_id == v1.id
    True
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ..config import VersioningOptions
from ..errors import (
    AmbiguousMatchError,
    ConcurrencyConflictError,
    ConfigurationError,
    InconsistentVersionsError,
    NotFoundError,
    VersionTokenRequiredError,
)
from ..schema.types import ID_FIELD
from ..store.base import (
    Collection,
    Document,
    generate_id,
    normalize_id,
    same_token,
    snapshot,
)
from .results import DeleteResult, SaveVersionRequest, VersionList

logger = logging.getLogger(__name__)


class VersionedModel:
    """Versioning operations over a primary and a shadow collection.

    Instances are created by VersioningPlugin.bind(); one per connection.

    Attributes:
        model_name: Name of the primary model
        primary: Collection holding active documents
        shadow: Collection holding version records
        options: Versioning options
    """

    def __init__(
        self,
        model_name: str,
        primary: Collection,
        shadow: Collection,
        options: VersioningOptions,
    ) -> None:
        self.model_name = model_name
        self.primary = primary
        self.shadow = shadow
        self.options = options
        self.version_id_field = options.version_id_field
        self.version_of_id_field = options.version_of_id_field

    # ------------------------------------------------------------------
    # Field copying

    def _version_fields(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Caller values minus identifier and link fields."""
        excluded = {ID_FIELD, self.version_id_field, self.version_of_id_field}
        return {k: v for k, v in values.items() if k not in excluded}

    def _promoted_fields(self, version: Document) -> dict[str, Any]:
        """Fields of a version record that are copied onto its active document."""
        excluded = {self.version_id_field, self.version_of_id_field}
        if self.options.delete_flag:
            excluded.add(self.options.delete_flag)
        return {k: v for k, v in version.data.items() if k not in excluded}

    def _promote(self, version: Document, active: Document) -> None:
        for key, value in self._promoted_fields(version).items():
            active[key] = value

    async def _insert_version(self, version_of_id: str, fields: Mapping[str, Any]) -> Document:
        data = dict(fields)
        data[self.version_of_id_field] = version_of_id
        return await self.shadow.insert(Document(data=data))

    async def _discard_version(self, version: Document, reason: str) -> None:
        """Best-effort removal of a speculative version record."""
        try:
            await self.shadow.remove({ID_FIELD: version.id})
            logger.debug(
                "Discarded speculative version",
                extra={"model": self.model_name, "version_id": version.id, "reason": reason},
            )
        except Exception as e:
            logger.warning(
                f"Best-effort cleanup of version {version.id} failed: {e}",
                extra={"model": self.model_name, "version_id": version.id, "reason": reason},
            )

    # ------------------------------------------------------------------
    # Reads

    async def find_version_by_id(self, version_id: Any) -> Optional[Document]:
        """Get a version record by id.

        Returns:
            The version record, or None if it doesn't exist
        """
        return await self.shadow.find_by_id(version_id)

    async def find_versions(self, entity_id: Any) -> VersionList:
        """List the versions of an active document.

        Args:
            entity_id: Id of the active document

        Returns:
            VersionList with the active versionId and all linked version
            records; empty (active_id None) if the document doesn't exist
        """
        active = await self.primary.find_by_id(entity_id)
        if active is None:
            return VersionList()

        versions = await self.shadow.find({self.version_of_id_field: active.id})
        return VersionList(
            active_id=normalize_id(active.get(self.version_id_field)),
            versions=versions,
        )

    async def instance_find_versions(self, active_document: Any) -> list[Document]:
        """List the version records of an active document instance."""
        doc_id = normalize_id(snapshot(active_document).get(ID_FIELD))
        if doc_id is None:
            return []
        return await self.shadow.find({self.version_of_id_field: doc_id})

    # ------------------------------------------------------------------
    # Writes

    async def save_version(
        self,
        data: Any,
        version_id: Any = None,
        version_of_id: Any = None,
    ) -> Document:
        """Save data as a version and promote it if it is the active one.

        Use this in place of the primary collection's own writes.

        1. Overwrite the version record version_id, or create a new one.
        2. Persist it linked to version_of_id.
        3. Load the active document version_of_id, or start a new lineage.
        4. If the active document points at this version, copy the
           version's fields onto it and persist it.
        5. For a new lineage, back-fill the version's versionOfId with the
           active document's real id.

        Args:
            data: Field values (Document, mapping or pydantic model)
            version_id: Version record to overwrite (None creates a new one)
            version_of_id: Active document the version belongs to

        Returns:
            The version record as finally persisted

        Raises:
            StoreError: If any write fails (earlier writes are kept)
        """
        request = SaveVersionRequest(data=data, version_id=version_id, version_of_id=version_of_id)
        fields = self._version_fields(request.data)

        version = None
        if request.version_id is not None:
            version = await self.shadow.find_by_id(request.version_id)

        if version is None:
            version = Document(data=fields)
            version[self.version_of_id_field] = request.version_of_id
            version = await self.shadow.insert(version)
        else:
            version.data.update(fields)
            version[self.version_of_id_field] = request.version_of_id
            version = await self.shadow.update(version)

        active = None
        if request.version_of_id is not None:
            active = await self.primary.find_by_id(request.version_of_id)

        new_lineage = active is None
        if new_lineage:
            active = Document(data={self.version_id_field: version.id})

        if not same_token(active.get(self.version_id_field), version.id):
            logger.debug(
                "Saved non-active version",
                extra={
                    "model": self.model_name,
                    "version_id": version.id,
                    "active_version_id": normalize_id(active.get(self.version_id_field)),
                },
            )
            return version

        self._promote(version, active)
        if new_lineage:
            active = await self.primary.insert(active)
            logger.info(
                f"Created {self.model_name} {active.id}",
                extra={"model": self.model_name, "doc_id": active.id, "version_id": version.id},
            )
        else:
            active = await self.primary.update(active)

        if not same_token(version.get(self.version_of_id_field), active.id):
            version[self.version_of_id_field] = active.id
            version = await self.shadow.update(version)

        return version

    async def save_new_version_of(self, entity_id: Any, data: Any) -> Document:
        """Store data as a new, non-active version of an active document."""
        return await self.save_version(data, version_id=None, version_of_id=entity_id)

    async def delete_version(self, version_id: Any) -> DeleteResult:
        """Delete a version record that is not active.

        Returns:
            DeleteResult(success=False) if the version is active or doesn't
            exist, DeleteResult(success=True) once it is removed
        """
        key = normalize_id(version_id)
        if key is None:
            return DeleteResult(False)

        referencing = await self.primary.find_one({self.version_id_field: key})
        if referencing is not None:
            logger.warning(
                "Refused to delete active version",
                extra={"model": self.model_name, "version_id": key, "doc_id": referencing.id},
            )
            return DeleteResult(False)

        version = await self.shadow.find_by_id(key)
        if version is None:
            return DeleteResult(False)

        removed = await self.shadow.remove({ID_FIELD: version.id})
        logger.info(
            "Deleted version",
            extra={"model": self.model_name, "version_id": version.id},
        )
        return DeleteResult(removed > 0)

    async def activate_version(self, version_id: Any) -> Document:
        """Make a version record the active version of its document.

        Copies the version's fields onto the active document and points
        its versionId at the version.

        Returns:
            The saved active document

        Raises:
            NotFoundError: If the version or its active document doesn't exist
            StoreError: If the write fails
        """
        version = await self.shadow.find_by_id(version_id)
        if version is None:
            raise NotFoundError(
                f"Version '{normalize_id(version_id)}' not found",
                resource_type=self.shadow.name,
                resource_id=normalize_id(version_id),
            )

        version_of_id = normalize_id(version.get(self.version_of_id_field))
        active = await self.primary.find_by_id(version_of_id)
        if active is None:
            raise NotFoundError(
                f"{self.model_name} '{version_of_id}' of version '{version.id}' not found",
                resource_type=self.model_name,
                resource_id=version_of_id,
            )

        self._promote(version, active)
        active[self.version_id_field] = version.id
        saved = await self.primary.update(active)

        logger.info(
            f"Activated version {version.id}",
            extra={"model": self.model_name, "doc_id": saved.id, "version_id": version.id},
        )
        return saved

    async def delete_original(self, query: Mapping[str, Any], data: Any = None) -> Document:
        """Delete an active document and keep its history.

        Append-only mode stores the document's last state as a new terminal
        version (with the delete flag, when configured, and `data`
        overlaid). Flagged mode sets the delete flag on the version named
        by the query's versionId. The active document is then removed.

        Args:
            query: Equality filter selecting exactly one active document;
                must carry the versionId token unless append-only
            data: Extra fields for the terminal version (append-only mode)

        Returns:
            The terminal version record

        Raises:
            ConfigurationError: If neither append_only nor delete_flag is set
            VersionTokenRequiredError: If the token is missing
            ConcurrencyConflictError: If the token is stale
            NotFoundError: If no document matches
            AmbiguousMatchError: If more than one document matches
            InconsistentVersionsError: If the flagged version record is missing
        """
        append_only = self.options.append_only
        delete_flag = self.options.delete_flag
        if not append_only and not delete_flag:
            raise ConfigurationError(
                "delete_original needs append_only or delete_flag to be configured"
            )

        query = dict(query)
        token = normalize_id(query.get(self.version_id_field))
        if not append_only and token is None:
            raise VersionTokenRequiredError(self.version_id_field)

        found = await self.primary.find(query)
        if not found:
            raise await self._no_match_error(query, token)
        if len(found) > 1:
            raise AmbiguousMatchError("Cannot delete more than one document.", matched=len(found))
        active = found[0]

        if append_only:
            terminal = self._version_fields(active.snapshot())
            if delete_flag:
                terminal[delete_flag] = True
            if data is not None:
                terminal.update(self._version_fields(snapshot(data)))
            version = await self._insert_version(active.id, terminal)
            try:
                await self.primary.remove({ID_FIELD: active.id})
            except Exception:
                await self._discard_version(version, "delete_original")
                raise
        else:
            version = await self.shadow.conditional_update(
                {ID_FIELD: token}, {delete_flag: True}, return_new=True
            )
            if version is None:
                raise InconsistentVersionsError(
                    "Your version documents are inconsistent.", version_id=token
                )
            try:
                await self.primary.remove({ID_FIELD: active.id})
            except Exception:
                await self._clear_delete_flag(token)
                raise

        logger.info(
            f"Deleted {self.model_name} {active.id}",
            extra={"model": self.model_name, "doc_id": active.id, "version_id": version.id},
        )
        return version

    async def _clear_delete_flag(self, version_id: str) -> None:
        """Best-effort undo of a delete flag set by delete_original()."""
        try:
            await self.shadow.conditional_update(
                {ID_FIELD: version_id}, {self.options.delete_flag: False}
            )
        except Exception as e:
            logger.warning(
                f"Best-effort cleanup of delete flag on {version_id} failed: {e}",
                extra={"model": self.model_name, "version_id": version_id},
            )

    async def _no_match_error(self, query: Mapping[str, Any], token: Optional[str]) -> Exception:
        """Explain why a token-guarded query matched nothing."""
        doc_id = normalize_id(query.get(ID_FIELD))
        current = await self.primary.find_by_id(doc_id) if doc_id else None
        if token is not None and (doc_id is None or current is not None):
            actual = normalize_id(current.get(self.version_id_field)) if current else None
            logger.warning(
                "Stale version token",
                extra={"model": self.model_name, "doc_id": doc_id, "expected": token, "actual": actual},
            )
            return ConcurrencyConflictError.stale(token, actual)
        return NotFoundError(
            f"{self.model_name} matching {sorted(query)} not found",
            resource_type=self.model_name,
            resource_id=doc_id,
        )

    async def upsert_version(self, data: Any, query: Optional[Mapping[str, Any]] = None) -> Document:
        """Create or update an active document, always recording a new version.

        Without an "_id" in data a new document is created with an
        insert-if-absent guarded by `query` (default: the new id), so
        concurrent creators of the same logical document collapse to one.
        An "_id" in the query becomes the new document's id, and the
        query's equality terms are stored on both the document and version.
        With an "_id" the active document is updated only if its versionId
        still equals the token in data (skipped in append-only mode).
        The version record written speculatively by a losing or failed
        attempt is removed again, best-effort.

        Args:
            data: Document fields, optionally with "_id" and the versionId token
            query: Uniqueness filter for the create path

        Returns:
            The active document (the existing one if the create lost)

        Raises:
            VersionTokenRequiredError: If updating without a token
            ConcurrencyConflictError: If the token is stale
            NotFoundError: If updating a document that doesn't exist
        """
        values = snapshot(data)
        doc_id = normalize_id(values.pop(ID_FIELD, None))

        if doc_id is None:
            return await self._upsert_create(values, query)
        return await self._upsert_update(doc_id, values)

    async def _upsert_create(self, values: dict[str, Any], query: Optional[Mapping[str, Any]]) -> Document:
        terms = dict(query or {})
        # A created document must match its own query, so the query's
        # id and equality terms win over the supplied values
        doc_id = normalize_id(terms.pop(ID_FIELD, None)) or generate_id()
        fields = self._version_fields({**values, **terms})
        version = await self._insert_version(doc_id, fields)

        original = dict(fields)
        original[ID_FIELD] = doc_id
        original[self.version_id_field] = version.id
        try:
            existing = await self.primary.conditional_update(
                query or {ID_FIELD: doc_id},
                {},
                upsert=True,
                return_new=False,
                on_insert=original,
            )
        except Exception:
            await self._discard_version(version, "upsert_version")
            raise

        if existing is not None:
            # Another document already satisfies the query; nothing was inserted
            await self._discard_version(version, "upsert_version lost")
            logger.info(
                f"{self.model_name} already exists",
                extra={"model": self.model_name, "doc_id": existing.id},
            )
            return existing

        logger.info(
            f"Created {self.model_name} {doc_id}",
            extra={"model": self.model_name, "doc_id": doc_id, "version_id": version.id},
        )
        return Document.from_mapping(original)

    async def _upsert_update(self, doc_id: str, values: dict[str, Any]) -> Document:
        append_only = self.options.append_only
        token = normalize_id(values.get(self.version_id_field))
        if not append_only and token is None:
            raise VersionTokenRequiredError(self.version_id_field)

        fields = self._version_fields(values)
        version = await self._insert_version(doc_id, fields)

        condition: dict[str, Any] = {ID_FIELD: doc_id}
        if not append_only:
            condition[self.version_id_field] = token
        patch = dict(fields)
        patch[self.version_id_field] = version.id

        try:
            updated = await self.primary.conditional_update(condition, patch, return_new=True)
        except Exception:
            await self._discard_version(version, "upsert_version")
            raise

        if updated is None:
            await self._discard_version(version, "upsert_version conflict")
            raise await self._no_match_error(condition, None if append_only else token)

        logger.debug(
            "Updated active document",
            extra={"model": self.model_name, "doc_id": doc_id, "version_id": version.id},
        )
        return updated

    async def versioned_save(self, document: Any) -> Document:
        """Save a full active document and record it as a new version.

        The document gets a fresh versionId, is written to the primary
        collection (guarded by its current versionId unless append-only),
        then its snapshot is written to the shadow collection. A failure
        of that last write is logged, not raised: the active document is
        already saved.

        Raises:
            ConfigurationError: If hook_wanted is not enabled
            ConcurrencyConflictError: If the document's versionId is stale
        """
        if not self.options.hook_wanted:
            raise ConfigurationError("versioned_save requires hook_wanted to be enabled")

        values = snapshot(document)
        doc_id = normalize_id(values.pop(ID_FIELD, None)) or generate_id()
        token = normalize_id(values.get(self.version_id_field))

        version_id = generate_id()
        values[self.version_id_field] = version_id

        stored = await self.primary.find_by_id(doc_id)
        if stored is None:
            saved = await self.primary.insert(Document(id=doc_id, data=values))
        elif self.options.append_only:
            saved = await self.primary.update(Document(id=doc_id, data=values))
        else:
            saved = None
            if token is not None:
                saved = await self.primary.conditional_update(
                    {ID_FIELD: doc_id, self.version_id_field: token}, values, return_new=True
                )
            if saved is None:
                current = await self.primary.find_by_id(doc_id)
                actual = normalize_id(current.get(self.version_id_field)) if current else None
                raise ConcurrencyConflictError.stale(token, actual)

        shadow_fields = self._version_fields(saved.data)
        shadow_fields[self.version_of_id_field] = saved.id
        try:
            await self.shadow.insert(Document(id=version_id, data=shadow_fields))
        except Exception as e:
            logger.error(
                f"Error saving the version document: {e}",
                extra={"model": self.model_name, "doc_id": saved.id, "version_id": version_id},
            )
        return saved
