"""
Integration tests for upsert_version.

Tests cover:
- Create path with and without a uniqueness query
- Concurrent creators collapsing to one document
- Token-guarded update path and conflicts
- Append-only mode
"""

import asyncio

import pytest

from docshadow.config import VersioningOptions
from docshadow.errors import (
    ConcurrencyConflictError,
    NotFoundError,
    VersionTokenRequiredError,
)
from docshadow.versioning import VersioningPlugin


@pytest.fixture
def stories(story_schema, connection):
    return VersioningPlugin(story_schema).bind(connection)


@pytest.fixture
def append_only_stories(story_schema, connection):
    return VersioningPlugin(story_schema, VersioningOptions(append_only=True)).bind(connection)


class TestUpsertCreate:
    """Create path of upsert_version."""

    @pytest.mark.asyncio
    async def test_creates_document_and_version(self, stories):
        """A document without _id is created with its first version."""
        active = await stories.upsert_version({"title": "A"})

        stored = await stories.primary.find_by_id(active.id)
        version = await stories.find_version_by_id(active["versionId"])
        assert stored["title"] == "A"
        assert stored["versionId"] == active["versionId"]
        assert version["title"] == "A"
        assert version["versionOfId"] == active.id

    @pytest.mark.asyncio
    async def test_existing_match_returned(self, stories):
        """A second create with the same query returns the first document."""
        first = await stories.upsert_version({"title": "A", "slug": "a"}, query={"slug": "a"})
        second = await stories.upsert_version({"title": "B", "slug": "a"}, query={"slug": "a"})

        assert second.id == first.id
        assert second["title"] == "A"
        assert await stories.primary.count() == 1
        assert await stories.shadow.count() == 1

    @pytest.mark.asyncio
    async def test_concurrent_creators_collapse(self, stories):
        """Concurrent creators of one logical document produce one lineage."""
        results = await asyncio.gather(
            *[
                stories.upsert_version({"title": f"T{i}", "slug": "same"}, query={"slug": "same"})
                for i in range(5)
            ]
        )

        actives = await stories.primary.find()
        versions = await stories.shadow.find()
        assert len(actives) == 1
        assert {r.id for r in results} == {actives[0].id}
        assert len(versions) == 1
        assert versions[0].id == actives[0]["versionId"]
        assert versions[0]["versionOfId"] == actives[0].id

    @pytest.mark.asyncio
    async def test_query_id_used_for_new_document(self, stories):
        """An _id in the query becomes the created document's id."""
        active = await stories.upsert_version({"title": "A"}, query={"_id": "fixed"})

        version = await stories.find_version_by_id(active["versionId"])
        assert active.id == "fixed"
        assert (await stories.primary.find_by_id("fixed"))["title"] == "A"
        assert version["versionOfId"] == "fixed"

    @pytest.mark.asyncio
    async def test_concurrent_creators_with_query_id(self, stories):
        """Concurrent creators keyed by _id collapse to one document."""
        results = await asyncio.gather(
            *[stories.upsert_version({"title": f"T{i}"}, query={"_id": "fixed"}) for i in range(3)]
        )

        actives = await stories.primary.find()
        versions = await stories.shadow.find()
        assert [a.id for a in actives] == ["fixed"]
        assert {r.id for r in results} == {"fixed"}
        assert len(versions) == 1
        assert versions[0]["versionOfId"] == "fixed"
        assert versions[0].id == actives[0]["versionId"]

    @pytest.mark.asyncio
    async def test_query_terms_stored(self, stories):
        """Query terms missing from data land on the document and its version."""
        active = await stories.upsert_version({"title": "A"}, query={"slug": "a"})

        stored = await stories.primary.find_by_id(active.id)
        version = await stories.find_version_by_id(active["versionId"])
        assert active["slug"] == "a"
        assert active.data == stored.data
        assert version["slug"] == "a"


class TestUpsertUpdate:
    """Update path of upsert_version."""

    @pytest.mark.asyncio
    async def test_update_with_token(self, stories):
        """A current token updates the document and records a new version."""
        created = await stories.upsert_version({"title": "A"})

        updated = await stories.upsert_version(
            {"_id": created.id, "versionId": created["versionId"], "title": "B"}
        )

        assert updated.id == created.id
        assert updated["title"] == "B"
        assert updated["versionId"] != created["versionId"]
        listing = await stories.find_versions(created.id)
        assert listing.active_id == updated["versionId"]
        assert len(listing.versions) == 2

    @pytest.mark.asyncio
    async def test_token_required(self, stories):
        """Updating without a token is rejected before any write."""
        created = await stories.upsert_version({"title": "A"})

        with pytest.raises(VersionTokenRequiredError):
            await stories.upsert_version({"_id": created.id, "title": "B"})

        assert await stories.shadow.count() == 1

    @pytest.mark.asyncio
    async def test_stale_token(self, stories):
        """A stale token is a conflict and leaves the history unchanged."""
        created = await stories.upsert_version({"title": "A"})
        stale = created["versionId"]
        await stories.upsert_version({"_id": created.id, "versionId": stale, "title": "B"})

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await stories.upsert_version({"_id": created.id, "versionId": stale, "title": "C"})

        assert stale in str(exc_info.value)
        assert exc_info.value.expected_token == stale
        assert await stories.shadow.count() == 2
        assert (await stories.primary.find_by_id(created.id))["title"] == "B"

    @pytest.mark.asyncio
    async def test_missing_document(self, stories):
        """Updating a document that doesn't exist is NotFoundError."""
        with pytest.raises(NotFoundError):
            await stories.upsert_version({"_id": "missing", "versionId": "v", "title": "B"})

        assert await stories.shadow.count() == 0


class TestUpsertAppendOnly:
    """upsert_version in append-only mode."""

    @pytest.mark.asyncio
    async def test_update_without_token(self, append_only_stories):
        """Append-only updates need no token."""
        stories = append_only_stories
        created = await stories.upsert_version({"title": "A"})

        updated = await stories.upsert_version({"_id": created.id, "title": "B"})

        assert updated["title"] == "B"
        assert len((await stories.find_versions(created.id)).versions) == 2

    @pytest.mark.asyncio
    async def test_missing_document(self, append_only_stories):
        """Append-only updates of a missing document are NotFoundError."""
        with pytest.raises(NotFoundError):
            await append_only_stories.upsert_version({"_id": "missing", "title": "B"})

        assert await append_only_stories.shadow.count() == 0
