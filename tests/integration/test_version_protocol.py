"""
Integration tests for the version protocol.

Tests cover:
- Lineage creation, promotion and activation scenarios
- Active-version delete protection
- Protocol invariants after mixed operation sequences
- Plugin binding and tenant isolation
"""

import pytest
from pydantic import BaseModel

from docshadow.config import VersioningOptions
from docshadow.errors import ConfigurationError, NotFoundError
from docshadow.schema import ModelSchema
from docshadow.store import InMemoryConnection
from docshadow.versioning import VersioningPlugin, VersionList


@pytest.fixture
def plugin(story_schema):
    return VersioningPlugin(story_schema)


@pytest.fixture
def stories(plugin, connection):
    return plugin.bind(connection)


async def assert_lineage_consistent(stories):
    """Every active document points at a version that points back at it."""
    for active in await stories.primary.find():
        version = await stories.find_version_by_id(active["versionId"])
        assert version is not None
        assert version["versionOfId"] == active.id


class TestVersionScenarios:
    """The canonical lineage walk-through, step by step."""

    @pytest.mark.asyncio
    async def test_first_save_creates_lineage(self, stories):
        """Saving for an unknown entity creates the active document."""
        v1 = await stories.save_version({"title": "A"}, version_id=None, version_of_id="unknown")

        active = await stories.primary.find_by_id(v1["versionOfId"])
        assert active is not None
        assert active.id != "unknown"
        assert active["title"] == "A"
        assert active["versionId"] == v1.id
        assert await stories.shadow.count() == 1

    @pytest.mark.asyncio
    async def test_edit_of_active_version_is_promoted(self, stories):
        """Editing the active version updates the active document."""
        v1 = await stories.save_version({"title": "A"})
        story_id = v1["versionOfId"]

        v1_edited = await stories.save_version({"title": "B"}, version_id=v1.id, version_of_id=story_id)

        active = await stories.primary.find_by_id(story_id)
        assert v1_edited.id == v1.id
        assert active["title"] == "B"
        assert active["versionId"] == v1.id
        assert await stories.shadow.count() == 1

    @pytest.mark.asyncio
    async def test_new_version_is_not_promoted(self, stories):
        """A new version of an existing document is stored, not promoted."""
        v1 = await stories.save_version({"title": "B"})
        story_id = v1["versionOfId"]

        v2 = await stories.save_new_version_of(story_id, {"title": "C"})

        active = await stories.primary.find_by_id(story_id)
        assert v2["versionOfId"] == story_id
        assert active["title"] == "B"
        assert active["versionId"] == v1.id

    @pytest.mark.asyncio
    async def test_active_version_cannot_be_deleted(self, stories):
        """delete_version refuses the active version and removes others."""
        v1 = await stories.save_version({"title": "B"})
        v2 = await stories.save_new_version_of(v1["versionOfId"], {"title": "C"})

        refused = await stories.delete_version(v1.id)
        deleted = await stories.delete_version(v2.id)

        assert refused.success is False
        assert deleted.success is True
        assert await stories.find_version_by_id(v1.id) is not None
        assert await stories.find_version_by_id(v2.id) is None

    @pytest.mark.asyncio
    async def test_activate_version(self, stories):
        """Activation promotes a version and frees the previous one."""
        v1 = await stories.save_version({"title": "B"})
        story_id = v1["versionOfId"]
        v2 = await stories.save_new_version_of(story_id, {"title": "C"})

        active = await stories.activate_version(v2.id)

        assert active.id == story_id
        assert active["title"] == "C"
        assert active["versionId"] == v2.id
        assert (await stories.delete_version(v1.id)).success is True
        assert (await stories.delete_version(v2.id)).success is False

    @pytest.mark.asyncio
    async def test_full_walkthrough_keeps_invariants(self, stories):
        """Lineage stays consistent through a mixed sequence of operations."""
        v1 = await stories.save_version({"title": "A"})
        story_id = v1["versionOfId"]
        await stories.save_version({"title": "B"}, version_id=v1.id, version_of_id=story_id)
        v2 = await stories.save_new_version_of(story_id, {"title": "C"})
        await stories.delete_version(v2.id)
        v2 = await stories.save_new_version_of(story_id, {"title": "C"})
        await stories.activate_version(v2.id)
        await stories.delete_version(v1.id)

        await assert_lineage_consistent(stories)
        listing = await stories.find_versions(story_id)
        assert listing.active_id == v2.id
        assert [v.id for v in listing.versions] == [v2.id]


class TestReads:
    """Tests for the read operations."""

    @pytest.mark.asyncio
    async def test_find_versions_missing_document(self, stories):
        """A missing active document yields an empty listing."""
        assert await stories.find_versions("missing") == VersionList(active_id=None, versions=[])

    @pytest.mark.asyncio
    async def test_find_versions_lists_all(self, stories):
        """All versions of the document are listed with the active id."""
        v1 = await stories.save_version({"title": "A"})
        story_id = v1["versionOfId"]
        v2 = await stories.save_new_version_of(story_id, {"title": "B"})
        other = await stories.save_version({"title": "Other"})

        listing = await stories.find_versions(story_id)

        assert listing.active_id == v1.id
        assert {v.id for v in listing.versions} == {v1.id, v2.id}
        assert other.id not in {v.id for v in listing.versions}

    @pytest.mark.asyncio
    async def test_instance_find_versions(self, stories):
        """Versions can be listed from the active document itself."""
        v1 = await stories.save_version({"title": "A"})
        active = await stories.primary.find_by_id(v1["versionOfId"])

        versions = await stories.instance_find_versions(active)

        assert [v.id for v in versions] == [v1.id]

    @pytest.mark.asyncio
    async def test_instance_find_versions_unsaved(self, stories):
        """A document without id has no versions."""
        assert await stories.instance_find_versions({"title": "A"}) == []

    @pytest.mark.asyncio
    async def test_find_version_by_id_idempotent(self, stories):
        """Repeated reads without writes return equal results."""
        v1 = await stories.save_version({"title": "A"})

        first = await stories.find_version_by_id(v1.id)
        second = await stories.find_version_by_id(v1.id)

        assert first == second
        assert await stories.find_version_by_id("missing") is None


class TestSaveVersion:
    """Edge cases of save_version."""

    @pytest.mark.asyncio
    async def test_round_trip_through_activation(self, stories):
        """Activating a saved version yields its domain fields."""
        data = {"title": "A", "body": "text", "slug": "a"}
        version = await stories.save_version(data, version_of_id="new-entity")

        active = await stories.activate_version(version.id)

        assert {k: v for k, v in active.data.items() if k != "versionId"} == data

    @pytest.mark.asyncio
    async def test_bookkeeping_fields_not_copied(self, stories):
        """_id and link fields in the data never reach the version record."""
        version = await stories.save_version(
            {"_id": "forged", "versionId": "forged", "versionOfId": "forged", "title": "A"}
        )

        assert version.id != "forged"
        assert "versionId" not in version
        assert version["versionOfId"] != "forged"
        await assert_lineage_consistent(stories)

    @pytest.mark.asyncio
    async def test_unknown_version_id_creates_new(self, stories):
        """An unknown version id creates a new record."""
        version = await stories.save_version({"title": "A"}, version_id="missing")

        assert version.id != "missing"
        assert await stories.shadow.count() == 1

    @pytest.mark.asyncio
    async def test_pydantic_input(self, stories):
        """Data may be given as a pydantic model."""

        class StoryIn(BaseModel):
            title: str
            body: str = ""

        version = await stories.save_version(StoryIn(title="A"))

        assert version["title"] == "A"
        assert version["body"] == ""

    @pytest.mark.asyncio
    async def test_edit_of_stale_version_not_promoted(self, stories):
        """Editing a version that is no longer active leaves the document alone."""
        v1 = await stories.save_version({"title": "A"})
        story_id = v1["versionOfId"]
        v2 = await stories.save_new_version_of(story_id, {"title": "B"})
        await stories.activate_version(v2.id)

        edited = await stories.save_version({"title": "old edit"}, version_id=v1.id, version_of_id=story_id)

        active = await stories.primary.find_by_id(story_id)
        assert edited["title"] == "old edit"
        assert active["title"] == "B"
        assert active["versionId"] == v2.id


class TestActivateVersion:
    """Failure results of activate_version."""

    @pytest.mark.asyncio
    async def test_missing_version(self, stories):
        """Activating an unknown version raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await stories.activate_version("missing")

    @pytest.mark.asyncio
    async def test_missing_active_document(self, stories):
        """A version whose active document is gone cannot be activated."""
        v1 = await stories.save_version({"title": "A"})
        await stories.primary.remove({"_id": v1["versionOfId"]})

        with pytest.raises(NotFoundError) as exc_info:
            await stories.activate_version(v1.id)

        assert exc_info.value.resource_type == "Story"


class TestDeleteVersion:
    """Edge cases of delete_version."""

    @pytest.mark.asyncio
    async def test_missing_version(self, stories):
        """Deleting an unknown version reports failure."""
        assert (await stories.delete_version("missing")).success is False
        assert not await stories.delete_version(None)


class TestPluginBinding:
    """Tests for VersioningPlugin.bind."""

    def test_bind_is_idempotent(self, plugin, connection):
        """Binding twice reuses the registered collections."""
        first = plugin.bind(connection)
        second = plugin.bind(connection)

        assert first.primary is second.primary
        assert first.shadow is second.shadow
        assert connection.registry.names() == ["Story", "StoryShadow"]

    def test_bind_rejects_foreign_model(self, plugin):
        """A different model already registered under the name is rejected."""
        connection = InMemoryConnection()
        connection.register_model(ModelSchema("Story"))

        with pytest.raises(ConfigurationError):
            plugin.bind(connection)

    def test_shadow_collection_option(self, story_schema, connection):
        """The shadow model can live in a named collection."""
        stories = VersioningPlugin(story_schema, VersioningOptions(collection="story_history")).bind(connection)

        assert stories.shadow.name == "story_history"

    @pytest.mark.asyncio
    async def test_tenants_isolated(self, plugin):
        """Two connections bound to one plugin keep separate histories."""
        tenant_a = plugin.bind(InMemoryConnection("a"))
        tenant_b = plugin.bind(InMemoryConnection("b"))

        version = await tenant_a.save_version({"title": "A"})

        assert await tenant_b.find_version_by_id(version.id) is None
        assert (await tenant_b.find_versions(version["versionOfId"])).versions == []
        assert await tenant_a.shadow.count() == 1
        assert await tenant_b.shadow.count() == 0
