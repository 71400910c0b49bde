"""
Unit tests for schema mirroring.

Tests cover:
- Primary and shadow shapes
- Custom link field names and collections
- Collision and option validation
"""

import pytest

from docshadow.config import VersioningOptions
from docshadow.errors import ConfigurationError
from docshadow.schema import FieldKind, ModelSchema, field, mirror_schema, shadow_model_name


@pytest.fixture
def story():
    return ModelSchema(
        "Story",
        fields=(field("title", "str", required=True), field("body", "str")),
    )


class TestMirrorSchema:
    """Tests for mirror_schema."""

    def test_shadow_name(self):
        """Shadow models are named <Model>Shadow."""
        assert shadow_model_name("Story") == "StoryShadow"

    def test_primary_gets_version_pointer(self, story):
        """The primary shape adds versionId referencing the shadow model."""
        mirrored = mirror_schema(story, VersioningOptions())

        pointer = mirrored.primary.get_field("versionId")
        assert pointer.kind == FieldKind.REFERENCE
        assert pointer.ref_model == "StoryShadow"
        assert mirrored.primary.name == "Story"
        assert mirrored.primary.field_names() == ["title", "body", "versionId"]

    def test_shadow_copies_declared_fields(self, story):
        """The shadow has every declared field plus versionOfId."""
        mirrored = mirror_schema(story, VersioningOptions())

        assert mirrored.shadow.name == "StoryShadow"
        assert mirrored.shadow.field_names() == ["title", "body", "versionOfId"]
        assert mirrored.shadow.get_field("versionOfId").ref_model == "Story"
        assert mirrored.shadow.get_field("title").required is True

    def test_shadow_never_has_version_pointer(self, story):
        """Version records carry no versionId of their own."""
        mirrored = mirror_schema(story, VersioningOptions())
        assert not mirrored.shadow.has_field("versionId")

    def test_delete_flag_added_to_shadow(self, story):
        """A configured delete flag becomes a boolean shadow field."""
        mirrored = mirror_schema(story, VersioningOptions(delete_flag="deleted"))

        flag = mirrored.shadow.get_field("deleted")
        assert flag.kind == FieldKind.BOOLEAN
        assert flag.default is False
        assert not mirrored.primary.has_field("deleted")

    def test_custom_field_names(self, story):
        """Link field names follow the options."""
        options = VersioningOptions(version_id_field="rev", version_of_id_field="revOf")
        mirrored = mirror_schema(story, options)

        assert mirrored.primary.has_field("rev")
        assert mirrored.shadow.has_field("revOf")

    def test_shadow_collection_override(self, story):
        """The options can place the shadow in a named collection."""
        mirrored = mirror_schema(story, VersioningOptions(collection="story_history"))

        assert mirrored.shadow.collection_name == "story_history"
        assert mirrored.primary.collection_name == "Story"

    def test_collision_rejected(self):
        """A declared field named like a link field is a configuration error."""
        schema = ModelSchema("Story", fields=(field("versionId", "str"),))

        with pytest.raises(ConfigurationError) as exc_info:
            mirror_schema(schema, VersioningOptions())

        assert "versionId" in str(exc_info.value)
        assert exc_info.value.errors

    def test_delete_flag_collision_rejected(self, story):
        """The delete flag cannot reuse a declared field."""
        with pytest.raises(ConfigurationError):
            mirror_schema(story, VersioningOptions(delete_flag="title"))

    def test_invalid_options_rejected(self, story):
        """Options are validated before mirroring."""
        with pytest.raises(ConfigurationError):
            mirror_schema(story, VersioningOptions(version_id_field="same", version_of_id_field="same"))

    def test_mirroring_is_deterministic(self, story):
        """Mirroring the same schema twice gives equal shapes."""
        assert mirror_schema(story, VersioningOptions()) == mirror_schema(story, VersioningOptions())
