"""
Unit tests for the per-connection model registry.

Tests cover:
- Model registration and lookup
- Duplicate detection
- Fingerprint generation
"""

import pytest

from docshadow.schema import ModelSchema, field
from docshadow.schema.registry import DuplicateRegistrationError, ModelRegistry


class TestModelRegistry:
    """Tests for ModelRegistry."""

    def test_register_model(self):
        """Can register a model and look it up by name."""
        registry = ModelRegistry()
        Story = ModelSchema("Story", fields=(field("title", "str"),))

        registry.register(Story)

        assert registry.get("Story") == Story
        assert "Story" in registry
        assert len(registry) == 1

    def test_get_unknown_returns_none(self):
        """Unknown names return None."""
        assert ModelRegistry().get("Missing") is None

    def test_duplicate_name_raises(self):
        """Registering a name twice raises."""
        registry = ModelRegistry()
        registry.register(ModelSchema("Story"))

        with pytest.raises(DuplicateRegistrationError, match="'Story' already registered"):
            registry.register(ModelSchema("Story", collection="other"))

    def test_names_in_registration_order(self):
        """names() keeps registration order."""
        registry = ModelRegistry()
        registry.register(ModelSchema("Story"))
        registry.register(ModelSchema("StoryShadow"))

        assert registry.names() == ["Story", "StoryShadow"]
        assert [schema.name for schema in registry] == ["Story", "StoryShadow"]

    def test_fingerprint_format(self):
        """Fingerprint is sha256-prefixed."""
        registry = ModelRegistry()
        registry.register(ModelSchema("Story"))

        assert registry.fingerprint().startswith("sha256:")

    def test_fingerprint_ignores_registration_order(self):
        """Same models in any order give the same fingerprint."""
        first = ModelRegistry()
        first.register(ModelSchema("A"))
        first.register(ModelSchema("B"))

        second = ModelRegistry()
        second.register(ModelSchema("B"))
        second.register(ModelSchema("A"))

        assert first.fingerprint() == second.fingerprint()

    def test_fingerprint_changes_with_fields(self):
        """Adding a field changes the fingerprint."""
        before = ModelRegistry()
        before.register(ModelSchema("Story"))

        after = ModelRegistry()
        after.register(ModelSchema("Story", fields=(field("title", "str"),)))

        assert before.fingerprint() != after.fingerprint()
