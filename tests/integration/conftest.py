"""
Integration test fixtures.

Every versioning test runs against both Python-side backends.
"""

import tempfile

import pytest

from docshadow.schema import ModelSchema, field
from docshadow.store import InMemoryConnection, SqliteConnection

STORY = ModelSchema(
    "Story",
    fields=(
        field("title", "str", required=True),
        field("body", "str"),
        field("slug", "str", indexed=True),
    ),
)


@pytest.fixture
def story_schema():
    return STORY


@pytest.fixture(params=["memory", "sqlite"])
def connection(request):
    """Store connection for each backend."""
    if request.param == "memory":
        yield InMemoryConnection("tenant_1")
    else:
        with tempfile.TemporaryDirectory() as tmpdir:
            yield SqliteConnection(tmpdir, "tenant_1", wal_mode=False)
