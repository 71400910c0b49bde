"""
E2E test fixtures for the MongoDB backend.

These tests require a running MongoDB (DOCSHADOW_MONGO_URL, default
mongodb://localhost:27017).
"""

import os
import uuid

import pytest
import pytest_asyncio

from docshadow.store import MongoConnection

# Skip E2E tests if not in E2E mode
MONGO_ENABLED = os.environ.get("DOCSHADOW_MONGO_TESTS", "0") == "1"
MONGO_URL = os.environ.get("DOCSHADOW_MONGO_URL", "mongodb://localhost:27017")

pytestmark = pytest.mark.skipif(
    not MONGO_ENABLED,
    reason="MongoDB tests disabled. Set DOCSHADOW_MONGO_TESTS=1 to enable."
)


@pytest_asyncio.fixture
async def mongo_connection():
    """Connection to a throwaway database, dropped afterwards."""
    if not MONGO_ENABLED:
        pytest.skip("MongoDB tests disabled")

    database = f"docshadow_test_{uuid.uuid4().hex[:8]}"
    connection = MongoConnection(MONGO_URL, database)
    yield connection
    await connection.client.drop_database(database)
    await connection.close()
