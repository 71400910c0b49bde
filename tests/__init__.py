"""
docshadow Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Version protocol tests against in-memory and SQLite stores
- e2e/: MongoDB tests (need a running MongoDB)
"""
