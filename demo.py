#!/usr/bin/env python3
"""
docshadow Demo - Shows a story's version history.

Loads the Story model from examples/story.yaml and walks one story through
create, edit, branch, activate and delete. The backend comes from the
DOCSHADOW_ environment (in-memory by default).
"""

import asyncio
import time
from pathlib import Path

from docshadow import (
    ConcurrencyConflictError,
    Settings,
    VersioningPlugin,
    create_connection,
    load_schema_file,
    setup_logging,
)

SCHEMA_FILE = Path(__file__).parent / "examples" / "story.yaml"


def now_ms() -> int:
    return int(time.time() * 1000)


async def main():
    print("=" * 60)
    print("docshadow Demo - Story Versions")
    print("=" * 60)
    print()

    settings = Settings(delete_flag="deleted")
    setup_logging(settings.observability_config())
    settings.log_config()

    # 1. Define Schema
    print("[Step 1] Loading schema...")
    Story = load_schema_file(SCHEMA_FILE)
    plugin = VersioningPlugin.from_settings(Story, settings)
    print(f"  - Model: {Story.name} -> collection '{Story.collection_name}'")
    print(f"  - Shadow: {plugin.shadow_schema.name} fields {plugin.shadow_schema.field_names()}")

    # 2. Connect
    print("\n[Step 2] Connecting...")
    connection = create_connection(settings, tenant_id="demo")
    stories = plugin.bind(connection)
    print(f"  - Backend: {connection.name}")

    try:
        # 3. First save creates the story
        print("\n[Step 3] Creating a story...")
        v1 = await stories.save_version({"title": "Draft headline", "deck": "", "updated": now_ms()})
        story_id = v1["versionOfId"]
        print(f"  - Story {story_id} with version {v1.id}")

        # 4. Edit the active version
        print("\n[Step 4] Editing the active version...")
        await stories.save_version(
            {"title": "Final headline", "deck": "Subhead", "updated": now_ms()},
            version_id=v1.id,
            version_of_id=story_id,
        )
        active = await stories.primary.find_by_id(story_id)
        print(f"  - Active title: {active['title']}")

        # 5. Branch a new version without publishing it
        print("\n[Step 5] Saving an alternative version...")
        v2 = await stories.save_new_version_of(story_id, {"title": "Alternative headline", "updated": now_ms()})
        active = await stories.primary.find_by_id(story_id)
        print(f"  - New version {v2.id}, active title still: {active['title']}")

        refused = await stories.delete_version(v1.id)
        print(f"  - Deleting the active version succeeds? {refused.success}")

        # 6. Activate the alternative
        print("\n[Step 6] Activating the alternative...")
        active = await stories.activate_version(v2.id)
        print(f"  - Active title: {active['title']}")

        listing = await stories.find_versions(story_id)
        print(f"  - {len(listing.versions)} versions, active {listing.active_id}")
        for version in listing.versions:
            marker = "*" if version.id == listing.active_id else " "
            print(f"    {marker} {version.id}: {version['title']}")

        # 7. A stale write is rejected
        print("\n[Step 7] Writing with a stale token...")
        try:
            await stories.upsert_version({"_id": story_id, "versionId": v1.id, "title": "Stale"})
        except ConcurrencyConflictError as e:
            print(f"  - Rejected: {e.message}")

        # 8. Soft delete keeps the history
        print("\n[Step 8] Deleting the story...")
        terminal = await stories.delete_original({"_id": story_id, "versionId": v2.id})
        remaining = await stories.shadow.find({"versionOfId": story_id})
        print(f"  - Terminal version {terminal.id} flagged deleted={terminal['deleted']}")
        print(f"  - {len(remaining)} version records kept")
    finally:
        await connection.close()

    print()
    print("=" * 60)
    print("Demo complete")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
