"""
Clear cached scan results, registry responses and graphs.

Usage:
    python clear_cache.py                 # everything
    python clear_cache.py graph:          # built graphs only
    python clear_cache.py registry:pkg:   # package metadata only
"""

import asyncio
import sys

from database import DatabaseManager
from env import MONGODB_URI, MONGODB_DATABASE_NAME
from repositories.cache import CacheStore


async def clear_cache(prefix: str = "") -> int:
    """Delete every cache row whose key starts with `prefix`."""
    print(f"Connecting to MongoDB...")
    print(f"Database: {MONGODB_DATABASE_NAME}")

    db_manager = DatabaseManager()
    db_manager.connect(MONGODB_URI, MONGODB_DATABASE_NAME)
    try:
        cache = CacheStore(db_manager.database)
        before = await cache.count()
        deleted = await cache.invalidate(prefix)
    finally:
        db_manager.disconnect()

    print("=" * 50)
    print(f"Rows before: {before}")
    print(f"Deleted {deleted} rows matching {prefix or '<all>'}")
    return deleted


if __name__ == "__main__":
    key_prefix = sys.argv[1] if len(sys.argv) > 1 else ""
    response = input(f"Delete cache rows with prefix {key_prefix or '<all>'!r}? (yes/no): ")

    if response.lower() == "yes":
        asyncio.run(clear_cache(key_prefix))
    else:
        print("Operation cancelled.")
