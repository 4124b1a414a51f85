"""
Cache store repository - key/value rows with write timestamps.
"""

import asyncio
import json
import logging
import re
import time
from typing import Any, Callable, Optional, Tuple

from pymongo.database import Database
from pymongo.errors import PyMongoError

from errors import CacheError
from models.cache import CacheEntry
from repositories.base import BaseRepository

logger = logging.getLogger(__name__)

CACHE_COLLECTION = "kv_cache"
CACHE_FORMAT_VERSION = 1


def scan_key(workspace_path: str) -> str:
    return f"scan:{workspace_path}"


def listing_key(scope: str) -> str:
    return f"registry:listing:{scope}"


def package_key(package_name: str) -> str:
    """Key for a registry package; scoped names already read '<scope>/<name>'."""
    return f"registry:pkg:{package_name}"


def graph_key(fingerprint: str) -> str:
    return f"graph:{fingerprint}"


class CacheStore(BaseRepository[CacheEntry]):
    """
    Persistent cache for scan results, registry responses and built graphs.

    Each row is `{_id: key, value: <UTF-8 JSON envelope>, stored_at: <epoch s>}`.
    The envelope carries a format version so older rows read as misses after
    a format change. Writes are single-document upserts serialized through one
    lock; a graph is always written as one blob.

    Driver failures are raised as CacheError; callers decide whether to
    degrade to a miss.
    """

    def __init__(
        self,
        database: Database,
        collection_name: str = CACHE_COLLECTION,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(database, collection_name, CacheEntry)
        self._clock = clock
        self._write_lock = asyncio.Lock()

    def _to_document(self, key: str, entity: CacheEntry) -> dict:
        return {"_id": key, "value": entity.value, "stored_at": entity.stored_at}

    def _to_model(self, document: dict) -> CacheEntry:
        return CacheEntry(
            key=document["_id"],
            value=bytes(document["value"]),
            stored_at=int(document["stored_at"]),
        )

    def now(self) -> int:
        return int(self._clock())

    def is_fresh(self, stored_at: int, ttl_seconds: int) -> bool:
        """True while `stored_at + ttl_seconds` lies in the future."""
        return self.now() < stored_at + ttl_seconds

    async def initialize(self) -> None:
        """Create indexes if absent."""
        try:
            await asyncio.to_thread(self.collection.create_index, "stored_at")
        except PyMongoError as e:
            raise CacheError(f"Failed to initialize cache store: {e}") from e

    async def get(self, key: str) -> Optional[Tuple[Any, int]]:
        """
        Read a cached value.

        Args:
            key: Cache key

        Returns:
            (value, stored_at) or None on a miss

        Raises:
            CacheError: if the store cannot be read or the row is corrupt
        """
        try:
            entry = await self.find_by_key(key)
        except PyMongoError as e:
            raise CacheError(f"Failed to read cache key {key}: {e}") from e

        if entry is None:
            return None

        try:
            envelope = json.loads(entry.value.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CacheError(f"Corrupt cache row {key}: {e}") from e

        if not isinstance(envelope, dict) or envelope.get("v") != CACHE_FORMAT_VERSION:
            logger.info("Ignoring cache row %s with unknown format version", key)
            return None

        return envelope.get("data"), entry.stored_at

    async def put(self, key: str, value: Any) -> int:
        """
        Store a JSON-serializable value under `key`.

        Returns:
            The stored_at timestamp written

        Raises:
            CacheError: if the write fails
        """
        payload = json.dumps(
            {"v": CACHE_FORMAT_VERSION, "data": value},
            sort_keys=True,
            separators=(",", ":"),
        ).encode("utf-8")
        entry = CacheEntry(key=key, value=payload, stored_at=self.now())

        async with self._write_lock:
            try:
                await self.upsert(key, entry)
            except PyMongoError as e:
                raise CacheError(f"Failed to write cache key {key}: {e}") from e
        return entry.stored_at

    async def invalidate(self, prefix: str = "") -> int:
        """
        Delete every row whose key starts with `prefix`.

        Returns:
            Number of rows deleted
        """
        filter_dict = {"_id": {"$regex": f"^{re.escape(prefix)}"}} if prefix else {}
        async with self._write_lock:
            try:
                deleted = await self.delete_many(filter_dict)
            except PyMongoError as e:
                raise CacheError(f"Failed to invalidate prefix {prefix!r}: {e}") from e
        logger.info("Invalidated %d cache rows with prefix %r", deleted, prefix)
        return deleted

    async def purge_older_than(self, seconds: int) -> int:
        """Delete rows written more than `seconds` ago."""
        cutoff = self.now() - seconds
        async with self._write_lock:
            try:
                return await self.delete_many({"stored_at": {"$lt": cutoff}})
            except PyMongoError as e:
                raise CacheError(f"Failed to purge cache: {e}") from e
