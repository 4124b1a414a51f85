"""
Base repository with common key/value operations.
"""

import asyncio
from typing import Generic, Iterable, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel
from pymongo import ReplaceOne
from pymongo.collection import Collection
from pymongo.database import Database

T = TypeVar("T", bound=BaseModel)


class BaseRepository(Generic[T]):
    """
    Base repository over a collection keyed by string `_id`.

    Type parameter T should be a Pydantic model. Documents are stored with
    their alias names; every driver call is offloaded to a worker thread so
    the event loop never blocks on MongoDB.
    """

    def __init__(self, database: Database, collection_name: str, model_class: Type[T]):
        """
        Initialize repository.

        Args:
            database: MongoDB database instance
            collection_name: Name of the collection
            model_class: Pydantic model class for this repository
        """
        self.database = database
        self.collection: Collection = database[collection_name]
        self.model_class = model_class

    def _to_document(self, key: str, entity: T) -> dict:
        document = entity.model_dump(by_alias=True)
        document["_id"] = key
        return document

    def _to_model(self, document: dict) -> T:
        document = dict(document)
        document.pop("_id", None)
        return self.model_class.model_validate(document)

    async def upsert(self, key: str, entity: T) -> T:
        """
        Insert or replace the document stored under `key`.

        Args:
            key: Document key
            entity: Entity to store

        Returns:
            The stored entity
        """
        document = self._to_document(key, entity)
        await asyncio.to_thread(
            self.collection.replace_one, {"_id": key}, document, upsert=True
        )
        return entity

    async def upsert_many(self, items: Iterable[Tuple[str, T]]) -> int:
        """
        Bulk upsert (key, entity) pairs.

        Returns:
            Number of documents written
        """
        operations = [
            ReplaceOne({"_id": key}, self._to_document(key, entity), upsert=True)
            for key, entity in items
        ]
        if not operations:
            return 0
        result = await asyncio.to_thread(self.collection.bulk_write, operations, ordered=False)
        return result.upserted_count + result.modified_count

    async def find_by_key(self, key: str) -> Optional[T]:
        """
        Find document by key.

        Returns:
            Entity if found, None otherwise
        """
        document = await asyncio.to_thread(self.collection.find_one, {"_id": key})
        return self._to_model(document) if document else None

    async def find_many(
        self,
        filter_dict: dict,
        skip: int = 0,
        limit: int = 100,
        sort: Optional[List[tuple]] = None,
    ) -> List[T]:
        """
        Find multiple documents matching filter.

        Args:
            filter_dict: MongoDB filter query
            skip: Number of documents to skip
            limit: Maximum number of documents to return
            sort: List of (field, direction) tuples for sorting

        Returns:
            List of entities
        """
        def _find():
            cursor = self.collection.find(filter_dict)
            if sort:
                cursor = cursor.sort(sort)
            cursor = cursor.skip(skip).limit(limit)
            return [self._to_model(document) for document in cursor]

        return await asyncio.to_thread(_find)

    async def delete_many(self, filter_dict: dict) -> int:
        """
        Delete multiple documents matching filter.

        Returns:
            Number of documents deleted
        """
        result = await asyncio.to_thread(self.collection.delete_many, filter_dict)
        return result.deleted_count

    async def count(self, filter_dict: Optional[dict] = None) -> int:
        """Count documents matching filter (all when None)."""
        return await asyncio.to_thread(self.collection.count_documents, filter_dict or {})
