# haatbazaar/db/repository.py
# Shared plumbing for the per-module repositories: id parsing, document
# mapping, and wrapping driver failures in RepositoryError.

from typing import Any, Dict, Generic, List, Optional, Sequence, Tuple, Type, TypeVar
from bson import ObjectId
from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from haatbazaar.core.exceptions import RepositoryError
from haatbazaar.core.logging_setup import logger
from haatbazaar.db.mongo_client import get_database
from haatbazaar.db.schemas.common_schemas import MongoDocument, utcnow

DocT = TypeVar("DocT", bound=MongoDocument)
SortSpec = Sequence[Tuple[str, int]]


class DuplicateRecordError(RepositoryError):
    """A unique index rejected the write."""
    pass


def to_object_id(value: Optional[str]) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if value and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


class MongoRepository(Generic[DocT]):
    collection_name: str
    document_model: Type[DocT]
    _collection: AsyncIOMotorCollection

    def __init__(self, db: AsyncIOMotorDatabase = Depends(get_database)):
        self._collection = db[self.collection_name]

    async def _map_doc(self, doc: Optional[Dict[str, Any]]) -> Optional[DocT]:
        """Maps a MongoDB document to the module's Pydantic model."""
        if doc:
            try:
                return self.document_model.model_validate(doc)
            except ValidationError as e:
                logger.error(f"Failed to map document to {self.document_model.__name__}: Id={doc.get('_id')}, Error={e}")
                return None
        return None

    async def _map_many(self, docs: List[Dict[str, Any]]) -> List[DocT]:
        mapped = [await self._map_doc(doc) for doc in docs]
        return [item for item in mapped if item is not None]

    async def get_by_id(self, doc_id: str) -> Optional[DocT]:
        log = logger.bind(collection=self.collection_name, doc_id=doc_id)
        oid = to_object_id(doc_id)
        if oid is None:
            log.warning("Invalid ObjectId format provided.")
            return None
        try:
            doc = await self._collection.find_one({"_id": oid})
            return await self._map_doc(doc)
        except Exception as e:
            log.exception("Database error finding document by ID.")
            raise RepositoryError(f"Error fetching {self.collection_name} by ID: {e}") from e

    async def find_one(self, query: Dict[str, Any]) -> Optional[DocT]:
        log = logger.bind(collection=self.collection_name, filter=query)
        try:
            doc = await self._collection.find_one(query)
            return await self._map_doc(doc)
        except Exception as e:
            log.exception("Database error finding document.")
            raise RepositoryError(f"Error querying {self.collection_name}: {e}") from e

    async def find_many(
        self,
        query: Dict[str, Any],
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[DocT]:
        log = logger.bind(collection=self.collection_name, filter=query, skip=skip, limit=limit)
        log.debug("Listing documents.")
        try:
            cursor = self._collection.find(query)
            if sort:
                cursor = cursor.sort(list(sort))
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            docs = await cursor.to_list(length=limit or None)
            return await self._map_many(docs)
        except Exception as e:
            log.exception("Database error listing documents.")
            raise RepositoryError(f"Error listing {self.collection_name}: {e}") from e

    async def count(self, query: Dict[str, Any]) -> int:
        try:
            return await self._collection.count_documents(query)
        except Exception as e:
            logger.bind(collection=self.collection_name).exception("Database error counting documents.")
            raise RepositoryError(f"Error counting {self.collection_name}: {e}") from e

    async def insert(self, data: Dict[str, Any]) -> DocT:
        log = logger.bind(collection=self.collection_name, action="create")
        now = utcnow()
        data.setdefault("created_at", now)
        data.setdefault("updated_at", now)
        try:
            result = await self._collection.insert_one(data)
        except DuplicateKeyError as e:
            log.warning(f"Duplicate key on insert: {e}")
            raise DuplicateRecordError(f"Duplicate {self.collection_name} record.") from e
        except Exception as e:
            log.exception("Database error creating document.")
            raise RepositoryError(f"Error creating {self.collection_name}: {e}") from e
        data["_id"] = result.inserted_id
        log.info(f"Document created with ID: {result.inserted_id}")
        created = await self._map_doc(data)
        if created is None:
            raise RepositoryError(f"Created {self.collection_name} document failed validation.")
        return created

    async def update_by_id(
        self,
        doc_id: str,
        update: Dict[str, Any],
        extra_filter: Optional[Dict[str, Any]] = None,
    ) -> Optional[DocT]:
        """Applies an update document. Returns None when no document matched the filter."""
        log = logger.bind(collection=self.collection_name, doc_id=doc_id)
        oid = to_object_id(doc_id)
        if oid is None:
            log.warning("Invalid ObjectId format for update.")
            return None
        update = dict(update)
        update["$set"] = {**update.get("$set", {}), "updated_at": utcnow()}
        try:
            doc = await self._collection.find_one_and_update(
                {"_id": oid, **(extra_filter or {})},
                update,
                return_document=ReturnDocument.AFTER,
            )
            return await self._map_doc(doc)
        except DuplicateKeyError as e:
            log.warning(f"Duplicate key on update: {e}")
            raise DuplicateRecordError(f"Duplicate {self.collection_name} record.") from e
        except Exception as e:
            log.exception("Database error updating document.")
            raise RepositoryError(f"Error updating {self.collection_name}: {e}") from e

    async def update_many(self, query: Dict[str, Any], update: Dict[str, Any]) -> int:
        update = dict(update)
        update["$set"] = {**update.get("$set", {}), "updated_at": utcnow()}
        try:
            result = await self._collection.update_many(query, update)
            return result.modified_count
        except Exception as e:
            logger.bind(collection=self.collection_name, filter=query).exception("Database error in bulk update.")
            raise RepositoryError(f"Error updating {self.collection_name}: {e}") from e

    async def delete_by_id(self, doc_id: str) -> bool:
        oid = to_object_id(doc_id)
        if oid is None:
            return False
        try:
            result = await self._collection.delete_one({"_id": oid})
            return result.deleted_count == 1
        except Exception as e:
            logger.bind(collection=self.collection_name, doc_id=doc_id).exception("Database error deleting document.")
            raise RepositoryError(f"Error deleting {self.collection_name}: {e}") from e

    async def delete_many(self, query: Dict[str, Any]) -> int:
        try:
            result = await self._collection.delete_many(query)
            return result.deleted_count
        except Exception as e:
            logger.bind(collection=self.collection_name, filter=query).exception("Database error deleting documents.")
            raise RepositoryError(f"Error deleting {self.collection_name}: {e}") from e
