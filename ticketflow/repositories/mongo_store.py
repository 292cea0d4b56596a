"""MongoDB Record Store using Motor for async operations"""
from typing import Any, Dict, List, Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from .store import RecordStore, Document, Filters, INDEXES
from ..config.settings import Settings, get_settings
from ..domain.errors import AlreadyExistsError
from ..utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA_META = "schema_meta"


def build_query(filters: Optional[Filters]) -> Dict[str, Any]:
    """Translate equality filters into a MongoDB query"""
    query: Dict[str, Any] = {}
    for field, expected in (filters or {}).items():
        if isinstance(expected, (list, tuple, set, frozenset)):
            query[field] = {"$in": list(expected)}
        else:
            query[field] = expected
    return query


class MongoRecordStore(RecordStore):
    """
    Record store over MongoDB

    Call `connect()` before use. A failed connection marks the store
    unavailable instead of raising, so callers keep working in degraded mode.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[AsyncIOMotorClient] = None
    ) -> None:
        super().__init__()
        self.settings = settings or get_settings()
        self._client = client
        self._db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self) -> "MongoRecordStore":
        """Open the client, ping the server and make sure indexes exist"""
        try:
            if self._client is None:
                logger.info(f"Creating async MongoDB client for: {self.settings.mongo_uri}")
                self._client = AsyncIOMotorClient(
                    self.settings.mongo_uri,
                    serverSelectionTimeoutMS=self.settings.mongo_timeout_ms,
                    connectTimeoutMS=self.settings.mongo_timeout_ms,
                    socketTimeoutMS=30000,
                    tz_aware=True,
                )
            await self._client.admin.command("ping")
            self._db = self._client[self.settings.mongo_db]
            await self.create_indexes()
            logger.info(f"Using async database: {self.settings.mongo_db}")
        except PyMongoError as e:
            self.mark_unavailable(str(e))
        return self

    async def create_indexes(self) -> None:
        """Create all declared secondary indexes"""
        for collection, indexes in INDEXES.items():
            coll = self._collection(collection)
            for field, unique in indexes:
                await coll.create_index([(field, ASCENDING)], unique=unique)
        logger.info("MongoDB indexes created successfully")

    async def close(self) -> None:
        """Close async MongoDB connection"""
        if self._client is not None:
            self._client.close()
            self._client = None
            self._db = None
            logger.info("Async MongoDB connection closed")

    async def health_check(self) -> Dict[str, Any]:
        """Check async MongoDB health"""
        try:
            if self._client is None:
                raise ConnectionError("client not connected")
            await self._client.admin.command("ping")
            return {"status": "healthy", "database": self.settings.mongo_db}
        except (PyMongoError, ConnectionError) as e:
            logger.error(f"Async MongoDB health check failed: {e}")
            return {"status": "unhealthy", "database": self.settings.mongo_db, "error": str(e)}

    def _collection(self, name: str) -> AsyncIOMotorCollection:
        if self._db is None:
            raise RuntimeError("MongoRecordStore.connect() has not been awaited")
        return self._db[name]

    @staticmethod
    def _strip(doc: Optional[Document]) -> Optional[Document]:
        if doc is not None:
            doc.pop("_id", None)
        return doc

    # =========================================================================
    # Primitives
    # =========================================================================

    async def _create(self, collection: str, doc: Document) -> str:
        record_id = doc[self.primary_key(collection)]
        try:
            await self._collection(collection).insert_one({**doc, "_id": record_id})
        except DuplicateKeyError as e:
            raise AlreadyExistsError(
                f"{collection} record {record_id} already exists",
                details={"collection": collection, "error": str(e)}
            )
        return record_id

    async def _get_by_id(self, collection: str, record_id: str) -> Optional[Document]:
        return self._strip(await self._collection(collection).find_one({"_id": record_id}))

    async def _get_all(self, collection: str, filters: Optional[Filters]) -> List[Document]:
        cursor = self._collection(collection).find(build_query(filters))
        return [self._strip(doc) async for doc in cursor]

    async def _update(
        self,
        collection: str,
        record_id: str,
        partial: Document,
        expected: Optional[Filters]
    ) -> Optional[Document]:
        query = {"_id": record_id, **build_query(expected)}
        try:
            result = await self._collection(collection).find_one_and_update(
                query,
                {"$set": partial},
                return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError as e:
            raise AlreadyExistsError(
                f"Update of {collection} record {record_id} violates a unique index",
                details={"collection": collection, "error": str(e)}
            )
        return self._strip(result)

    async def _unset_fields(self, collection: str, record_id: str, fields: List[str]) -> None:
        if fields:
            await self._collection(collection).update_one(
                {"_id": record_id},
                {"$unset": {field: "" for field in fields}}
            )

    async def _delete(self, collection: str, record_id: str) -> None:
        await self._collection(collection).delete_one({"_id": record_id})

    async def _get_schema_version(self) -> int:
        doc = await self._collection(SCHEMA_META).find_one({"_id": "schema"})
        return int(doc["version"]) if doc else 0

    async def _set_schema_version(self, version: int) -> None:
        await self._collection(SCHEMA_META).update_one(
            {"_id": "schema"},
            {"$set": {"version": version}},
            upsert=True
        )
