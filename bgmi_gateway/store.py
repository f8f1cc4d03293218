import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING
from pymongo import errors as pymongo_errors

from .catalog import ADMINS, JOIN_MATCHES
from .errors import Conflict, InternalError

logger = logging.getLogger(__name__)

INDEXES = [
    (ADMINS, [("email", ASCENDING)]),
    (JOIN_MATCHES, [("playerEmail", ASCENDING), ("tournamentName", ASCENDING)]),
]


class MongoStore:
    """Async access to dynamically named MongoDB collections.

    ``ready`` stays False until :meth:`connect` has reached the server; the
    gateway refuses every read and write until then.
    """

    def __init__(self, url: str, db_name: str, client: AsyncIOMotorClient = None):
        self.client = client or AsyncIOMotorClient(url, serverSelectionTimeoutMS=5000)
        self.db = self.client[db_name]
        self.ready = False

    # ========================================================================
    # Connection lifecycle
    # ========================================================================

    async def connect(self) -> None:
        await self.client.admin.command("ping")
        logger.info("✓ MongoDB connection verified")

        logger.info("Creating MongoDB indexes...")
        for collection, keys in INDEXES:
            try:
                await self.db[collection].create_index(keys, unique=True)
            except pymongo_errors.PyMongoError as e:
                logger.warning(f"⚠ Could not create unique index on {collection} {keys}: {e}")
        logger.info("✓ MongoDB indexes ready")

        self.ready = True

    async def connect_forever(self, retry_delay: float) -> None:
        """Keep calling :meth:`connect` until it succeeds."""
        attempt = 0
        while not self.ready:
            attempt += 1
            try:
                await self.connect()
            except pymongo_errors.PyMongoError as e:
                logger.error(f"✗ MongoDB connection attempt {attempt} failed: {e}")
                await asyncio.sleep(retry_delay)

    def close(self) -> None:
        self.ready = False
        self.client.close()

    # ========================================================================
    # Document operations
    # ========================================================================

    async def insert_many(self, collection: str, documents: Sequence[Dict[str, Any]]) -> List[str]:
        try:
            result = await self.db[collection].insert_many([dict(doc) for doc in documents])
        except pymongo_errors.PyMongoError as e:
            logger.error(f"insert_many into {collection} failed: {e}")
            raise InternalError("Failed to save data.") from e
        return [str(inserted_id) for inserted_id in result.inserted_ids]

    async def insert_one(self, collection: str, document: Dict[str, Any]) -> str:
        try:
            result = await self.db[collection].insert_one(dict(document))
        except pymongo_errors.DuplicateKeyError as e:
            raise Conflict("A matching record already exists.") from e
        except pymongo_errors.PyMongoError as e:
            logger.error(f"insert_one into {collection} failed: {e}")
            raise InternalError("Failed to save data.") from e
        return str(result.inserted_id)

    async def find_all(self, collection: str, exclude: Sequence[str] = ()) -> List[Dict[str, Any]]:
        projection = {field: 0 for field in exclude} or None
        try:
            return await self.db[collection].find({}, projection).to_list(None)
        except pymongo_errors.PyMongoError as e:
            logger.error(f"Error fetching {collection}: {e}")
            raise InternalError(f"Failed to fetch {collection}.") from e

    async def find_one(self, collection: str, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return await self.db[collection].find_one(query)
        except pymongo_errors.PyMongoError as e:
            logger.error(f"Error looking up {collection}: {e}")
            raise InternalError(f"Failed to fetch {collection}.") from e

    async def update_one(self, collection: str, query: Dict[str, Any], changes: Dict[str, Any]) -> bool:
        """Apply ``$set`` of ``changes``; returns False when nothing matched."""
        try:
            result = await self.db[collection].update_one(query, {"$set": changes})
        except pymongo_errors.PyMongoError as e:
            logger.error(f"update_one on {collection} failed: {e}")
            raise InternalError("Failed to update record.") from e
        return result.matched_count > 0
