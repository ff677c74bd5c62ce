"""MongoDB client lifecycle for the integration record store."""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, IndexModel
from typing import Optional
import logging

from checkin_relay.core.config import Settings

logger = logging.getLogger(__name__)


# Collection names
COLLECTIONS = {
    "integrations": "user_integrations",
}

INTEGRATION_INDEXES = [
    # connect token lookups by the reconciler
    IndexModel([("config.token", ASCENDING)], name="config_token"),
    IndexModel([("owner_id", ASCENDING), ("created_at", DESCENDING)], name="owner_created"),
]


class Database:
    """Owns the shared motor client; stores are built on top per request."""

    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self, settings: Settings):
        """Open the client, verify it answers, and ensure indexes."""
        self.client = AsyncIOMotorClient(settings.mongodb_url)
        self.db = self.client[settings.mongodb_db_name]

        try:
            await self.client.admin.command("ping")
            await self.get_collection(COLLECTIONS["integrations"]).create_indexes(INTEGRATION_INDEXES)
        except Exception as e:
            logger.error(f"MongoDB unavailable at {settings.mongodb_url}: {e}")
            await self.disconnect()
            raise

        logger.info(f"Connected to MongoDB database {settings.mongodb_db_name}")

    async def disconnect(self):
        if self.client is not None:
            self.client.close()
            self.client = None
            self.db = None
            logger.info("MongoDB client closed")

    async def ping(self) -> bool:
        """False when never connected; raises when the server does not answer."""
        if self.client is None:
            return False
        await self.client.admin.command("ping")
        return True

    def get_collection(self, name: str) -> AsyncIOMotorCollection:
        if self.db is None:
            raise RuntimeError("Database not connected")
        return self.db[name]


database = Database()
