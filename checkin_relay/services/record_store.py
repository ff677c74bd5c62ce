"""Integration record store."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence
import logging

from pymongo.errors import PyMongoError

from checkin_relay.core.database import Database, COLLECTIONS

logger = logging.getLogger(__name__)


class RecordStoreError(Exception):
    """Record store operation failed."""
    pass


class IntegrationStore(ABC):
    """Query interface over integration records.

    Rows are plain documents keyed by ``_id``; ``fields`` selects the
    projection returned by lookups.
    """

    @abstractmethod
    async def find_by_token(self, token: str, fields: Sequence[str]) -> List[Dict[str, Any]]:
        """Return rows whose ``config.token`` equals ``token``."""
        pass

    @abstractmethod
    async def transition(
        self,
        integration_id: str,
        status: str,
        config: Dict[str, Any],
        from_statuses: Iterable[str],
    ) -> bool:
        """Set status and config on a row still in one of ``from_statuses``.

        Returns False when the row is gone or in another status.
        """
        pass

    @abstractmethod
    async def create(self, document: Dict[str, Any]) -> str:
        pass

    @abstractmethod
    async def get(self, integration_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def list_for_owner(self, owner_id: str, skip: int = 0, limit: int = 50) -> List[Dict[str, Any]]:
        pass


class MongoIntegrationStore(IntegrationStore):
    """IntegrationStore on a MongoDB collection."""

    def __init__(self, db: Database):
        self.db = db

    @property
    def collection(self):
        return self.db.get_collection(COLLECTIONS["integrations"])

    async def find_by_token(self, token: str, fields: Sequence[str]) -> List[Dict[str, Any]]:
        projection = {field: 1 for field in fields}
        try:
            cursor = self.collection.find({"config.token": token}, projection)
            return [doc async for doc in cursor]
        except PyMongoError as e:
            raise RecordStoreError(f"Token lookup failed: {e}") from e

    async def transition(
        self,
        integration_id: str,
        status: str,
        config: Dict[str, Any],
        from_statuses: Iterable[str],
    ) -> bool:
        try:
            result = await self.collection.update_one(
                {"_id": integration_id, "status": {"$in": list(from_statuses)}},
                {
                    "$set": {
                        "status": status,
                        "config": config,
                        "updated_at": datetime.now(timezone.utc),
                    }
                },
            )
        except PyMongoError as e:
            raise RecordStoreError(f"Update of {integration_id} failed: {e}") from e
        return result.matched_count > 0

    async def create(self, document: Dict[str, Any]) -> str:
        try:
            result = await self.collection.insert_one(document)
        except PyMongoError as e:
            raise RecordStoreError(f"Insert failed: {e}") from e
        return str(result.inserted_id)

    async def get(self, integration_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.collection.find_one({"_id": integration_id})
        except PyMongoError as e:
            raise RecordStoreError(f"Lookup of {integration_id} failed: {e}") from e

    async def list_for_owner(self, owner_id: str, skip: int = 0, limit: int = 50) -> List[Dict[str, Any]]:
        try:
            cursor = (
                self.collection.find({"owner_id": owner_id})
                .sort("created_at", -1)
                .skip(skip)
                .limit(limit)
            )
            return [doc async for doc in cursor]
        except PyMongoError as e:
            raise RecordStoreError(f"Listing for {owner_id} failed: {e}") from e
