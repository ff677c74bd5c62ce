"""Integration service for managing integration records."""

from typing import List, Optional
import logging

from checkin_relay.core.config import Settings, INTEGRATION_APPS
from checkin_relay.models import IntegrationKind, IntegrationRecord, IntegrationStatus
from checkin_relay.services.record_store import IntegrationStore

logger = logging.getLogger(__name__)


class IntegrationService:
    """Service for managing integration records."""

    def __init__(self, store: IntegrationStore, settings: Settings):
        self.store = store
        self.settings = settings

    async def create_pending_integration(
        self,
        owner_id: str,
        kind: IntegrationKind,
        name: str,
        connect_token: str,
        webhook_url: Optional[str] = None,
    ) -> IntegrationRecord:
        """Store a pending record keyed by the broker's connect token."""
        app = INTEGRATION_APPS.get(IntegrationKind(kind).value, {})
        record = IntegrationRecord(
            owner_id=owner_id,
            kind=kind,
            name=name,
            status=IntegrationStatus.PENDING,
            config={
                "token": connect_token,
                "webhook_url": webhook_url,
                "app_name": app.get("app_name"),
            },
        )

        await self.store.create(record.to_document())
        logger.info(f"Created pending integration {record.id} of type {record.kind}")

        return record

    async def get_integration(self, integration_id: str) -> Optional[IntegrationRecord]:
        """Get integration by ID."""
        doc = await self.store.get(integration_id)
        if doc:
            return IntegrationRecord(**doc)
        return None

    async def list_integrations(self, owner_id: str, skip: int = 0, limit: int = 50) -> List[IntegrationRecord]:
        """List an owner's integrations, newest first."""
        docs = await self.store.list_for_owner(owner_id, skip=skip, limit=limit)
        return [IntegrationRecord(**doc) for doc in docs]
