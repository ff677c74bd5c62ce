"""API dependencies."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Dict, Any
import httpx
import logging

from checkin_relay.core.config import Settings, get_settings
from checkin_relay.core.database import database
from checkin_relay.services.forwarder import DeliveryForwarder
from checkin_relay.services.integration_service import IntegrationService
from checkin_relay.services.reconciler import ConnectionReconciler
from checkin_relay.services.record_store import IntegrationStore, MongoIntegrationStore

logger = logging.getLogger(__name__)

# Security
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """Get current user from auth service."""
    token = credentials.credentials

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{settings.auth_service_url}/api/v1/users/me",
                headers={"Authorization": f"Bearer {token}"}
            )
    except httpx.RequestError as e:
        logger.error(f"Auth service request failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service unavailable"
        )

    if response.status_code != 200:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return response.json()


# Service dependencies
def get_record_store() -> IntegrationStore:
    """Get a record store for this request."""
    return MongoIntegrationStore(database)


def get_integration_service(
    store: IntegrationStore = Depends(get_record_store),
    settings: Settings = Depends(get_settings),
) -> IntegrationService:
    """Get integration service instance."""
    return IntegrationService(store, settings)


def get_reconciler(
    store: IntegrationStore = Depends(get_record_store),
    settings: Settings = Depends(get_settings),
) -> ConnectionReconciler:
    """Get connection reconciler instance."""
    return ConnectionReconciler(store, settings)


def get_forwarder(settings: Settings = Depends(get_settings)) -> DeliveryForwarder:
    """Get delivery forwarder instance."""
    return DeliveryForwarder(settings)
