"""Integration management API endpoints."""

from fastapi import APIRouter, HTTPException, status, Depends, Query
from typing import Any, Dict
import logging

from checkin_relay.schemas.integration import (
    IntegrationCreate,
    IntegrationResponse,
    IntegrationListResponse,
)
from checkin_relay.services.integration_service import IntegrationService
from checkin_relay.api.dependencies import get_current_user, get_integration_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=IntegrationListResponse)
async def list_integrations(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
):
    """List the caller's integrations."""
    integrations = await service.list_integrations(current_user["id"], skip, limit)

    return IntegrationListResponse(
        items=[IntegrationResponse.model_validate(record) for record in integrations],
        skip=skip,
        limit=limit,
    )


@router.post("/", response_model=IntegrationResponse, status_code=status.HTTP_201_CREATED)
async def create_integration(
    integration: IntegrationCreate,
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
):
    """Register a pending integration awaiting its connection event."""
    record = await service.create_pending_integration(
        owner_id=current_user["id"],
        kind=integration.kind,
        name=integration.name,
        connect_token=integration.connect_token,
        webhook_url=integration.webhook_url,
    )
    return IntegrationResponse.model_validate(record)


@router.get("/{integration_id}", response_model=IntegrationResponse)
async def get_integration(
    integration_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
):
    """Get integration status, e.g. while waiting on the OAuth callback."""
    record = await service.get_integration(integration_id)

    if not record or record.owner_id != current_user["id"]:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Integration not found"
        )

    return IntegrationResponse.model_validate(record)
