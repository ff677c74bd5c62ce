"""Integration API schemas."""

from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, ConfigDict, Field

from checkin_relay.models import IntegrationKind, IntegrationStatus


class IntegrationCreate(BaseModel):
    """Schema for registering a pending integration."""
    kind: IntegrationKind
    name: str = Field(min_length=1, max_length=255)
    connect_token: str = Field(min_length=1)
    webhook_url: Optional[str] = None


class IntegrationResponse(BaseModel):
    """Integration response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    kind: IntegrationKind
    name: str
    status: IntegrationStatus
    config: Dict[str, Any]
    created_at: datetime
    updated_at: datetime


class IntegrationListResponse(BaseModel):
    """List of integrations response."""
    items: List[IntegrationResponse]
    skip: int
    limit: int
