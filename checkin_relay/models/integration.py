"""Integration record models."""

from datetime import datetime, timezone
from typing import Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IntegrationKind(str, Enum):
    """Form providers a coach can link."""
    TYPEFORM = "typeform"
    GOOGLE_FORMS = "google_forms"
    JOTFORM = "jotform"
    CUSTOM_WEBHOOK = "custom_webhook"


class IntegrationStatus(str, Enum):
    """Integration connection status."""
    PENDING = "pending"
    CONNECTED = "connected"
    ERROR = "error"


class IntegrationRecord(BaseModel):
    """One account-linking attempt.

    ``config["token"]`` holds the connect token the broker echoes back in
    its connection events.
    """

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="_id")
    owner_id: str
    kind: IntegrationKind
    name: str
    status: IntegrationStatus = IntegrationStatus.PENDING
    config: Dict[str, Any] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_document(self) -> Dict[str, Any]:
        """Serialize for the record store."""
        return self.model_dump(by_alias=True)
