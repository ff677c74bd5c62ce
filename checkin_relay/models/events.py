"""Connection event and delivery attempt models."""

from typing import Optional, Any
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum


class EventKind(str, Enum):
    """Normalized connection event type."""
    SUCCESS = "success"
    ERROR = "error"
    UNKNOWN = "unknown"


class ConnectedAccount(BaseModel):
    """Account block sent with a successful connection."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: Optional[str] = None
    external_id: Optional[str] = None
    healthy: Optional[bool] = None

    @property
    def display_name(self) -> Optional[str]:
        return self.name or self.external_id


class ConnectionEvent(BaseModel):
    """Connection lifecycle notification from the OAuth broker."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    # Free-form; non-string values classify as unknown
    event_type: Any = Field(default=None, alias="event")
    connect_token: Optional[str] = None
    environment: Optional[str] = None
    session_id: Optional[str] = Field(default=None, alias="connect_session_id")
    account: Optional[ConnectedAccount] = None
    error: Optional[Any] = None


class AttemptOutcome(str, Enum):
    """Result of one delivery attempt."""
    SUCCESS = "success"
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


class DeliveryAttempt(BaseModel):
    """One try of relaying a payload downstream."""
    attempt_number: int
    delay: float = 0
    outcome: AttemptOutcome
    status_code: Optional[int] = None
    error: Optional[str] = None
