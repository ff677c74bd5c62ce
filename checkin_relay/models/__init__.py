"""Data models for the check-in relay service."""

from .integration import (
    IntegrationKind,
    IntegrationRecord,
    IntegrationStatus,
)
from .events import AttemptOutcome, ConnectedAccount, ConnectionEvent, DeliveryAttempt, EventKind

__all__ = [
    "IntegrationKind",
    "IntegrationRecord",
    "IntegrationStatus",
    "AttemptOutcome",
    "ConnectedAccount",
    "ConnectionEvent",
    "DeliveryAttempt",
    "EventKind",
]
