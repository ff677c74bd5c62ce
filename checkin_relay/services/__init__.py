"""Services module for the check-in relay."""

from .record_store import IntegrationStore, MongoIntegrationStore, RecordStoreError
from .integration_service import IntegrationService
from .reconciler import ConnectionReconciler, InvalidConnectionEvent, ReconcileResult, classify_event, token_candidates
from .forwarder import (
    DeliveryError,
    DeliveryForwarder,
    ForwardResult,
    ForwardingConfigurationError,
    RetryPolicy,
    is_retryable_status,
)

__all__ = [
    "IntegrationStore",
    "MongoIntegrationStore",
    "RecordStoreError",
    "IntegrationService",
    "ConnectionReconciler",
    "InvalidConnectionEvent",
    "ReconcileResult",
    "classify_event",
    "token_candidates",
    "DeliveryError",
    "DeliveryForwarder",
    "ForwardResult",
    "ForwardingConfigurationError",
    "RetryPolicy",
    "is_retryable_status",
]
