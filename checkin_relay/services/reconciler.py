"""Reconciles OAuth broker connection events with pending integrations."""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from pydantic import BaseModel, Field
import logging

from checkin_relay.core.config import Settings
from checkin_relay.models import ConnectionEvent, EventKind, IntegrationStatus
from checkin_relay.services.record_store import IntegrationStore

logger = logging.getLogger(__name__)


SUCCESS_EVENT_NAMES = frozenset({"CONNECTION_SUCCESS", "ACCOUNT_CONNECTED"})
ERROR_EVENT_NAMES = frozenset({"CONNECTION_ERROR", "ACCOUNT_CONNECTION_FAILED"})

DEFAULT_ERROR_MESSAGE = "Unknown connection error"

SUCCESS_FIELDS = ("_id", "owner_id", "kind", "status", "config", "created_at", "updated_at")
ERROR_FIELDS = ("_id", "status", "config")


class InvalidConnectionEvent(Exception):
    """Event payload cannot be processed."""
    pass


def classify_event(event_type: Any) -> EventKind:
    """Normalize a broker event name.

    Substring matching accepts renamed events across broker versions, at
    the cost of catching unrelated names that contain SUCCESS or ERROR.
    """
    name = event_type.upper() if isinstance(event_type, str) else ""

    if name in SUCCESS_EVENT_NAMES or "SUCCESS" in name:
        return EventKind.SUCCESS
    if name in ERROR_EVENT_NAMES or "ERROR" in name:
        return EventKind.ERROR
    return EventKind.UNKNOWN


def _strip_prefix(prefix: str) -> Callable[[str], str]:
    return lambda token: token[len(prefix):] if token.startswith(prefix) else token


def _add_prefix(prefix: str) -> Callable[[str], str]:
    return lambda token: token if token.startswith(prefix) else f"{prefix}{token}"


def token_candidates(token: str, prefix: str) -> List[Tuple[str, str]]:
    """Ordered (strategy, candidate) pairs for a connect token."""
    strategies = [
        ("exact_match", lambda t: t),
        ("without_prefix", _strip_prefix(prefix)),
        ("with_prefix", _add_prefix(prefix)),
    ]
    return [(name, transform(token)) for name, transform in strategies]


class TokenResolution(BaseModel):
    """Outcome of resolving a connect token to stored rows."""
    strategy: Optional[str] = None
    searched_tokens: List[str]
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    lookup_errors: List[str] = Field(default_factory=list)

    @property
    def matched(self) -> int:
        return len(self.rows)


class RowOutcome(BaseModel):
    """Result of the transition on one matched row."""
    integration_id: str
    outcome: str  # updated, skipped, failed
    previous_status: Optional[str] = None
    error: Optional[str] = None


class ReconcileResult(BaseModel):
    """Response payload returned to the broker."""
    success: bool
    event: Any = None
    kind: EventKind
    matched: int
    updated: int = 0
    strategy: Optional[str] = None
    searched_tokens: List[str] = Field(default_factory=list)
    outcomes: List[RowOutcome] = Field(default_factory=list)
    message: Optional[str] = None
    processed_at: str


class ConnectionReconciler:
    """Applies connect/error transitions for broker connection events."""

    def __init__(self, store: IntegrationStore, settings: Settings):
        self.store = store
        self.token_prefix = settings.connect_token_prefix

    async def reconcile(self, event: ConnectionEvent) -> ReconcileResult:
        """Process one connection event."""
        if not event.connect_token:
            raise InvalidConnectionEvent("Missing connect_token")

        kind = classify_event(event.event_type)
        log_context = {
            "event": event.event_type,
            "event_kind": kind.value,
            "environment": event.environment,
            "connect_session_id": event.session_id,
        }

        if kind == EventKind.SUCCESS:
            logger.info("Processing connection success event", extra=log_context)
            if event.account is None or not event.account.id:
                raise InvalidConnectionEvent("Missing account information")
            return await self._apply(event, kind, IntegrationStatus.CONNECTED, SUCCESS_FIELDS, self._success_config)

        if kind == EventKind.ERROR:
            logger.info("Processing connection error event", extra=log_context)
            return await self._apply(event, kind, IntegrationStatus.ERROR, ERROR_FIELDS, self._error_config)

        logger.warning(f"Unknown event type received: {event.event_type}", extra=log_context)
        raise InvalidConnectionEvent(f"Unknown event type: {event.event_type}")

    async def resolve(self, token: str, fields: Sequence[str]) -> TokenResolution:
        """Find rows for a token, trying each encoding in order.

        Store errors count as no match for that strategy.
        """
        candidates = token_candidates(token, self.token_prefix)
        resolution = TokenResolution(searched_tokens=[candidate for _, candidate in candidates])
        logger.info(
            "Looking up integration by token",
            extra={"connect_token": token, "searched_tokens": resolution.searched_tokens},
        )

        tried = set()
        for strategy, candidate in candidates:
            # a token equal to the bare prefix strips to ""
            if not candidate or candidate in tried:
                continue
            tried.add(candidate)

            try:
                rows = await self.store.find_by_token(candidate, fields)
            except Exception as e:
                logger.error(
                    f"Token lookup failed for strategy {strategy}: {e}",
                    extra={"strategy": strategy, "candidate": candidate},
                )
                resolution.lookup_errors.append(f"{strategy}: {e}")
                continue

            if rows:
                resolution.strategy = strategy
                resolution.rows = rows
                logger.info(
                    f"Found {len(rows)} integration(s) via {strategy}",
                    extra={"strategy": strategy, "matched": len(rows)},
                )
                break

        return resolution

    async def _apply(
        self,
        event: ConnectionEvent,
        kind: EventKind,
        target: IntegrationStatus,
        fields: Sequence[str],
        build_config: Callable[[Dict[str, Any], ConnectionEvent, str], Dict[str, Any]],
    ) -> ReconcileResult:
        resolution = await self.resolve(event.connect_token, fields)
        now = _now_iso()

        if not resolution.rows:
            logger.warning(
                f"No integration matched token; cannot mark {target.value}",
                extra={
                    "connect_token": event.connect_token,
                    "searched_tokens": resolution.searched_tokens,
                    "lookup_errors": resolution.lookup_errors,
                },
            )
            # 200 with success false, so the broker does not retry
            return ReconcileResult(
                success=False,
                event=event.event_type,
                kind=kind,
                matched=0,
                searched_tokens=resolution.searched_tokens,
                message=f"No matching integration found to mark {target.value}",
                processed_at=now,
            )

        outcomes = await self._fan_out(resolution.rows, target, lambda row: build_config(row, event, now))
        updated = sum(1 for outcome in outcomes if outcome.outcome == "updated")
        logger.info(
            f"Integration {target.value} updates complete",
            extra={
                "matched": resolution.matched,
                "updated": updated,
                "outcomes": [outcome.model_dump() for outcome in outcomes],
            },
        )

        return ReconcileResult(
            success=True,
            event=event.event_type,
            kind=kind,
            matched=resolution.matched,
            updated=updated,
            strategy=resolution.strategy,
            searched_tokens=resolution.searched_tokens,
            outcomes=outcomes,
            processed_at=now,
        )

    async def _fan_out(
        self,
        rows: List[Dict[str, Any]],
        target: IntegrationStatus,
        build_config: Callable[[Dict[str, Any]], Dict[str, Any]],
    ) -> List[RowOutcome]:
        """Apply the transition to every row independently."""
        allowed_from = [IntegrationStatus.PENDING.value, target.value]
        outcomes = []

        for row in rows:
            integration_id = str(row["_id"])
            previous = row.get("status")
            try:
                written = await self.store.transition(
                    integration_id, target.value, build_config(row), allowed_from
                )
            except Exception as e:
                logger.error(f"Update failed for integration {integration_id}: {e}")
                outcomes.append(RowOutcome(
                    integration_id=integration_id,
                    outcome="failed",
                    previous_status=previous,
                    error=str(e),
                ))
                continue

            if written:
                outcomes.append(RowOutcome(
                    integration_id=integration_id, outcome="updated", previous_status=previous
                ))
            else:
                logger.warning(
                    f"Integration {integration_id} left as {previous}; not moving to {target.value}"
                )
                outcomes.append(RowOutcome(
                    integration_id=integration_id, outcome="skipped", previous_status=previous
                ))

        return outcomes

    @staticmethod
    def _success_config(row: Dict[str, Any], event: ConnectionEvent, now: str) -> Dict[str, Any]:
        account = event.account
        return {
            **(row.get("config") or {}),
            "account_id": account.id,
            "account_name": account.display_name,
            "connect_token": event.connect_token,
            "connect_session_id": event.session_id,
            "environment": event.environment,
            "connected_at": now,
            "account_healthy": account.healthy,
        }

    @staticmethod
    def _error_config(row: Dict[str, Any], event: ConnectionEvent, now: str) -> Dict[str, Any]:
        return {
            **(row.get("config") or {}),
            "connect_token": event.connect_token,
            "connect_session_id": event.session_id,
            "environment": event.environment,
            "error_message": event.error or DEFAULT_ERROR_MESSAGE,
            "error_at": now,
        }


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
