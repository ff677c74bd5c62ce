"""Pytest configuration and shared fixtures."""

import copy
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx
import pytest

from checkin_relay.core.config import Settings
from checkin_relay.models import IntegrationKind, IntegrationRecord
from checkin_relay.services.record_store import IntegrationStore, RecordStoreError


class InMemoryIntegrationStore(IntegrationStore):
    """Dict-backed store with switchable failures."""

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.lookups: List[str] = []
        self.lookup_fields: List[Sequence[str]] = []
        self.fail_lookup_for = set()
        self.fail_update_for = set()

    def add(self, token: str, status: str = "pending", owner_id: str = "coach-1", **config) -> Dict[str, Any]:
        record = IntegrationRecord(
            owner_id=owner_id,
            kind=IntegrationKind.TYPEFORM,
            name="Weekly check-in",
            status=status,
            config={"token": token, "webhook_url": "https://hooks.test/checkin", **config},
        )
        doc = record.to_document()
        self.rows[doc["_id"]] = doc
        return doc

    async def find_by_token(self, token: str, fields: Sequence[str]) -> List[Dict[str, Any]]:
        self.lookups.append(token)
        self.lookup_fields.append(fields)
        if token in self.fail_lookup_for:
            raise RecordStoreError(f"lookup failed for {token}")
        return [
            {key: copy.deepcopy(value) for key, value in row.items() if key in fields}
            for row in self.rows.values()
            if row["config"].get("token") == token
        ]

    async def transition(
        self,
        integration_id: str,
        status: str,
        config: Dict[str, Any],
        from_statuses: Iterable[str],
    ) -> bool:
        if integration_id in self.fail_update_for:
            raise RecordStoreError(f"update failed for {integration_id}")
        row = self.rows.get(integration_id)
        if row is None or row["status"] not in list(from_statuses):
            return False
        row.update(status=status, config=config, updated_at=datetime.now(timezone.utc))
        return True

    async def create(self, document: Dict[str, Any]) -> str:
        self.rows[document["_id"]] = copy.deepcopy(document)
        return document["_id"]

    async def get(self, integration_id: str) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self.rows.get(integration_id))

    async def list_for_owner(self, owner_id: str, skip: int = 0, limit: int = 50) -> List[Dict[str, Any]]:
        rows = [copy.deepcopy(row) for row in self.rows.values() if row["owner_id"] == owner_id]
        return rows[skip:skip + limit]


class ScriptedDownstream:
    """MockTransport handler replaying a list of statuses or exceptions."""

    def __init__(self, *script):
        self.script = list(script)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        return httpx.Response(step, json={"status": step})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class SleepRecorder:
    """Stands in for asyncio.sleep."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def settings():
    """Settings with downstream forwarding configured."""
    return Settings(
        _env_file=None,
        downstream_base_url="https://downstream.test",
        downstream_api_key="service-key",
        log_format="text",
    )


@pytest.fixture
def store():
    return InMemoryIntegrationStore()


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def scripted():
    """Factory for scripted downstream handlers."""
    return ScriptedDownstream
