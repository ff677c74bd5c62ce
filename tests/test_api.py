"""HTTP tests for the relay endpoints."""

import httpx

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, Mock

from checkin_relay.main import app
from checkin_relay.api.dependencies import (
    get_current_user,
    get_forwarder,
    get_reconciler,
    get_record_store,
)
from checkin_relay.core.config import Settings, get_settings
from checkin_relay.services.forwarder import DeliveryForwarder
from checkin_relay.services.reconciler import ConnectionReconciler


@pytest.fixture
def client(settings, store):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_record_store] = lambda: store
    app.dependency_overrides[get_current_user] = lambda: {"id": "coach-1"}
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def use_downstream(settings, scripted, sleep_recorder):
    """Route forwarding through a scripted downstream."""

    def install(*script, forward_settings=None):
        downstream = scripted(*script)
        forwarder = DeliveryForwarder(
            forward_settings or settings, transport=downstream.transport, sleep=sleep_recorder
        )
        app.dependency_overrides[get_forwarder] = lambda: forwarder
        return downstream

    return install


class TestConnectionWebhook:
    """Test the broker connection event endpoint."""

    def test_health_payload(self, client):
        response = client.get("/api/v1/connect/webhook")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert "timestamp" in response.json()

    def test_preflight(self, client):
        response = client.options("/api/v1/connect/webhook")

        assert response.status_code == 200
        assert response.text == "ok"
        assert response.headers["access-control-allow-origin"] == "*"

    def test_success_event_connects_integration(self, client, store):
        row = store.add("abc")

        response = client.post("/api/v1/connect/webhook", json={
            "event": "CONNECTION_SUCCESS",
            "connect_token": "ctok_abc",
            "environment": "production",
            "connect_session_id": "sess-1",
            "account": {"id": "apn_1", "name": "Forms", "healthy": True},
        })

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["matched"] == 1
        assert body["strategy"] == "without_prefix"
        assert store.rows[row["_id"]]["status"] == "connected"

    def test_no_match_returns_ok(self, client):
        response = client.post("/api/v1/connect/webhook", json={
            "event": "CONNECTION_ERROR",
            "connect_token": "ctok_unknown",
            "error": "denied",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["matched"] == 0
        assert body["searched_tokens"] == ["ctok_unknown", "unknown", "ctok_unknown"]

    def test_unknown_event_rejected(self, client, store):
        row = store.add("ctok_abc")

        response = client.post("/api/v1/connect/webhook", json={
            "event": "ACCOUNT_DELETED",
            "connect_token": "ctok_abc",
        })

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Unknown event type: ACCOUNT_DELETED"}
        assert store.rows[row["_id"]]["status"] == "pending"

    def test_missing_account_rejected(self, client):
        response = client.post("/api/v1/connect/webhook", json={
            "event": "CONNECTION_SUCCESS",
            "connect_token": "ctok_abc",
        })

        assert response.status_code == 400
        assert response.json()["error"] == "Missing account information"

    def test_missing_connect_token_rejected(self, client):
        response = client.post("/api/v1/connect/webhook", json={"event": "CONNECTION_SUCCESS"})

        assert response.status_code == 400
        assert response.json()["error"] == "Missing connect_token"

    def test_malformed_json_rejected(self, client):
        response = client.post(
            "/api/v1/connect/webhook",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_unexpected_failure_is_500(self, client):
        reconciler = Mock(spec=ConnectionReconciler)
        reconciler.reconcile = AsyncMock(side_effect=RuntimeError("boom"))
        app.dependency_overrides[get_reconciler] = lambda: reconciler

        response = client.post("/api/v1/connect/webhook", json={
            "event": "CONNECTION_SUCCESS",
            "connect_token": "ctok_abc",
        })

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Internal server error", "details": "boom"}


class TestWebhookProxy:
    """Test the check-in forwarding endpoint."""

    def test_forwards_and_returns_downstream_response(self, client, use_downstream):
        downstream = use_downstream(500, 500, 200)

        response = client.post(
            "/webhook-proxy/webhook-checkin/coach-1/hook-secret",
            content=b'{"name": "Jane"}',
            headers={"x-webhook-signature": "sig-1"},
        )

        assert response.status_code == 200
        assert response.json() == {"status": 200}
        assert len(downstream.requests) == 3
        forwarded = downstream.requests[-1]
        assert forwarded.url.path == "/functions/v1/webhook-checkin/coach-1/hook-secret"
        assert forwarded.content == b'{"name": "Jane"}'
        assert forwarded.headers["x-webhook-signature"] == "sig-1"

    def test_terminal_status_passed_through(self, client, use_downstream):
        downstream = use_downstream(404)

        response = client.post("/webhook-proxy/webhook-checkin/coach-1/hook-secret", json={})

        assert response.status_code == 404
        assert len(downstream.requests) == 1

    def test_query_parameter_fallback(self, client, use_downstream):
        downstream = use_downstream(200)

        response = client.post(
            "/webhook-proxy",
            params={"userId": "coach-2", "webhookToken": "tok-2"},
            json={"name": "Sam"},
        )

        assert response.status_code == 200
        assert downstream.requests[0].url.path.endswith("/coach-2/tok-2")

    def test_malformed_path_rejected_before_forwarding(self, client, use_downstream):
        downstream = use_downstream(200)

        response = client.post("/webhook-proxy/some/other/path", json={})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Missing user ID or webhook token in URL"
        assert body["debug"]["path"] == "/webhook-proxy/some/other/path"
        assert body["debug"]["pathParts"] == ["webhook-proxy", "some", "other", "path"]
        assert body["debug"]["webhookIndex"] == -1
        assert body["debug"]["extractedUserId"] is None
        assert body["debug"]["extractedWebhookToken"] is None
        assert downstream.requests == []

    def test_incomplete_path_rejected(self, client, use_downstream):
        downstream = use_downstream(200)

        response = client.post("/webhook-proxy/webhook-checkin/coach-1", json={})

        assert response.status_code == 400
        assert response.json()["debug"]["webhookIndex"] == 1
        assert downstream.requests == []

    def test_missing_configuration(self, client, use_downstream):
        downstream = use_downstream(200, forward_settings=Settings(_env_file=None))

        response = client.post("/webhook-proxy/webhook-checkin/coach-1/hook-secret", json={})

        assert response.status_code == 500
        assert response.json() == {"error": "Downstream configuration missing"}
        assert downstream.requests == []

    def test_unreachable_downstream(self, client, use_downstream):
        use_downstream(httpx.ConnectError("refused"), httpx.ConnectError("refused"), httpx.ConnectError("refused"))

        response = client.post("/webhook-proxy/webhook-checkin/coach-1/hook-secret", json={})

        assert response.status_code == 502
        assert response.json()["attempts"] == 3

    def test_unusable_downstream_url_is_configuration_error(self, client, use_downstream):
        downstream = use_downstream(httpx.UnsupportedProtocol("missing protocol"), 200)

        response = client.post("/webhook-proxy/webhook-checkin/coach-1/hook-secret", json={})

        assert response.status_code == 500
        assert response.json()["error"].startswith("Downstream configuration invalid")
        assert len(downstream.requests) == 1

    def test_unexpected_failure_is_500(self, client):
        forwarder = Mock(spec=DeliveryForwarder)
        forwarder.forward = AsyncMock(side_effect=RuntimeError("boom"))
        app.dependency_overrides[get_forwarder] = lambda: forwarder

        response = client.post("/webhook-proxy/webhook-checkin/coach-1/hook-secret", json={})

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error", "details": "boom"}

    def test_preflight(self, client, use_downstream):
        use_downstream()

        response = client.options("/webhook-proxy/webhook-checkin/coach-1/hook-secret")

        assert response.status_code == 200
        assert response.headers["access-control-allow-methods"] == "POST, OPTIONS"

    @pytest.mark.parametrize("method", ["GET", "PUT", "DELETE"])
    def test_other_methods_not_allowed(self, client, use_downstream, method):
        downstream = use_downstream(200)

        response = client.request(method, "/webhook-proxy/webhook-checkin/coach-1/hook-secret")

        assert response.status_code == 405
        assert downstream.requests == []


class TestIntegrationsApi:
    """Test pending integration management."""

    def test_create_pending_integration(self, client, store):
        response = client.post("/api/v1/integrations/", json={
            "kind": "typeform",
            "name": "Weekly check-in",
            "connect_token": "ctok_new",
            "webhook_url": "https://hooks.test/checkin",
        })

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert body["owner_id"] == "coach-1"
        assert body["config"]["token"] == "ctok_new"
        assert body["config"]["app_name"] == "typeform"
        assert body["id"] in store.rows

    def test_created_integration_is_reconciled(self, client, store):
        created = client.post("/api/v1/integrations/", json={
            "kind": "google_forms",
            "name": "Intake",
            "connect_token": "ctok_xyz",
        }).json()

        client.post("/api/v1/connect/webhook", json={
            "event": "ACCOUNT_CONNECTED",
            "connect_token": "xyz",
            "account": {"id": "apn_9", "external_id": "forms-9"},
        })
        response = client.get(f"/api/v1/integrations/{created['id']}")

        assert response.status_code == 200
        assert response.json()["status"] == "connected"
        assert response.json()["config"]["account_name"] == "forms-9"

    def test_other_owner_cannot_read(self, client, store):
        row = store.add("abc", owner_id="coach-2")

        response = client.get(f"/api/v1/integrations/{row['_id']}")

        assert response.status_code == 404

    def test_list_integrations(self, client, store):
        store.add("a")
        store.add("b")
        store.add("c", owner_id="coach-2")

        response = client.get("/api/v1/integrations/")

        assert response.status_code == 200
        assert len(response.json()["items"]) == 2


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_detailed_health_reports_disconnected_database(client):
    response = client.get("/health/detailed")

    body = response.json()
    assert body["checks"]["database"]["status"] == "disconnected"
    assert body["checks"]["forwarding"]["status"] == "configured"
    assert body["status"] == "degraded"
