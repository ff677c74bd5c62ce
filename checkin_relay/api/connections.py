"""Connection event endpoint for the OAuth broker."""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from datetime import datetime, timezone
from pydantic import ValidationError
import logging
import json

from checkin_relay.api.dependencies import get_reconciler
from checkin_relay.core.config import Settings, get_settings
from checkin_relay.models import ConnectionEvent
from checkin_relay.services.reconciler import ConnectionReconciler, InvalidConnectionEvent

logger = logging.getLogger(__name__)
router = APIRouter()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
}


def _json(payload: dict, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(content=payload, status_code=status_code, headers=CORS_HEADERS)


@router.options("/webhook")
async def connection_webhook_preflight():
    """CORS preflight."""
    return PlainTextResponse("ok", headers=CORS_HEADERS)


@router.get("/webhook")
async def connection_webhook_health(settings: Settings = Depends(get_settings)):
    """Static health payload for broker probes."""
    return _json({
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": f"{settings.service_name}-connect-webhook",
    })


@router.post("/webhook")
async def handle_connection_event(
    request: Request,
    reconciler: ConnectionReconciler = Depends(get_reconciler),
):
    """Apply a connection lifecycle event to its pending integration."""
    logger.info(
        "Connect webhook request received",
        extra={
            "method": request.method,
            "path": request.url.path,
            "query": request.url.query,
            "content_type": request.headers.get("content-type"),
            "user_agent": request.headers.get("user-agent"),
        },
    )

    try:
        body = await request.body()
        try:
            payload = json.loads(body)
            event = ConnectionEvent.model_validate(payload)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            logger.error(f"Malformed connection event payload: {e}")
            return _json(
                {"success": False, "error": "Malformed payload", "details": str(e)},
                status.HTTP_400_BAD_REQUEST,
            )

        result = await reconciler.reconcile(event)
        return _json(result.model_dump(mode="json", exclude_none=True))

    except InvalidConnectionEvent as e:
        return _json({"success": False, "error": str(e)}, status.HTTP_400_BAD_REQUEST)
    except Exception as e:
        logger.exception(f"Error processing connection event: {e}")
        return _json(
            {"success": False, "error": "Internal server error", "details": str(e)},
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
