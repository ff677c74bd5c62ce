"""Inbound check-in webhook forwarding endpoints."""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, Response
from typing import Any, Dict, Mapping, Optional, Tuple
import logging

from checkin_relay.api.dependencies import get_forwarder
from checkin_relay.services.forwarder import DeliveryError, DeliveryForwarder, ForwardingConfigurationError

logger = logging.getLogger(__name__)
router = APIRouter()

WEBHOOK_MARKER = "webhook-checkin"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def extract_webhook_target(
    path: str,
    query_params: Mapping[str, str],
) -> Tuple[Optional[str], Optional[str], Dict[str, Any]]:
    """Pull owner id and webhook token from ``.../webhook-checkin/{owner}/{token}``.

    Falls back to the ``userId`` and ``webhookToken`` query parameters when
    the path does not carry both. The third element describes the
    extraction for error responses.
    """
    path_parts = [part for part in path.split("/") if part]
    marker_index = path_parts.index(WEBHOOK_MARKER) if WEBHOOK_MARKER in path_parts else -1

    owner_id = webhook_token = None
    if marker_index != -1 and len(path_parts) > marker_index + 2:
        owner_id = path_parts[marker_index + 1]
        webhook_token = path_parts[marker_index + 2]

    if not owner_id or not webhook_token:
        owner_id = query_params.get("userId")
        webhook_token = query_params.get("webhookToken")

    debug = {
        "path": path,
        "pathParts": path_parts,
        "webhookIndex": marker_index,
        "extractedUserId": owner_id,
        "extractedWebhookToken": webhook_token,
        "queryParams": dict(query_params),
    }
    return owner_id, webhook_token, debug


def _json(payload: dict, status_code: int) -> JSONResponse:
    return JSONResponse(
        content=payload,
        status_code=status_code,
        headers={"Access-Control-Allow-Origin": "*"},
    )


@router.api_route("/webhook-proxy", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
@router.api_route("/webhook-proxy/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
async def proxy_checkin_webhook(
    request: Request,
    forwarder: DeliveryForwarder = Depends(get_forwarder),
):
    """Relay a check-in webhook to the downstream check-in endpoint."""
    if request.method == "OPTIONS":
        return Response(status_code=status.HTTP_200_OK, headers=CORS_HEADERS)

    if request.method != "POST":
        return JSONResponse(
            content={"error": "Method not allowed"},
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            headers=CORS_HEADERS,
        )

    try:
        owner_id, webhook_token, debug = extract_webhook_target(
            request.url.path, request.query_params
        )
        logger.info("Webhook proxy path parsed", extra={"path_parts": debug["pathParts"]})

        if not owner_id or not webhook_token:
            logger.warning(f"Missing owner id or webhook token in {request.url.path}")
            return _json(
                {"error": "Missing user ID or webhook token in URL", "debug": debug},
                status.HTTP_400_BAD_REQUEST,
            )

        body = await request.body()
        result = await forwarder.forward(owner_id, webhook_token, body, request.headers)

        return Response(
            content=result.body,
            status_code=result.status_code,
            media_type="application/json",
            headers={"Access-Control-Allow-Origin": "*"},
        )

    except ForwardingConfigurationError as e:
        logger.error(f"Downstream forwarding not usable: {e}")
        return _json({"error": str(e)}, status.HTTP_500_INTERNAL_SERVER_ERROR)
    except DeliveryError as e:
        return _json(
            {
                "error": "Downstream unreachable",
                "details": str(e),
                "attempts": len(e.attempts),
            },
            status.HTTP_502_BAD_GATEWAY,
        )
    except Exception as e:
        logger.exception(f"Webhook proxy error: {e}")
        return _json(
            {"error": "Internal server error", "details": str(e)},
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
