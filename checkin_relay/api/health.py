"""Health check endpoints."""

from fastapi import APIRouter, Depends
from datetime import datetime, timezone

from checkin_relay.core.config import Settings, get_settings
from checkin_relay.core.database import database

router = APIRouter()


@router.get("/health")
async def health_check(settings: Settings = Depends(get_settings)):
    """Basic health check."""
    return {
        "status": "healthy",
        "service": settings.service_name,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/detailed")
async def detailed_health_check(settings: Settings = Depends(get_settings)):
    """Detailed health check with database connectivity and forwarding config."""
    health_status = {
        "status": "healthy",
        "service": settings.service_name,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": {"status": "unknown"},
            "forwarding": {"status": "unknown"},
        }
    }

    # Check MongoDB
    try:
        if await database.ping():
            health_status["checks"]["database"]["status"] = "healthy"
        else:
            health_status["checks"]["database"]["status"] = "disconnected"
            health_status["status"] = "degraded"
    except Exception as e:
        health_status["checks"]["database"]["status"] = "unhealthy"
        health_status["checks"]["database"]["error"] = str(e)
        health_status["status"] = "unhealthy"

    if settings.forwarding_configured:
        health_status["checks"]["forwarding"]["status"] = "configured"
    else:
        health_status["checks"]["forwarding"]["status"] = "missing_configuration"
        if health_status["status"] == "healthy":
            health_status["status"] = "degraded"

    return health_status
