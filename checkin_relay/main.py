"""Main FastAPI application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from checkin_relay.core.config import get_settings
from checkin_relay.core.database import database
from checkin_relay.api import connections, health, integrations, webhooks
from checkin_relay.utils.logging import setup_logging

settings = get_settings()

setup_logging(settings)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info(f"Starting {settings.service_name} ({settings.environment}) on port {settings.port}")
    await database.connect(settings)

    yield

    logger.info(f"Shutting down {settings.service_name}...")
    await database.disconnect()


app = FastAPI(
    title="Check-in Relay Service",
    description="Relays check-in webhooks and reconciles form-provider connections",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(webhooks.router, tags=["webhooks"])
app.include_router(
    connections.router,
    prefix="/api/v1/connect",
    tags=["connections"]
)
app.include_router(
    integrations.router,
    prefix="/api/v1/integrations",
    tags=["integrations"]
)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "checkin_relay.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug,
    )
