"""
Verification API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bulk.orchestrator import BulkOperationOrchestrator
from core.config import get_settings
from integrations.verification_api import VerificationApiClient
from verification.cache import StatusCache

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire the verification client, status cache and orchestrator; drain jobs on shutdown."""
    client = VerificationApiClient.from_settings(settings)
    cache = StatusCache(client, ttl_seconds=settings.status_cache_ttl_seconds)
    orchestrator = BulkOperationOrchestrator(client)
    orchestrator.subscribe(cache.on_item_recorded)

    app.state.status_provider = cache
    app.state.orchestrator = orchestrator
    logger.info("Verification API starting up", version=settings.app_version)
    yield
    await orchestrator.shutdown()
    logger.info("Verification API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Business verification, capability authorization and bulk verification operations",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from api.v1.routers import bulk_operations, verification  # noqa: E402

app.include_router(verification.router)
app.include_router(bulk_operations.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {"status": "healthy", "version": settings.app_version}
