"""Main FastAPI application"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from reportsync.api import integrations, reports, webhooks
from reportsync.config import settings
from reportsync.models.base import init_db
from reportsync.security import BasicAuthMiddleware
from reportsync.sync_queue import SyncQueue

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info("Starting report sync service")
    init_db()
    app.state.sync_queue = SyncQueue()
    app.state.sync_queue.start()
    yield
    # Shutdown
    logger.info("Stopping report sync service")
    app.state.sync_queue.stop()


app = FastAPI(
    title="Report Sync Service",
    description="Synchronize bug reports with GitHub issues",
    version="1.0.0",
    lifespan=lifespan,
)

# Optional built-in auth (recommended if exposed beyond localhost/private networks).
# Webhook deliveries authenticate with their signature instead.
if settings.auth_enabled:
    if not settings.auth_username or not settings.auth_password:
        raise RuntimeError("AUTH_ENABLED=true requires AUTH_USERNAME and AUTH_PASSWORD to be set")
    app.add_middleware(
        BasicAuthMiddleware,
        username=settings.auth_username,
        password=settings.auth_password,
        allow_paths={"/health"},
        allow_prefixes=(f"{webhooks.router.prefix}/",),
    )

# Include API routers
app.include_router(integrations.router)
app.include_router(reports.router)
app.include_router(webhooks.router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "Report Sync"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "reportsync.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )
