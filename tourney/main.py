"""FastAPI application: tournament archive admin API."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from tourney.config import get_settings
from tourney.database import close_db, init_db
from tourney.routes import archive_router, core_router
from tourney.security import limiter
from tourney.storage.r2_client import get_object_store

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting tournament archive service...")
    await init_db()
    store = get_object_store()
    logger.info(f"[STARTUP] Object store backend: {settings.STORAGE_BACKEND}")

    yield

    logger.info("Shutting down...")
    close = getattr(store, "close", None)
    if close is not None:
        await close()
    await close_db()


app = FastAPI(
    title="Tourney Archive",
    description="Tournament archival and data lifecycle API",
    version="1.0.0",
    lifespan=lifespan,
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Include routers
app.include_router(core_router)
app.include_router(archive_router)
