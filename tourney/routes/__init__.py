"""API routers."""

from tourney.routes.archive import router as archive_router
from tourney.routes.core import router as core_router

__all__ = ["archive_router", "core_router"]
