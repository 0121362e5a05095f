"""API routers."""

from leadflow.routers.internal import router as internal_router
from leadflow.routers.public import router as public_router

__all__ = ["internal_router", "public_router"]
