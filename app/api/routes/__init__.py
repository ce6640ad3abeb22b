from __future__ import annotations

from app.api.routes.health import router as health_router
from app.api.routes.public import router as public_router

__all__ = ["health_router", "public_router"]
