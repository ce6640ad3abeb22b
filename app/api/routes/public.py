from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from app.core.rate_limit import RateLimit

router = APIRouter(prefix="/public", tags=["Public"])


@router.get(
    "/ping",
    dependencies=[Depends(RateLimit.preset("public_ping"))],
)
async def ping() -> dict:
    """Rate-limited liveness check for public clients."""

    return {"success": True, "timestamp": datetime.now(timezone.utc).isoformat()}
