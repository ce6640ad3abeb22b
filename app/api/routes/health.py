from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint.

    Used by load balancers and monitoring systems to determine service health.
    Also reports which counter store backs the rate limiter.

    Returns:
        dict: ``status`` set to "ok" and the ``rate_limit_store`` backend name.
    """

    limiter = getattr(request.app.state, "rate_limiter", None)
    backend = limiter.store.backend if limiter is not None else "none"
    return {"status": "ok", "rate_limit_store": backend}
