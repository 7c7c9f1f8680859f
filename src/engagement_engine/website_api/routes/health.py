"""Health check routes."""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    return {"status": "healthy", "service": "engagement-engine-api", "version": "1.0.0"}


@router.get("/ready")
def ready(request: Request):
    """Readiness check - verifies the store is accessible."""
    try:
        request.app.state.engine.store.ping()
        return {"status": "ready"}
    except Exception as e:
        return {"status": "not_ready", "detail": str(e)}
