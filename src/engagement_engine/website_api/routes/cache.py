"""Cache inspection routes."""

from fastapi import APIRouter, Depends

from ...engine import EngagementEngine
from ..middleware.auth import verify_signature
from ..schemas.score import CacheStatsResponse
from ..services.engine import get_engine

router = APIRouter(prefix="/v1/cache", tags=["cache"])


@router.get("/stats", response_model=CacheStatsResponse)
def cache_stats(engine: EngagementEngine = Depends(get_engine), _auth=Depends(verify_signature)):
    stats = engine.cache.stats()
    return CacheStatsResponse(
        hits=stats.hits,
        misses=stats.misses,
        size=stats.size,
        hit_rate=stats.hit_rate,
        evictions=stats.evictions,
    )


@router.post("/invalidate/{identity_id}")
def invalidate_identity(
    identity_id: str,
    engine: EngagementEngine = Depends(get_engine),
    _auth=Depends(verify_signature),
):
    """Drop cached state for an identity."""
    return {"success": True, "removed": engine.repository.invalidate_identity(identity_id)}
