"""Read-through caching of derived state."""

from .cache import ReadThroughCache, CacheEntry, CacheStats, CacheTTL
from .repository import CachedRepository, user_key, lead_score_key, assessment_key

__all__ = [
    'ReadThroughCache',
    'CacheEntry',
    'CacheStats',
    'CacheTTL',
    'CachedRepository',
    'user_key',
    'lead_score_key',
    'assessment_key',
]
