"""Cached reads of identity-scoped rows from the store."""

import logging
from typing import Any, Dict, Optional

from ..core.config import CacheConfig
from ..storage import store as tables
from ..storage.models import AssessmentResult, LeadScore
from ..storage.store import Store
from .cache import ReadThroughCache

logger = logging.getLogger(__name__)

# Cache key prefixes
USER_PREFIX = "user:"
LEAD_SCORE_PREFIX = "lead_score:"
ASSESSMENT_PREFIX = "assessment:"


def user_key(identity_id: str) -> str:
    return f"{USER_PREFIX}{identity_id}"


def lead_score_key(identity_id: str) -> str:
    return f"{LEAD_SCORE_PREFIX}{identity_id}"


def assessment_key(identity_id: str, tool_id: str) -> str:
    return f"{ASSESSMENT_PREFIX}{identity_id}:{tool_id}"


class CachedRepository:
    """Store reads routed through the read-through cache.

    Usage:
        repo = CachedRepository(store, cache)
        score = repo.get_lead_score("user-1")
        repo.invalidate_identity("user-1")
    """

    def __init__(self, store: Store, cache: ReadThroughCache,
                 config: Optional[CacheConfig] = None):
        self.store = store
        self.cache = cache
        self.config = config or cache.config

    def get_user(self, identity_id: str) -> Optional[Dict[str, Any]]:
        """Get a user profile row, or None if the identity has none."""
        return self.cache.get(
            user_key(identity_id),
            lambda: self.store.get(tables.USERS, identity_id),
            self.config.user_ttl,
        )

    def get_lead_score(self, identity_id: str) -> LeadScore:
        """Get the live lead score; identities without a row start from zero.

        The returned record is a copy; callers may mutate it freely.
        """
        score = self.cache.get(
            lead_score_key(identity_id),
            lambda: self._load_lead_score(identity_id),
            self.config.lead_score_ttl,
        )
        return score.copy()

    def _load_lead_score(self, identity_id: str) -> LeadScore:
        row = self.store.get(tables.LEAD_SCORES, identity_id)
        if row is None:
            return LeadScore(identity_id=identity_id)
        return LeadScore.from_row(row)

    def put_lead_score(self, score: LeadScore):
        """Replace the cached lead score after a successful store write."""
        self.cache.put(lead_score_key(score.identity_id), score.copy(), self.config.lead_score_ttl)

    def get_assessment_result(self, identity_id: str, tool_id: str) -> Optional[AssessmentResult]:
        """Get a completed assessment result, or None."""
        return self.cache.get(
            assessment_key(identity_id, tool_id),
            lambda: self._load_assessment(identity_id, tool_id),
            self.config.assessment_ttl,
        )

    def _load_assessment(self, identity_id: str, tool_id: str) -> Optional[AssessmentResult]:
        row = self.store.get(tables.TOOL_USAGE, f"{identity_id}:{tool_id}")
        if row is None or not row.get("is_completed"):
            return None
        return AssessmentResult.from_row(row)

    def save_assessment_result(self, result: AssessmentResult):
        """Persist a result, then replace its cache entry."""
        self.store.upsert(tables.TOOL_USAGE, result.key, result.to_row())
        self.cache.put(
            assessment_key(result.identity_id, result.tool_id), result, self.config.assessment_ttl
        )

    def invalidate_user(self, identity_id: str) -> int:
        return int(self.cache.delete(user_key(identity_id)))

    def invalidate_identity(self, identity_id: str) -> int:
        """Drop every cached entry for an identity."""
        removed = (
            int(self.cache.delete(user_key(identity_id)))
            + int(self.cache.delete(lead_score_key(identity_id)))
            + self.cache.invalidate(f"{ASSESSMENT_PREFIX}{identity_id}:")
        )
        logger.debug(f"Invalidated {removed} cache entries for {identity_id}")
        return removed
