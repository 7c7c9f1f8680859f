"""Membership tiers and the automation attached to tier changes."""

from enum import Enum
from typing import Dict, List, Optional

from .config import ScoringConfig


class Tier(Enum):
    """Discrete membership stage derived from total score."""

    BROWSER = "browser"
    ENGAGED = "engaged"
    SOFT_MEMBER = "soft-member"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]


_TIER_RANK = {Tier.BROWSER: 1, Tier.ENGAGED: 2, Tier.SOFT_MEMBER: 3}


def tier_for_score(score: float, config: Optional[ScoringConfig] = None) -> Tier:
    """Get tier for a total score using the configured thresholds."""
    config = config or ScoringConfig()
    if score >= config.soft_member_threshold:
        return Tier.SOFT_MEMBER
    elif score >= config.engaged_threshold:
        return Tier.ENGAGED
    else:
        return Tier.BROWSER


def can_access(current: Tier, required: Tier) -> bool:
    """Whether a visitor at `current` may see content gated at `required`."""
    return current.rank >= required.rank


def readiness_level(score: float, config: Optional[ScoringConfig] = None) -> str:
    """Sales readiness label used by personalization."""
    tier = tier_for_score(score, config)
    return {Tier.BROWSER: "low", Tier.ENGAGED: "medium", Tier.SOFT_MEMBER: "high"}[tier]


def sequences_for_transition(previous: Tier, new: Tier) -> List[str]:
    """Email sequences to trigger when a visitor moves between tiers."""
    sequences = []

    if previous == Tier.BROWSER and new == Tier.ENGAGED:
        sequences.append("engaged_visitor_welcome")
        sequences.append("tool_user_series_14_day")

    if previous == Tier.ENGAGED and new == Tier.SOFT_MEMBER:
        sequences.append("soft_member_welcome")
        sequences.append("advanced_content_access")
        sequences.append("office_visit_invitation")

    if new == Tier.SOFT_MEMBER and previous != Tier.SOFT_MEMBER:
        sequences.append("personalized_consultation_offer")

    return sequences


def personalization_updates(tier: Tier, component_scores: Dict[str, float]) -> List[str]:
    """Personalization flags to apply for a tier and score breakdown."""
    updates = [f"content_access_level_{tier.value}"]

    if tier == Tier.SOFT_MEMBER:
        updates.append("show_premium_ctas")
        updates.append("hide_basic_lead_magnets")
    elif tier == Tier.ENGAGED:
        updates.append("show_engagement_ctas")
        updates.append("show_webinar_invitations")

    areas = {
        "tools": component_scores.get("tool_usage_score", 0),
        "content": component_scores.get("content_downloads_score", 0),
        "webinars": component_scores.get("webinar_score", 0),
        "engagement": component_scores.get("cta_engagement_score", 0),
    }
    # First area wins ties
    strongest = max(areas, key=lambda name: areas[name])
    updates.append(f"recommend_{strongest}_tools")
    updates.append(f"navigation_tier_{tier.value}")
    return updates
