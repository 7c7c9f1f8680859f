"""Scoring rules, action points and tiers for engagement scoring."""

from .actions import ActionKind, ScoreComponent, ACTION_SPECS, action_points, parse_action
from .config import EngineConfig, EngineConfigManager, ScoringConfig, SessionConfig, CacheConfig, BusConfig
from .rules import RuleType, ScoringRule, Instrument, Dimension, Question, evaluate, score_instrument
from .tiers import Tier, tier_for_score, sequences_for_transition

# The aggregator depends on the cache and storage packages; import it from
# engagement_engine.core.aggregator.

__all__ = [
    "ActionKind",
    "ScoreComponent",
    "ACTION_SPECS",
    "action_points",
    "parse_action",
    "EngineConfig",
    "EngineConfigManager",
    "ScoringConfig",
    "SessionConfig",
    "CacheConfig",
    "BusConfig",
    "RuleType",
    "ScoringRule",
    "Instrument",
    "Dimension",
    "Question",
    "evaluate",
    "score_instrument",
    "Tier",
    "tier_for_score",
    "sequences_for_transition",
]
