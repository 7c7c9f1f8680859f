"""Pydantic models for score, assessment and cache responses."""

from typing import Optional, Dict, Any, List
from pydantic import BaseModel


class ScoreEventRequest(BaseModel):
    kind: str
    data: Dict[str, Any] = {}
    session_id: Optional[str] = None


class LeadScoreView(BaseModel):
    identity_id: str
    total_score: float
    tier: str
    previous_tier: str
    components: Dict[str, float]
    tier_changed_at: Optional[str] = None
    event_count: int = 0


class TransitionView(BaseModel):
    previous_tier: str
    new_tier: str
    total_score: float
    triggered_sequences: List[str] = []
    personalization_updates: List[str] = []


class ScoreUpdateResponse(BaseModel):
    success: bool = True
    lead_score: LeadScoreView
    transition: Optional[TransitionView] = None


class AssessmentRequest(BaseModel):
    tool_id: str
    responses: Dict[str, Any]
    session_id: Optional[str] = None


class AssessmentResultView(BaseModel):
    tool_id: str
    score: float
    question_points: Dict[str, float]
    dimension_scores: Dict[str, float]
    completed_at: str


class AssessmentResponse(BaseModel):
    success: bool = True
    result: AssessmentResultView
    lead_score: Optional[LeadScoreView] = None
    transition: Optional[TransitionView] = None


class CacheStatsResponse(BaseModel):
    hits: int
    misses: int
    size: int
    hit_rate: float
    evictions: int


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    detail: str
