"""Conversion of engine records into API responses, and error mapping."""

import logging
from typing import Optional

from fastapi import HTTPException

from ...core.aggregator import ScoreUpdate
from ...errors import CacheLoaderFailed, ScoreUpdateFailed, SessionNotFound
from ...storage.models import AssessmentResult, LeadScore, SessionSummary, TierTransition
from ...tracking.sessions import Session
from ..schemas.score import AssessmentResultView, LeadScoreView, TransitionView
from ..schemas.session import SessionSummaryView, SessionView

logger = logging.getLogger(__name__)


def api_error(status_code: int, error: str, detail: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"success": False, "error": error, "detail": detail},
    )


def translate_error(e: Exception) -> HTTPException:
    """Map engine errors onto HTTP errors."""
    if isinstance(e, SessionNotFound):
        return api_error(404, "not_found", str(e))
    if isinstance(e, ValueError):
        return api_error(400, "validation_error", str(e))
    if isinstance(e, (ScoreUpdateFailed, CacheLoaderFailed)):
        logger.error(f"Engine unavailable: {e}")
        return api_error(503, "unavailable", "Score store unavailable, retry later")
    logger.exception("Engagement engine error")
    return api_error(500, "server_error", "Internal processing error")


def lead_score_view(score: LeadScore) -> LeadScoreView:
    return LeadScoreView(
        identity_id=score.identity_id,
        total_score=score.total_score,
        tier=score.tier.value,
        previous_tier=score.previous_tier.value,
        components=score.component_scores(),
        tier_changed_at=score.tier_changed_at.isoformat() if score.tier_changed_at else None,
        event_count=score.event_count,
    )


def transition_view(transition: Optional[TierTransition]) -> Optional[TransitionView]:
    if transition is None:
        return None
    return TransitionView(
        previous_tier=transition.previous_tier.value,
        new_tier=transition.new_tier.value,
        total_score=transition.total_score,
        triggered_sequences=list(transition.triggered_sequences),
        personalization_updates=list(transition.personalization_updates),
    )


def update_views(update: Optional[ScoreUpdate]):
    """Lead score and transition views for an optional update."""
    if update is None:
        return None, None
    return lead_score_view(update.lead_score), transition_view(update.transition)


def session_view(session: Session) -> SessionView:
    return SessionView(
        id=session.id,
        identity_id=session.identity_id,
        started_at=session.started_at.isoformat(),
        last_activity_at=session.last_activity_at.isoformat(),
        duration_seconds=session.duration_seconds,
        page_view_count=session.page_view_count,
        interaction_count=session.interaction_count,
        running_engagement_score=session.running_engagement_score,
        device_type=session.device.device_type,
        source=session.attribution.source,
    )


def summary_view(summary: SessionSummary) -> SessionSummaryView:
    return SessionSummaryView(
        session_id=summary.session_id,
        identity_id=summary.identity_id,
        end_reason=summary.end_reason,
        duration_seconds=summary.duration_seconds,
        page_views=summary.page_views,
        interactions=summary.interactions,
        engagement_score=summary.engagement_score,
        is_bounce=summary.is_bounce,
    )


def assessment_view(result: AssessmentResult) -> AssessmentResultView:
    return AssessmentResultView(
        tool_id=result.tool_id,
        score=result.score,
        question_points=result.question_points,
        dimension_scores=result.dimension_scores,
        completed_at=result.completed_at.isoformat(),
    )
