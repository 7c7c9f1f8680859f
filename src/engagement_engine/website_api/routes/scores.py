"""Lead score routes."""

import logging
from fastapi import APIRouter, Depends

from ...engine import EngagementEngine
from ..middleware.auth import verify_signature
from ..schemas.score import ErrorResponse, LeadScoreView, ScoreEventRequest, ScoreUpdateResponse
from ..services.engine import get_engine
from ..services.responses import lead_score_view, translate_error, update_views

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/scores", tags=["scores"])


@router.post(
    "/{identity_id}/events",
    response_model=ScoreUpdateResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
def apply_event(
    identity_id: str,
    body: ScoreEventRequest,
    engine: EngagementEngine = Depends(get_engine),
    _auth=Depends(verify_signature),
):
    """Score a discrete action for an identity.

    A 503 means the score was not stored; the caller should retry the action.
    """
    try:
        update = engine.track_action(identity_id, body.kind, body.data, session_id=body.session_id)
    except Exception as e:
        raise translate_error(e)

    lead_score, transition = update_views(update)
    return ScoreUpdateResponse(lead_score=lead_score, transition=transition)


@router.get("/{identity_id}", response_model=LeadScoreView, responses={401: {"model": ErrorResponse}})
def get_score(
    identity_id: str,
    engine: EngagementEngine = Depends(get_engine),
    _auth=Depends(verify_signature),
):
    """Current lead score and tier for an identity."""
    try:
        return lead_score_view(engine.get_lead_score(identity_id))
    except Exception as e:
        raise translate_error(e)


@router.get("", responses={401: {"model": ErrorResponse}})
def distribution(
    engine: EngagementEngine = Depends(get_engine),
    _auth=Depends(verify_signature),
):
    """Tier distribution across stored lead scores."""
    return engine.aggregator.distribution()
