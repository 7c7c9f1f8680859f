"""Assessment submission routes."""

import logging
from fastapi import APIRouter, Depends

from ...engine import EngagementEngine
from ..middleware.auth import verify_signature
from ..schemas.score import AssessmentRequest, AssessmentResponse, AssessmentResultView, ErrorResponse
from ..services.engine import get_engine
from ..services.responses import api_error, assessment_view, translate_error, update_views

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/assessments", tags=["assessments"])


@router.post(
    "/{identity_id}",
    response_model=AssessmentResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
def submit_assessment(
    identity_id: str,
    body: AssessmentRequest,
    engine: EngagementEngine = Depends(get_engine),
    _auth=Depends(verify_signature),
):
    """Score assessment answers and credit the tool completion."""
    try:
        submission = engine.submit_assessment(
            identity_id, body.tool_id, body.responses, session_id=body.session_id
        )
    except Exception as e:
        raise translate_error(e)

    lead_score, transition = update_views(submission.update)
    return AssessmentResponse(
        result=assessment_view(submission.result),
        lead_score=lead_score,
        transition=transition,
    )


@router.get(
    "/{identity_id}/{tool_id}",
    response_model=AssessmentResultView,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def get_assessment(
    identity_id: str,
    tool_id: str,
    engine: EngagementEngine = Depends(get_engine),
    _auth=Depends(verify_signature),
):
    try:
        result = engine.get_assessment_result(identity_id, tool_id)
    except Exception as e:
        raise translate_error(e)
    if result is None:
        raise api_error(404, "not_found", f"No completed {tool_id} assessment for {identity_id}")
    return assessment_view(result)
