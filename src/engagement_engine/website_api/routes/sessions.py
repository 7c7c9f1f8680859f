"""Session tracking routes."""

import logging
from fastapi import APIRouter, Depends, Request

from ...engine import EngagementEngine
from ...errors import SessionNotFound
from ...tracking.attribution import Attribution
from ..middleware.auth import verify_signature
from ..schemas.score import ErrorResponse
from ..schemas.session import (
    ActivityRequest,
    ActivityResponse,
    EndSessionRequest,
    EndSessionResponse,
    IdentifyRequest,
    StartSessionRequest,
    StartSessionResponse,
)
from ..services.engine import get_engine
from ..services.responses import session_view, summary_view, translate_error, update_views

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/sessions", tags=["sessions"])

ERRORS = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


@router.post("", response_model=StartSessionResponse, responses=ERRORS)
def start_session(
    body: StartSessionRequest,
    request: Request,
    engine: EngagementEngine = Depends(get_engine),
    _auth=Depends(verify_signature),
):
    """Open a session, capturing device and first-touch attribution."""
    attribution = Attribution.from_request(
        referrer=body.referrer,
        entry_path=body.entry_path,
        utm=body.utm.model_dump(exclude_none=True),
    )
    try:
        session_id = engine.tracker.start_session(
            body.identity_id,
            session_id=body.session_id,
            user_agent=body.user_agent or request.headers.get("user-agent", ""),
            attribution=attribution,
        )
    except Exception as e:
        raise translate_error(e)
    return StartSessionResponse(session_id=session_id)


@router.post("/{session_id}/activity", response_model=ActivityResponse, responses=ERRORS)
def record_activity(
    session_id: str,
    body: ActivityRequest,
    engine: EngagementEngine = Depends(get_engine),
    _auth=Depends(verify_signature),
):
    """Record an action on an open session; identity-bound sessions are scored too."""
    try:
        session = engine.tracker.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        update = engine.track_action(session.identity_id, body.kind, body.data, session_id=session_id)
        session = engine.tracker.get_session(session_id) or session
    except Exception as e:
        raise translate_error(e)

    lead_score, transition = update_views(update)
    return ActivityResponse(session=session_view(session), lead_score=lead_score, transition=transition)


@router.post("/{session_id}/identify", response_model=ActivityResponse, responses=ERRORS)
def identify(
    session_id: str,
    body: IdentifyRequest,
    engine: EngagementEngine = Depends(get_engine),
    _auth=Depends(verify_signature),
):
    """Bind an anonymous session to an identity."""
    try:
        session = engine.tracker.identify(session_id, body.identity_id)
    except Exception as e:
        raise translate_error(e)
    return ActivityResponse(session=session_view(session))


@router.post("/{session_id}/end", response_model=EndSessionResponse, responses=ERRORS)
def end_session(
    session_id: str,
    body: EndSessionRequest = EndSessionRequest(),
    engine: EngagementEngine = Depends(get_engine),
    _auth=Depends(verify_signature),
):
    """End a session. Ending an unknown or already ended session is a no-op."""
    try:
        summary = engine.tracker.end_session(session_id, body.reason)
    except Exception as e:
        raise translate_error(e)

    if summary is None:
        return EndSessionResponse(ended=False)
    return EndSessionResponse(ended=True, summary=summary_view(summary))
