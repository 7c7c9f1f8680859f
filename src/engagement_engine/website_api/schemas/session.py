"""Pydantic models for session tracking requests/responses."""

from typing import Optional, Dict, Any
from pydantic import BaseModel, Field

from .score import LeadScoreView, TransitionView


class UTMParams(BaseModel):
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None


class StartSessionRequest(BaseModel):
    session_id: Optional[str] = Field(None, description="Client session token; generated when omitted")
    identity_id: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: str = ""
    entry_path: str = ""
    utm: UTMParams = UTMParams()


class StartSessionResponse(BaseModel):
    success: bool = True
    session_id: str


class ActivityRequest(BaseModel):
    kind: str = Field(
        ...,
        description="Action kind: page_view, tool_start, tool_complete, content_download, cta_click, form_submit, session_extend, webinar_register, scroll_depth",
    )
    data: Dict[str, Any] = {}


class SessionView(BaseModel):
    id: str
    identity_id: Optional[str] = None
    started_at: str
    last_activity_at: str
    duration_seconds: float
    page_view_count: int
    interaction_count: int
    running_engagement_score: float
    device_type: str
    source: str


class ActivityResponse(BaseModel):
    success: bool = True
    session: SessionView
    lead_score: Optional[LeadScoreView] = None
    transition: Optional[TransitionView] = None


class IdentifyRequest(BaseModel):
    identity_id: str


class EndSessionRequest(BaseModel):
    reason: str = Field("explicit", description="timeout, explicit or unload")


class SessionSummaryView(BaseModel):
    session_id: str
    identity_id: Optional[str] = None
    end_reason: str
    duration_seconds: float
    page_views: int
    interactions: int
    engagement_score: float
    is_bounce: bool


class EndSessionResponse(BaseModel):
    success: bool = True
    ended: bool
    summary: Optional[SessionSummaryView] = None
