"""Discrete engagement actions, their point values and typed payloads."""

from dataclasses import dataclass, fields
from enum import Enum
from typing import ClassVar, Dict, List, Optional, Type, Any


class ActionKind(Enum):
    """Tracked visitor actions."""

    PAGE_VIEW = "page_view"
    TOOL_START = "tool_start"
    TOOL_COMPLETE = "tool_complete"
    CONTENT_DOWNLOAD = "content_download"
    CTA_CLICK = "cta_click"
    FORM_SUBMIT = "form_submit"
    SESSION_EXTEND = "session_extend"
    WEBINAR_REGISTER = "webinar_register"
    SCROLL_DEPTH = "scroll_depth"
    TIME_ON_SITE = "time_on_site"  # Derived at session end
    SCORE_DECAY = "score_decay"  # Derived by decay jobs


class ScoreComponent(Enum):
    """Named buckets of a lead score."""

    PAGE_VIEWS = "page_views_score"
    TOOL_USAGE = "tool_usage_score"
    CONTENT_DOWNLOADS = "content_downloads_score"
    WEBINAR = "webinar_score"
    TIME_ON_SITE = "time_on_site_score"
    SCROLL_DEPTH = "scroll_depth_score"
    CTA_ENGAGEMENT = "cta_engagement_score"


@dataclass(frozen=True)
class ActionSpec:
    """Point value and score bucket for one action kind."""

    kind: ActionKind
    points: float
    component: Optional[ScoreComponent]
    description: str = ""


ACTION_SPECS: List[ActionSpec] = [
    ActionSpec(ActionKind.PAGE_VIEW, 1, ScoreComponent.PAGE_VIEWS, "Viewed a page"),
    ActionSpec(ActionKind.TOOL_START, 2, ScoreComponent.TOOL_USAGE, "Started an assessment tool"),
    ActionSpec(ActionKind.TOOL_COMPLETE, 5, ScoreComponent.TOOL_USAGE, "Completed an assessment tool"),
    ActionSpec(ActionKind.CONTENT_DOWNLOAD, 4, ScoreComponent.CONTENT_DOWNLOADS, "Downloaded content"),
    ActionSpec(ActionKind.CTA_CLICK, 3, ScoreComponent.CTA_ENGAGEMENT, "Clicked a call to action"),
    ActionSpec(ActionKind.FORM_SUBMIT, 8, ScoreComponent.CTA_ENGAGEMENT, "Submitted a form"),
    ActionSpec(ActionKind.SESSION_EXTEND, 2, ScoreComponent.TIME_ON_SITE, "Extended the session"),
    ActionSpec(ActionKind.WEBINAR_REGISTER, 10, ScoreComponent.WEBINAR, "Registered for a webinar"),
    ActionSpec(ActionKind.SCROLL_DEPTH, 1, ScoreComponent.SCROLL_DEPTH, "Scrolled deep into a page"),
    # Points computed by the caller
    ActionSpec(ActionKind.TIME_ON_SITE, 0, ScoreComponent.TIME_ON_SITE, "Time spent on site"),
    ActionSpec(ActionKind.SCORE_DECAY, 0, None, "Inactivity decay"),
]

_SPECS_BY_KIND: Dict[ActionKind, ActionSpec] = {spec.kind: spec for spec in ACTION_SPECS}


def get_action_spec(kind: ActionKind) -> ActionSpec:
    """Get the spec for an action kind."""
    return _SPECS_BY_KIND[kind]


def action_points(kind: ActionKind, overrides: Optional[Dict[str, float]] = None) -> float:
    """Default point value of an action, honouring configured overrides."""
    if overrides and kind.value in overrides:
        return overrides[kind.value]
    return _SPECS_BY_KIND[kind].points


# === Typed payloads ===

@dataclass(frozen=True)
class ActionData:
    """Base class for action payloads."""

    kind: ClassVar[ActionKind]

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class PageView(ActionData):
    kind: ClassVar[ActionKind] = ActionKind.PAGE_VIEW
    path: str = ""
    title: str = ""
    referrer: str = ""


@dataclass(frozen=True)
class ToolStart(ActionData):
    kind: ClassVar[ActionKind] = ActionKind.TOOL_START
    tool_id: str = ""


@dataclass(frozen=True)
class ToolComplete(ActionData):
    kind: ClassVar[ActionKind] = ActionKind.TOOL_COMPLETE
    tool_id: str = ""
    score: Optional[float] = None


@dataclass(frozen=True)
class ContentDownload(ActionData):
    kind: ClassVar[ActionKind] = ActionKind.CONTENT_DOWNLOAD
    content_id: str = ""
    content_type: str = ""


@dataclass(frozen=True)
class CtaClick(ActionData):
    kind: ClassVar[ActionKind] = ActionKind.CTA_CLICK
    cta_id: str = ""
    placement: str = ""


@dataclass(frozen=True)
class FormSubmit(ActionData):
    kind: ClassVar[ActionKind] = ActionKind.FORM_SUBMIT
    form_id: str = ""


@dataclass(frozen=True)
class SessionExtend(ActionData):
    kind: ClassVar[ActionKind] = ActionKind.SESSION_EXTEND
    minutes: float = 0


@dataclass(frozen=True)
class WebinarRegistration(ActionData):
    kind: ClassVar[ActionKind] = ActionKind.WEBINAR_REGISTER
    webinar_id: str = ""


@dataclass(frozen=True)
class ScrollDepth(ActionData):
    kind: ClassVar[ActionKind] = ActionKind.SCROLL_DEPTH
    path: str = ""
    depth: float = 0


@dataclass(frozen=True)
class TimeOnSite(ActionData):
    kind: ClassVar[ActionKind] = ActionKind.TIME_ON_SITE
    session_id: str = ""
    seconds: float = 0


@dataclass(frozen=True)
class ScoreDecay(ActionData):
    kind: ClassVar[ActionKind] = ActionKind.SCORE_DECAY
    rate: float = 0
    inactive_days: int = 0


PAYLOAD_TYPES: Dict[ActionKind, Type[ActionData]] = {
    cls.kind: cls
    for cls in (
        PageView, ToolStart, ToolComplete, ContentDownload, CtaClick, FormSubmit,
        SessionExtend, WebinarRegistration, ScrollDepth, TimeOnSite, ScoreDecay,
    )
}


def parse_action(kind: Any, data: Optional[Dict[str, Any]] = None) -> ActionData:
    """Build the typed payload for an action kind.

    Raises ValueError for unknown kinds or fields the payload does not declare.
    """
    if not isinstance(kind, ActionKind):
        try:
            kind = ActionKind(kind)
        except ValueError:
            raise ValueError(f"Unknown action kind: {kind!r}")

    payload_type = PAYLOAD_TYPES[kind]
    data = dict(data or {})
    known = {f.name for f in fields(payload_type)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unexpected fields for {kind.value}: {', '.join(sorted(unknown))}")
    return payload_type(**data)
