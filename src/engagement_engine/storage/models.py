"""Data models for engagement storage."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any

from ..core.actions import ActionKind, ScoreComponent
from ..core.tiers import Tier


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _format_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class ScoreEvent:
    """A single signed score change. Append-only."""

    identity_id: str
    action_kind: ActionKind
    point_delta: float
    occurred_at: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_row(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "identity_id": self.identity_id,
            "action_kind": self.action_kind.value,
            "point_delta": self.point_delta,
            "occurred_at": self.occurred_at.isoformat(),
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class TierProgressionEntry:
    """One step of an identity's tier history."""

    tier: Tier
    score: float
    timestamp: datetime
    previous_tier: Optional[Tier] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            "tier": self.tier.value,
            "score": self.score,
            "timestamp": self.timestamp.isoformat(),
            "previous_tier": self.previous_tier.value if self.previous_tier else None,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TierProgressionEntry":
        return cls(
            tier=Tier(row["tier"]),
            score=row.get("score", 0),
            timestamp=datetime.fromisoformat(row["timestamp"]),
            previous_tier=Tier(row["previous_tier"]) if row.get("previous_tier") else None,
        )


@dataclass
class LeadScore:
    """The live lead score record for one identity."""

    identity_id: str

    # Component buckets
    page_views_score: float = 0
    tool_usage_score: float = 0
    content_downloads_score: float = 0
    webinar_score: float = 0
    time_on_site_score: float = 0
    scroll_depth_score: float = 0
    cta_engagement_score: float = 0

    # Totals and tier
    total_score: float = 0
    previous_score: float = 0
    tier: Tier = Tier.BROWSER
    previous_tier: Tier = Tier.BROWSER
    tier_changed_at: Optional[datetime] = None
    tier_progression: List[TierProgressionEntry] = field(default_factory=list)

    event_count: int = 0
    last_event_at: Optional[datetime] = None
    updated_at: datetime = field(default_factory=datetime.now)

    def component_scores(self) -> Dict[str, float]:
        """Get the score breakdown keyed by component name."""
        return {c.value: getattr(self, c.value) for c in ScoreComponent}

    def add_to_component(self, component: ScoreComponent, delta: float):
        setattr(self, component.value, getattr(self, component.value) + delta)

    @property
    def score_increase(self) -> float:
        return self.total_score - self.previous_score

    def has_recent_tier_change(self, within_hours: int = 24, now: Optional[datetime] = None) -> bool:
        if not self.tier_changed_at:
            return False
        now = now or datetime.now()
        return (now - self.tier_changed_at).total_seconds() <= within_hours * 3600

    def to_row(self) -> Dict[str, Any]:
        row = self.component_scores()
        row.update({
            "identity_id": self.identity_id,
            "total_score": self.total_score,
            "previous_score": self.previous_score,
            "tier": self.tier.value,
            "previous_tier": self.previous_tier.value,
            "tier_changed_at": _format_dt(self.tier_changed_at),
            "tier_progression": [entry.to_row() for entry in self.tier_progression],
            "event_count": self.event_count,
            "last_event_at": _format_dt(self.last_event_at),
            "updated_at": self.updated_at.isoformat(),
        })
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "LeadScore":
        score = cls(
            identity_id=row["identity_id"],
            total_score=row.get("total_score", 0),
            previous_score=row.get("previous_score", 0),
            tier=Tier(row.get("tier", Tier.BROWSER.value)),
            previous_tier=Tier(row.get("previous_tier", Tier.BROWSER.value)),
            tier_changed_at=_parse_dt(row.get("tier_changed_at")),
            tier_progression=[
                TierProgressionEntry.from_row(entry) for entry in row.get("tier_progression", [])
            ],
            event_count=row.get("event_count", 0),
            last_event_at=_parse_dt(row.get("last_event_at")),
            updated_at=_parse_dt(row.get("updated_at")) or datetime.now(),
        )
        for component in ScoreComponent:
            setattr(score, component.value, row.get(component.value, 0))
        return score

    def copy(self) -> "LeadScore":
        return LeadScore.from_row(self.to_row())


@dataclass(frozen=True)
class TierTransition:
    """Derived record of an identity changing tier."""

    identity_id: str
    previous_tier: Tier
    new_tier: Tier
    total_score: float
    triggered_sequences: List[str] = field(default_factory=list)
    personalization_updates: List[str] = field(default_factory=list)
    occurred_at: datetime = field(default_factory=datetime.now)

    @property
    def is_upgrade(self) -> bool:
        return self.new_tier.rank > self.previous_tier.rank

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity_id": self.identity_id,
            "previous_tier": self.previous_tier.value,
            "new_tier": self.new_tier.value,
            "total_score": self.total_score,
            "triggered_sequences": list(self.triggered_sequences),
            "personalization_updates": list(self.personalization_updates),
            "occurred_at": self.occurred_at.isoformat(),
        }


@dataclass
class SessionSummary:
    """Final metrics of an ended session."""

    session_id: str
    identity_id: Optional[str]
    started_at: datetime
    ended_at: datetime
    end_reason: str
    duration_seconds: float
    page_views: int
    interactions: int
    engagement_score: float
    device_type: str = ""
    source: str = ""
    medium: str = ""
    campaign: str = ""

    @property
    def is_bounce(self) -> bool:
        return self.page_views <= 1

    def to_row(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "identity_id": self.identity_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "end_reason": self.end_reason,
            "duration_seconds": self.duration_seconds,
            "page_views": self.page_views,
            "interactions": self.interactions,
            "engagement_score": self.engagement_score,
            "device_type": self.device_type,
            "source": self.source,
            "medium": self.medium,
            "campaign": self.campaign,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SessionSummary":
        return cls(
            session_id=row["session_id"],
            identity_id=row.get("identity_id"),
            started_at=datetime.fromisoformat(row["started_at"]),
            ended_at=datetime.fromisoformat(row["ended_at"]),
            end_reason=row.get("end_reason", ""),
            duration_seconds=row.get("duration_seconds", 0),
            page_views=row.get("page_views", 0),
            interactions=row.get("interactions", 0),
            engagement_score=row.get("engagement_score", 0),
            device_type=row.get("device_type", ""),
            source=row.get("source", ""),
            medium=row.get("medium", ""),
            campaign=row.get("campaign", ""),
        )


@dataclass
class AssessmentResult:
    """Scored responses to one assessment tool."""

    identity_id: str
    tool_id: str
    score: float
    question_points: Dict[str, float] = field(default_factory=dict)
    dimension_scores: Dict[str, float] = field(default_factory=dict)
    completed_at: datetime = field(default_factory=datetime.now)

    @property
    def key(self) -> str:
        return f"{self.identity_id}:{self.tool_id}"

    def to_row(self) -> Dict[str, Any]:
        return {
            "identity_id": self.identity_id,
            "tool_id": self.tool_id,
            "score": self.score,
            "question_points": self.question_points,
            "dimension_scores": self.dimension_scores,
            "completed_at": self.completed_at.isoformat(),
            "is_completed": True,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "AssessmentResult":
        return cls(
            identity_id=row["identity_id"],
            tool_id=row["tool_id"],
            score=row.get("score", 0),
            question_points=row.get("question_points", {}),
            dimension_scores=row.get("dimension_scores", {}),
            completed_at=datetime.fromisoformat(row["completed_at"]),
        )
