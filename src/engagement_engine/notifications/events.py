"""Events published on the notification bus."""

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple


class EventType(Enum):
    """Closed set of bus event types."""

    SCORE_UPDATED = "score_updated"
    TIER_CHANGED = "tier_changed"
    ASSESSMENT_COMPLETED = "assessment_completed"
    SESSION_START = "session_start"
    SESSION_ACTIVITY = "session_activity"
    SESSION_HEARTBEAT = "session_heartbeat"
    SESSION_END = "session_end"


@dataclass(frozen=True)
class BusEvent:
    """Base class for bus events."""

    type: ClassVar[EventType]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type.value}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, tuple):
                value = list(value)
            data[f.name] = value
        return data


@dataclass(frozen=True)
class ScoreUpdated(BusEvent):
    type: ClassVar[EventType] = EventType.SCORE_UPDATED
    identity_id: str
    total_score: float
    point_delta: float
    action_kind: str
    tier: str
    component_scores: Dict[str, float] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class TierChanged(BusEvent):
    type: ClassVar[EventType] = EventType.TIER_CHANGED
    identity_id: str
    previous_tier: str
    new_tier: str
    total_score: float
    triggered_sequences: Tuple[str, ...] = ()
    personalization_updates: Tuple[str, ...] = ()
    occurred_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class AssessmentCompleted(BusEvent):
    type: ClassVar[EventType] = EventType.ASSESSMENT_COMPLETED
    identity_id: str
    tool_id: str
    score: float
    dimension_scores: Dict[str, float] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class SessionStarted(BusEvent):
    type: ClassVar[EventType] = EventType.SESSION_START
    session_id: str
    identity_id: Optional[str] = None
    device_type: str = ""
    source: str = ""
    medium: str = ""
    occurred_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class SessionActivity(BusEvent):
    type: ClassVar[EventType] = EventType.SESSION_ACTIVITY
    session_id: str
    identity_id: Optional[str] = None
    action_kind: str = ""
    duration_seconds: float = 0
    page_views: int = 0
    interactions: int = 0
    engagement_score: float = 0
    occurred_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class SessionHeartbeat(BusEvent):
    type: ClassVar[EventType] = EventType.SESSION_HEARTBEAT
    session_id: str
    identity_id: Optional[str] = None
    duration_seconds: float = 0
    idle_seconds: float = 0
    occurred_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class SessionEnded(BusEvent):
    type: ClassVar[EventType] = EventType.SESSION_END
    session_id: str
    identity_id: Optional[str] = None
    reason: str = ""
    duration_seconds: float = 0
    page_views: int = 0
    interactions: int = 0
    engagement_score: float = 0
    occurred_at: datetime = field(default_factory=datetime.now)
