"""Visitor session lifecycle: start, activity, heartbeat, idle timeout and end."""

import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from ..core.actions import ActionData, ActionKind, action_points, parse_action
from ..core.config import SessionConfig
from ..errors import SessionNotFound
from ..notifications.bus import NotificationBus
from ..notifications.events import (
    BusEvent,
    SessionActivity,
    SessionEnded,
    SessionHeartbeat,
    SessionStarted,
)
from ..storage import store as tables
from ..storage.models import SessionSummary
from ..storage.store import Store
from .attribution import Attribution, AttributionManager
from .devices import DeviceInfo, parse_user_agent

logger = logging.getLogger(__name__)


class EndReason(Enum):
    """Why a session ended."""

    TIMEOUT = "timeout"
    EXPLICIT = "explicit"
    UNLOAD = "unload"


@dataclass
class Session:
    """An open visitor session."""

    id: str
    identity_id: Optional[str]
    started_at: datetime
    last_activity_at: datetime
    idle_deadline: datetime
    device: DeviceInfo = field(default_factory=DeviceInfo)
    attribution: Attribution = field(default_factory=Attribution)
    page_view_count: int = 0
    interaction_count: int = 0
    running_engagement_score: float = 0
    is_active: bool = True
    last_action: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        return (self.last_activity_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "identity_id": self.identity_id,
            "started_at": self.started_at.isoformat(),
            "last_activity_at": self.last_activity_at.isoformat(),
            "page_view_count": self.page_view_count,
            "interaction_count": self.interaction_count,
            "running_engagement_score": self.running_engagement_score,
            "is_active": self.is_active,
            "duration_seconds": self.duration_seconds,
            "device": self.device.to_dict(),
            "attribution": self.attribution.to_row(),
        }


SessionEndHandler = Callable[[SessionSummary], None]


class SessionTracker:
    """Owns open sessions and their idle timers.

    Idle timeouts are driven by a heartbeat thread rather than one timer per
    session: every tick ends sessions whose idle deadline has passed and
    emits a heartbeat for the rest. `tick()` runs one pass on demand.

    Ended session ids are remembered (bounded) so a late activity can not
    resurrect a session.
    """

    def __init__(
        self,
        store: Optional[Store] = None,
        bus: Optional[NotificationBus] = None,
        config: Optional[SessionConfig] = None,
        attribution: Optional[AttributionManager] = None,
        point_overrides: Optional[Dict[str, float]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.bus = bus
        self.config = config or SessionConfig()
        self.attribution = attribution
        self.point_overrides = point_overrides or {}
        self._clock = clock

        self._sessions: Dict[str, Session] = {}
        self._ended: "OrderedDict[str, SessionSummary]" = OrderedDict()
        self._lock = threading.Lock()
        self._end_handler: Optional[SessionEndHandler] = None

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def set_end_handler(self, handler: Optional[SessionEndHandler]):
        """Handler called with the summary of every identity-bound session that ends."""
        self._end_handler = handler

    @property
    def _idle_timeout(self) -> timedelta:
        return timedelta(seconds=self.config.idle_timeout_seconds)

    # === Lifecycle ===

    def start_session(
        self,
        identity_id: Optional[str] = None,
        *,
        session_id: Optional[str] = None,
        user_agent: str = "",
        attribution: Optional[Attribution] = None,
    ) -> str:
        """Open a session and return its id.

        A caller-supplied token that is already open is returned unchanged.
        Reusing the token of an ended session raises SessionNotFound.
        """
        now = self._clock()
        with self._lock:
            if session_id is not None:
                if session_id in self._sessions:
                    return session_id
                if session_id in self._ended:
                    raise SessionNotFound(session_id)
            else:
                session_id = f"session_{uuid.uuid4().hex}"

            session = Session(
                id=session_id,
                identity_id=identity_id,
                started_at=now,
                last_activity_at=now,
                idle_deadline=now + self._idle_timeout,
                device=parse_user_agent(user_agent),
                attribution=attribution or Attribution(captured_at=now),
            )
            self._sessions[session_id] = session

        captured = self._capture_attribution(identity_id or session_id, session.attribution)
        with self._lock:
            session.attribution = captured

        logger.info(f"Session started: {session_id} ({session.device.device_type}, {session.attribution.source})")
        self._emit(session, SessionStarted(
            session_id=session_id,
            identity_id=identity_id,
            device_type=session.device.device_type,
            source=session.attribution.source,
            medium=session.attribution.medium,
            occurred_at=now,
        ))
        return session_id

    def _capture_attribution(self, visitor_key: str, attribution: Attribution) -> Attribution:
        if self.attribution is None:
            return attribution
        try:
            return self.attribution.capture(visitor_key, attribution)
        except Exception as e:
            logger.error(f"Failed to capture attribution for {visitor_key}: {e}")
            return attribution

    def record_activity(
        self,
        session_id: str,
        kind: Union[ActionKind, str],
        data: Union[ActionData, Dict[str, Any], None] = None,
    ) -> Session:
        """Count an action against a session and re-arm its idle timer.

        Raises SessionNotFound for unknown or ended sessions and ValueError
        for unknown action kinds or payload fields.
        """
        if not isinstance(data, ActionData):
            data = parse_action(kind, data)
        kind = data.kind
        points = action_points(kind, self.point_overrides)

        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)

            if kind == ActionKind.PAGE_VIEW:
                session.page_view_count += 1
            else:
                session.interaction_count += 1
            session.running_engagement_score += points
            session.last_activity_at = max(now, session.started_at)
            session.idle_deadline = session.last_activity_at + self._idle_timeout
            session.last_action = kind.value
            snapshot = replace(session)

        self._emit(snapshot, SessionActivity(
            session_id=session_id,
            identity_id=snapshot.identity_id,
            action_kind=kind.value,
            duration_seconds=snapshot.duration_seconds,
            page_views=snapshot.page_view_count,
            interactions=snapshot.interaction_count,
            engagement_score=snapshot.running_engagement_score,
            occurred_at=now,
        ))
        return snapshot

    def identify(self, session_id: str, identity_id: str) -> Session:
        """Bind an anonymous session to an identity. Attribution is kept as captured."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            session.identity_id = identity_id
            snapshot = replace(session)

        self._capture_attribution(identity_id, snapshot.attribution)
        logger.info(f"Session {session_id} identified as {identity_id}")
        return snapshot

    def end_session(self, session_id: str, reason: Union[EndReason, str] = EndReason.EXPLICIT,
                    now: Optional[datetime] = None) -> Optional[SessionSummary]:
        """End a session. Unknown or already ended sessions are a no-op returning None."""
        reason = EndReason(reason)
        now = now or self._clock()

        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            # Activity may have re-armed the timer since the heartbeat looked
            if reason == EndReason.TIMEOUT and session.idle_deadline > now:
                return None
            del self._sessions[session_id]
            session.is_active = False
            summary = self._summarize(session, reason, now)
            self._ended[session_id] = summary
            while len(self._ended) > self.config.ended_history_size:
                self._ended.popitem(last=False)

        logger.info(
            f"Session ended: {session_id} ({reason.value}, {summary.duration_seconds:.0f}s, "
            f"{summary.page_views} views, {summary.interactions} interactions)"
        )
        self._emit(session, SessionEnded(
            session_id=session_id,
            identity_id=session.identity_id,
            reason=reason.value,
            duration_seconds=summary.duration_seconds,
            page_views=summary.page_views,
            interactions=summary.interactions,
            engagement_score=summary.engagement_score,
            occurred_at=now,
        ))
        if self.bus is not None:
            self.bus.drop_owner(session_id, scope="session")

        if self.store is not None:
            try:
                self.store.upsert(tables.SESSION_SUMMARIES, session_id, summary.to_row())
            except Exception as e:
                logger.error(f"Failed to persist summary for session {session_id}: {e}")

        if session.identity_id and self._end_handler is not None:
            try:
                self._end_handler(summary)
            except Exception:
                logger.exception(f"Session end handler failed for {session_id}")

        return summary

    def _summarize(self, session: Session, reason: EndReason, now: datetime) -> SessionSummary:
        # A timed-out visitor left at their last action, not when the timer fired
        ended_at = session.last_activity_at if reason == EndReason.TIMEOUT else max(now, session.last_activity_at)
        return SessionSummary(
            session_id=session.id,
            identity_id=session.identity_id,
            started_at=session.started_at,
            ended_at=ended_at,
            end_reason=reason.value,
            duration_seconds=(ended_at - session.started_at).total_seconds(),
            page_views=session.page_view_count,
            interactions=session.interaction_count,
            engagement_score=session.running_engagement_score,
            device_type=session.device.device_type,
            source=session.attribution.source,
            medium=session.attribution.medium,
            campaign=session.attribution.campaign,
        )

    def _emit(self, session: Session, event: BusEvent):
        if self.bus is None:
            return
        try:
            self.bus.publish(session.id, event, scope="session")
            if session.identity_id:
                self.bus.publish(session.identity_id, event)
        except Exception:
            logger.exception(f"Failed to publish {event.type.value} for session {session.id}")

    # === Heartbeat ===

    def tick(self, now: Optional[datetime] = None) -> List[str]:
        """Run one heartbeat pass. Returns the ids of sessions that timed out."""
        now = now or self._clock()
        with self._lock:
            expired = [s.id for s in self._sessions.values() if s.idle_deadline <= now]
            live = [replace(s) for s in self._sessions.values() if s.idle_deadline > now]

        timed_out = []
        for session_id in expired:
            if self.end_session(session_id, EndReason.TIMEOUT, now=now) is not None:
                timed_out.append(session_id)

        for session in live:
            self._emit(session, SessionHeartbeat(
                session_id=session.id,
                identity_id=session.identity_id,
                duration_seconds=(now - session.started_at).total_seconds(),
                idle_seconds=(now - session.last_activity_at).total_seconds(),
                occurred_at=now,
            ))

        if timed_out:
            logger.info(f"Timed out {len(timed_out)} idle sessions")
        return timed_out

    def start(self):
        """Start the heartbeat background thread."""
        if self._thread and self._thread.is_alive():
            return

        self._stop.clear()
        self._thread = threading.Thread(target=self._run_loop, name="session-heartbeat", daemon=True)
        self._thread.start()
        logger.info("Session heartbeat started")

    def _run_loop(self):
        """Heartbeat loop. A failed tick is logged and retried on the next one."""
        while not self._stop.wait(self.config.heartbeat_interval_seconds):
            try:
                self.tick()
            except Exception:
                logger.exception("Session heartbeat tick failed")

    def shutdown(self):
        """Stop the heartbeat and end every open session."""
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

        for session_id in list(self._sessions):
            self.end_session(session_id, EndReason.EXPLICIT)
        logger.info("Session tracker shut down")

    # === Queries ===

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(session_id)
            return replace(session) if session else None

    def is_ended(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._ended

    def get_summary(self, session_id: str) -> Optional[SessionSummary]:
        with self._lock:
            return self._ended.get(session_id)

    def active_sessions(self) -> List[Session]:
        with self._lock:
            return [replace(s) for s in self._sessions.values()]

    def _all_summaries(self) -> List[SessionSummary]:
        now = self._clock()
        with self._lock:
            open_sessions = list(self._sessions.values())
            ended = list(self._ended.values())
        return ended + [self._summarize(s, EndReason.EXPLICIT, now) for s in open_sessions]

    def statistics(self) -> Dict[str, Any]:
        """Session totals across open and recently ended sessions."""
        summaries = self._all_summaries()
        total = len(summaries)
        with self._lock:
            active = len(self._sessions)
        return {
            "total_sessions": total,
            "active_sessions": active,
            "average_duration": sum(s.duration_seconds for s in summaries) / total if total else 0,
            "total_page_views": sum(s.page_views for s in summaries),
            "total_interactions": sum(s.interactions for s in summaries),
        }

    def analytics(self) -> Dict[str, Any]:
        """Bounce and conversion rates with device and source breakdowns."""
        summaries = self._all_summaries()
        total = len(summaries)
        if not total:
            return {
                "total_sessions": 0,
                "average_duration": 0,
                "bounce_rate": 0,
                "conversion_rate": 0,
                "device_breakdown": {},
                "traffic_sources": {},
            }

        device_breakdown: Dict[str, int] = {}
        traffic_sources: Dict[str, int] = {}
        for summary in summaries:
            device_breakdown[summary.device_type] = device_breakdown.get(summary.device_type, 0) + 1
            traffic_sources[summary.source] = traffic_sources.get(summary.source, 0) + 1

        bounces = sum(1 for s in summaries if s.is_bounce)
        # More than five interactions counts as a converted session
        conversions = sum(1 for s in summaries if s.interactions > 5)
        return {
            "total_sessions": total,
            "average_duration": sum(s.duration_seconds for s in summaries) / total,
            "bounce_rate": bounces / total * 100,
            "conversion_rate": conversions / total * 100,
            "device_breakdown": device_breakdown,
            "traffic_sources": traffic_sources,
        }
