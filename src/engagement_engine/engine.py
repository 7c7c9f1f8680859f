"""Engagement engine: wires tracking, scoring, caching and notifications together."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .cache.cache import ReadThroughCache
from .cache.repository import CachedRepository
from .core.actions import ActionData, ActionKind, TimeOnSite, action_points, parse_action
from .core.aggregator import ScoreAggregator, ScoreUpdate
from .core.config import EngineConfig
from .core.rules import Instrument, score_instrument
from .errors import InvalidScoringRule, ScoreUpdateFailed, SessionNotFound
from .notifications.bus import NotificationBus
from .notifications.events import AssessmentCompleted, ScoreUpdated, TierChanged
from .notifications.sequences import RecordingSequenceTrigger, SequenceTrigger
from .notifications.transport import Transport
from .storage import store as tables
from .storage.models import AssessmentResult, LeadScore, ScoreEvent, SessionSummary, TierTransition
from .storage.store import InMemoryStore, Store
from .tracking.attribution import AttributionManager
from .tracking.sessions import SessionTracker

logger = logging.getLogger(__name__)


@dataclass
class AssessmentSubmission:
    """A scored assessment and the lead score update it caused."""

    result: AssessmentResult
    update: ScoreUpdate


class EngagementEngine:
    """Owns one set of engine services with an explicit start/shutdown lifecycle.

    Usage:
        engine = EngagementEngine(store=SQLiteStore())
        engine.start()
        session_id = engine.tracker.start_session("user-1")
        engine.track_action("user-1", "cta_click", {"cta_id": "hero"}, session_id=session_id)
        engine.shutdown()
    """

    def __init__(
        self,
        store: Optional[Store] = None,
        config: Optional[EngineConfig] = None,
        sequence_trigger: Optional[SequenceTrigger] = None,
        transport: Optional[Transport] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config or EngineConfig()
        self.store = store if store is not None else InMemoryStore()
        self._clock = clock

        self.cache = ReadThroughCache(self.config.cache)
        self.repository = CachedRepository(self.store, self.cache)
        self.bus = NotificationBus(transport, self.config.bus, clock=clock)
        self.aggregator = ScoreAggregator(self.store, self.repository, self.config.scoring, clock=clock)
        self.attribution = AttributionManager(self.store)
        self.tracker = SessionTracker(
            store=self.store,
            bus=self.bus,
            config=self.config.sessions,
            attribution=self.attribution,
            point_overrides=self.config.scoring.action_point_overrides,
            clock=clock,
        )
        self.tracker.set_end_handler(self._on_session_end)
        self.sequence_trigger = sequence_trigger or RecordingSequenceTrigger()
        self.instruments: Dict[str, Instrument] = {}

        self.bus.register_command("refresh_score", self._refresh_score)

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # === Lifecycle ===

    def start(self):
        """Start the session heartbeat and the maintenance loop."""
        self.tracker.start()
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run_loop, name="engine-maintenance", daemon=True)
        self._thread.start()
        logger.info("Engagement engine started")

    def shutdown(self):
        """End open sessions and stop background work."""
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        self.tracker.shutdown()
        self.cache.shutdown()
        logger.info("Engagement engine stopped")

    def _run_loop(self):
        while not self._stop.wait(self.config.cache.sweep_interval_seconds):
            try:
                self.run_maintenance()
            except Exception:
                logger.exception("Engine maintenance failed")

    def run_maintenance(self) -> Dict[str, int]:
        """Sweep the cache, drop idle subscriptions and decay inactive scores."""
        results = {
            "cache_swept": self.cache.sweep(),
            "subscriptions_removed": self.bus.cleanup_idle(),
            "scores_decayed": 0,
        }
        if self.config.scoring.enable_score_decay:
            for update in self.aggregator.decay_all(now=self._clock()):
                self._publish_update(update)
                results["scores_decayed"] += 1
        return results

    # === Scoring ===

    def track_action(
        self,
        identity_id: Optional[str],
        kind: Union[ActionKind, str],
        data: Union[ActionData, Dict[str, Any], None] = None,
        session_id: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
    ) -> Optional[ScoreUpdate]:
        """Record an action on its session and score it for the identity.

        An unseen session token opens a new session. Anonymous actions only
        count toward the session and return None.
        """
        payload = data if isinstance(data, ActionData) else parse_action(kind, data)

        if session_id is not None:
            try:
                if self.tracker.get_session(session_id) is None and not self.tracker.is_ended(session_id):
                    self.tracker.start_session(identity_id, session_id=session_id)
                self.tracker.record_activity(session_id, payload.kind, payload)
            except SessionNotFound as e:
                logger.warning(f"Action {payload.kind.value} on ended session: {e}")

        if identity_id is None:
            return None

        event = ScoreEvent(
            identity_id=identity_id,
            action_kind=payload.kind,
            point_delta=action_points(payload.kind, self.config.scoring.action_point_overrides),
            occurred_at=occurred_at or self._clock(),
            metadata=payload.to_dict(),
        )
        return self.apply_score_event(event)

    def apply_score_event(self, event: ScoreEvent) -> ScoreUpdate:
        """Apply a score event and notify subscribers. Store failures propagate."""
        update = self.aggregator.apply_event(event)
        self._publish_update(update)
        return update

    def _publish_update(self, update: ScoreUpdate):
        score = update.lead_score
        event = update.event
        self.bus.publish(score.identity_id, ScoreUpdated(
            identity_id=score.identity_id,
            total_score=score.total_score,
            point_delta=event.point_delta if event else 0,
            action_kind=event.action_kind.value if event else "",
            tier=score.tier.value,
            component_scores=score.component_scores(),
        ))
        if update.transition is not None:
            self._handle_transition(update.transition)

    def _handle_transition(self, transition: TierTransition):
        self.bus.publish(transition.identity_id, TierChanged(
            identity_id=transition.identity_id,
            previous_tier=transition.previous_tier.value,
            new_tier=transition.new_tier.value,
            total_score=transition.total_score,
            triggered_sequences=tuple(transition.triggered_sequences),
            personalization_updates=tuple(transition.personalization_updates),
            occurred_at=transition.occurred_at,
        ))

        for sequence_type in transition.triggered_sequences:
            try:
                self.sequence_trigger.trigger(
                    transition.identity_id,
                    sequence_type,
                    transition.previous_tier.value,
                    transition.new_tier.value,
                    transition.total_score,
                )
            except Exception as e:
                logger.error(f"Failed to trigger {sequence_type} for {transition.identity_id}: {e}")

    def get_lead_score(self, identity_id: str) -> LeadScore:
        return self.aggregator.get_lead_score(identity_id)

    # === Assessments ===

    def register_instrument(self, instrument: Instrument):
        """Register an assessment tool's scoring instrument."""
        instrument.validate()
        self.instruments[instrument.id] = instrument

    def submit_assessment(
        self,
        identity_id: str,
        tool_id: str,
        responses: Mapping[str, Any],
        session_id: Optional[str] = None,
    ) -> AssessmentSubmission:
        """Score a completed assessment, store the result and credit the tool completion."""
        instrument = self.instruments.get(tool_id)
        if instrument is None:
            raise InvalidScoringRule(f"No scoring instrument registered for {tool_id}")

        scored = score_instrument(instrument, responses)
        result = AssessmentResult(
            identity_id=identity_id,
            tool_id=tool_id,
            score=scored.score,
            question_points=scored.question_points,
            dimension_scores=scored.dimension_scores,
            completed_at=self._clock(),
        )
        try:
            self.repository.save_assessment_result(result)
        except Exception as e:
            raise ScoreUpdateFailed(identity_id, f"Failed to store {tool_id} result: {e}") from e

        self.bus.publish(identity_id, AssessmentCompleted(
            identity_id=identity_id,
            tool_id=tool_id,
            score=result.score,
            dimension_scores=result.dimension_scores,
        ))
        logger.info(f"Assessment {tool_id} completed by {identity_id}: {result.score}")

        update = self.track_action(
            identity_id,
            ActionKind.TOOL_COMPLETE,
            {"tool_id": tool_id, "score": result.score},
            session_id=session_id,
        )
        return AssessmentSubmission(result=result, update=update)

    def get_assessment_result(self, identity_id: str, tool_id: str) -> Optional[AssessmentResult]:
        return self.repository.get_assessment_result(identity_id, tool_id)

    # === Users ===

    def upsert_user(self, identity_id: str, profile: Dict[str, Any]):
        """Write a user profile row and drop its cached copy."""
        self.store.upsert(tables.USERS, identity_id, dict(profile, identity_id=identity_id))
        self.repository.invalidate_user(identity_id)

    def get_user(self, identity_id: str) -> Optional[Dict[str, Any]]:
        return self.repository.get_user(identity_id)

    # === Handlers ===

    def _on_session_end(self, summary: SessionSummary):
        """Credit time on site when an identity-bound session ends."""
        scoring = self.config.scoring
        minutes = summary.duration_seconds / 60
        points = round(min(minutes * scoring.time_on_site_points_per_minute, scoring.time_on_site_max_points), 2)
        if points <= 0:
            return

        payload = TimeOnSite(session_id=summary.session_id, seconds=summary.duration_seconds)
        self.apply_score_event(ScoreEvent(
            identity_id=summary.identity_id,
            action_kind=ActionKind.TIME_ON_SITE,
            point_delta=points,
            occurred_at=summary.ended_at,
            metadata=payload.to_dict(),
        ))

    def _refresh_score(self, identity_id: str, payload: Dict[str, Any]) -> LeadScore:
        """Drop cached state for an identity and re-publish its score."""
        self.repository.invalidate_identity(identity_id)
        score = self.get_lead_score(identity_id)
        self.bus.publish(identity_id, ScoreUpdated(
            identity_id=identity_id,
            total_score=score.total_score,
            point_delta=0,
            action_kind="refresh",
            tier=score.tier.value,
            component_scores=score.component_scores(),
        ))
        return score

    def stats(self) -> Dict[str, Any]:
        return {
            "sessions": self.tracker.statistics(),
            "cache": self.cache.stats().to_dict(),
            "bus": self.bus.stats(),
            "tiers": self.aggregator.distribution(),
        }
