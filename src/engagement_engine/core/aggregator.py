"""Lead score aggregation and tier progression."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ..cache.repository import CachedRepository
from ..errors import ScoreUpdateFailed
from ..storage import store as tables
from ..storage.models import LeadScore, ScoreEvent, TierProgressionEntry, TierTransition
from ..storage.store import Store
from .actions import ActionKind, ScoreDecay, get_action_spec
from .config import ScoringConfig
from .tiers import Tier, personalization_updates, sequences_for_transition, tier_for_score

logger = logging.getLogger(__name__)


@dataclass
class ScoreUpdate:
    """Outcome of applying one score event."""

    lead_score: LeadScore
    transition: Optional[TierTransition] = None
    event: Optional[ScoreEvent] = None

    @property
    def tier_changed(self) -> bool:
        return self.transition is not None


class ScoreAggregator:
    """Applies score events to lead scores and detects tier changes.

    Each event is a read-modify-write of one identity's LeadScore, serialized
    by a per-identity lock; different identities proceed concurrently. The
    store write happens first. The cache is only replaced once the write
    succeeded, so a failed update leaves both untouched.
    """

    def __init__(self, store: Store, repository: CachedRepository,
                 config: Optional[ScoringConfig] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.repository = repository
        self.config = config or ScoringConfig()
        self._clock = clock
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _identity_lock(self, identity_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(identity_id)
            if lock is None:
                lock = self._locks[identity_id] = threading.Lock()
            return lock

    def get_lead_score(self, identity_id: str) -> LeadScore:
        return self.repository.get_lead_score(identity_id)

    def apply_event(self, event: ScoreEvent) -> ScoreUpdate:
        """Add an event's delta to the identity's score and recompute its tier.

        Raises ScoreUpdateFailed when the store write fails; the cached score
        is left as it was and the caller may retry.
        """
        return self._apply(event.identity_id, lambda score: event)

    def _apply(self, identity_id: str,
               build_event: Callable[[LeadScore], Optional[ScoreEvent]]) -> Optional[ScoreUpdate]:
        """Read-modify-write under the identity lock.

        build_event sees the current score inside the lock and returns the
        event to apply, or None to leave the score alone.
        """
        with self._identity_lock(identity_id):
            now = self._clock()
            score = self.repository.get_lead_score(identity_id)
            event = build_event(score)
            if event is None:
                return None
            previous_tier = score.tier

            score.previous_score = score.total_score
            spec = get_action_spec(event.action_kind)
            if spec.component is not None:
                score.add_to_component(spec.component, event.point_delta)
            score.total_score += event.point_delta
            score.event_count += 1
            score.last_event_at = event.occurred_at
            score.updated_at = now

            transition = None
            new_tier = tier_for_score(score.total_score, self.config)
            if new_tier != previous_tier:
                transition = self._transition(score, previous_tier, new_tier, now)

            try:
                self.store.upsert(tables.LEAD_SCORES, identity_id, score.to_row())
            except Exception as e:
                logger.error(f"Failed to persist lead score for {identity_id}: {e}")
                raise ScoreUpdateFailed(identity_id, str(e)) from e

            self.repository.put_lead_score(score)
            self._append_event(event)
            if transition is not None:
                self._sync_user_tier(identity_id, new_tier, score.total_score)

        if transition is not None:
            logger.info(
                f"Tier change for {identity_id}: {transition.previous_tier.value} -> "
                f"{transition.new_tier.value} at {score.total_score:.1f}"
            )
        return ScoreUpdate(lead_score=score.copy(), transition=transition, event=event)

    def _transition(self, score: LeadScore, previous_tier: Tier, new_tier: Tier,
                    now: datetime) -> TierTransition:
        score.previous_tier = previous_tier
        score.tier = new_tier
        score.tier_changed_at = now
        score.tier_progression.append(TierProgressionEntry(
            tier=new_tier,
            score=score.total_score,
            timestamp=now,
            previous_tier=previous_tier,
        ))
        return TierTransition(
            identity_id=score.identity_id,
            previous_tier=previous_tier,
            new_tier=new_tier,
            total_score=score.total_score,
            triggered_sequences=sequences_for_transition(previous_tier, new_tier),
            personalization_updates=personalization_updates(new_tier, score.component_scores()),
            occurred_at=now,
        )

    def _append_event(self, event: ScoreEvent):
        # The live score is already durable; the event log is an audit trail
        try:
            self.store.upsert(tables.SCORE_EVENTS, event.event_id, event.to_row())
        except Exception as e:
            logger.error(f"Failed to append score event {event.event_id}: {e}")

    def _sync_user_tier(self, identity_id: str, tier: Tier, total_score: float):
        try:
            user = self.store.get(tables.USERS, identity_id)
            if user is not None:
                user["tier"] = tier.value
                user["lead_score"] = total_score
                self.store.upsert(tables.USERS, identity_id, user)
        except Exception as e:
            logger.error(f"Failed to update user tier for {identity_id}: {e}")
        finally:
            self.repository.invalidate_user(identity_id)

    # === Decay ===

    def apply_decay(self, identity_id: str, now: Optional[datetime] = None) -> Optional[ScoreUpdate]:
        """Decay an inactive identity's score by the configured rate.

        Applies only when the last event is older than decay_days; returns None
        otherwise. The decay itself counts as activity, so the next decay comes
        one period later.
        """
        now = now or self._clock()

        def decay_event(score: LeadScore) -> Optional[ScoreEvent]:
            if score.last_event_at is None or score.total_score <= 0:
                return None
            inactive = now - score.last_event_at
            if inactive < timedelta(days=self.config.decay_days):
                return None

            delta = -round(score.total_score * self.config.decay_rate, 2)
            payload = ScoreDecay(rate=self.config.decay_rate, inactive_days=inactive.days)
            logger.info(f"Decaying {identity_id} by {-delta} after {inactive.days} inactive days")
            return ScoreEvent(
                identity_id=identity_id,
                action_kind=ActionKind.SCORE_DECAY,
                point_delta=delta,
                occurred_at=now,
                metadata=payload.to_dict(),
            )

        return self._apply(identity_id, decay_event)

    def decay_all(self, now: Optional[datetime] = None) -> List[ScoreUpdate]:
        """Apply decay to every stored identity that qualifies."""
        updates = []
        for row in self.store.rows(tables.LEAD_SCORES):
            update = self.apply_decay(row["identity_id"], now=now)
            if update is not None:
                updates.append(update)
        return updates

    # === Reporting ===

    def distribution(self) -> Dict[str, Any]:
        """Tier counts and average score across stored lead scores."""
        rows = self.store.rows(tables.LEAD_SCORES)
        counts = {tier.value: 0 for tier in Tier}
        for row in rows:
            counts[row.get("tier", Tier.BROWSER.value)] += 1
        total = len(rows)
        return {
            "total_identities": total,
            "tiers": counts,
            "average_score": round(sum(r.get("total_score", 0) for r in rows) / total, 2) if total else 0,
        }
