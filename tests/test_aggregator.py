"""Tests for score aggregation and tier progression."""

import threading
import time
from datetime import datetime, timedelta

import pytest
from engagement_engine.cache import CachedRepository, ReadThroughCache
from engagement_engine.core.actions import ActionKind
from engagement_engine.core.aggregator import ScoreAggregator
from engagement_engine.core.config import ScoringConfig
from engagement_engine.core.tiers import Tier
from engagement_engine.errors import ScoreUpdateFailed
from engagement_engine.storage import InMemoryStore, ScoreEvent
from engagement_engine.storage import store as tables


class FailingStore(InMemoryStore):
    """Store whose lead score writes can be switched off."""

    def __init__(self):
        super().__init__()
        self.fail_writes = False

    def upsert(self, table, key, row):
        if self.fail_writes and table == tables.LEAD_SCORES:
            raise IOError("disk full")
        super().upsert(table, key, row)


def event(identity_id, delta, kind=ActionKind.CTA_CLICK, **kwargs):
    return ScoreEvent(identity_id=identity_id, action_kind=kind, point_delta=delta, **kwargs)


class TestScoreAggregator:
    """Tests for ScoreAggregator."""

    def setup_method(self):
        self.store = FailingStore()
        self.cache = ReadThroughCache()
        self.repository = CachedRepository(self.store, self.cache)
        self.aggregator = ScoreAggregator(self.store, self.repository)

    def test_worked_example(self):
        """+5, +3, +10 stays browser; a +54 tool completion jumps to soft-member."""
        for delta in (5, 3, 10):
            update = self.aggregator.apply_event(event("u1", delta))
            assert update.transition is None
        assert update.lead_score.total_score == 18
        assert update.lead_score.tier == Tier.BROWSER

        update = self.aggregator.apply_event(event("u1", 54, kind=ActionKind.TOOL_COMPLETE))
        assert update.lead_score.total_score == 72
        assert update.lead_score.tier == Tier.SOFT_MEMBER
        transition = update.transition
        assert transition.previous_tier == Tier.BROWSER
        assert transition.new_tier == Tier.SOFT_MEMBER
        assert transition.triggered_sequences == ["personalized_consultation_offer"]
        assert transition.is_upgrade

    def test_total_is_sum_of_deltas(self):
        deltas = [1, 4, 2.5, -1, 10]
        for delta in deltas:
            self.aggregator.apply_event(event("u1", delta))
        assert self.aggregator.get_lead_score("u1").total_score == pytest.approx(sum(deltas))

    def test_component_buckets(self):
        self.aggregator.apply_event(event("u1", 1, kind=ActionKind.PAGE_VIEW))
        self.aggregator.apply_event(event("u1", 5, kind=ActionKind.TOOL_COMPLETE))
        self.aggregator.apply_event(event("u1", 10, kind=ActionKind.WEBINAR_REGISTER))

        components = self.aggregator.get_lead_score("u1").component_scores()
        assert components["page_views_score"] == 1
        assert components["tool_usage_score"] == 5
        assert components["webinar_score"] == 10

    def test_transition_once_per_crossing(self):
        self.aggregator.apply_event(event("u1", 29))
        update = self.aggregator.apply_event(event("u1", 1))
        assert update.transition.new_tier == Tier.ENGAGED
        assert update.transition.triggered_sequences == [
            "engaged_visitor_welcome",
            "tool_user_series_14_day",
        ]
        assert self.aggregator.apply_event(event("u1", 5)).transition is None

        score = self.aggregator.get_lead_score("u1")
        assert len(score.tier_progression) == 1
        assert score.tier_changed_at is not None

    def test_downgrade_is_a_transition(self):
        self.aggregator.apply_event(event("u1", 35))
        update = self.aggregator.apply_event(event("u1", -10, kind=ActionKind.SCORE_DECAY))
        assert update.transition.previous_tier == Tier.ENGAGED
        assert update.transition.new_tier == Tier.BROWSER
        assert update.transition.triggered_sequences == []
        assert not update.transition.is_upgrade

    def test_write_through(self):
        self.aggregator.apply_event(event("u1", 12))
        row = self.store.get(tables.LEAD_SCORES, "u1")
        assert row["total_score"] == 12
        assert self.cache.peek("lead_score:u1").total_score == 12
        assert self.store.count(tables.SCORE_EVENTS) == 1

    def test_store_failure_leaves_cache_untouched(self):
        self.aggregator.apply_event(event("u1", 12))
        self.store.fail_writes = True

        with pytest.raises(ScoreUpdateFailed):
            self.aggregator.apply_event(event("u1", 50))
        assert self.aggregator.get_lead_score("u1").total_score == 12

        self.store.fail_writes = False
        self.aggregator.apply_event(event("u1", 50))
        assert self.aggregator.get_lead_score("u1").total_score == 62

    def test_tier_change_updates_user_row(self):
        self.store.upsert(tables.USERS, "u1", {"identity_id": "u1", "tier": "browser"})
        assert self.repository.get_user("u1")["tier"] == "browser"

        self.aggregator.apply_event(event("u1", 30))
        assert self.store.get(tables.USERS, "u1")["tier"] == "engaged"
        assert self.repository.get_user("u1")["tier"] == "engaged"

    def test_concurrent_events_are_serialized(self):
        threads = [
            threading.Thread(target=lambda: [self.aggregator.apply_event(event("u1", 1)) for _ in range(25)])
            for _ in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        score = self.aggregator.get_lead_score("u1")
        assert score.total_score == 200
        assert score.event_count == 200
        # Crossing each threshold exactly once
        assert [entry.tier for entry in score.tier_progression] == [Tier.ENGAGED, Tier.SOFT_MEMBER]

    def test_distribution(self):
        self.aggregator.apply_event(event("a", 10))
        self.aggregator.apply_event(event("b", 40))
        self.aggregator.apply_event(event("c", 80))
        dist = self.aggregator.distribution()
        assert dist["total_identities"] == 3
        assert dist["tiers"] == {"browser": 1, "engaged": 1, "soft-member": 1}
        assert dist["average_score"] == pytest.approx(43.33)


class TestScoreDecay:
    """Tests for inactivity decay."""

    def setup_method(self):
        self.store = InMemoryStore()
        self.repository = CachedRepository(self.store, ReadThroughCache())
        self.aggregator = ScoreAggregator(
            self.store, self.repository, ScoringConfig(decay_days=30, decay_rate=0.1)
        )

    def test_recent_activity_is_not_decayed(self):
        start = datetime(2026, 1, 1)
        self.aggregator.apply_event(event("u1", 50, occurred_at=start))
        assert self.aggregator.apply_decay("u1", now=start + timedelta(days=10)) is None

    def test_inactive_score_decays(self):
        start = datetime(2026, 1, 1)
        self.aggregator.apply_event(event("u1", 50, occurred_at=start))

        update = self.aggregator.apply_decay("u1", now=start + timedelta(days=31))
        assert update.event.action_kind == ActionKind.SCORE_DECAY
        assert update.event.point_delta == -5
        assert update.lead_score.total_score == 45

        # The decay resets the inactivity window
        assert self.aggregator.apply_decay("u1", now=start + timedelta(days=32)) is None

    def test_decay_all(self):
        start = datetime(2026, 1, 1)
        self.aggregator.apply_event(event("old", 40, occurred_at=start))
        self.aggregator.apply_event(event("new", 40, occurred_at=start + timedelta(days=25)))
        updates = self.aggregator.decay_all(now=start + timedelta(days=40))
        assert [u.lead_score.identity_id for u in updates] == ["old"]


class PausingStore(InMemoryStore):
    """Store that holds a named reader thread right after it reads a lead score row."""

    def __init__(self, reader_name):
        super().__init__()
        self.reader_name = reader_name
        self.fetched = threading.Event()
        self.release = threading.Event()

    def get(self, table, key):
        row = super().get(table, key)
        if table == tables.LEAD_SCORES and threading.current_thread().name == self.reader_name:
            self.fetched.set()
            self.release.wait(5)
        return row


class TestConcurrentReads:
    """Reads racing with score updates."""

    def test_slow_reader_does_not_resurrect_old_score(self):
        store = PausingStore("slow-reader")
        repository = CachedRepository(store, ReadThroughCache())
        aggregator = ScoreAggregator(store, repository)

        reader = threading.Thread(target=lambda: aggregator.get_lead_score("u1"), name="slow-reader")
        reader.start()
        assert store.fetched.wait(5)

        aggregator.apply_event(event("u1", 5))
        store.release.set()
        reader.join(5)

        aggregator.apply_event(event("u1", 3))
        assert aggregator.get_lead_score("u1").total_score == 8
        assert store.get(tables.LEAD_SCORES, "u1")["total_score"] == 8

    def test_decay_reads_score_inside_identity_lock(self):
        start = datetime(2026, 1, 1)
        store = InMemoryStore()
        repository = CachedRepository(store, ReadThroughCache())
        aggregator = ScoreAggregator(store, repository, ScoringConfig(decay_days=30, decay_rate=0.1))
        aggregator.apply_event(event("u1", 50, occurred_at=start))

        results = []
        lock = aggregator._identity_lock("u1")
        with lock:
            decay = threading.Thread(
                target=lambda: results.append(aggregator.apply_decay("u1", now=start + timedelta(days=31)))
            )
            decay.start()
            time.sleep(0.05)
            # Raise the score while the decay waits for the lock
            raised = repository.get_lead_score("u1")
            raised.total_score = 100
            repository.put_lead_score(raised)
        decay.join(5)

        assert results[0].event.point_delta == -10
        assert results[0].lead_score.total_score == 90
