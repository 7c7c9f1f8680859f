"""Tests for session tracking."""

from datetime import datetime, timedelta

import pytest
from engagement_engine.core.config import SessionConfig
from engagement_engine.errors import SessionNotFound
from engagement_engine.notifications import EventType, NotificationBus
from engagement_engine.storage import InMemoryStore
from engagement_engine.storage import store as tables
from engagement_engine.tracking import (
    Attribution,
    AttributionManager,
    EndReason,
    SessionTracker,
    parse_medium,
    parse_source,
    parse_user_agent,
)

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
WINDOWS_CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)


class FakeClock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 5, 4, 9, 0))


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def bus(clock):
    return NotificationBus(clock=clock)


@pytest.fixture
def tracker(store, bus, clock):
    return SessionTracker(
        store=store,
        bus=bus,
        config=SessionConfig(idle_timeout_seconds=30 * 60),
        attribution=AttributionManager(store),
        clock=clock,
    )


class TestSessionLifecycle:
    """Tests for start, activity and end."""

    def test_start_session_generates_id(self, tracker):
        first = tracker.start_session()
        second = tracker.start_session()
        assert first.startswith("session_")
        assert first != second
        assert tracker.get_session(first).is_active

    def test_start_session_with_token(self, tracker):
        assert tracker.start_session(session_id="tok-1") == "tok-1"
        assert tracker.start_session(session_id="tok-1") == "tok-1"
        assert len(tracker.active_sessions()) == 1

    def test_start_emits_event(self, tracker, bus):
        events = []
        bus.subscribe("u1", callback=events.append)
        tracker.start_session("u1", user_agent=IPHONE_UA)
        assert events[0].type == EventType.SESSION_START
        assert events[0].device_type == "mobile"

    def test_record_activity_counts(self, tracker, clock):
        session_id = tracker.start_session()
        clock.advance(minutes=2)
        tracker.record_activity(session_id, "page_view", {"path": "/"})
        clock.advance(minutes=1)
        session = tracker.record_activity(session_id, "cta_click", {"cta_id": "hero"})

        assert session.page_view_count == 1
        assert session.interaction_count == 1
        assert session.running_engagement_score == 4
        assert session.duration_seconds == 180
        assert session.last_activity_at >= session.started_at

    def test_activity_event_carries_counts(self, tracker, bus):
        session_id = tracker.start_session()
        events = []
        bus.subscribe(session_id, event_filter=[EventType.SESSION_ACTIVITY], callback=events.append, scope="session")
        tracker.record_activity(session_id, "tool_start", {"tool_id": "success-gap"})
        assert events[0].action_kind == "tool_start"
        assert events[0].interactions == 1

    def test_activity_on_unknown_session(self, tracker):
        with pytest.raises(SessionNotFound):
            tracker.record_activity("nope", "page_view")

    def test_activity_with_bad_payload(self, tracker):
        session_id = tracker.start_session()
        with pytest.raises(ValueError):
            tracker.record_activity(session_id, "page_view", {"unknown": 1})

    def test_end_session_is_idempotent(self, tracker, store):
        session_id = tracker.start_session("u1")
        tracker.record_activity(session_id, "page_view")
        summary = tracker.end_session(session_id, "explicit")

        assert summary.end_reason == "explicit"
        assert summary.page_views == 1
        assert summary.is_bounce
        assert store.get(tables.SESSION_SUMMARIES, session_id)["identity_id"] == "u1"
        assert tracker.end_session(session_id, EndReason.UNLOAD) is None
        assert tracker.get_session(session_id) is None

    def test_ended_session_is_not_resurrected(self, tracker):
        session_id = tracker.start_session()
        tracker.end_session(session_id)
        with pytest.raises(SessionNotFound):
            tracker.record_activity(session_id, "page_view")
        with pytest.raises(SessionNotFound):
            tracker.start_session(session_id=session_id)

    def test_end_handler_for_identity_bound_sessions(self, tracker):
        summaries = []
        tracker.set_end_handler(summaries.append)
        anonymous = tracker.start_session()
        known = tracker.start_session("u1")
        tracker.end_session(anonymous)
        tracker.end_session(known)
        assert [s.session_id for s in summaries] == [known]

    def test_end_handler_errors_are_swallowed(self, tracker):
        def broken(summary):
            raise RuntimeError("aggregator down")

        tracker.set_end_handler(broken)
        session_id = tracker.start_session("u1")
        assert tracker.end_session(session_id) is not None

    def test_summary_persistence_failure_is_swallowed(self, bus, clock):
        class BrokenStore(InMemoryStore):
            def upsert(self, table, key, row):
                raise IOError("read only")

        tracker = SessionTracker(store=BrokenStore(), bus=bus, clock=clock)
        session_id = tracker.start_session()
        assert tracker.end_session(session_id) is not None

    def test_identify(self, tracker, store):
        session_id = tracker.start_session(attribution=Attribution(source="google", medium="organic"))
        session = tracker.identify(session_id, "u9")
        assert session.identity_id == "u9"
        assert session.attribution.source == "google"
        assert store.get(tables.ATTRIBUTION, "u9")["source"] == "google"


class TestIdleTimeout:
    """Tests for heartbeat-driven idle timeout."""

    def test_timeout_ends_exactly_once(self, tracker, bus, clock):
        session_id = tracker.start_session("u1")
        ended = []
        bus.subscribe("u1", event_filter=[EventType.SESSION_END], callback=ended.append)

        clock.advance(minutes=29)
        assert tracker.tick() == []
        clock.advance(minutes=2)
        assert tracker.tick() == [session_id]
        assert tracker.tick() == []
        assert tracker.end_session(session_id) is None

        assert len(ended) == 1
        assert ended[0].reason == "timeout"

    def test_activity_rearms_timer(self, tracker, clock):
        session_id = tracker.start_session()
        clock.advance(minutes=20)
        tracker.record_activity(session_id, "page_view")
        clock.advance(minutes=20)
        assert tracker.tick() == []
        clock.advance(minutes=11)
        assert tracker.tick() == [session_id]

    def test_timeout_duration_stops_at_last_activity(self, tracker, clock):
        session_id = tracker.start_session()
        clock.advance(minutes=5)
        tracker.record_activity(session_id, "page_view")
        clock.advance(minutes=40)
        tracker.tick()
        assert tracker.get_summary(session_id).duration_seconds == 300

    def test_heartbeat_for_open_sessions(self, tracker, bus, clock):
        session_id = tracker.start_session()
        beats = []
        bus.subscribe(session_id, event_filter=[EventType.SESSION_HEARTBEAT], callback=beats.append, scope="session")
        clock.advance(minutes=3)
        tracker.tick()
        assert beats[0].duration_seconds == 180
        assert beats[0].idle_seconds == 180

    def test_shutdown_ends_open_sessions(self, tracker):
        tracker.start()
        session_id = tracker.start_session()
        tracker.shutdown()
        assert tracker.get_summary(session_id).end_reason == "explicit"
        assert tracker.active_sessions() == []


class TestAnalytics:
    """Tests for session statistics."""

    def test_statistics_and_analytics(self, tracker):
        bounced = tracker.start_session(user_agent=IPHONE_UA)
        tracker.record_activity(bounced, "page_view")
        engaged = tracker.start_session(user_agent=WINDOWS_CHROME_UA)
        for _ in range(3):
            tracker.record_activity(engaged, "page_view")
        for _ in range(6):
            tracker.record_activity(engaged, "cta_click")
        tracker.end_session(bounced)

        stats = tracker.statistics()
        assert stats["total_sessions"] == 2
        assert stats["active_sessions"] == 1
        assert stats["total_page_views"] == 4
        assert stats["total_interactions"] == 6

        analytics = tracker.analytics()
        assert analytics["bounce_rate"] == 50
        assert analytics["conversion_rate"] == 50
        assert analytics["device_breakdown"] == {"mobile": 1, "desktop": 1}

    def test_empty_analytics(self, tracker):
        assert tracker.analytics()["bounce_rate"] == 0


class TestAttributionAndDevices:
    """Tests for referrer parsing, attribution and user agents."""

    def test_parse_source_and_medium(self):
        assert parse_source("") == "direct"
        assert parse_source("https://www.google.com/search?q=x") == "google"
        assert parse_medium("https://www.google.com/") == "organic"
        assert parse_medium("https://l.facebook.com/") == "social"
        assert parse_medium("https://someblog.net/post") == "referral"

    def test_utm_wins_over_referrer(self):
        attribution = Attribution.from_request(
            referrer="https://www.google.com/",
            utm={"utm_source": "newsletter", "utm_medium": "email", "utm_campaign": "spring"},
        )
        assert attribution.source == "newsletter"
        assert attribution.medium == "email"
        assert attribution.campaign == "spring"

    def test_attribution_is_write_once(self, store):
        manager = AttributionManager(store)
        first = manager.capture("u1", Attribution(source="google", medium="organic"))
        second = manager.capture("u1", Attribution(source="facebook", medium="social"))
        assert first.source == "google"
        assert second.source == "google"

    def test_parse_user_agent(self):
        iphone = parse_user_agent(IPHONE_UA)
        assert iphone.device_type == "mobile"
        assert iphone.os == "iOS"
        assert iphone.browser == "Safari"
        assert iphone.is_mobile

        desktop = parse_user_agent(WINDOWS_CHROME_UA)
        assert desktop.device_type == "desktop"
        assert desktop.browser == "Chrome"
        assert desktop.os == "Windows"

        assert parse_user_agent("").device_type == "desktop"


class TestSessionChannels:
    """Session channels are torn down with their session."""

    def test_end_session_drops_session_channel(self, tracker, bus):
        session_id = tracker.start_session("u1")
        subscription = bus.subscribe(session_id, callback=lambda e: None, scope="session")
        tracker.end_session(session_id)

        assert not subscription.active
        assert bus.subscriptions(session_id, scope="session") == []

    def test_bus_stays_bounded_over_many_sessions(self, tracker, bus):
        for _ in range(500):
            session_id = tracker.start_session()
            bus.subscribe(session_id, callback=lambda e: None, scope="session")
            tracker.record_activity(session_id, "page_view")
            tracker.end_session(session_id)

        stats = bus.stats()
        assert stats["channels"] == 0
        assert stats["subscriptions"] == 0
        assert stats["channel_locks"] == 0
