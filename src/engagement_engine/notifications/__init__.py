"""Notification bus, its events and downstream sequence triggers."""

from .events import (
    EventType,
    BusEvent,
    ScoreUpdated,
    TierChanged,
    AssessmentCompleted,
    SessionStarted,
    SessionActivity,
    SessionHeartbeat,
    SessionEnded,
)
from .transport import Transport, InMemoryTransport
from .bus import NotificationBus, Subscription, channel_id
from .sequences import SequenceTrigger, HttpSequenceTrigger, RecordingSequenceTrigger, SequenceRequest

__all__ = [
    'EventType',
    'BusEvent',
    'ScoreUpdated',
    'TierChanged',
    'AssessmentCompleted',
    'SessionStarted',
    'SessionActivity',
    'SessionHeartbeat',
    'SessionEnded',
    'Transport',
    'InMemoryTransport',
    'NotificationBus',
    'Subscription',
    'channel_id',
    'SequenceTrigger',
    'HttpSequenceTrigger',
    'RecordingSequenceTrigger',
    'SequenceRequest',
]
