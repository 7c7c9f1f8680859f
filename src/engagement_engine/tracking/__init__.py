"""Visitor session tracking and attribution."""

from .sessions import SessionTracker, Session, EndReason
from .attribution import Attribution, AttributionManager, parse_source, parse_medium
from .devices import DeviceInfo, parse_user_agent

__all__ = [
    'SessionTracker',
    'Session',
    'EndReason',
    'Attribution',
    'AttributionManager',
    'parse_source',
    'parse_medium',
    'DeviceInfo',
    'parse_user_agent',
]
