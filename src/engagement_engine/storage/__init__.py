"""Persistent store collaborators and stored models."""

from .store import Store, InMemoryStore
from .database import SQLiteStore
from .models import (
    ScoreEvent,
    LeadScore,
    TierProgressionEntry,
    TierTransition,
    SessionSummary,
    AssessmentResult,
)

__all__ = [
    'Store',
    'InMemoryStore',
    'SQLiteStore',
    'ScoreEvent',
    'LeadScore',
    'TierProgressionEntry',
    'TierTransition',
    'SessionSummary',
    'AssessmentResult',
]
