"""Exception types raised by the engagement engine."""

from typing import Optional


class EngagementEngineError(Exception):
    """Base class for engine errors."""


class InvalidScoringRule(EngagementEngineError, ValueError):
    """A scoring rule or the response scored against it is malformed.

    Fatal to the single evaluation; callers must not retry or coerce.
    """


class ScoreUpdateFailed(EngagementEngineError):
    """The lead score could not be persisted. Safe for the caller to retry."""

    def __init__(self, identity_id: str, message: str = ""):
        self.identity_id = identity_id
        super().__init__(message or f"Failed to persist lead score for {identity_id}")


class SessionNotFound(EngagementEngineError, KeyError):
    """Operation on an unknown or already ended session."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(session_id)

    def __str__(self) -> str:
        return f"Session not found: {self.session_id}"


class CacheLoaderFailed(EngagementEngineError):
    """A cache loader did not produce a value within its timeout."""

    def __init__(self, key: str, timeout: Optional[float] = None):
        self.key = key
        self.timeout = timeout
        super().__init__(f"Loader for cache key {key!r} timed out after {timeout}s")
