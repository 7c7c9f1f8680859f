"""First-touch marketing attribution."""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from ..storage import store as tables
from ..storage.store import Store

logger = logging.getLogger(__name__)


def parse_source(referrer: str) -> str:
    """Parse traffic source from referrer."""
    if not referrer:
        return 'direct'

    referrer = referrer.lower()
    if 'google' in referrer:
        return 'google'
    elif 'facebook' in referrer or 'fb.com' in referrer:
        return 'facebook'
    elif 'instagram' in referrer:
        return 'instagram'
    elif 'linkedin' in referrer:
        return 'linkedin'
    elif 'bing' in referrer:
        return 'bing'

    return 'referral'


def parse_medium(referrer: str) -> str:
    """Parse traffic medium from referrer."""
    if not referrer:
        return 'direct'

    source = parse_source(referrer)
    if source in ['google', 'bing']:
        return 'organic'
    elif source in ['facebook', 'instagram', 'linkedin']:
        return 'social'

    return 'referral'


@dataclass(frozen=True)
class Attribution:
    """Where a visitor came from on their first touch."""

    source: str = "direct"
    medium: str = "direct"
    campaign: str = ""
    term: str = ""
    content: str = ""
    referrer: str = ""
    entry_path: str = ""
    captured_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_request(cls, referrer: str = "", entry_path: str = "",
                     utm: Optional[Dict[str, str]] = None) -> "Attribution":
        """Build attribution from UTM parameters, falling back to the referrer."""
        utm = utm or {}
        return cls(
            source=utm.get("source") or utm.get("utm_source") or parse_source(referrer),
            medium=utm.get("medium") or utm.get("utm_medium") or parse_medium(referrer),
            campaign=utm.get("campaign") or utm.get("utm_campaign") or "",
            term=utm.get("term") or utm.get("utm_term") or "",
            content=utm.get("content") or utm.get("utm_content") or "",
            referrer=referrer,
            entry_path=entry_path,
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "medium": self.medium,
            "campaign": self.campaign,
            "term": self.term,
            "content": self.content,
            "referrer": self.referrer,
            "entry_path": self.entry_path,
            "captured_at": self.captured_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Attribution":
        return cls(
            source=row.get("source", "direct"),
            medium=row.get("medium", "direct"),
            campaign=row.get("campaign", ""),
            term=row.get("term", ""),
            content=row.get("content", ""),
            referrer=row.get("referrer", ""),
            entry_path=row.get("entry_path", ""),
            captured_at=datetime.fromisoformat(row["captured_at"]),
        )


class AttributionManager:
    """Stores first-touch attribution per visitor, write-once."""

    def __init__(self, store: Store):
        self.store = store
        self._lock = threading.Lock()

    def capture(self, visitor_key: str, attribution: Attribution) -> Attribution:
        """Record attribution unless one exists already; return the stored value."""
        with self._lock:
            row = self.store.get(tables.ATTRIBUTION, visitor_key)
            if row is not None:
                return Attribution.from_row(row)
            self.store.upsert(tables.ATTRIBUTION, visitor_key, attribution.to_row())
        logger.debug(f"Captured attribution for {visitor_key}: {attribution.source}/{attribution.medium}")
        return attribution

    def get(self, visitor_key: str) -> Optional[Attribution]:
        row = self.store.get(tables.ATTRIBUTION, visitor_key)
        return Attribution.from_row(row) if row else None
