"""Hand-off of tier transitions to the email sequence service."""

import hashlib
import hmac
import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Protocol

import requests

logger = logging.getLogger(__name__)


class SequenceTrigger(Protocol):
    """Starts a named automation sequence for an identity."""

    def trigger(self, identity_id: str, sequence_type: str, previous_tier: str,
                new_tier: str, total_score: float) -> None: ...


@dataclass
class SequenceRequest:
    """One requested sequence start."""

    identity_id: str
    sequence_type: str
    previous_tier: str
    new_tier: str
    total_score: float
    requested_at: datetime = field(default_factory=datetime.now)

    def to_payload(self) -> Dict:
        return {
            "identity_id": self.identity_id,
            "sequence_type": self.sequence_type,
            "trigger_data": {
                "previous_tier": self.previous_tier,
                "new_tier": self.new_tier,
                "score": self.total_score,
            },
            "requested_at": self.requested_at.isoformat(),
        }


class HttpSequenceTrigger:
    """Posts sequence requests to an HTTP endpoint.

    When a secret is configured the JSON body is signed with HMAC-SHA256 and
    sent as `X-Sequence-Signature: sha256=<hex>`. Non-2xx responses raise.
    """

    def __init__(self, url: str, secret: Optional[str] = None, timeout: float = 10,
                 session: Optional[requests.Session] = None):
        self.url = url
        self.secret = secret
        self.timeout = timeout
        self.session = session or requests.Session()

    def trigger(self, identity_id: str, sequence_type: str, previous_tier: str,
                new_tier: str, total_score: float) -> None:
        request = SequenceRequest(identity_id, sequence_type, previous_tier, new_tier, total_score)
        body = json.dumps(request.to_payload())

        headers = {
            "Content-Type": "application/json",
            "User-Agent": "Engagement-Engine/1.0",
            "X-Sequence-Type": sequence_type,
        }
        if self.secret:
            signature = hmac.new(self.secret.encode(), body.encode(), hashlib.sha256).hexdigest()
            headers["X-Sequence-Signature"] = f"sha256={signature}"

        response = self.session.post(self.url, data=body, headers=headers, timeout=self.timeout)
        response.raise_for_status()
        logger.info(
            f"Sequence {sequence_type} triggered for {identity_id} (status: {response.status_code})"
        )


class RecordingSequenceTrigger:
    """Keeps sequence requests in memory. Used when no endpoint is configured."""

    def __init__(self):
        self.requests: List[SequenceRequest] = []
        self._lock = threading.Lock()

    def trigger(self, identity_id: str, sequence_type: str, previous_tier: str,
                new_tier: str, total_score: float) -> None:
        with self._lock:
            self.requests.append(
                SequenceRequest(identity_id, sequence_type, previous_tier, new_tier, total_score)
            )
        logger.debug(f"Recorded sequence {sequence_type} for {identity_id}")

    def sequences_for(self, identity_id: str) -> List[str]:
        with self._lock:
            return [r.sequence_type for r in self.requests if r.identity_id == identity_id]
