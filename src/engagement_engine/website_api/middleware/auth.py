"""Request authentication for the tracking API.

Browser-side trackers and server-side callers authenticate differently:

- Signed requests carry `X-EE-Timestamp` (unix seconds) and
  `X-EE-Signature: sha256=<hex>`, an HMAC over the timestamp, method, path
  and body. Binding the path means a signed score event for one identity
  cannot be replayed against another; the timestamp bounds replays in time.
- Trusted backends may send the shared secret in `X-EE-Secret`.
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import HTTPException, Request

from ..config import settings

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def sign_request(secret: str, method: str, path: str, body: bytes, timestamp: int) -> str:
    """Signature header value for a request."""
    message = f"{timestamp}.{method.upper()}.{path}.".encode() + body
    digest = hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def _signature_is_valid(request: Request, body: bytes, signature: str,
                        timestamp: Optional[str], now: float) -> bool:
    try:
        sent_at = int(timestamp or "")
    except ValueError:
        return False
    if abs(now - sent_at) > settings.signature_max_age_seconds:
        logger.warning(f"Expired signature for {request.method} {request.url.path}")
        return False

    expected = sign_request(settings.api_secret, request.method, request.url.path, body, sent_at)
    return hmac.compare_digest(signature, expected)


async def verify_signature(request: Request):
    """FastAPI dependency accepting a fresh request signature or the shared secret."""
    body = await request.body()

    signature = request.headers.get("X-EE-Signature")
    if signature and _signature_is_valid(
        request, body, signature, request.headers.get("X-EE-Timestamp"), time.time()
    ):
        return True

    secret = request.headers.get("X-EE-Secret")
    if secret and hmac.compare_digest(secret, settings.api_secret):
        return True

    logger.warning(f"Rejected unauthenticated {request.method} {request.url.path}")
    raise HTTPException(
        status_code=401,
        detail={"success": False, "error": "auth_error", "detail": "Invalid or missing authentication"},
    )
