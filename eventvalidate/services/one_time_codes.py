# eventvalidate/services/one_time_codes.py
"""
Short-lived staff confirmation tokens.

A manual-code lookup or a borderline photo match is never admitted on the
first request. The gateway parks what it found under a random token with a
TTL in Redis; staff admit the participant by sending the token back. A
token can be redeemed once, from any instance.
"""

import json
import logging
import secrets
from typing import Any, Dict, Optional

from eventvalidate.core.config import settings

logger = logging.getLogger(__name__)


class ConfirmationStore:
    def __init__(self, client=None, ttl_seconds: Optional[int] = None, prefix: str = "validation:confirm"):
        self._client = client
        self.ttl_seconds = ttl_seconds or settings.CONFIRMATION_TOKEN_TTL_SECONDS
        self.prefix = prefix

    @property
    def client(self):
        if self._client is None:
            from eventvalidate.db.redis import redis_client

            self._client = redis_client
        return self._client

    def _key(self, token: str) -> str:
        return f"{self.prefix}:{token}"

    def issue(self, payload: Dict[str, Any]) -> str:
        for _ in range(5):
            token = secrets.token_urlsafe(16)
            if self.client.set(self._key(token), json.dumps(payload), nx=True, ex=self.ttl_seconds):
                return token
        raise RuntimeError("Could not allocate a unique confirmation token")

    def consume(self, token: str) -> Optional[Dict[str, Any]]:
        """Return the parked payload and delete it. None if unknown or expired."""
        raw = self.client.getdel(self._key(token))
        if raw is None:
            logger.info("Confirmation token unknown or expired")
            return None
        return json.loads(raw)

