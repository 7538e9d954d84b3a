# eventvalidate/services/payment/signature.py
"""Gateway callback signature verification (HMAC-SHA512 over the raw body)."""

import hashlib
import hmac
from typing import Optional

from eventvalidate.core.config import settings


def compute_signature(body: bytes, secret: Optional[str] = None) -> str:
    key = (secret or settings.PAYMENT_GATEWAY_SECRET).encode("utf-8")
    return hmac.new(key, body, hashlib.sha512).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: Optional[str] = None) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(compute_signature(body, secret), signature.strip().lower())
