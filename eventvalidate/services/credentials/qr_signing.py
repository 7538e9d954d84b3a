# eventvalidate/services/credentials/qr_signing.py
"""
Signed QR payloads.

A QR code carries an HS256 JWT:

  kind: "registration" or "ticket"
  sub:  the registration unique_id / ticket number
  eid:  event id
  sec:  random verification secret (only its SHA-256 is stored)
  iat, exp, v

The signature stops forged payloads; the secret stops a payload built from a
leaked identifier, because the identifier alone never reveals ``sec``.
"""

import base64
import io
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import qrcode

from eventvalidate.core.config import settings

logger = logging.getLogger(__name__)

QR_FORMAT_VERSION = 1
QR_ALGORITHM = "HS256"


def sign_credential_qr(
    kind: str,
    identifier: str,
    event_id: str,
    secret: str,
    event_end_date: Optional[datetime] = None,
) -> str:
    """Return the compact JWT that goes into the QR image."""
    now = datetime.now(timezone.utc)
    if event_end_date:
        if event_end_date.tzinfo is None:
            event_end_date = event_end_date.replace(tzinfo=timezone.utc)
        exp = max(event_end_date, now) + timedelta(hours=24)
    else:
        exp = now + timedelta(days=settings.QR_TOKEN_TTL_DAYS)

    payload = {
        "kind": kind,
        "sub": identifier,
        "eid": event_id,
        "sec": secret,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
        "v": QR_FORMAT_VERSION,
    }
    return jwt.encode(payload, settings.QR_SIGNING_SECRET, algorithm=QR_ALGORITHM)


def verify_credential_qr(token: str) -> Optional[dict]:
    """
    Verify a scanned QR token.

    Returns the decoded claims, or None when the signature is wrong, the
    token expired, or required claims are missing.
    """
    try:
        claims = jwt.decode(
            token,
            settings.QR_SIGNING_SECRET,
            algorithms=[QR_ALGORITHM],
            options={"require": ["sub", "eid", "sec", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired QR token")
        return None
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected invalid QR token: {e}")
        return None
    return claims


def is_jwt_qr(data: str) -> bool:
    """JWT tokens have exactly 2 dots (header.payload.signature)."""
    return data.count(".") == 2


def render_qr_data_url(payload: str) -> str:
    """Render ``payload`` as a PNG and return it as a data URL."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode()
    return f"data:image/png;base64,{encoded}"
