# eventvalidate/services/credentials/codes.py
"""
Identifier, manual code and secret generation.

Registration manual codes are uppercase letters and ticket codes are digits,
so a code typed at the door always resolves to exactly one table.
"""

import hashlib
import hmac
import logging
import secrets
import string
import time
from typing import Callable

from eventvalidate.core.config import settings
from eventvalidate.core.exceptions import CredentialCollision
from eventvalidate.schemas.enums import CredentialKind

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_uppercase

IDENTIFIER_PREFIX = {
    CredentialKind.REGISTRATION: "REG",
    CredentialKind.TICKET: "TKT",
}


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_identifier(kind: CredentialKind) -> str:
    """e.g. ``REG-M1Z8Q4K2-7F3KQ9``: millisecond timestamp plus a random suffix."""
    stamp = to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{IDENTIFIER_PREFIX[kind]}-{stamp}-{suffix}"


def generate_manual_code(kind: CredentialKind, length: int | None = None) -> str:
    length = length or settings.MANUAL_CODE_LENGTH
    alphabet = string.digits if kind == CredentialKind.TICKET else string.ascii_uppercase
    return "".join(secrets.choice(alphabet) for _ in range(length))


def looks_like_ticket_code(code: str) -> bool:
    return code.isdigit()


def generate_verification_secret() -> str:
    return secrets.token_urlsafe(24)


def hash_secret(secret: str) -> str:
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def secret_matches(secret: str, stored_hash: str) -> bool:
    return hmac.compare_digest(hash_secret(secret), stored_hash or "")


def generate_payment_reference() -> str:
    return f"PAY-{to_base36(int(time.time() * 1000))}-{secrets.token_hex(6).upper()}"


def allocate_unique(
    generate: Callable[[], str],
    exists: Callable[[str], bool],
    label: str,
    max_attempts: int | None = None,
) -> str:
    """
    Draw values from ``generate`` until one is not taken.

    Gives up with ``CredentialCollision`` after ``max_attempts`` so a
    saturated code space fails loudly instead of looping forever.
    """
    max_attempts = max_attempts or settings.CREDENTIAL_MAX_ATTEMPTS
    for attempt in range(1, max_attempts + 1):
        candidate = generate()
        if not exists(candidate):
            return candidate
        logger.warning(f"{label} collision on attempt {attempt}/{max_attempts}")
    raise CredentialCollision(
        f"Could not allocate a unique {label} after {max_attempts} attempts", field=label
    )
