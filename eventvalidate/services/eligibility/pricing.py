# eventvalidate/services/eligibility/pricing.py
"""
Eligibility and pricing rules.

``resolve_payment`` is the single place that decides whether a participant
pays. It is a pure function of the event configuration and the participant
category: the same inputs always give the same answer and nothing is read
from or written to storage.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from eventvalidate.core.config import settings
from eventvalidate.core.exceptions import (
    CategoryNotPermitted,
    EventNotAcceptingRegistrations,
    RegistrationClosed,
    RegistrationNotOpen,
)
from eventvalidate.schemas.enums import EventStatus, RegistrationType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentRequirement:
    payment_required: bool
    amount: Optional[float] = None
    currency: Optional[str] = None


NO_PAYMENT = PaymentRequirement(payment_required=False)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (SQLite hands these back) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _category(registration_type: Union[RegistrationType, str]) -> RegistrationType:
    try:
        return RegistrationType(registration_type)
    except ValueError:
        raise CategoryNotPermitted(
            f"Unknown participant category '{registration_type}'",
            category=str(registration_type),
        )


def resolve_payment(event, registration_type: Union[RegistrationType, str]) -> PaymentRequirement:
    """
    Decide whether ``registration_type`` pays for ``event``.

    Payment is required only when the event requires payment AND the
    per-category rule says so. When it is not required the amount and
    currency are left empty even if the event stores them.
    """
    category = _category(registration_type)
    if not event.requires_payment:
        return NO_PAYMENT

    rules = event.payment_rules or {}
    if not bool(rules.get(category.value, False)):
        return NO_PAYMENT

    return PaymentRequirement(
        payment_required=True,
        amount=event.payment_amount,
        currency=event.payment_currency or settings.DEFAULT_PAYMENT_CURRENCY,
    )


def resolve_ticket_price(event, category_name: str) -> PaymentRequirement:
    """Price lookup for a ticket category. A zero price means a free ticket."""
    for category in event.ticket_categories or []:
        if category.get("name") != category_name:
            continue
        if not category.get("available", True):
            raise CategoryNotPermitted(
                f"Ticket category '{category_name}' is sold out",
                category=category_name,
            )
        price = float(category.get("price") or 0)
        if price <= 0:
            return NO_PAYMENT
        return PaymentRequirement(
            payment_required=True,
            amount=price,
            currency=category.get("currency")
            or event.payment_currency
            or settings.DEFAULT_PAYMENT_CURRENCY,
        )
    raise CategoryNotPermitted(
        f"Event has no ticket category '{category_name}'", category=category_name
    )


def check_window(event, now: Optional[datetime] = None) -> None:
    """Raise when the event is not taking sign ups at ``now``."""
    now = ensure_utc(now) or datetime.now(timezone.utc)

    if event.status in (EventStatus.CANCELLED.value, EventStatus.COMPLETED.value):
        raise EventNotAcceptingRegistrations(
            f"Event is {event.status}", event_status=event.status
        )

    opens_at = ensure_utc(event.registration_opens_at)
    closes_at = ensure_utc(event.registration_closes_at)
    if opens_at and now < opens_at:
        raise RegistrationNotOpen(
            "Registration has not started yet", opens_at=opens_at.isoformat()
        )
    if closes_at and now > closes_at:
        raise RegistrationClosed(
            "Registration period has ended", closed_at=closes_at.isoformat()
        )


def check_category(event, registration_type: Union[RegistrationType, str]) -> RegistrationType:
    category = _category(registration_type)

    if category == RegistrationType.GUEST and not event.allow_guests:
        raise CategoryNotPermitted(
            "Guests are not allowed for this event", category=category.value
        )
    if category == RegistrationType.INVITEE and not event.allow_invitees:
        raise CategoryNotPermitted(
            "Invitees are not allowed for this event", category=category.value
        )

    eligible = event.eligible_categories or []
    if eligible and category.value not in eligible:
        raise CategoryNotPermitted(
            f"Category '{category.value}' is not eligible for this event",
            category=category.value,
        )
    return category


def check_eligibility(
    event,
    registration_type: Union[RegistrationType, str],
    now: Optional[datetime] = None,
) -> RegistrationType:
    """Window and category checks that must pass before a credential is issued."""
    check_window(event, now)
    category = check_category(event, registration_type)
    logger.debug(f"{category.value} eligible for event {event.id}")
    return category
