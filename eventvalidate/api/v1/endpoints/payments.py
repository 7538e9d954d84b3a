# eventvalidate/api/v1/endpoints/payments.py
"""
Payment gateway callbacks and reconciliation housekeeping.

SECURITY NOTES:
- Callback signatures are verified before anything is read from the body
- Processing is idempotent by payment reference
- Every callback is written to payment_notifications for audit
"""
import json
import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from eventvalidate.api import deps
from eventvalidate.core.exceptions import InputValidationError, InvalidSignature
from eventvalidate.db.session import get_db
from eventvalidate.schemas.payment import PaymentCallback, ReconcileResult
from eventvalidate.schemas.token import TokenPayload
from eventvalidate.services.payment.signature import verify_signature
from eventvalidate.services.payment.tracker import payment_tracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/callback", response_model=ReconcileResult)
async def payment_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    gateway_signature: Optional[str] = Header(None, alias="X-Gateway-Signature"),
    db: Session = Depends(get_db),
    relay=Depends(deps.get_outbox_relay),
):
    """
    Gateway notification ``{reference, outcome, amount, currency}``.

    Duplicates and late deliveries are answered with 200 and a
    ``duplicate``/``ignored`` disposition so the gateway stops retrying.
    """
    body = await request.body()
    client_ip = request.client.host if request.client else None

    if not verify_signature(body, gateway_signature):
        logger.warning(f"Invalid payment callback signature from {client_ip}")
        raise InvalidSignature("Invalid or missing gateway signature")

    try:
        payload = json.loads(body)
        callback = PaymentCallback.model_validate(payload)
    except (ValueError, ValidationError) as e:
        raise InputValidationError(f"Malformed payment callback: {e}")

    result = payment_tracker.reconcile(db, callback, payload=payload)
    background_tasks.add_task(relay)
    return result


@router.post("/flag-stale")
def flag_stale_payments(
    older_than_minutes: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Flag gateway payments with no callback for manual reconciliation."""
    older_than = timedelta(minutes=older_than_minutes) if older_than_minutes else None
    flagged = payment_tracker.flag_stale_payments(db, older_than=older_than)
    logger.info(f"{current_user.sub} flagged {flagged} stale payment(s)")
    return {"flagged": flagged}
