# eventvalidate/schemas/payment.py
from typing import Optional

from pydantic import BaseModel, Field

from eventvalidate.schemas.enums import NotificationDisposition, PaymentOutcome


class PaymentCallback(BaseModel):
    """Normalized gateway notification."""

    reference: str = Field(..., min_length=1)
    outcome: PaymentOutcome
    amount: Optional[float] = None
    currency: Optional[str] = None


class ReconcileResult(BaseModel):
    reference: str
    disposition: NotificationDisposition
    subject_kind: Optional[str] = None
    subject_id: Optional[str] = None
    payment_status: Optional[str] = None
    detail: Optional[str] = None


class PaymentRetry(BaseModel):
    reference: str
