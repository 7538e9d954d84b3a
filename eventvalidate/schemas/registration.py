# eventvalidate/schemas/registration.py
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, EmailStr, Field

from eventvalidate.schemas.enums import (
    PaymentMethod,
    ReceiptReviewStatus,
    RegistrationPaymentStatus,
    RegistrationStatus,
    RegistrationType,
)


# ============================================
# Request Schemas
# ============================================


class RegistrationCreate(BaseModel):
    """Public registration form submission."""

    registration_type: RegistrationType
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = Field(None, max_length=30)
    auxiliary_body: Optional[str] = None
    registration_data: Dict[str, Any] = {}
    payment_method: Optional[PaymentMethod] = None
    # Object key of an already uploaded receipt (manual_receipt path)
    receipt_path: Optional[str] = None
    face_photo_path: Optional[str] = None


class ReceiptSubmission(BaseModel):
    receipt_path: str = Field(..., min_length=1)


class ReceiptReview(BaseModel):
    approve: bool
    rejection_reason: Optional[str] = None


# ============================================
# Response Schemas
# ============================================


class Registration(BaseModel):
    id: str
    event_id: str
    registration_type: RegistrationType
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    auxiliary_body: Optional[str] = None
    unique_id: str
    manual_verification_code: str
    status: RegistrationStatus
    payment_status: RegistrationPaymentStatus
    payment_method: Optional[str] = None
    payment_amount: Optional[float] = None
    payment_currency: Optional[str] = None
    payment_reference: Optional[str] = None
    receipt_review_status: Optional[ReceiptReviewStatus] = None
    requires_manual_reconciliation: bool = False
    validated_at: Optional[datetime] = None
    validated_by: Optional[str] = None
    validation_method: Optional[str] = None

    model_config = {"from_attributes": True}


class IssuedCredential(BaseModel):
    """What the participant receives after a successful registration/purchase."""

    identifier: str
    kind: str
    qr_code: str
    qr_image: str  # data:image/png;base64,...
    manual_code: str
    status: str
    payment_status: str
    payment_required: bool
    payment_amount: Optional[float] = None
    payment_currency: Optional[str] = None
    payment_reference: Optional[str] = None
