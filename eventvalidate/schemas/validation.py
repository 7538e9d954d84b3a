# eventvalidate/schemas/validation.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from eventvalidate.schemas.enums import ValidationMethod, ValidationReason


class ValidationRequest(BaseModel):
    event_id: str
    method: ValidationMethod
    # QR: the scanned JWT; manual_code: the 6 character code;
    # photo: the registration unique_id or ticket number
    credential: str = Field(..., min_length=1)
    live_photo_path: Optional[str] = None
    # Present on the second (confirming) submission
    confirmation_token: Optional[str] = None

    @model_validator(mode="after")
    def _photo_needs_live_image(self):
        if (
            self.method == ValidationMethod.PHOTO
            and not self.confirmation_token
            and not self.live_photo_path
        ):
            raise ValueError("live_photo_path is required for photo validation")
        return self


class ParticipantSummary(BaseModel):
    identifier: str
    kind: str
    name: str
    category: Optional[str] = None
    email: Optional[str] = None
    status: str
    payment_status: str


class ValidationResult(BaseModel):
    accepted: bool
    reason: ValidationReason
    method: ValidationMethod
    participant: Optional[ParticipantSummary] = None
    requires_staff_confirmation: bool = False
    confirmation_token: Optional[str] = None
    similarity_score: Optional[float] = None
    validated_at: Optional[datetime] = None
    validated_by: Optional[str] = None
