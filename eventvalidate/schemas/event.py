# eventvalidate/schemas/event.py
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from eventvalidate.schemas.enums import (
    EventStatus,
    EventType,
    PaymentMethod,
    RegistrationType,
)
from eventvalidate.schemas.form import FormField


class TicketCategory(BaseModel):
    name: str
    price: float = Field(0, ge=0)
    currency: Optional[str] = None
    available: bool = True


class SimilarityThresholds(BaseModel):
    auto_approve: float = Field(..., ge=0, le=1)
    manual_review: float = Field(..., ge=0, le=1)


class EventBase(BaseModel):
    name: str
    description: Optional[str] = None
    venue: Optional[str] = None
    event_type: EventType = EventType.REGISTRATION
    start_date: datetime
    end_date: datetime
    registration_start_date: Optional[datetime] = None
    registration_end_date: Optional[datetime] = None
    eligible_categories: List[RegistrationType] = []
    eligible_auxiliary_bodies: List[str] = []
    allow_guests: bool = False
    allow_invitees: bool = False
    requires_payment: bool = False
    payment_amount: Optional[float] = Field(None, ge=0)
    payment_currency: str = "NGN"
    payment_methods: List[PaymentMethod] = []
    payment_rules: Dict[RegistrationType, bool] = {}
    ticket_categories: List[TicketCategory] = []
    custom_fields: List[FormField] = []
    max_attendees: Optional[int] = Field(None, gt=0)
    similarity_thresholds: Optional[SimilarityThresholds] = None

    @model_validator(mode="after")
    def _check_dates_and_payment(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if self.requires_payment and not self.payment_amount:
            raise ValueError("payment_amount is required when requires_payment is set")
        return self


class EventCreate(EventBase):
    organization_id: str
    owner_id: Optional[str] = None


class Event(EventBase):
    id: str
    organization_id: str
    registered_count: int
    status: EventStatus

    model_config = {"from_attributes": True}
