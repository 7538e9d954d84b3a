# eventvalidate/schemas/ticket.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from eventvalidate.schemas.enums import PaymentMethod, TicketPaymentStatus, TicketStatus


class TicketPurchase(BaseModel):
    owner_name: str = Field(..., min_length=1, max_length=255)
    owner_email: EmailStr
    owner_phone: Optional[str] = Field(None, max_length=50)
    category: str
    payment_method: Optional[PaymentMethod] = None
    face_photo_path: Optional[str] = None


class TicketTransferRequest(BaseModel):
    current_owner_email: EmailStr
    to_name: str = Field(..., min_length=1, max_length=255)
    to_email: EmailStr
    to_phone: Optional[str] = None
    reason: Optional[str] = None


class TransferRecord(BaseModel):
    from_name: str
    from_email: str
    to_name: str
    to_email: str
    reason: Optional[str] = None
    transferred_at: datetime


class Ticket(BaseModel):
    id: str
    event_id: str
    ticket_number: str
    owner_name: str
    owner_email: str
    owner_phone: Optional[str] = None
    category: str
    price: float
    currency: str
    status: TicketStatus
    payment_status: TicketPaymentStatus
    payment_reference: Optional[str] = None
    validated_at: Optional[datetime] = None
    transfer_history: List[TransferRecord] = []

    model_config = {"from_attributes": True}
