# eventvalidate/models/registration.py
import uuid
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    JSON,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship
from eventvalidate.db.base_class import Base


class Registration(Base):
    """A participant's sign up for a non-ticketed event."""

    __tablename__ = "registrations"

    id = Column(String, primary_key=True, default=lambda: f"reg_{uuid.uuid4().hex[:12]}")
    event_id = Column(String, ForeignKey("events.id"), nullable=False, index=True)

    # 'member', 'guest' or 'invitee'
    registration_type = Column(String(20), nullable=False)

    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=True, index=True)
    phone_number = Column(String, nullable=True)
    auxiliary_body = Column(String, nullable=True)
    # Answers to the event's custom form fields
    registration_data = Column(JSON, nullable=False, default=dict)

    # --- Credential (written once at issuance, never regenerated) ---
    unique_id = Column(String(40), nullable=False, unique=True, index=True)
    qr_code = Column(Text, nullable=False)
    qr_secret_hash = Column(String(64), nullable=False, unique=True)
    manual_verification_code = Column(String(12), nullable=False, unique=True, index=True)

    # 'pending', 'confirmed', 'attended', 'cancelled'
    status = Column(String(20), nullable=False, default="pending", server_default="pending")
    # 'not_required', 'pending', 'paid', 'failed'
    payment_status = Column(
        String(20), nullable=False, default="not_required", server_default="not_required"
    )
    payment_method = Column(String(30), nullable=True)
    payment_amount = Column(Numeric(12, 2, asdecimal=False), nullable=True)
    payment_currency = Column(String(3), nullable=True)
    payment_reference = Column(String(64), nullable=True, unique=True, index=True)
    payment_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    requires_manual_reconciliation = Column(Boolean, nullable=False, default=False)

    # Manual receipt path: 'awaiting_review', 'approved', 'rejected'
    receipt_path = Column(String, nullable=True)
    receipt_review_status = Column(String(20), nullable=True)
    receipt_reviewed_by = Column(String, nullable=True)
    receipt_reviewed_at = Column(DateTime(timezone=True), nullable=True)
    receipt_rejection_reason = Column(Text, nullable=True)

    # Optional opaque pointer to the enrolled face photo
    face_photo_path = Column(String, nullable=True)

    # Entrance validation
    validated_at = Column(DateTime(timezone=True), nullable=True)
    validated_by = Column(String, nullable=True)
    validation_method = Column(String(20), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    event = relationship("Event", back_populates="registrations")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def identifier(self) -> str:
        return self.unique_id
