# eventvalidate/models/ticket.py
import uuid
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship
from eventvalidate.db.base_class import Base


class Ticket(Base):
    """A purchased admission to a ticketed event."""

    __tablename__ = "tickets"

    id = Column(String, primary_key=True, default=lambda: f"tkt_{uuid.uuid4().hex[:12]}")
    event_id = Column(String, ForeignKey("events.id"), nullable=False, index=True)

    # Owner information (changes on transfer)
    owner_name = Column(String(255), nullable=False)
    owner_email = Column(String(255), nullable=False, index=True)
    owner_phone = Column(String(50), nullable=True)

    # --- Credential (written once at issuance, never regenerated) ---
    ticket_number = Column(String(40), nullable=False, unique=True, index=True)
    qr_code = Column(Text, nullable=False)
    qr_secret_hash = Column(String(64), nullable=False, unique=True)
    manual_verification_code = Column(String(12), nullable=False, unique=True, index=True)

    category = Column(String(100), nullable=False)
    price = Column(Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="NGN")

    # 'pending', 'paid', 'cancelled', 'used'
    status = Column(String(20), nullable=False, default="pending", server_default="pending")
    # 'pending', 'paid', 'failed', 'refunded'
    payment_status = Column(String(20), nullable=False, default="pending", server_default="pending")
    payment_method = Column(String(30), nullable=True)
    payment_reference = Column(String(64), nullable=True, unique=True, index=True)
    payment_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    requires_manual_reconciliation = Column(Boolean, nullable=False, default=False)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    face_photo_path = Column(String, nullable=True)

    validated_at = Column(DateTime(timezone=True), nullable=True)
    validated_by = Column(String, nullable=True)
    validation_method = Column(String(20), nullable=True)

    # Append-only list of ownership changes
    transfer_history = Column(JSON, nullable=False, default=list)
    max_transfers = Column(Integer, nullable=False, default=5, server_default="5")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    event = relationship("Event", back_populates="tickets")

    @property
    def full_name(self) -> str:
        return self.owner_name

    @property
    def identifier(self) -> str:
        return self.ticket_number

    @property
    def transfer_count(self) -> int:
        return len(self.transfer_history or [])

    @property
    def can_transfer(self) -> bool:
        return self.status == "paid" and self.transfer_count < self.max_transfers
