# eventvalidate/models/payment_attempt.py
import uuid
from sqlalchemy import Column, DateTime, String, func
from eventvalidate.db.base_class import Base


class PaymentAttempt(Base):
    """
    A gateway reference that was replaced on its registration or ticket,
    by a payment retry or a switch to the receipt path.

    The gateway may still report on it, so late callbacks are matched here.
    """

    __tablename__ = "payment_attempts"

    id = Column(String, primary_key=True, default=lambda: f"pat_{uuid.uuid4().hex[:12]}")
    reference = Column(String(64), nullable=False, unique=True, index=True)
    # 'registration' or 'ticket'
    subject_kind = Column(String(20), nullable=False)
    # unique_id or ticket_number of the owning record
    subject_id = Column(String, nullable=False, index=True)
    payment_method = Column(String(30), nullable=True)
    superseded_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    # Set when the gateway reports money captured after the reference was replaced
    captured_at = Column(DateTime(timezone=True), nullable=True)
