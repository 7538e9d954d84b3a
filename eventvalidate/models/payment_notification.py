# eventvalidate/models/payment_notification.py
import uuid
from sqlalchemy import Column, DateTime, JSON, Numeric, String, func
from eventvalidate.db.base_class import Base


class PaymentNotification(Base):
    """
    Audit trail of every payment gateway callback received.

    Rows are written for duplicates and unmatched references too, so
    reconciliation disputes can be answered from this table alone.
    """

    __tablename__ = "payment_notifications"

    id = Column(String, primary_key=True, default=lambda: f"pn_{uuid.uuid4().hex[:12]}")
    reference = Column(String(64), nullable=False, index=True)
    # 'success' or 'failure' as reported by the gateway
    outcome = Column(String(20), nullable=False)
    amount = Column(Numeric(12, 2, asdecimal=False), nullable=True)
    currency = Column(String(3), nullable=True)
    # 'applied', 'duplicate', 'ignored', 'unmatched'
    disposition = Column(String(20), nullable=False)
    # 'registration' or 'ticket' when matched
    subject_kind = Column(String(20), nullable=True)
    subject_id = Column(String, nullable=True)
    detail = Column(String, nullable=True)
    payload = Column(JSON, nullable=True)
    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
