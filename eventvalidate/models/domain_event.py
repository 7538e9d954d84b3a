# eventvalidate/models/domain_event.py
import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, func
from eventvalidate.db.base_class import Base


class DomainEvent(Base):
    __tablename__ = "domain_events"

    id = Column(String, primary_key=True, default=lambda: f"de_{uuid.uuid4().hex[:12]}")
    event_id = Column(String, ForeignKey("events.id"), nullable=False, index=True)
    # e.g. "registration.confirmed", "attendee.validated"
    event_type = Column(String, nullable=False, index=True)
    # The registration or ticket the event is about
    subject_id = Column(String, nullable=True, index=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    user_id = Column(String, nullable=True)  # Staff member who caused it, if any
    data = Column(JSON, nullable=True)
    # Relay run currently sending this row
    claimed_by = Column(String, nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    # Set once the outbox relay has handed the event to Kafka
    published_at = Column(DateTime(timezone=True), nullable=True)
