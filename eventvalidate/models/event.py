# eventvalidate/models/event.py
import uuid
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship
from eventvalidate.db.base_class import Base


class Event(Base):
    """An organization's event that accepts registrations or sells tickets."""

    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("registered_count >= 0", name="check_registered_count_positive"),
    )

    id = Column(String, primary_key=True, default=lambda: f"evt_{uuid.uuid4().hex[:12]}")
    organization_id = Column(String, nullable=False, index=True)
    owner_id = Column(String, nullable=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    venue = Column(String, nullable=True)

    # 'registration' (free-form sign up) or 'ticket' (category purchase)
    event_type = Column(String(20), nullable=False, server_default="registration")

    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    # Unset start: open immediately. Unset end: closes when the event ends.
    registration_start_date = Column(DateTime(timezone=True), nullable=True)
    registration_end_date = Column(DateTime(timezone=True), nullable=True)

    # Participant categories. An empty list means every category the
    # allow_* switches permit.
    eligible_categories = Column(JSON, nullable=False, default=list)
    eligible_auxiliary_bodies = Column(JSON, nullable=False, default=list)
    allow_guests = Column(Boolean, nullable=False, default=False)
    allow_invitees = Column(Boolean, nullable=False, default=False)

    # Payment configuration
    requires_payment = Column(Boolean, nullable=False, default=False)
    payment_amount = Column(Numeric(12, 2, asdecimal=False), nullable=True)
    payment_currency = Column(String(3), nullable=False, default="NGN")
    payment_methods = Column(JSON, nullable=False, default=list)
    # {"member": bool, "guest": bool, "invitee": bool}
    payment_rules = Column(JSON, nullable=False, default=dict)

    # Ticketed events: [{"name", "price", "currency", "available"}]
    ticket_categories = Column(JSON, nullable=False, default=list)

    # Declarative registration form, see services/eligibility/form_schema.py
    custom_fields = Column(JSON, nullable=False, default=list)

    max_attendees = Column(Integer, nullable=True)
    # Reserved slots; incremented/decremented with conditional UPDATEs only
    registered_count = Column(Integer, nullable=False, default=0, server_default="0")

    # Optional {"auto_approve": float, "manual_review": float}
    similarity_thresholds = Column(JSON, nullable=True)

    # 'upcoming', 'active', 'completed', 'cancelled'
    status = Column(String(20), nullable=False, server_default="upcoming", default="upcoming")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    registrations = relationship("Registration", back_populates="event")
    tickets = relationship("Ticket", back_populates="event")

    @property
    def is_ticketed(self) -> bool:
        return self.event_type == "ticket"

    @property
    def registration_opens_at(self):
        return self.registration_start_date

    @property
    def registration_closes_at(self):
        return self.registration_end_date or self.end_date

    @property
    def available_slots(self):
        if self.max_attendees is None:
            return None
        return max(self.max_attendees - (self.registered_count or 0), 0)
