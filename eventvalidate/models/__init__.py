# eventvalidate/models/__init__.py
# Import all models so Base.metadata knows every table

from eventvalidate.db.base_class import Base
from eventvalidate.models.event import Event
from eventvalidate.models.registration import Registration
from eventvalidate.models.ticket import Ticket
from eventvalidate.models.payment_notification import PaymentNotification
from eventvalidate.models.domain_event import DomainEvent
from eventvalidate.models.payment_attempt import PaymentAttempt

__all__ = [
    "Base",
    "Event",
    "Registration",
    "Ticket",
    "PaymentNotification",
    "DomainEvent",
    "PaymentAttempt",
]
