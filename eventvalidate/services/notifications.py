# eventvalidate/services/notifications.py
"""
Domain event outbox.

State-changing services stage a ``DomainEvent`` row in the same transaction
as the change itself. After commit, ``dispatch_pending`` relays unpublished
rows to Kafka. Each relay run first claims its rows, so overlapping runs never
send the same row. A row stays unpublished until the broker accepts it, so a
Kafka outage delays notifications but never loses or invents them.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from kafka.errors import KafkaError
from sqlalchemy.orm import Session

from eventvalidate import crud
from eventvalidate.core.config import settings
from eventvalidate.core.kafka_producer import build_producer
from eventvalidate.db.session import SessionLocal
from eventvalidate.models.domain_event import DomainEvent

logger = logging.getLogger(__name__)

REGISTRATION_CONFIRMED = "registration.confirmed"
PAYMENT_SUCCEEDED = "payment.succeeded"
PAYMENT_FAILED = "payment.failed"
ATTENDEE_VALIDATED = "attendee.validated"
TICKET_REFUNDED = "ticket.refunded"
TICKET_TRANSFERRED = "ticket.transferred"

# Kafka topic per domain event type
TOPICS = {
    REGISTRATION_CONFIRMED: "eventvalidate.registration.confirmed",
    PAYMENT_SUCCEEDED: "eventvalidate.payment.succeeded",
    PAYMENT_FAILED: "eventvalidate.payment.failed",
    ATTENDEE_VALIDATED: "eventvalidate.attendee.validated",
    TICKET_REFUNDED: "eventvalidate.ticket.refunded",
    TICKET_TRANSFERRED: "eventvalidate.ticket.transferred",
}


class DomainEventPublisher:
    def stage(
        self,
        db: Session,
        *,
        event_type: str,
        event_id: str,
        subject_id: str,
        data: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> DomainEvent:
        if event_type not in TOPICS:
            raise ValueError(f"Unknown domain event type: {event_type}")
        return crud.domain_event.create_log(
            db,
            event_id=event_id,
            event_type=event_type,
            subject_id=subject_id,
            user_id=user_id,
            data=data,
        )

    @staticmethod
    def envelope(row: DomainEvent) -> Dict[str, Any]:
        return {
            "id": row.id,
            "type": row.event_type,
            "event_id": row.event_id,
            "subject_id": row.subject_id,
            "user_id": row.user_id,
            "timestamp": row.timestamp,
            "data": row.data or {},
        }

    def dispatch_pending(self, db: Session, producer, *, limit: int = 100) -> int:
        """Send unpublished outbox rows to Kafka. Returns how many were accepted."""
        claimant = uuid.uuid4().hex
        rows = crud.domain_event.claim_unpublished(
            db,
            claimant=claimant,
            now=datetime.now(timezone.utc),
            lease=timedelta(seconds=settings.OUTBOX_CLAIM_TIMEOUT_SECONDS),
            limit=limit,
        )
        sent = []
        try:
            for row in rows:
                try:
                    future = producer.send(
                        TOPICS[row.event_type], key=row.subject_id, value=self.envelope(row)
                    )
                    future.get(timeout=10)
                except KafkaError as e:
                    # Remaining rows stay in the outbox for the next relay run
                    logger.error(f"Kafka send failed for domain event {row.id}: {e}")
                    break
                sent.append(row.id)
        finally:
            crud.domain_event.mark_published(
                db, ids=sent, now=datetime.now(timezone.utc), claimant=claimant
            )
            crud.domain_event.release_claims(db, claimant=claimant)
        if sent:
            logger.info(f"Published {len(sent)} domain event(s)")
        return len(sent)


publisher = DomainEventPublisher()


def relay_outbox(limit: int = 100) -> int:
    """
    Background task: push whatever is waiting in the outbox to Kafka.

    Runs after the request's own transaction has committed. If the broker is
    unreachable the rows stay unpublished for the next run.
    """
    db = SessionLocal()
    try:
        try:
            producer = build_producer()
        except KafkaError as e:
            logger.error(f"Kafka unavailable, outbox relay postponed: {e}")
            return 0
        try:
            return publisher.dispatch_pending(db, producer, limit=limit)
        finally:
            producer.flush()
            producer.close()
    finally:
        db.close()
