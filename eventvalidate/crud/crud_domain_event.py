# eventvalidate/crud/crud_domain_event.py
from datetime import datetime, timedelta
from typing import Any, Dict, List

from sqlalchemy import or_
from sqlalchemy.orm import Session

from eventvalidate.crud.base import CRUDBase
from eventvalidate.models.domain_event import DomainEvent
from eventvalidate.schemas.domain_event import DomainEvent as DomainEventSchema


class CRUDDomainEvent(CRUDBase[DomainEvent, DomainEventSchema, DomainEventSchema]):
    def create_log(
        self,
        db: Session,
        *,
        event_id: str,
        event_type: str,
        subject_id: str | None = None,
        user_id: str | None = None,
        data: Dict[str, Any] | None = None,
    ) -> DomainEvent:
        """Stage an outbox row. Committed together with the state change it describes."""
        db_obj = self.model(
            event_id=event_id,
            event_type=event_type,
            subject_id=subject_id,
            user_id=user_id,
            data=data,
        )
        db.add(db_obj)
        db.flush()
        return db_obj

    def get_for_subject(
        self, db: Session, *, subject_id: str, event_type: str | None = None
    ) -> List[DomainEvent]:
        query = db.query(self.model).filter(self.model.subject_id == subject_id)
        if event_type:
            query = query.filter(self.model.event_type == event_type)
        return query.order_by(self.model.timestamp.asc()).all()

    def get_unpublished(
        self,
        db: Session,
        *,
        limit: int = 100,
        stale_claims_before: datetime | None = None,
    ) -> List[DomainEvent]:
        query = db.query(self.model).filter(self.model.published_at.is_(None))
        if stale_claims_before is not None:
            query = query.filter(self._claimable(stale_claims_before))
        return query.order_by(self.model.timestamp.asc()).limit(limit).all()

    def _claimable(self, stale_claims_before: datetime):
        return or_(
            self.model.claimed_at.is_(None),
            self.model.claimed_at < stale_claims_before,
        )

    def claim_unpublished(
        self,
        db: Session,
        *,
        claimant: str,
        now: datetime,
        lease: timedelta,
        limit: int = 100,
    ) -> List[DomainEvent]:
        """
        Take ownership of up to ``limit`` unpublished rows for one relay run.

        The claim is a conditional UPDATE committed before anything is sent,
        so a row is handed to at most one relay at a time. Claims older than
        ``lease`` are taken over.
        """
        stale_before = now - lease
        candidates = [
            row.id
            for row in self.get_unpublished(db, limit=limit, stale_claims_before=stale_before)
        ]
        if not candidates:
            return []
        db.query(self.model).filter(
            self.model.id.in_(candidates),
            self.model.published_at.is_(None),
            self._claimable(stale_before),
        ).update({"claimed_by": claimant, "claimed_at": now}, synchronize_session=False)
        db.commit()
        return (
            db.query(self.model)
            .filter(self.model.claimed_by == claimant, self.model.published_at.is_(None))
            .order_by(self.model.timestamp.asc())
            .all()
        )

    def release_claims(self, db: Session, *, claimant: str) -> int:
        """Hand rows this relay did not publish back to the next run."""
        released = (
            db.query(self.model)
            .filter(self.model.claimed_by == claimant, self.model.published_at.is_(None))
            .update({"claimed_by": None, "claimed_at": None}, synchronize_session=False)
        )
        db.commit()
        return released

    def mark_published(
        self, db: Session, *, ids: List[str], now: datetime, claimant: str | None = None
    ) -> int:
        if not ids:
            return 0
        query = db.query(self.model).filter(
            self.model.id.in_(ids), self.model.published_at.is_(None)
        )
        if claimant is not None:
            query = query.filter(self.model.claimed_by == claimant)
        updated = query.update({"published_at": now}, synchronize_session=False)
        db.commit()
        return updated


domain_event = CRUDDomainEvent(DomainEvent)
