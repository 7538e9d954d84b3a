# eventvalidate/crud/crud_payment_attempt.py
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from eventvalidate.crud.base import CRUDBase
from eventvalidate.models.payment_attempt import PaymentAttempt
from eventvalidate.schemas.payment import PaymentRetry


class CRUDPaymentAttempt(CRUDBase[PaymentAttempt, PaymentRetry, PaymentRetry]):
    def record_superseded(
        self,
        db: Session,
        *,
        reference: str,
        subject_kind: str,
        subject_id: str,
        payment_method: Optional[str],
        now: datetime,
    ) -> PaymentAttempt:
        """Stage within the caller's transaction, next to the reference change."""
        db_obj = PaymentAttempt(
            reference=reference,
            subject_kind=subject_kind,
            subject_id=subject_id,
            payment_method=payment_method,
            superseded_at=now,
        )
        db.add(db_obj)
        db.flush()
        return db_obj

    def get_by_reference(self, db: Session, *, reference: str) -> Optional[PaymentAttempt]:
        return db.query(self.model).filter(self.model.reference == reference).first()

    def mark_captured(self, db: Session, *, attempt_id: str, now: datetime) -> bool:
        """First late success wins; redeliveries return False."""
        return self.transition(
            db,
            conditions=[self.model.id == attempt_id, self.model.captured_at.is_(None)],
            values={"captured_at": now},
        )

    def has_captured(self, db: Session, *, subject_id: str) -> bool:
        return (
            db.query(self.model.id)
            .filter(self.model.subject_id == subject_id, self.model.captured_at.isnot(None))
            .first()
            is not None
        )


payment_attempt = CRUDPaymentAttempt(PaymentAttempt)
