# eventvalidate/crud/crud_payment_notification.py
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from eventvalidate.crud.base import CRUDBase
from eventvalidate.models.payment_notification import PaymentNotification
from eventvalidate.schemas.payment import PaymentCallback


class CRUDPaymentNotification(
    CRUDBase[PaymentNotification, PaymentCallback, PaymentCallback]
):
    """Audit log of gateway callbacks."""

    def record(
        self,
        db: Session,
        *,
        callback: PaymentCallback,
        disposition: str,
        subject_kind: Optional[str] = None,
        subject_id: Optional[str] = None,
        detail: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> PaymentNotification:
        db_obj = PaymentNotification(
            reference=callback.reference,
            outcome=callback.outcome.value,
            amount=callback.amount,
            currency=callback.currency,
            disposition=disposition,
            subject_kind=subject_kind,
            subject_id=subject_id,
            detail=detail,
            payload=payload,
        )
        db.add(db_obj)
        db.flush()
        return db_obj

    def get_by_reference(self, db: Session, *, reference: str) -> List[PaymentNotification]:
        return (
            db.query(self.model)
            .filter(self.model.reference == reference)
            .order_by(self.model.received_at.asc())
            .all()
        )


payment_notification = CRUDPaymentNotification(PaymentNotification)
