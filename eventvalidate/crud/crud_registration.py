# eventvalidate/crud/crud_registration.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from eventvalidate.crud.base import CRUDBase
from eventvalidate.models.registration import Registration
from eventvalidate.schemas.registration import RegistrationCreate


class CRUDRegistration(CRUDBase[Registration, RegistrationCreate, RegistrationCreate]):
    def get_by_unique_id(self, db: Session, *, unique_id: str) -> Optional[Registration]:
        return db.query(self.model).filter(self.model.unique_id == unique_id).first()

    def get_by_manual_code(self, db: Session, *, code: str) -> Optional[Registration]:
        return (
            db.query(self.model)
            .filter(self.model.manual_verification_code == code.upper())
            .first()
        )

    def get_by_reference(self, db: Session, *, reference: str) -> Optional[Registration]:
        return db.query(self.model).filter(self.model.payment_reference == reference).first()

    def get_by_email(
        self, db: Session, *, event_id: str, email: str
    ) -> Optional[Registration]:
        return (
            db.query(self.model)
            .filter(
                self.model.event_id == event_id,
                func.lower(self.model.email) == email.lower(),
                self.model.status != "cancelled",
            )
            .first()
        )

    def identifier_exists(self, db: Session, *, unique_id: str) -> bool:
        return self.get_by_unique_id(db, unique_id=unique_id) is not None

    def manual_code_exists(self, db: Session, *, code: str) -> bool:
        return (
            db.query(self.model.id)
            .filter(self.model.manual_verification_code == code)
            .first()
            is not None
        )

    def secret_hash_exists(self, db: Session, *, secret_hash: str) -> bool:
        return (
            db.query(self.model.id).filter(self.model.qr_secret_hash == secret_hash).first()
            is not None
        )

    def consume(
        self,
        db: Session,
        *,
        registration_id: str,
        validated_by: str,
        method: str,
        now: datetime,
    ) -> bool:
        """confirmed -> attended. Exactly one concurrent caller gets True."""
        return self.transition(
            db,
            conditions=[
                self.model.id == registration_id,
                self.model.status == "confirmed",
            ],
            values={
                "status": "attended",
                "validated_at": now,
                "validated_by": validated_by,
                "validation_method": method,
                "updated_at": now,
            },
        )

    def cancel(self, db: Session, *, registration_id: str, now: datetime) -> bool:
        return self.transition(
            db,
            conditions=[
                self.model.id == registration_id,
                self.model.status.in_(("pending", "confirmed")),
            ],
            values={"status": "cancelled", "updated_at": now},
        )

    def list_stale_pending(
        self, db: Session, *, created_before: datetime
    ) -> List[Registration]:
        return (
            db.query(self.model)
            .filter(
                self.model.payment_status == "pending",
                self.model.payment_method != "manual_receipt",
                self.model.requires_manual_reconciliation.is_(False),
                self.model.created_at < created_before,
            )
            .all()
        )


registration = CRUDRegistration(Registration)
