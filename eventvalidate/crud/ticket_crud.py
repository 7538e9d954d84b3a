# eventvalidate/crud/ticket_crud.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from eventvalidate.crud.base import CRUDBase
from eventvalidate.models.ticket import Ticket
from eventvalidate.schemas.ticket import TicketPurchase


class CRUDTicket(CRUDBase[Ticket, TicketPurchase, TicketPurchase]):
    """CRUD operations for tickets."""

    def get_by_number(self, db: Session, *, ticket_number: str) -> Optional[Ticket]:
        return db.query(self.model).filter(self.model.ticket_number == ticket_number).first()

    def get_by_manual_code(self, db: Session, *, code: str) -> Optional[Ticket]:
        return (
            db.query(self.model).filter(self.model.manual_verification_code == code).first()
        )

    def get_by_reference(self, db: Session, *, reference: str) -> Optional[Ticket]:
        return db.query(self.model).filter(self.model.payment_reference == reference).first()

    def identifier_exists(self, db: Session, *, ticket_number: str) -> bool:
        return self.get_by_number(db, ticket_number=ticket_number) is not None

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
        ticket_id: str,
        validated_by: str,
        method: str,
        now: datetime,
    ) -> bool:
        """paid -> used, guarded so a ticket can only be admitted once."""
        return self.transition(
            db,
            conditions=[self.model.id == ticket_id, self.model.status == "paid"],
            values={
                "status": "used",
                "validated_at": now,
                "validated_by": validated_by,
                "validation_method": method,
                "updated_at": now,
            },
        )

    def cancel(self, db: Session, *, ticket_id: str, now: datetime) -> bool:
        return self.transition(
            db,
            conditions=[
                self.model.id == ticket_id,
                self.model.status == "pending",
            ],
            values={"status": "cancelled", "updated_at": now},
        )

    def list_stale_pending(self, db: Session, *, created_before: datetime) -> List[Ticket]:
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


ticket = CRUDTicket(Ticket)
