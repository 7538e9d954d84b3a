# eventvalidate/api/v1/endpoints/tickets.py
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from eventvalidate import crud
from eventvalidate.api import deps
from eventvalidate.core.exceptions import CredentialNotFound
from eventvalidate.db.session import get_db
from eventvalidate.schemas.registration import IssuedCredential
from eventvalidate.schemas.ticket import Ticket, TicketPurchase, TicketTransferRequest
from eventvalidate.schemas.token import TokenPayload
from eventvalidate.services.credentials import credential_issuer
from eventvalidate.services.payment.tracker import payment_tracker

router = APIRouter(tags=["Tickets"])


def _get_ticket_for_staff(db: Session, ticket_number: str, current_user: TokenPayload):
    ticket = crud.ticket.get_by_number(db, ticket_number=ticket_number)
    if not ticket:
        raise CredentialNotFound(f"Ticket {ticket_number} not found")
    deps.ensure_organization_access(ticket.event.organization_id, current_user)
    return ticket


@router.post(
    "/events/{event_id}/tickets",
    response_model=IssuedCredential,
    status_code=status.HTTP_201_CREATED,
)
def purchase_ticket(
    event_id: str,
    purchase_in: TicketPurchase,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    relay=Depends(deps.get_outbox_relay),
):
    issued = credential_issuer.issue_ticket(db, event_id=event_id, purchase=purchase_in)
    background_tasks.add_task(relay)
    return issued.to_schema()


@router.get("/tickets/{ticket_number}", response_model=Ticket)
def get_ticket(
    ticket_number: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return _get_ticket_for_staff(db, ticket_number, current_user)


@router.post("/tickets/{ticket_number}/transfer", response_model=Ticket)
def transfer_ticket(
    ticket_number: str,
    transfer_in: TicketTransferRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    relay=Depends(deps.get_outbox_relay),
):
    """Hand a paid ticket to someone else. The current owner's email is required."""
    ticket = credential_issuer.transfer_ticket(
        db, ticket_number=ticket_number, transfer=transfer_in
    )
    background_tasks.add_task(relay)
    return ticket


@router.post("/tickets/{ticket_number}/cancel", response_model=Ticket)
def cancel_ticket(
    ticket_number: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    _get_ticket_for_staff(db, ticket_number, current_user)
    return credential_issuer.cancel_ticket(
        db, ticket_number=ticket_number, cancelled_by=current_user.sub
    )


@router.post("/tickets/{ticket_number}/refund", response_model=Ticket)
def refund_ticket(
    ticket_number: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    relay=Depends(deps.get_outbox_relay),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    _get_ticket_for_staff(db, ticket_number, current_user)
    ticket = payment_tracker.refund_ticket(
        db, ticket_number=ticket_number, refunded_by=current_user.sub
    )
    background_tasks.add_task(relay)
    return ticket


@router.post("/tickets/{ticket_number}/payment/retry", response_model=Ticket)
def retry_ticket_payment(ticket_number: str, db: Session = Depends(get_db)):
    if not crud.ticket.identifier_exists(db, ticket_number=ticket_number):
        raise CredentialNotFound(f"Ticket {ticket_number} not found")
    return payment_tracker.retry_payment(db, identifier=ticket_number)
