# eventvalidate/api/v1/endpoints/registrations.py
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from eventvalidate import crud
from eventvalidate.api import deps
from eventvalidate.core.exceptions import CredentialNotFound
from eventvalidate.db.session import get_db
from eventvalidate.schemas.registration import (
    IssuedCredential,
    ReceiptReview,
    ReceiptSubmission,
    Registration,
    RegistrationCreate,
)
from eventvalidate.schemas.token import TokenPayload
from eventvalidate.services.credentials import credential_issuer
from eventvalidate.services.payment.tracker import payment_tracker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Registrations"])


def _get_registration_for_staff(
    db: Session, unique_id: str, current_user: TokenPayload
):
    registration = crud.registration.get_by_unique_id(db, unique_id=unique_id)
    if not registration:
        raise CredentialNotFound(f"Registration {unique_id} not found")
    deps.ensure_organization_access(registration.event.organization_id, current_user)
    return registration


@router.post(
    "/events/{event_id}/registrations",
    response_model=IssuedCredential,
    status_code=status.HTTP_201_CREATED,
)
def register_for_event(
    event_id: str,
    registration_in: RegistrationCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    relay=Depends(deps.get_outbox_relay),
):
    """
    Public registration. Returns the credential (QR payload, QR image and
    manual code) together with what, if anything, is still owed.
    """
    issued = credential_issuer.issue_registration(
        db, event_id=event_id, submission=registration_in
    )
    background_tasks.add_task(relay)
    return issued.to_schema()


@router.get("/registrations/{unique_id}", response_model=Registration)
def get_registration(
    unique_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return _get_registration_for_staff(db, unique_id, current_user)


@router.post("/registrations/{unique_id}/cancel", response_model=Registration)
def cancel_registration(
    unique_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    _get_registration_for_staff(db, unique_id, current_user)
    return credential_issuer.cancel_registration(
        db, unique_id=unique_id, cancelled_by=current_user.sub
    )


@router.post("/registrations/{unique_id}/receipt", response_model=Registration)
def submit_receipt(
    unique_id: str,
    receipt_in: ReceiptSubmission,
    db: Session = Depends(get_db),
):
    """Attach an uploaded bank transfer receipt for admin review."""
    return payment_tracker.submit_receipt(
        db, unique_id=unique_id, receipt_path=receipt_in.receipt_path
    )


@router.post("/registrations/{unique_id}/receipt/review", response_model=Registration)
def review_receipt(
    unique_id: str,
    review_in: ReceiptReview,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    relay=Depends(deps.get_outbox_relay),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    _get_registration_for_staff(db, unique_id, current_user)
    registration = payment_tracker.review_receipt(
        db,
        unique_id=unique_id,
        approve=review_in.approve,
        reviewer_id=current_user.sub,
        rejection_reason=review_in.rejection_reason,
    )
    background_tasks.add_task(relay)
    return registration


@router.post("/registrations/{unique_id}/payment/retry", response_model=Registration)
def retry_registration_payment(unique_id: str, db: Session = Depends(get_db)):
    """Start a new gateway payment attempt after a failed one."""
    if not crud.registration.identifier_exists(db, unique_id=unique_id):
        raise CredentialNotFound(f"Registration {unique_id} not found")
    return payment_tracker.retry_payment(db, identifier=unique_id)
