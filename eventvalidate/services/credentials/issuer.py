# eventvalidate/services/credentials/issuer.py
"""
Credential issuance for registrations and ticket purchases.

Issuing is all-or-nothing: the capacity slot, the record with its identifier,
QR secret hash and manual code, and any outbox row are committed together.
Any failure rolls every one of them back.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventvalidate import crud
from eventvalidate.core.exceptions import (
    AlreadyRegistered,
    CapacityExceeded,
    CredentialCollision,
    CredentialNotFound,
    EventNotFound,
    InputValidationError,
    InvalidTransition,
    PaymentRequired,
    WrongEventType,
)
from eventvalidate.models.event import Event
from eventvalidate.models.registration import Registration
from eventvalidate.models.ticket import Ticket
from eventvalidate.schemas.enums import CredentialKind, PaymentMethod, ReceiptReviewStatus
from eventvalidate.schemas.registration import IssuedCredential as IssuedCredentialSchema
from eventvalidate.schemas.registration import RegistrationCreate
from eventvalidate.schemas.ticket import TicketPurchase, TicketTransferRequest
from eventvalidate.services import notifications
from eventvalidate.services.credentials import codes
from eventvalidate.services.credentials.qr_signing import (
    render_qr_data_url,
    sign_credential_qr,
)
from eventvalidate.services.eligibility import (
    PaymentRequirement,
    check_base_requirements,
    check_eligibility,
    resolve_payment,
    resolve_ticket_price,
    validate_answers,
)
from eventvalidate.services.eligibility.pricing import check_window

logger = logging.getLogger(__name__)


@dataclass
class IssuedCredential:
    kind: CredentialKind
    identifier: str
    qr_code: str
    manual_code: str
    payment: PaymentRequirement
    record: Union[Registration, Ticket]

    @property
    def qr_image(self) -> str:
        return render_qr_data_url(self.qr_code)

    def to_schema(self) -> IssuedCredentialSchema:
        return IssuedCredentialSchema(
            identifier=self.identifier,
            kind=self.kind.value,
            qr_code=self.qr_code,
            qr_image=self.qr_image,
            manual_code=self.manual_code,
            status=self.record.status,
            payment_status=self.record.payment_status,
            payment_required=self.payment.payment_required,
            payment_amount=self.payment.amount,
            payment_currency=self.payment.currency,
            payment_reference=self.record.payment_reference,
        )


@dataclass
class _Credential:
    identifier: str
    qr_code: str
    secret_hash: str
    manual_code: str


class CredentialIssuer:
    """Issues, cancels and transfers registration and ticket credentials."""

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _get_event(db: Session, event_id: str) -> Event:
        event = crud.event.get(db, event_id)
        if not event:
            raise EventNotFound(f"Event {event_id} not found", event_id=event_id)
        return event

    @staticmethod
    def _select_payment_method(
        event: Event,
        requirement: PaymentRequirement,
        method: Optional[PaymentMethod],
        receipt_path: Optional[str],
    ) -> Optional[PaymentMethod]:
        if not requirement.payment_required:
            return None
        if method is None:
            raise PaymentRequired(
                f"Payment of {requirement.currency} {requirement.amount} is required",
                amount=requirement.amount,
                currency=requirement.currency,
            )
        allowed = event.payment_methods or []
        if allowed and method.value not in allowed:
            raise InputValidationError(
                f"Payment method '{method.value}' is not accepted for this event",
                field="payment_method",
            )
        if method == PaymentMethod.MANUAL_RECEIPT and not receipt_path:
            raise PaymentRequired(
                "A payment receipt must be uploaded for manual payment",
                reason="receipt_required",
            )
        return method

    def _allocate(
        self, db: Session, kind: CredentialKind, event: Event
    ) -> _Credential:
        store = crud.ticket if kind == CredentialKind.TICKET else crud.registration

        def identifier_taken(value: str) -> bool:
            if kind == CredentialKind.TICKET:
                return store.identifier_exists(db, ticket_number=value)
            return store.identifier_exists(db, unique_id=value)

        identifier = codes.allocate_unique(
            lambda: codes.generate_identifier(kind), identifier_taken, "identifier"
        )
        manual_code = codes.allocate_unique(
            lambda: codes.generate_manual_code(kind),
            lambda value: store.manual_code_exists(db, code=value),
            "manual code",
        )
        secret = codes.allocate_unique(
            codes.generate_verification_secret,
            lambda value: store.secret_hash_exists(db, secret_hash=codes.hash_secret(value)),
            "verification secret",
        )
        qr_code = sign_credential_qr(
            kind.value, identifier, event.id, secret, event_end_date=event.end_date
        )
        return _Credential(
            identifier=identifier,
            qr_code=qr_code,
            secret_hash=codes.hash_secret(secret),
            manual_code=manual_code,
        )

    @staticmethod
    def _collision(e: IntegrityError) -> CredentialCollision:
        logger.error(f"Unique constraint hit while issuing credential: {e.orig}")
        return CredentialCollision(
            "Credential collided with an existing record, nothing was saved"
        )

    # ------------------------------------------------------------------ #
    # Registrations
    # ------------------------------------------------------------------ #

    def issue_registration(
        self,
        db: Session,
        *,
        event_id: str,
        submission: RegistrationCreate,
        now: Optional[datetime] = None,
    ) -> IssuedCredential:
        event = self._get_event(db, event_id)
        if event.is_ticketed:
            raise WrongEventType("This event sells tickets; purchase a ticket instead")

        category = check_eligibility(event, submission.registration_type, now)
        check_base_requirements(
            category, submission.model_dump(), event.eligible_auxiliary_bodies
        )
        answers = validate_answers(
            event.custom_fields, category, submission.registration_data
        )
        requirement = resolve_payment(event, category)
        method = self._select_payment_method(
            event, requirement, submission.payment_method, submission.receipt_path
        )

        if submission.email and crud.registration.get_by_email(
            db, event_id=event.id, email=submission.email
        ):
            raise AlreadyRegistered(
                "This email is already registered for the event", email=submission.email
            )

        try:
            if not crud.event.reserve_slot(db, event_id=event.id):
                raise CapacityExceeded(
                    "Event is full", max_attendees=event.max_attendees
                )

            credential = self._allocate(db, CredentialKind.REGISTRATION, event)
            record = Registration(
                event_id=event.id,
                registration_type=category.value,
                first_name=submission.first_name,
                last_name=submission.last_name,
                email=submission.email,
                phone_number=submission.phone_number,
                auxiliary_body=submission.auxiliary_body,
                registration_data=answers,
                face_photo_path=submission.face_photo_path,
                unique_id=credential.identifier,
                qr_code=credential.qr_code,
                qr_secret_hash=credential.secret_hash,
                manual_verification_code=credential.manual_code,
            )

            if not requirement.payment_required:
                record.status = "confirmed"
                record.payment_status = "not_required"
            else:
                record.status = "pending"
                record.payment_status = "pending"
                record.payment_method = method.value
                record.payment_amount = requirement.amount
                record.payment_currency = requirement.currency
                if method == PaymentMethod.MANUAL_RECEIPT:
                    record.receipt_path = submission.receipt_path
                    record.receipt_review_status = ReceiptReviewStatus.AWAITING_REVIEW.value
                else:
                    record.payment_reference = codes.generate_payment_reference()

            db.add(record)
            db.flush()

            if record.status == "confirmed":
                notifications.publisher.stage(
                    db,
                    event_type=notifications.REGISTRATION_CONFIRMED,
                    event_id=event.id,
                    subject_id=record.unique_id,
                    data={
                        "registration_type": record.registration_type,
                        "email": record.email,
                        "name": record.full_name,
                    },
                )
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise self._collision(e) from e
        except Exception:
            db.rollback()
            raise

        db.refresh(record)
        logger.info(
            f"Issued registration {record.unique_id} for event {event.id} "
            f"({record.registration_type}, status={record.status}, "
            f"payment={record.payment_status})"
        )
        return IssuedCredential(
            kind=CredentialKind.REGISTRATION,
            identifier=record.unique_id,
            qr_code=record.qr_code,
            manual_code=record.manual_verification_code,
            payment=requirement,
            record=record,
        )

    def cancel_registration(
        self, db: Session, *, unique_id: str, cancelled_by: Optional[str] = None
    ) -> Registration:
        record = crud.registration.get_by_unique_id(db, unique_id=unique_id)
        if not record:
            raise CredentialNotFound(f"Registration {unique_id} not found")

        now = datetime.now(timezone.utc)
        try:
            if not crud.registration.cancel(db, registration_id=record.id, now=now):
                db.rollback()
                db.refresh(record)
                raise InvalidTransition(
                    f"Registration cannot be cancelled. Current status: {record.status}",
                    status=record.status,
                )
            crud.event.release_slot(db, event_id=record.event_id)
            db.commit()
        except InvalidTransition:
            raise
        except Exception:
            db.rollback()
            raise

        db.refresh(record)
        logger.info(f"Registration {unique_id} cancelled by {cancelled_by or 'participant'}")
        return record

    # ------------------------------------------------------------------ #
    # Tickets
    # ------------------------------------------------------------------ #

    def issue_ticket(
        self,
        db: Session,
        *,
        event_id: str,
        purchase: TicketPurchase,
        now: Optional[datetime] = None,
    ) -> IssuedCredential:
        event = self._get_event(db, event_id)
        if not event.is_ticketed:
            raise WrongEventType("This event takes registrations, not ticket purchases")

        check_window(event, now)
        requirement = resolve_ticket_price(event, purchase.category)
        if purchase.payment_method == PaymentMethod.MANUAL_RECEIPT:
            raise InputValidationError(
                "Tickets can only be paid through the payment gateway",
                field="payment_method",
            )
        method = self._select_payment_method(
            event, requirement, purchase.payment_method, None
        )

        try:
            if not crud.event.reserve_slot(db, event_id=event.id):
                raise CapacityExceeded("Event is sold out", max_attendees=event.max_attendees)

            credential = self._allocate(db, CredentialKind.TICKET, event)
            record = Ticket(
                event_id=event.id,
                owner_name=purchase.owner_name,
                owner_email=purchase.owner_email,
                owner_phone=purchase.owner_phone,
                face_photo_path=purchase.face_photo_path,
                category=purchase.category,
                price=requirement.amount or 0,
                currency=requirement.currency or event.payment_currency,
                ticket_number=credential.identifier,
                qr_code=credential.qr_code,
                qr_secret_hash=credential.secret_hash,
                manual_verification_code=credential.manual_code,
                transfer_history=[],
            )
            if requirement.payment_required:
                record.status = "pending"
                record.payment_status = "pending"
                record.payment_method = method.value
                record.payment_reference = codes.generate_payment_reference()
            else:
                # Free ticket, admissible immediately
                record.status = "paid"
                record.payment_status = "paid"

            db.add(record)
            db.flush()
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise self._collision(e) from e
        except Exception:
            db.rollback()
            raise

        db.refresh(record)
        logger.info(
            f"Issued ticket {record.ticket_number} ({record.category}) for event {event.id}"
        )
        return IssuedCredential(
            kind=CredentialKind.TICKET,
            identifier=record.ticket_number,
            qr_code=record.qr_code,
            manual_code=record.manual_verification_code,
            payment=requirement,
            record=record,
        )

    def cancel_ticket(
        self, db: Session, *, ticket_number: str, cancelled_by: Optional[str] = None
    ) -> Ticket:
        """Cancel an unpaid ticket. Paid tickets leave through a refund."""
        record = crud.ticket.get_by_number(db, ticket_number=ticket_number)
        if not record:
            raise CredentialNotFound(f"Ticket {ticket_number} not found")

        now = datetime.now(timezone.utc)
        try:
            if not crud.ticket.cancel(db, ticket_id=record.id, now=now):
                db.rollback()
                db.refresh(record)
                raise InvalidTransition(
                    f"Ticket cannot be cancelled. Current status: {record.status}",
                    status=record.status,
                )
            crud.event.release_slot(db, event_id=record.event_id)
            db.commit()
        except InvalidTransition:
            raise
        except Exception:
            db.rollback()
            raise

        db.refresh(record)
        logger.info(f"Ticket {ticket_number} cancelled by {cancelled_by or 'owner'}")
        return record

    def transfer_ticket(
        self,
        db: Session,
        *,
        ticket_number: str,
        transfer: TicketTransferRequest,
        requested_by: Optional[str] = None,
    ) -> Ticket:
        """
        Hand a paid ticket to someone else.

        The credential stays the same; only the owner changes and one entry
        is appended to ``transfer_history``.
        """
        record = (
            db.query(Ticket)
            .filter(Ticket.ticket_number == ticket_number)
            .with_for_update()
            .first()
        )
        if not record or record.owner_email.lower() != transfer.current_owner_email.lower():
            db.rollback()
            raise CredentialNotFound(f"Ticket {ticket_number} not found for this owner")
        if record.status != "paid":
            db.rollback()
            raise InvalidTransition(
                f"Only paid tickets can be transferred. Current status: {record.status}",
                status=record.status,
            )
        if record.transfer_count >= record.max_transfers:
            db.rollback()
            raise InvalidTransition(
                f"Ticket has reached its limit of {record.max_transfers} transfers",
                reason="transfer_limit_reached",
            )
        if transfer.to_email.lower() == record.owner_email.lower():
            db.rollback()
            raise InputValidationError(
                "Ticket is already owned by this email", field="to_email"
            )

        now = datetime.now(timezone.utc)
        entry = {
            "from_name": record.owner_name,
            "from_email": record.owner_email,
            "to_name": transfer.to_name,
            "to_email": transfer.to_email,
            "reason": transfer.reason,
            "transferred_at": now.isoformat(),
        }
        try:
            # New list so the JSON column is detected as changed
            record.transfer_history = list(record.transfer_history or []) + [entry]
            record.owner_name = transfer.to_name
            record.owner_email = transfer.to_email
            record.owner_phone = transfer.to_phone
            notifications.publisher.stage(
                db,
                event_type=notifications.TICKET_TRANSFERRED,
                event_id=record.event_id,
                subject_id=record.ticket_number,
                user_id=requested_by,
                data=entry,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(record)
        logger.info(
            f"Ticket {ticket_number} transferred ({record.transfer_count}/{record.max_transfers})"
        )
        return record


credential_issuer = CredentialIssuer()
