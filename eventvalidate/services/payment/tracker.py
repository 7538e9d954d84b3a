# eventvalidate/services/payment/tracker.py
"""
Payment status tracking for registrations and tickets.

State machine::

    pending --(gateway success)--> paid        (registration -> confirmed,
                                                ticket -> paid)
    pending --(gateway failure)--> failed      (record stays pending)
    pending --(no callback)------> pending, flagged for manual reconciliation
    failed  --(retry)------------> pending     (old reference kept in payment_attempts)
    paid    --(refund)-----------> refunded    (tickets only)

Every transition is a conditional UPDATE guarded on the current payment
status, so a callback that arrives twice, or after the record already
moved on, changes nothing and emits no domain event.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple, Union

from sqlalchemy.orm import Session

from eventvalidate import crud
from eventvalidate.core.config import settings
from eventvalidate.core.exceptions import (
    CredentialNotFound,
    InvalidTransition,
    ReferenceNotFound,
)
from eventvalidate.models.payment_attempt import PaymentAttempt
from eventvalidate.models.registration import Registration
from eventvalidate.models.ticket import Ticket
from eventvalidate.schemas.enums import (
    CredentialKind,
    NotificationDisposition,
    PaymentMethod,
    PaymentOutcome,
    ReceiptReviewStatus,
)
from eventvalidate.schemas.payment import PaymentCallback, ReconcileResult
from eventvalidate.services import notifications
from eventvalidate.services.credentials import codes

logger = logging.getLogger(__name__)

# Amounts are stored with two decimals
AMOUNT_TOLERANCE = 0.005

Record = Union[Registration, Ticket]


class PaymentTracker:
    # ------------------------------------------------------------------ #
    # Lookup helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _find_by_reference(
        db: Session, reference: str
    ) -> Tuple[Optional[CredentialKind], Optional[Record]]:
        record = crud.registration.get_by_reference(db, reference=reference)
        if record:
            return CredentialKind.REGISTRATION, record
        record = crud.ticket.get_by_reference(db, reference=reference)
        if record:
            return CredentialKind.TICKET, record
        return None, None

    @staticmethod
    def _find_by_identifier(
        db: Session, identifier: str
    ) -> Tuple[CredentialKind, Record]:
        record = crud.registration.get_by_unique_id(db, unique_id=identifier)
        if record:
            return CredentialKind.REGISTRATION, record
        record = crud.ticket.get_by_number(db, ticket_number=identifier)
        if record:
            return CredentialKind.TICKET, record
        raise CredentialNotFound(f"No registration or ticket {identifier}")

    @staticmethod
    def _reference_is(model, reference: Optional[str]):
        if reference is None:
            return model.payment_reference.is_(None)
        return model.payment_reference == reference

    @staticmethod
    def _keep_superseded(
        db: Session,
        kind: CredentialKind,
        record: Record,
        reference: Optional[str],
        method: Optional[str],
        now: datetime,
    ) -> None:
        if reference is None:
            return
        crud.payment_attempt.record_superseded(
            db,
            reference=reference,
            subject_kind=kind.value,
            subject_id=record.identifier,
            payment_method=method,
            now=now,
        )

    @staticmethod
    def _expected_amount(kind: CredentialKind, record: Record) -> Optional[float]:
        if kind == CredentialKind.TICKET:
            return record.price
        return record.payment_amount

    @staticmethod
    def _expected_currency(kind: CredentialKind, record: Record) -> Optional[str]:
        if kind == CredentialKind.TICKET:
            return record.currency
        return record.payment_currency

    def _mismatch(self, kind: CredentialKind, record: Record, callback: PaymentCallback) -> Optional[str]:
        expected = self._expected_amount(kind, record)
        if callback.amount is not None and expected is not None:
            if abs(float(callback.amount) - float(expected)) > AMOUNT_TOLERANCE:
                return f"amount_mismatch: expected {expected}, got {callback.amount}"
        currency = self._expected_currency(kind, record)
        if callback.currency and currency and callback.currency.upper() != currency.upper():
            return f"currency_mismatch: expected {currency}, got {callback.currency}"
        return None

    def _stage_success(
        self, db: Session, kind: CredentialKind, record: Record, user_id: Optional[str] = None
    ) -> None:
        amount = self._expected_amount(kind, record)
        notifications.publisher.stage(
            db,
            event_type=notifications.PAYMENT_SUCCEEDED,
            event_id=record.event_id,
            subject_id=record.identifier,
            user_id=user_id,
            data={
                "kind": kind.value,
                "reference": record.payment_reference,
                "method": record.payment_method,
                "amount": amount,
                "currency": self._expected_currency(kind, record),
            },
        )
        if kind == CredentialKind.REGISTRATION:
            notifications.publisher.stage(
                db,
                event_type=notifications.REGISTRATION_CONFIRMED,
                event_id=record.event_id,
                subject_id=record.identifier,
                user_id=user_id,
                data={
                    "registration_type": record.registration_type,
                    "email": record.email,
                    "name": record.full_name,
                },
            )

    # ------------------------------------------------------------------ #
    # Gateway callbacks
    # ------------------------------------------------------------------ #

    def reconcile(
        self,
        db: Session,
        callback: PaymentCallback,
        payload: Optional[Dict[str, Any]] = None,
    ) -> ReconcileResult:
        """
        Apply one gateway notification. Safe to call any number of times
        with the same notification.
        """
        kind, record = self._find_by_reference(db, callback.reference)
        if record is None:
            attempt = crud.payment_attempt.get_by_reference(db, reference=callback.reference)
            if attempt is not None:
                return self._reconcile_superseded(db, callback, attempt, payload)
            crud.payment_notification.record(
                db,
                callback=callback,
                disposition=NotificationDisposition.UNMATCHED.value,
                payload=payload,
            )
            db.commit()
            logger.warning(f"Payment callback for unknown reference {callback.reference}")
            return ReconcileResult(
                reference=callback.reference,
                disposition=NotificationDisposition.UNMATCHED,
            )

        model = type(record)
        now = datetime.now(timezone.utc)
        detail = None
        outcome = callback.outcome
        if outcome == PaymentOutcome.SUCCESS:
            detail = self._mismatch(kind, record, callback)
            if detail:
                outcome = PaymentOutcome.FAILURE
                logger.warning(f"Payment {callback.reference} rejected: {detail}")

        guard = [
            model.id == record.id,
            model.status == "pending",
            model.payment_status == "pending",
            model.payment_method != PaymentMethod.MANUAL_RECEIPT.value,
        ]
        if outcome == PaymentOutcome.SUCCESS:
            values = {
                "payment_status": "paid",
                "status": "confirmed" if kind == CredentialKind.REGISTRATION else "paid",
                "payment_confirmed_at": now,
                # A replaced reference that also captured money keeps the flag
                "requires_manual_reconciliation": crud.payment_attempt.has_captured(
                    db, subject_id=record.identifier
                ),
                "updated_at": now,
            }
        else:
            values = {"payment_status": "failed", "updated_at": now}

        store = crud.registration if kind == CredentialKind.REGISTRATION else crud.ticket
        try:
            applied = store.transition(db, conditions=guard, values=values)
            if applied:
                db.refresh(record)
                if outcome == PaymentOutcome.SUCCESS:
                    self._stage_success(db, kind, record)
                else:
                    notifications.publisher.stage(
                        db,
                        event_type=notifications.PAYMENT_FAILED,
                        event_id=record.event_id,
                        subject_id=record.identifier,
                        data={"kind": kind.value, "reference": record.payment_reference, "detail": detail},
                    )
                disposition = NotificationDisposition.APPLIED
            else:
                db.refresh(record)
                disposition, detail = self._classify_noop(record, outcome, detail)
                if detail == "record_cancelled" and outcome == PaymentOutcome.SUCCESS:
                    # Money arrived for something no longer admissible
                    record.requires_manual_reconciliation = True

            crud.payment_notification.record(
                db,
                callback=callback,
                disposition=disposition.value,
                subject_kind=kind.value,
                subject_id=record.identifier,
                detail=detail,
                payload=payload,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(record)
        logger.info(
            f"Payment callback {callback.reference} ({callback.outcome.value}) -> "
            f"{disposition.value}; {kind.value} {record.identifier} payment={record.payment_status}"
        )
        return ReconcileResult(
            reference=callback.reference,
            disposition=disposition,
            subject_kind=kind.value,
            subject_id=record.identifier,
            payment_status=record.payment_status,
            detail=detail,
        )

    @staticmethod
    def _classify_noop(
        record: Record, outcome: PaymentOutcome, detail: Optional[str]
    ) -> Tuple[NotificationDisposition, Optional[str]]:
        if record.status == "cancelled":
            return NotificationDisposition.IGNORED, "record_cancelled"
        if record.payment_method == PaymentMethod.MANUAL_RECEIPT.value:
            return NotificationDisposition.IGNORED, "manual_receipt_path"
        already = "paid" if outcome == PaymentOutcome.SUCCESS else "failed"
        if record.payment_status == already:
            return NotificationDisposition.DUPLICATE, detail
        return (
            NotificationDisposition.IGNORED,
            f"out_of_order: payment already {record.payment_status}",
        )

    def _reconcile_superseded(
        self,
        db: Session,
        callback: PaymentCallback,
        attempt: PaymentAttempt,
        payload: Optional[Dict[str, Any]],
    ) -> ReconcileResult:
        """
        Callback for a reference its record no longer carries. Nothing is
        applied, but captured money flags the record for manual
        reconciliation.
        """
        kind = CredentialKind(attempt.subject_kind)
        if kind == CredentialKind.REGISTRATION:
            record = crud.registration.get_by_unique_id(db, unique_id=attempt.subject_id)
            model = Registration
        else:
            record = crud.ticket.get_by_number(db, ticket_number=attempt.subject_id)
            model = Ticket
        store = crud.registration if kind == CredentialKind.REGISTRATION else crud.ticket

        now = datetime.now(timezone.utc)
        disposition = NotificationDisposition.IGNORED
        detail = "superseded_reference"
        try:
            if callback.outcome == PaymentOutcome.SUCCESS:
                if crud.payment_attempt.mark_captured(db, attempt_id=attempt.id, now=now):
                    store.transition(
                        db,
                        conditions=[model.id == record.id],
                        values={"requires_manual_reconciliation": True, "updated_at": now},
                    )
                    logger.warning(
                        f"Payment captured on replaced reference {callback.reference} for "
                        f"{attempt.subject_id}; flagged for manual reconciliation"
                    )
                else:
                    disposition = NotificationDisposition.DUPLICATE

            crud.payment_notification.record(
                db,
                callback=callback,
                disposition=disposition.value,
                subject_kind=kind.value,
                subject_id=attempt.subject_id,
                detail=detail,
                payload=payload,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(record)
        return ReconcileResult(
            reference=callback.reference,
            disposition=disposition,
            subject_kind=kind.value,
            subject_id=attempt.subject_id,
            payment_status=record.payment_status,
            detail=detail,
        )

    # ------------------------------------------------------------------ #
    # Retries, stale payments and refunds
    # ------------------------------------------------------------------ #

    def retry_payment(self, db: Session, *, identifier: str) -> Record:
        """failed -> pending with a fresh gateway reference."""
        kind, record = self._find_by_identifier(db, identifier)
        store = crud.registration if kind == CredentialKind.REGISTRATION else crud.ticket
        model = type(record)
        now = datetime.now(timezone.utc)
        old_reference = record.payment_reference
        old_method = record.payment_method
        try:
            applied = store.transition(
                db,
                conditions=[
                    model.id == record.id,
                    model.status == "pending",
                    model.payment_status == "failed",
                    self._reference_is(model, old_reference),
                ],
                values={
                    "payment_status": "pending",
                    "payment_method": PaymentMethod.GATEWAY.value,
                    "payment_reference": codes.generate_payment_reference(),
                    "requires_manual_reconciliation": crud.payment_attempt.has_captured(
                        db, subject_id=record.identifier
                    ),
                    "updated_at": now,
                },
            )
            if not applied:
                db.rollback()
                db.refresh(record)
                raise InvalidTransition(
                    f"Payment can only be retried after a failure. "
                    f"Current payment status: {record.payment_status}",
                    payment_status=record.payment_status,
                )
            self._keep_superseded(db, kind, record, old_reference, old_method, now)
            db.commit()
        except InvalidTransition:
            raise
        except Exception:
            db.rollback()
            raise

        db.refresh(record)
        logger.info(f"New payment attempt {record.payment_reference} for {identifier}")
        return record

    def flag_stale_payments(
        self,
        db: Session,
        *,
        older_than: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Mark gateway payments still pending after ``older_than`` as needing
        manual reconciliation. Their status is left untouched.
        """
        older_than = older_than or timedelta(minutes=settings.STALE_PAYMENT_MINUTES)
        cutoff = (now or datetime.now(timezone.utc)) - older_than
        flagged = 0
        try:
            for store, model in ((crud.registration, Registration), (crud.ticket, Ticket)):
                for record in store.list_stale_pending(db, created_before=cutoff):
                    if store.transition(
                        db,
                        conditions=[
                            model.id == record.id,
                            model.payment_status == "pending",
                            model.requires_manual_reconciliation.is_(False),
                        ],
                        values={"requires_manual_reconciliation": True},
                    ):
                        flagged += 1
                        logger.warning(
                            f"Payment {record.payment_reference} for {record.identifier} "
                            f"has no gateway callback; flagged for manual reconciliation"
                        )
            db.commit()
        except Exception:
            db.rollback()
            raise
        return flagged

    def refund_ticket(
        self, db: Session, *, ticket_number: str, refunded_by: Optional[str] = None
    ) -> Ticket:
        """paid -> refunded. The ticket is cancelled and its slot released."""
        record = crud.ticket.get_by_number(db, ticket_number=ticket_number)
        if not record:
            raise CredentialNotFound(f"Ticket {ticket_number} not found")

        now = datetime.now(timezone.utc)
        try:
            applied = crud.ticket.transition(
                db,
                conditions=[
                    Ticket.id == record.id,
                    Ticket.status == "paid",
                    Ticket.payment_status == "paid",
                ],
                values={
                    "payment_status": "refunded",
                    "status": "cancelled",
                    "refunded_at": now,
                    "updated_at": now,
                },
            )
            if not applied:
                db.rollback()
                db.refresh(record)
                raise InvalidTransition(
                    f"Only paid, unused tickets can be refunded. "
                    f"Current status: {record.status}/{record.payment_status}",
                    status=record.status,
                    payment_status=record.payment_status,
                )
            crud.event.release_slot(db, event_id=record.event_id)
            notifications.publisher.stage(
                db,
                event_type=notifications.TICKET_REFUNDED,
                event_id=record.event_id,
                subject_id=record.ticket_number,
                user_id=refunded_by,
                data={"reference": record.payment_reference, "amount": record.price},
            )
            db.commit()
        except InvalidTransition:
            raise
        except Exception:
            db.rollback()
            raise

        db.refresh(record)
        logger.info(f"Ticket {ticket_number} refunded by {refunded_by or 'system'}")
        return record

    def refund_by_reference(
        self, db: Session, *, reference: str, refunded_by: Optional[str] = None
    ) -> Ticket:
        kind, record = self._find_by_reference(db, reference)
        if record is None:
            raise ReferenceNotFound(f"No payment with reference {reference}")
        if kind != CredentialKind.TICKET:
            raise InvalidTransition("Registrations cannot be refunded", reason="refund_not_supported")
        return self.refund_ticket(db, ticket_number=record.ticket_number, refunded_by=refunded_by)

    # ------------------------------------------------------------------ #
    # Manual receipt path
    # ------------------------------------------------------------------ #

    def submit_receipt(self, db: Session, *, unique_id: str, receipt_path: str) -> Registration:
        """
        Attach an uploaded receipt. The registration waits for an admin;
        gateway callbacks no longer apply to it.
        """
        record = crud.registration.get_by_unique_id(db, unique_id=unique_id)
        if not record:
            raise CredentialNotFound(f"Registration {unique_id} not found")

        now = datetime.now(timezone.utc)
        old_reference = record.payment_reference
        old_method = record.payment_method
        try:
            applied = crud.registration.transition(
                db,
                conditions=[
                    Registration.id == record.id,
                    Registration.status == "pending",
                    Registration.payment_status.in_(("pending", "failed")),
                    self._reference_is(Registration, old_reference),
                ],
                values={
                    "payment_method": PaymentMethod.MANUAL_RECEIPT.value,
                    "payment_status": "pending",
                    "payment_reference": None,
                    "receipt_path": receipt_path,
                    "receipt_review_status": ReceiptReviewStatus.AWAITING_REVIEW.value,
                    "receipt_reviewed_by": None,
                    "receipt_reviewed_at": None,
                    "receipt_rejection_reason": None,
                    "updated_at": now,
                },
            )
            if not applied:
                db.rollback()
                db.refresh(record)
                raise InvalidTransition(
                    f"Registration does not accept a receipt. "
                    f"Current status: {record.status}/{record.payment_status}",
                    status=record.status,
                    payment_status=record.payment_status,
                )
            self._keep_superseded(
                db, CredentialKind.REGISTRATION, record, old_reference, old_method, now
            )
            db.commit()
        except InvalidTransition:
            raise
        except Exception:
            db.rollback()
            raise

        db.refresh(record)
        logger.info(f"Receipt submitted for {unique_id}, awaiting review")
        return record

    def review_receipt(
        self,
        db: Session,
        *,
        unique_id: str,
        approve: bool,
        reviewer_id: str,
        rejection_reason: Optional[str] = None,
    ) -> Registration:
        """The only way a manual-receipt registration reaches ``paid``."""
        record = crud.registration.get_by_unique_id(db, unique_id=unique_id)
        if not record:
            raise CredentialNotFound(f"Registration {unique_id} not found")

        now = datetime.now(timezone.utc)
        guard = [
            Registration.id == record.id,
            Registration.status == "pending",
            Registration.payment_status == "pending",
            Registration.payment_method == PaymentMethod.MANUAL_RECEIPT.value,
            Registration.receipt_review_status == ReceiptReviewStatus.AWAITING_REVIEW.value,
        ]
        if approve:
            values = {
                "status": "confirmed",
                "payment_status": "paid",
                "payment_confirmed_at": now,
                "receipt_review_status": ReceiptReviewStatus.APPROVED.value,
            }
        else:
            values = {
                "payment_status": "failed",
                "receipt_review_status": ReceiptReviewStatus.REJECTED.value,
                "receipt_rejection_reason": rejection_reason,
            }
        values.update(receipt_reviewed_by=reviewer_id, receipt_reviewed_at=now, updated_at=now)

        try:
            if not crud.registration.transition(db, conditions=guard, values=values):
                db.rollback()
                db.refresh(record)
                raise InvalidTransition(
                    f"No receipt awaiting review. Current review status: "
                    f"{record.receipt_review_status}",
                    receipt_review_status=record.receipt_review_status,
                )
            db.refresh(record)
            if approve:
                self._stage_success(db, CredentialKind.REGISTRATION, record, user_id=reviewer_id)
            else:
                notifications.publisher.stage(
                    db,
                    event_type=notifications.PAYMENT_FAILED,
                    event_id=record.event_id,
                    subject_id=record.unique_id,
                    user_id=reviewer_id,
                    data={"kind": "registration", "detail": rejection_reason or "receipt_rejected"},
                )
            db.commit()
        except InvalidTransition:
            raise
        except Exception:
            db.rollback()
            raise

        db.refresh(record)
        logger.info(
            f"Receipt for {unique_id} {'approved' if approve else 'rejected'} by {reviewer_id}"
        )
        return record


payment_tracker = PaymentTracker()
