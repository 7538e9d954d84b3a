"""
Tests for payment tracking.

Verifies that:
- A gateway callback is applied at most once, whatever the redelivery pattern
- Mismatched amounts never mark anything paid
- A failed payment leaves the registration pending until a retry succeeds
- Receipt-paid registrations only reach paid through an admin review
- Money arriving for a cancelled record is flagged, not applied
- Money arriving on a replaced payment reference is flagged, not lost
"""

from datetime import datetime, timedelta, timezone

import pytest

from eventvalidate import crud
from eventvalidate.core.exceptions import InvalidTransition, ReferenceNotFound
from eventvalidate.schemas.enums import NotificationDisposition
from eventvalidate.schemas.payment import PaymentCallback
from eventvalidate.services import notifications
from eventvalidate.services.credentials import credential_issuer
from eventvalidate.services.payment.tracker import payment_tracker
from tests.utils.event import create_paid_event, create_ticketed_event
from tests.utils.registration import buy_ticket, guest_submission, register


def success(reference, amount=5000, currency="NGN"):
    return PaymentCallback(reference=reference, outcome="success", amount=amount, currency=currency)


def failure(reference):
    return PaymentCallback(reference=reference, outcome="failure")


def count_events(db, subject_id, event_type):
    return len(crud.domain_event.get_for_subject(db, subject_id=subject_id, event_type=event_type))


class TestReconcile:
    def setup_method(self):
        self.tracker = payment_tracker

    def _pending_guest(self, db):
        event = create_paid_event(db)
        return register(db, event.id, guest_submission(payment_method="gateway")).record

    # ------------------------------------------------------------------ #
    # Success
    # ------------------------------------------------------------------ #

    def test_success_confirms_registration(self, db):
        record = self._pending_guest(db)

        result = self.tracker.reconcile(db, success(record.payment_reference))

        assert result.disposition == NotificationDisposition.APPLIED
        assert result.subject_kind == "registration"
        assert record.status == "confirmed"
        assert record.payment_status == "paid"
        assert record.payment_confirmed_at is not None
        assert count_events(db, record.unique_id, notifications.PAYMENT_SUCCEEDED) == 1
        assert count_events(db, record.unique_id, notifications.REGISTRATION_CONFIRMED) == 1

    def test_redelivered_success_is_a_noop(self, db):
        record = self._pending_guest(db)
        callback = success(record.payment_reference)

        first = self.tracker.reconcile(db, callback)
        second = self.tracker.reconcile(db, callback)
        third = self.tracker.reconcile(db, callback)

        assert first.disposition == NotificationDisposition.APPLIED
        assert second.disposition == NotificationDisposition.DUPLICATE
        assert third.disposition == NotificationDisposition.DUPLICATE
        assert count_events(db, record.unique_id, notifications.PAYMENT_SUCCEEDED) == 1
        # Every delivery is audited
        audit = crud.payment_notification.get_by_reference(db, reference=record.payment_reference)
        assert sorted(a.disposition for a in audit) == ["applied", "duplicate", "duplicate"]

    def test_ticket_success_marks_ticket_paid(self, db):
        event = create_ticketed_event(db)
        ticket = buy_ticket(db, event.id, "Regular").record

        result = self.tracker.reconcile(db, success(ticket.payment_reference, amount=10000))

        assert result.subject_kind == "ticket"
        assert ticket.status == "paid"
        assert ticket.payment_status == "paid"
        assert count_events(db, ticket.ticket_number, notifications.PAYMENT_SUCCEEDED) == 1

    # ------------------------------------------------------------------ #
    # Failure and mismatches
    # ------------------------------------------------------------------ #

    def test_amount_mismatch_is_a_failure(self, db):
        record = self._pending_guest(db)

        result = self.tracker.reconcile(db, success(record.payment_reference, amount=4999))

        assert result.disposition == NotificationDisposition.APPLIED
        assert result.detail.startswith("amount_mismatch")
        assert record.payment_status == "failed"
        assert record.status == "pending"
        assert count_events(db, record.unique_id, notifications.PAYMENT_SUCCEEDED) == 0

    def test_currency_mismatch_is_a_failure(self, db):
        record = self._pending_guest(db)

        result = self.tracker.reconcile(db, success(record.payment_reference, currency="USD"))

        assert result.detail.startswith("currency_mismatch")
        assert record.payment_status == "failed"

    def test_failure_keeps_registration_pending(self, db):
        record = self._pending_guest(db)

        self.tracker.reconcile(db, failure(record.payment_reference))

        assert record.status == "pending"
        assert record.payment_status == "failed"
        assert count_events(db, record.unique_id, notifications.PAYMENT_FAILED) == 1

    def test_success_after_failure_is_ignored(self, db):
        record = self._pending_guest(db)
        self.tracker.reconcile(db, failure(record.payment_reference))

        result = self.tracker.reconcile(db, success(record.payment_reference))

        assert result.disposition == NotificationDisposition.IGNORED
        assert result.detail.startswith("out_of_order")
        assert record.payment_status == "failed"

    def test_unknown_reference(self, db):
        result = self.tracker.reconcile(db, success("PAY-UNKNOWN"))

        assert result.disposition == NotificationDisposition.UNMATCHED
        audit = crud.payment_notification.get_by_reference(db, reference="PAY-UNKNOWN")
        assert len(audit) == 1
        assert audit[0].subject_id is None

    def test_payload_is_kept_for_audit(self, db):
        record = self._pending_guest(db)

        self.tracker.reconcile(db, success(record.payment_reference), payload={"raw": "body"})

        audit = crud.payment_notification.get_by_reference(db, reference=record.payment_reference)
        assert audit[0].payload == {"raw": "body"}

    # ------------------------------------------------------------------ #
    # Cancelled records
    # ------------------------------------------------------------------ #

    def test_late_success_on_cancelled_registration(self, db):
        record = self._pending_guest(db)
        credential_issuer.cancel_registration(db, unique_id=record.unique_id)

        result = self.tracker.reconcile(db, success(record.payment_reference))

        assert result.disposition == NotificationDisposition.IGNORED
        assert result.detail == "record_cancelled"
        assert record.status == "cancelled"
        assert record.payment_status == "pending"
        assert record.requires_manual_reconciliation is True


class TestRetryAndStale:
    def _failed_guest(self, db):
        event = create_paid_event(db)
        record = register(db, event.id, guest_submission(payment_method="gateway")).record
        payment_tracker.reconcile(db, failure(record.payment_reference))
        return record

    def test_retry_issues_new_reference(self, db):
        record = self._failed_guest(db)
        old_reference = record.payment_reference

        payment_tracker.retry_payment(db, identifier=record.unique_id)

        assert record.payment_status == "pending"
        assert record.payment_reference != old_reference

    def test_retry_then_success(self, db):
        record = self._failed_guest(db)
        payment_tracker.retry_payment(db, identifier=record.unique_id)

        fresh = payment_tracker.reconcile(db, success(record.payment_reference))

        assert fresh.disposition == NotificationDisposition.APPLIED
        assert record.status == "confirmed"
        assert record.requires_manual_reconciliation is False

    def test_late_success_on_replaced_reference_is_flagged(self, db):
        record = self._failed_guest(db)
        old_reference = record.payment_reference
        payment_tracker.retry_payment(db, identifier=record.unique_id)

        result = payment_tracker.reconcile(db, success(old_reference))

        assert result.disposition == NotificationDisposition.IGNORED
        assert result.detail == "superseded_reference"
        assert result.subject_id == record.unique_id
        db.refresh(record)
        assert record.status == "pending"
        assert record.payment_status == "pending"
        assert record.requires_manual_reconciliation is True
        audit = crud.payment_notification.get_by_reference(db, reference=old_reference)
        assert "superseded_reference" in [a.detail for a in audit]

    def test_replaced_reference_redelivery_is_duplicate(self, db):
        record = self._failed_guest(db)
        old_reference = record.payment_reference
        payment_tracker.retry_payment(db, identifier=record.unique_id)
        payment_tracker.reconcile(db, success(old_reference))

        again = payment_tracker.reconcile(db, success(old_reference))

        assert again.disposition == NotificationDisposition.DUPLICATE

    def test_flag_survives_success_on_new_reference(self, db):
        record = self._failed_guest(db)
        old_reference = record.payment_reference
        payment_tracker.retry_payment(db, identifier=record.unique_id)
        payment_tracker.reconcile(db, success(old_reference))

        payment_tracker.reconcile(db, success(record.payment_reference))

        assert record.payment_status == "paid"
        assert record.requires_manual_reconciliation is True

    def test_late_failure_on_replaced_reference_changes_nothing(self, db):
        record = self._failed_guest(db)
        old_reference = record.payment_reference
        payment_tracker.retry_payment(db, identifier=record.unique_id)

        result = payment_tracker.reconcile(db, failure(old_reference))

        assert result.disposition == NotificationDisposition.IGNORED
        db.refresh(record)
        assert record.payment_status == "pending"
        assert record.requires_manual_reconciliation is False

    def test_replaced_ticket_reference_is_flagged(self, db):
        event = create_ticketed_event(db)
        ticket = buy_ticket(db, event.id).record
        old_reference = ticket.payment_reference
        payment_tracker.reconcile(db, failure(old_reference))
        payment_tracker.retry_payment(db, identifier=ticket.ticket_number)

        result = payment_tracker.reconcile(db, success(old_reference, amount=10000))

        assert result.subject_kind == "ticket"
        db.refresh(ticket)
        assert ticket.requires_manual_reconciliation is True

    def test_retry_requires_failure(self, db):
        event = create_paid_event(db)
        record = register(db, event.id, guest_submission(payment_method="gateway")).record

        with pytest.raises(InvalidTransition):
            payment_tracker.retry_payment(db, identifier=record.unique_id)

    def test_stale_pending_payments_are_flagged(self, db):
        event = create_paid_event(db)
        record = register(db, event.id, guest_submission(payment_method="gateway")).record
        later = datetime.now(timezone.utc) + timedelta(hours=2)

        flagged = payment_tracker.flag_stale_payments(db, older_than=timedelta(hours=1), now=later)
        again = payment_tracker.flag_stale_payments(db, older_than=timedelta(hours=1), now=later)

        db.refresh(record)
        assert flagged == 1
        assert again == 0
        assert record.requires_manual_reconciliation is True
        assert record.status == "pending"
        assert record.payment_status == "pending"

    def test_recent_payments_are_not_flagged(self, db):
        event = create_paid_event(db)
        register(db, event.id, guest_submission(payment_method="gateway"))

        assert payment_tracker.flag_stale_payments(db, older_than=timedelta(hours=1)) == 0

    def test_success_clears_flag(self, db):
        event = create_paid_event(db)
        record = register(db, event.id, guest_submission(payment_method="gateway")).record
        payment_tracker.flag_stale_payments(
            db, older_than=timedelta(hours=1), now=datetime.now(timezone.utc) + timedelta(hours=2)
        )

        payment_tracker.reconcile(db, success(record.payment_reference))

        assert record.payment_status == "paid"
        assert record.requires_manual_reconciliation is False


class TestRefund:
    def _paid_ticket(self, db):
        event = create_ticketed_event(db)
        ticket = buy_ticket(db, event.id, "Regular").record
        payment_tracker.reconcile(db, success(ticket.payment_reference, amount=10000))
        return event, ticket

    def test_refund_cancels_and_releases(self, db):
        event, ticket = self._paid_ticket(db)

        payment_tracker.refund_ticket(db, ticket_number=ticket.ticket_number, refunded_by="admin_1")

        db.refresh(event)
        assert ticket.payment_status == "refunded"
        assert ticket.status == "cancelled"
        assert ticket.refunded_at is not None
        assert event.registered_count == 0
        assert count_events(db, ticket.ticket_number, notifications.TICKET_REFUNDED) == 1

    def test_refund_twice(self, db):
        _, ticket = self._paid_ticket(db)
        payment_tracker.refund_ticket(db, ticket_number=ticket.ticket_number)

        with pytest.raises(InvalidTransition):
            payment_tracker.refund_ticket(db, ticket_number=ticket.ticket_number)

    def test_refund_by_reference(self, db):
        _, ticket = self._paid_ticket(db)

        refunded = payment_tracker.refund_by_reference(db, reference=ticket.payment_reference)

        assert refunded.payment_status == "refunded"

    def test_registrations_are_not_refundable(self, db):
        event = create_paid_event(db)
        record = register(db, event.id, guest_submission(payment_method="gateway")).record

        with pytest.raises(InvalidTransition) as exc:
            payment_tracker.refund_by_reference(db, reference=record.payment_reference)

        assert exc.value.reason == "refund_not_supported"

    def test_unknown_reference(self, db):
        with pytest.raises(ReferenceNotFound):
            payment_tracker.refund_by_reference(db, reference="PAY-NOPE")


class TestReceipts:
    def _receipt_guest(self, db):
        event = create_paid_event(db)
        return register(
            db,
            event.id,
            guest_submission(payment_method="manual_receipt", receipt_path="receipts/a.jpg"),
        ).record

    def test_approval_confirms(self, db):
        record = self._receipt_guest(db)

        payment_tracker.review_receipt(
            db, unique_id=record.unique_id, approve=True, reviewer_id="admin_1"
        )

        assert record.status == "confirmed"
        assert record.payment_status == "paid"
        assert record.receipt_review_status == "approved"
        assert record.receipt_reviewed_by == "admin_1"
        assert count_events(db, record.unique_id, notifications.PAYMENT_SUCCEEDED) == 1

    def test_rejection_fails_payment(self, db):
        record = self._receipt_guest(db)

        payment_tracker.review_receipt(
            db,
            unique_id=record.unique_id,
            approve=False,
            reviewer_id="admin_1",
            rejection_reason="Blurry",
        )

        assert record.status == "pending"
        assert record.payment_status == "failed"
        assert record.receipt_rejection_reason == "Blurry"

    def test_review_only_once(self, db):
        record = self._receipt_guest(db)
        payment_tracker.review_receipt(db, unique_id=record.unique_id, approve=True, reviewer_id="a")

        with pytest.raises(InvalidTransition):
            payment_tracker.review_receipt(db, unique_id=record.unique_id, approve=True, reviewer_id="a")

    def test_resubmit_after_rejection(self, db):
        record = self._receipt_guest(db)
        payment_tracker.review_receipt(db, unique_id=record.unique_id, approve=False, reviewer_id="a")

        payment_tracker.submit_receipt(db, unique_id=record.unique_id, receipt_path="receipts/b.jpg")

        assert record.payment_status == "pending"
        assert record.receipt_review_status == "awaiting_review"
        assert record.receipt_path == "receipts/b.jpg"

    def test_gateway_callback_cannot_pay_receipt_registration(self, db):
        event = create_paid_event(db)
        record = register(db, event.id, guest_submission(payment_method="gateway")).record
        old_reference = record.payment_reference
        payment_tracker.submit_receipt(db, unique_id=record.unique_id, receipt_path="receipts/c.jpg")

        result = payment_tracker.reconcile(db, success(old_reference))

        assert result.disposition == NotificationDisposition.IGNORED
        assert result.detail == "superseded_reference"
        db.refresh(record)
        assert record.payment_status == "pending"
        assert record.status == "pending"
        assert record.payment_method == "manual_receipt"
        assert record.requires_manual_reconciliation is True

    def test_confirmed_registration_rejects_receipt(self, db):
        record = self._receipt_guest(db)
        payment_tracker.review_receipt(db, unique_id=record.unique_id, approve=True, reviewer_id="a")

        with pytest.raises(InvalidTransition):
            payment_tracker.submit_receipt(db, unique_id=record.unique_id, receipt_path="x.jpg")
