"""
Tests for the entrance validation gateway.

Verifies that:
- A credential is admitted exactly once, including under concurrent scans
- Forged, tampered or foreign credentials are refused with a reason
- Manual codes and borderline photos always wait for staff confirmation
- Confirmation tokens are single use and expire
"""

import threading

import jwt
import pytest

from eventvalidate import crud
from eventvalidate.core.config import settings
from eventvalidate.core.exceptions import InputValidationError
from eventvalidate.models.registration import Registration
from eventvalidate.schemas.enums import CredentialKind, ValidationMethod, ValidationReason
from eventvalidate.schemas.validation import ValidationRequest
from eventvalidate.services import notifications
from eventvalidate.services.credentials import credential_issuer
from eventvalidate.services.credentials.qr_signing import sign_credential_qr
from tests.utils.event import create_event, create_paid_event, create_ticketed_event
from tests.utils.registration import buy_ticket, guest_submission, member_submission, register

STAFF = "staff_1"


def qr(event_id, credential):
    return ValidationRequest(event_id=event_id, method="qr", credential=credential)


def admissions(db, subject_id):
    return crud.domain_event.get_for_subject(
        db, subject_id=subject_id, event_type=notifications.ATTENDEE_VALIDATED
    )


class TestQrValidation:
    # ------------------------------------------------------------------ #
    # Admission
    # ------------------------------------------------------------------ #

    def test_valid_qr_admits(self, db, gateway):
        event = create_event(db)
        issued = register(db, event.id)

        result = gateway.validate(db, qr(event.id, issued.qr_code), STAFF)

        db.refresh(issued.record)
        assert result.accepted is True
        assert result.reason == ValidationReason.VALIDATED
        assert result.participant.identifier == issued.identifier
        assert result.validated_by == STAFF
        assert issued.record.status == "attended"
        assert issued.record.validation_method == "qr"
        assert len(admissions(db, issued.identifier)) == 1

    def test_second_scan_reports_first_admission(self, db, gateway):
        event = create_event(db)
        issued = register(db, event.id)
        gateway.validate(db, qr(event.id, issued.qr_code), STAFF)

        result = gateway.validate(db, qr(event.id, issued.qr_code), "staff_2")

        assert result.accepted is False
        assert result.reason == ValidationReason.ALREADY_VALIDATED
        assert result.validated_by == STAFF
        assert result.validated_at is not None
        assert len(admissions(db, issued.identifier)) == 1

    def test_ticket_qr_marks_ticket_used(self, db, gateway):
        event = create_ticketed_event(db)
        issued = buy_ticket(db, event.id, "Student", payment_method=None)

        result = gateway.validate(db, qr(event.id, issued.qr_code), STAFF)

        db.refresh(issued.record)
        assert result.accepted is True
        assert result.participant.kind == "ticket"
        assert issued.record.status == "used"

    # ------------------------------------------------------------------ #
    # Refusals
    # ------------------------------------------------------------------ #

    def test_garbage_is_invalid(self, db, gateway):
        event = create_event(db)

        result = gateway.validate(db, qr(event.id, "REG-123|ABCDEF"), STAFF)

        assert result.reason == ValidationReason.INVALID_CREDENTIAL
        assert result.participant is None

    def test_forged_signature_is_invalid(self, db, gateway):
        event = create_event(db)
        issued = register(db, event.id)
        forged = jwt.encode(
            {"kind": "registration", "sub": issued.identifier, "eid": event.id,
             "sec": "guess", "exp": 9999999999},
            "not-the-signing-key",
            algorithm="HS256",
        )

        result = gateway.validate(db, qr(event.id, forged), STAFF)

        db.refresh(issued.record)
        assert result.reason == ValidationReason.INVALID_CREDENTIAL
        assert issued.record.status == "confirmed"

    def test_leaked_identifier_without_secret_is_invalid(self, db, gateway):
        event = create_event(db)
        issued = register(db, event.id)
        rebuilt = sign_credential_qr("registration", issued.identifier, event.id, "wrong-secret")

        result = gateway.validate(db, qr(event.id, rebuilt), STAFF)

        assert result.reason == ValidationReason.INVALID_CREDENTIAL

    def test_kind_claim_must_match_record(self, db, gateway):
        event = create_event(db)
        issued = register(db, event.id)
        claims = jwt.decode(issued.qr_code, settings.QR_SIGNING_SECRET, algorithms=["HS256"])
        claims["kind"] = "ticket"
        swapped = jwt.encode(claims, settings.QR_SIGNING_SECRET, algorithm="HS256")

        result = gateway.validate(db, qr(event.id, swapped), STAFF)

        assert result.reason == ValidationReason.INVALID_CREDENTIAL

    def test_unknown_identifier(self, db, gateway):
        event = create_event(db)
        token = sign_credential_qr("registration", "REG-NOPE-000000", event.id, "secret")

        result = gateway.validate(db, qr(event.id, token), STAFF)

        assert result.reason == ValidationReason.NOT_FOUND

    def test_wrong_event(self, db, gateway):
        event = create_event(db)
        other = create_event(db, name="Other Event")
        issued = register(db, event.id)

        result = gateway.validate(db, qr(other.id, issued.qr_code), STAFF)

        assert result.reason == ValidationReason.WRONG_EVENT
        assert result.participant.identifier == issued.identifier

    def test_unpaid_registration(self, db, gateway):
        event = create_paid_event(db)
        issued = register(db, event.id, guest_submission(payment_method="gateway"))

        result = gateway.validate(db, qr(event.id, issued.qr_code), STAFF)

        assert result.reason == ValidationReason.PAYMENT_PENDING

    def test_cancelled_registration(self, db, gateway):
        event = create_event(db)
        issued = register(db, event.id)
        credential_issuer.cancel_registration(db, unique_id=issued.identifier)

        result = gateway.validate(db, qr(event.id, issued.qr_code), STAFF)

        assert result.reason == ValidationReason.CANCELLED


class TestManualCodeValidation:
    def _request(self, event_id, code, token=None):
        return ValidationRequest(
            event_id=event_id, method="manual_code", credential=code, confirmation_token=token
        )

    def test_lookup_holds_for_staff(self, db, gateway):
        event = create_event(db)
        issued = register(db, event.id)

        result = gateway.validate(db, self._request(event.id, issued.manual_code), STAFF)

        db.refresh(issued.record)
        assert result.accepted is False
        assert result.reason == ValidationReason.STAFF_CONFIRMATION_REQUIRED
        assert result.requires_staff_confirmation is True
        assert result.confirmation_token
        assert result.participant.name == issued.record.full_name
        assert issued.record.status == "confirmed"

    def test_confirmation_admits(self, db, gateway):
        event = create_event(db)
        issued = register(db, event.id)
        held = gateway.validate(db, self._request(event.id, issued.manual_code), STAFF)

        result = gateway.validate(
            db, self._request(event.id, issued.manual_code, held.confirmation_token), STAFF
        )

        db.refresh(issued.record)
        assert result.accepted is True
        assert issued.record.status == "attended"
        assert issued.record.validation_method == "manual_code"

    def test_code_is_case_insensitive(self, db, gateway):
        event = create_event(db)
        issued = register(db, event.id)
        code = issued.manual_code.lower()
        held = gateway.validate(db, self._request(event.id, code), STAFF)

        result = gateway.validate(db, self._request(event.id, code, held.confirmation_token), STAFF)

        assert result.accepted is True

    def test_token_is_single_use(self, db, gateway):
        event = create_event(db)
        issued = register(db, event.id)
        held = gateway.validate(db, self._request(event.id, issued.manual_code), STAFF)
        confirm = self._request(event.id, issued.manual_code, held.confirmation_token)
        gateway.validate(db, confirm, STAFF)

        result = gateway.validate(db, confirm, STAFF)

        assert result.reason == ValidationReason.CONFIRMATION_EXPIRED

    def test_expired_token(self, db, gateway, fake_redis):
        event = create_event(db)
        issued = register(db, event.id)
        held = gateway.validate(db, self._request(event.id, issued.manual_code), STAFF)
        fake_redis.expire_everything()

        result = gateway.validate(
            db, self._request(event.id, issued.manual_code, held.confirmation_token), STAFF
        )

        db.refresh(issued.record)
        assert result.reason == ValidationReason.CONFIRMATION_EXPIRED
        assert issued.record.status == "confirmed"

    def test_token_bound_to_credential(self, db, gateway):
        event = create_event(db)
        first = register(db, event.id)
        second = register(db, event.id)
        held = gateway.validate(db, self._request(event.id, first.manual_code), STAFF)

        result = gateway.validate(
            db, self._request(event.id, second.manual_code, held.confirmation_token), STAFF
        )

        assert result.reason == ValidationReason.INVALID_CREDENTIAL

    def test_admitted_between_lookup_and_confirm(self, db, gateway):
        event = create_event(db)
        issued = register(db, event.id)
        held = gateway.validate(db, self._request(event.id, issued.manual_code), STAFF)
        gateway.validate(db, qr(event.id, issued.qr_code), "staff_2")

        result = gateway.validate(
            db, self._request(event.id, issued.manual_code, held.confirmation_token), STAFF
        )

        assert result.reason == ValidationReason.ALREADY_VALIDATED
        assert result.validated_by == "staff_2"

    def test_ticket_code(self, db, gateway):
        event = create_ticketed_event(db)
        issued = buy_ticket(db, event.id, "Student", payment_method=None)

        result = gateway.validate(db, self._request(event.id, issued.manual_code), STAFF)

        assert result.participant.kind == "ticket"
        assert result.requires_staff_confirmation is True

    def test_unknown_code(self, db, gateway):
        event = create_event(db)
        register(db, event.id)

        # Digit codes resolve against tickets only
        result = gateway.validate(db, self._request(event.id, "000000"), STAFF)

        assert result.reason == ValidationReason.NOT_FOUND


class TestPhotoValidation:
    def setup_method(self):
        self.reference_path = "faces/reference.jpg"
        self.live_path = "live/scan.jpg"

    def _enrolled(self, db, photos, **event_overrides):
        photos[self.reference_path] = b"reference-bytes"
        photos[self.live_path] = b"live-bytes"
        event = create_event(db, **event_overrides)
        return event, register(db, event.id, member_submission(face_photo_path=self.reference_path))

    def _request(self, event_id, identifier, token=None):
        return ValidationRequest(
            event_id=event_id,
            method="photo",
            credential=identifier,
            live_photo_path=None if token else self.live_path,
            confirmation_token=token,
        )

    def test_high_score_admits(self, db, gateway, photos, stub_scorer):
        event, issued = self._enrolled(db, photos)
        stub_scorer.next_score = 0.9

        result = gateway.validate(db, self._request(event.id, issued.identifier), STAFF)

        assert result.accepted is True
        assert result.similarity_score == 0.9
        assert stub_scorer.calls == [(b"reference-bytes", b"live-bytes")]
        assert admissions(db, issued.identifier)[0].data["similarity_score"] == 0.9

    def test_borderline_score_needs_staff(self, db, gateway, photos, stub_scorer):
        event, issued = self._enrolled(db, photos)
        stub_scorer.next_score = 0.5

        held = gateway.validate(db, self._request(event.id, issued.identifier), STAFF)
        result = gateway.validate(
            db, self._request(event.id, issued.identifier, held.confirmation_token), STAFF
        )

        assert held.reason == ValidationReason.STAFF_CONFIRMATION_REQUIRED
        assert held.similarity_score == 0.5
        assert result.accepted is True
        assert result.similarity_score == 0.5
        # The confirming request does not rescore
        assert len(stub_scorer.calls) == 1

    def test_low_score_is_a_mismatch(self, db, gateway, photos, stub_scorer):
        event, issued = self._enrolled(db, photos)
        stub_scorer.next_score = 0.2

        result = gateway.validate(db, self._request(event.id, issued.identifier), STAFF)

        db.refresh(issued.record)
        assert result.reason == ValidationReason.FACE_MISMATCH
        assert result.confirmation_token is None
        assert issued.record.status == "confirmed"

    def test_event_thresholds_override_defaults(self, db, gateway, photos, stub_scorer):
        event, issued = self._enrolled(
            db, photos, similarity_thresholds={"auto_approve": 0.95, "manual_review": 0.5}
        )
        stub_scorer.next_score = 0.9

        result = gateway.validate(db, self._request(event.id, issued.identifier), STAFF)

        assert result.reason == ValidationReason.STAFF_CONFIRMATION_REQUIRED

    def test_no_reference_photo(self, db, gateway, photos):
        photos[self.live_path] = b"live-bytes"
        event = create_event(db)
        issued = register(db, event.id)

        result = gateway.validate(db, self._request(event.id, issued.identifier), STAFF)

        assert result.reason == ValidationReason.NO_REFERENCE_PHOTO

    def test_missing_live_photo(self, db, gateway, photos):
        event, issued = self._enrolled(db, photos)
        del photos[self.live_path]

        with pytest.raises(InputValidationError):
            gateway.validate(db, self._request(event.id, issued.identifier), STAFF)

    def test_unknown_identifier(self, db, gateway, photos):
        event, _ = self._enrolled(db, photos)

        result = gateway.validate(db, self._request(event.id, "REG-NOPE-000000"), STAFF)

        assert result.reason == ValidationReason.NOT_FOUND


class TestConcurrentAdmission:
    """Two scanners reading the same credential at the same moment."""

    def test_both_readers_pass_checks_only_one_admits(self, db, gateway, session_factory):
        event = create_event(db)
        issued = register(db, event.id)
        first, second = session_factory(), session_factory()
        try:
            a = first.get(Registration, issued.record.id)
            b = second.get(Registration, issued.record.id)
            assert a.status == b.status == "confirmed"

            won = gateway._consume(first, CredentialKind.REGISTRATION, a, ValidationMethod.QR, "door_a")
            lost = gateway._consume(second, CredentialKind.REGISTRATION, b, ValidationMethod.QR, "door_b")
        finally:
            first.close()
            second.close()

        assert won.accepted is True
        assert lost.accepted is False
        assert lost.reason == ValidationReason.ALREADY_VALIDATED
        assert lost.validated_by == "door_a"
        assert len(admissions(db, issued.identifier)) == 1

    def test_parallel_scans(self, db, gateway, session_factory):
        event = create_event(db)
        issued = register(db, event.id)
        request = qr(event.id, issued.qr_code)
        scanners = 6
        barrier = threading.Barrier(scanners)
        results, errors = [], []

        def scan(n):
            session = session_factory()
            try:
                barrier.wait()
                results.append(gateway.validate(session, request, f"door_{n}"))
            except Exception as e:
                errors.append(e)
            finally:
                session.close()

        threads = [threading.Thread(target=scan, args=(n,)) for n in range(scanners)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        accepted = [r for r in results if r.accepted]
        assert len(accepted) == 1
        assert all(
            r.reason == ValidationReason.ALREADY_VALIDATED for r in results if not r.accepted
        )
        assert len(admissions(db, issued.identifier)) == 1
