# eventvalidate/services/validation/gateway.py
"""
Entrance validation.

Three ways in, in order of trust:

* ``qr``: signed token plus embedded secret; consumed on success.
* ``manual_code``: looked up, then held until staff confirm with the
  returned confirmation token.
* ``photo``: live photo scored against the enrolled one; high scores are
  consumed, borderline scores wait for staff confirmation.

Consumption is a single conditional UPDATE on the record's status. Whichever
request's UPDATE changes the row is the one that admitted the attendee;
everyone else is told the credential was already validated.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple, Union

from sqlalchemy.orm import Session

from eventvalidate import crud
from eventvalidate.core.exceptions import InputValidationError
from eventvalidate.models.registration import Registration
from eventvalidate.models.ticket import Ticket
from eventvalidate.schemas.enums import (
    CredentialKind,
    SimilarityBand,
    ValidationMethod,
    ValidationReason,
)
from eventvalidate.schemas.validation import (
    ParticipantSummary,
    ValidationRequest,
    ValidationResult,
)
from eventvalidate.services import notifications
from eventvalidate.services.credentials import codes
from eventvalidate.services.credentials.qr_signing import is_jwt_qr, verify_credential_qr
from eventvalidate.services.one_time_codes import ConfirmationStore
from eventvalidate.services.validation.similarity import (
    SimilarityScorer,
    Thresholds,
    classify,
)

logger = logging.getLogger(__name__)

Record = Union[Registration, Ticket]

# Status a record must be in to be admitted
ADMISSIBLE_STATUS = {
    CredentialKind.REGISTRATION: "confirmed",
    CredentialKind.TICKET: "paid",
}
CONSUMED_STATUS = {
    CredentialKind.REGISTRATION: "attended",
    CredentialKind.TICKET: "used",
}


def participant_summary(kind: CredentialKind, record: Record) -> ParticipantSummary:
    if kind == CredentialKind.TICKET:
        return ParticipantSummary(
            identifier=record.ticket_number,
            kind=kind.value,
            name=record.owner_name,
            category=record.category,
            email=record.owner_email,
            status=record.status,
            payment_status=record.payment_status,
        )
    return ParticipantSummary(
        identifier=record.unique_id,
        kind=kind.value,
        name=record.full_name,
        category=record.registration_type,
        email=record.email,
        status=record.status,
        payment_status=record.payment_status,
    )


class ValidationGateway:
    def __init__(
        self,
        confirmations: ConfirmationStore,
        scorer: SimilarityScorer,
        photo_loader: Callable[[str], Optional[bytes]],
    ):
        self.confirmations = confirmations
        self.scorer = scorer
        self.photo_loader = photo_loader

    # ------------------------------------------------------------------ #
    # Result helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _reject(
        method: ValidationMethod,
        reason: ValidationReason,
        kind: Optional[CredentialKind] = None,
        record: Optional[Record] = None,
        **extra,
    ) -> ValidationResult:
        result = ValidationResult(
            accepted=False,
            reason=reason,
            method=method,
            participant=participant_summary(kind, record) if record is not None else None,
            **extra,
        )
        if reason == ValidationReason.ALREADY_VALIDATED and record is not None:
            result.validated_at = record.validated_at
            result.validated_by = record.validated_by
        logger.info(
            f"Validation rejected ({method.value}): {reason.value}"
            + (f" for {record.identifier}" if record is not None else "")
        )
        return result

    # ------------------------------------------------------------------ #
    # Lookup
    # ------------------------------------------------------------------ #

    @staticmethod
    def _find_by_identifier(
        db: Session, identifier: str
    ) -> Tuple[Optional[CredentialKind], Optional[Record]]:
        identifier = identifier.strip()
        prefix = identifier.split("-", 1)[0].upper()
        if prefix != codes.IDENTIFIER_PREFIX[CredentialKind.TICKET]:
            record = crud.registration.get_by_unique_id(db, unique_id=identifier)
            if record:
                return CredentialKind.REGISTRATION, record
        if prefix != codes.IDENTIFIER_PREFIX[CredentialKind.REGISTRATION]:
            record = crud.ticket.get_by_number(db, ticket_number=identifier)
            if record:
                return CredentialKind.TICKET, record
        return None, None

    @staticmethod
    def _find_by_manual_code(
        db: Session, code: str
    ) -> Tuple[Optional[CredentialKind], Optional[Record]]:
        code = code.strip().upper()
        if codes.looks_like_ticket_code(code):
            return CredentialKind.TICKET, crud.ticket.get_by_manual_code(db, code=code)
        return CredentialKind.REGISTRATION, crud.registration.get_by_manual_code(db, code=code)

    @staticmethod
    def _load_by_id(db: Session, kind: CredentialKind, record_id: str) -> Optional[Record]:
        store = crud.ticket if kind == CredentialKind.TICKET else crud.registration
        return store.get(db, record_id)

    # ------------------------------------------------------------------ #
    # Core
    # ------------------------------------------------------------------ #

    @staticmethod
    def _admission_problem(
        kind: CredentialKind, record: Record, event_id: str
    ) -> Optional[ValidationReason]:
        """Why ``record`` cannot be admitted to ``event_id`` right now, if anything."""
        if record.event_id != event_id:
            return ValidationReason.WRONG_EVENT
        if record.status == CONSUMED_STATUS[kind]:
            return ValidationReason.ALREADY_VALIDATED
        if record.status == "cancelled":
            return ValidationReason.CANCELLED
        if record.status != ADMISSIBLE_STATUS[kind]:
            return ValidationReason.PAYMENT_PENDING
        return None

    def _consume(
        self,
        db: Session,
        kind: CredentialKind,
        record: Record,
        method: ValidationMethod,
        staff_id: str,
        similarity_score: Optional[float] = None,
    ) -> ValidationResult:
        now = datetime.now(timezone.utc)
        try:
            if kind == CredentialKind.TICKET:
                won = crud.ticket.consume(
                    db, ticket_id=record.id, validated_by=staff_id, method=method.value, now=now
                )
            else:
                won = crud.registration.consume(
                    db, registration_id=record.id, validated_by=staff_id, method=method.value, now=now
                )

            if not won:
                db.rollback()
                db.refresh(record)
                reason = self._admission_problem(kind, record, record.event_id)
                return self._reject(
                    method, reason or ValidationReason.ALREADY_VALIDATED, kind, record
                )

            notifications.publisher.stage(
                db,
                event_type=notifications.ATTENDEE_VALIDATED,
                event_id=record.event_id,
                subject_id=record.identifier,
                user_id=staff_id,
                data={
                    "kind": kind.value,
                    "method": method.value,
                    "similarity_score": similarity_score,
                },
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(record)
        logger.info(
            f"Admitted {kind.value} {record.identifier} via {method.value} by {staff_id}"
        )
        return ValidationResult(
            accepted=True,
            reason=ValidationReason.VALIDATED,
            method=method,
            participant=participant_summary(kind, record),
            similarity_score=similarity_score,
            validated_at=record.validated_at,
            validated_by=record.validated_by,
        )

    def _hold_for_staff(
        self,
        kind: CredentialKind,
        record: Record,
        request: ValidationRequest,
        similarity_score: Optional[float] = None,
    ) -> ValidationResult:
        token = self.confirmations.issue(
            {
                "kind": kind.value,
                "record_id": record.id,
                "event_id": request.event_id,
                "method": request.method.value,
                "credential": request.credential.strip().upper(),
                "similarity_score": similarity_score,
            }
        )
        logger.info(
            f"{kind.value} {record.identifier} held for staff confirmation ({request.method.value})"
        )
        return ValidationResult(
            accepted=False,
            reason=ValidationReason.STAFF_CONFIRMATION_REQUIRED,
            method=request.method,
            participant=participant_summary(kind, record),
            requires_staff_confirmation=True,
            confirmation_token=token,
            similarity_score=similarity_score,
        )

    # ------------------------------------------------------------------ #
    # Entry point
    # ------------------------------------------------------------------ #

    def validate(
        self, db: Session, request: ValidationRequest, staff_id: str
    ) -> ValidationResult:
        if request.confirmation_token:
            return self._confirm(db, request, staff_id)
        if request.method == ValidationMethod.QR:
            return self._validate_qr(db, request, staff_id)
        if request.method == ValidationMethod.MANUAL_CODE:
            return self._validate_manual_code(db, request)
        return self._validate_photo(db, request, staff_id)

    def _validate_qr(
        self, db: Session, request: ValidationRequest, staff_id: str
    ) -> ValidationResult:
        method = ValidationMethod.QR
        token = request.credential.strip()
        claims = verify_credential_qr(token) if is_jwt_qr(token) else None
        if not claims:
            return self._reject(method, ValidationReason.INVALID_CREDENTIAL)

        kind, record = self._find_by_identifier(db, str(claims["sub"]))
        if record is None:
            return self._reject(method, ValidationReason.NOT_FOUND)
        if claims.get("kind") != kind.value or claims.get("eid") != record.event_id:
            return self._reject(method, ValidationReason.INVALID_CREDENTIAL)
        if not codes.secret_matches(str(claims["sec"]), record.qr_secret_hash):
            logger.warning(f"QR secret mismatch for {record.identifier}")
            return self._reject(method, ValidationReason.INVALID_CREDENTIAL)

        problem = self._admission_problem(kind, record, request.event_id)
        if problem:
            return self._reject(method, problem, kind, record)
        return self._consume(db, kind, record, method, staff_id)

    def _validate_manual_code(
        self, db: Session, request: ValidationRequest
    ) -> ValidationResult:
        method = ValidationMethod.MANUAL_CODE
        kind, record = self._find_by_manual_code(db, request.credential)
        if record is None:
            return self._reject(method, ValidationReason.NOT_FOUND)

        problem = self._admission_problem(kind, record, request.event_id)
        if problem:
            return self._reject(method, problem, kind, record)
        return self._hold_for_staff(kind, record, request)

    def _validate_photo(
        self, db: Session, request: ValidationRequest, staff_id: str
    ) -> ValidationResult:
        method = ValidationMethod.PHOTO
        kind, record = self._find_by_identifier(db, request.credential)
        if record is None:
            return self._reject(method, ValidationReason.NOT_FOUND)

        problem = self._admission_problem(kind, record, request.event_id)
        if problem:
            return self._reject(method, problem, kind, record)

        reference = self.photo_loader(record.face_photo_path) if record.face_photo_path else None
        if reference is None:
            return self._reject(method, ValidationReason.NO_REFERENCE_PHOTO, kind, record)
        live = self.photo_loader(request.live_photo_path)
        if live is None:
            raise InputValidationError(
                "Live photo could not be found", field="live_photo_path"
            )

        event = crud.event.get(db, record.event_id)
        score = self.scorer.score(reference, live)
        band = classify(score, Thresholds.for_event(event))
        logger.info(f"Photo score {score} for {record.identifier}: {band.value}")

        if band == SimilarityBand.AUTO_APPROVE:
            return self._consume(db, kind, record, method, staff_id, similarity_score=score)
        if band == SimilarityBand.MANUAL_REVIEW:
            return self._hold_for_staff(kind, record, request, similarity_score=score)
        return self._reject(
            method, ValidationReason.FACE_MISMATCH, kind, record, similarity_score=score
        )

    def _confirm(
        self, db: Session, request: ValidationRequest, staff_id: str
    ) -> ValidationResult:
        """Second step of a held validation: staff vouch for the participant."""
        parked = self.confirmations.consume(request.confirmation_token)
        if parked is None:
            return self._reject(request.method, ValidationReason.CONFIRMATION_EXPIRED)
        if (
            parked.get("event_id") != request.event_id
            or parked.get("method") != request.method.value
            or parked.get("credential") != request.credential.strip().upper()
        ):
            return self._reject(request.method, ValidationReason.INVALID_CREDENTIAL)

        kind = CredentialKind(parked["kind"])
        record = self._load_by_id(db, kind, parked["record_id"])
        if record is None:
            return self._reject(request.method, ValidationReason.NOT_FOUND)

        problem = self._admission_problem(kind, record, request.event_id)
        if problem:
            return self._reject(request.method, problem, kind, record)
        return self._consume(
            db,
            kind,
            record,
            request.method,
            staff_id,
            similarity_score=parked.get("similarity_score"),
        )
