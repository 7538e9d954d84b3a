# eventvalidate/schemas/enums.py
from enum import Enum


class RegistrationType(str, Enum):
    MEMBER = "member"
    GUEST = "guest"
    INVITEE = "invitee"


class EventType(str, Enum):
    REGISTRATION = "registration"
    TICKET = "ticket"


class EventStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RegistrationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ATTENDED = "attended"
    CANCELLED = "cancelled"


class RegistrationPaymentStatus(str, Enum):
    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class TicketStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
    USED = "used"


class TicketPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    GATEWAY = "gateway"
    MANUAL_RECEIPT = "manual_receipt"


class ReceiptReviewStatus(str, Enum):
    AWAITING_REVIEW = "awaiting_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class PaymentOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class NotificationDisposition(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    UNMATCHED = "unmatched"


class ValidationMethod(str, Enum):
    QR = "qr"
    MANUAL_CODE = "manual_code"
    PHOTO = "photo"


class CredentialKind(str, Enum):
    REGISTRATION = "registration"
    TICKET = "ticket"


class SimilarityBand(str, Enum):
    AUTO_APPROVE = "auto_approve"
    MANUAL_REVIEW = "manual_review"
    LIKELY_MISMATCH = "likely_mismatch"


class ValidationReason(str, Enum):
    """Machine-readable outcome of a validation attempt."""

    VALIDATED = "validated"
    STAFF_CONFIRMATION_REQUIRED = "staff_confirmation_required"
    ALREADY_VALIDATED = "already_validated"
    PAYMENT_PENDING = "payment_pending"
    CANCELLED = "cancelled"
    NOT_FOUND = "not_found"
    WRONG_EVENT = "wrong_event"
    INVALID_CREDENTIAL = "invalid_credential"
    CONFIRMATION_EXPIRED = "confirmation_expired"
    NO_REFERENCE_PHOTO = "no_reference_photo"
    FACE_MISMATCH = "face_mismatch"
