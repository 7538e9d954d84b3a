# eventvalidate/core/exceptions.py
"""
Error taxonomy for the registration and entrance-validation engine.

Every error carries a stable ``reason`` code. API handlers and the
validation gateway surface that code to callers unchanged, so clients can
tell "already used" apart from "payment required" without parsing text.
"""


class EngineError(Exception):
    reason = "engine_error"
    status_code = 400

    def __init__(self, message: str | None = None, *, reason: str | None = None, **context):
        if reason:
            self.reason = reason
        self.message = message or self.reason.replace("_", " ")
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"reason": self.reason, "message": self.message}
        if self.context:
            body["context"] = self.context
        return body


# ==================== Input ====================


class InputValidationError(EngineError):
    reason = "invalid_field"
    status_code = 422


class MissingField(InputValidationError):
    reason = "missing_field"


# ==================== Eligibility ====================


class EligibilityError(EngineError):
    reason = "not_eligible"
    status_code = 409


class EventNotFound(EligibilityError):
    reason = "event_not_found"
    status_code = 404


class RegistrationClosed(EligibilityError):
    reason = "registration_closed"


class RegistrationNotOpen(RegistrationClosed):
    reason = "registration_not_open"


class EventNotAcceptingRegistrations(RegistrationClosed):
    reason = "event_not_accepting_registrations"


class CategoryNotPermitted(EligibilityError):
    reason = "category_not_permitted"


class CapacityExceeded(EligibilityError):
    reason = "capacity_exceeded"


class AlreadyRegistered(EligibilityError):
    reason = "already_registered"


class WrongEventType(EligibilityError):
    reason = "wrong_event_type"


# ==================== Payment ====================


class PaymentRequired(EngineError):
    reason = "payment_required"
    status_code = 402


class PaymentError(EngineError):
    reason = "payment_error"


class ReferenceNotFound(PaymentError):
    reason = "reference_not_found"
    status_code = 404


class InvalidSignature(PaymentError):
    reason = "invalid_signature"
    status_code = 401


# ==================== Credentials ====================


class CredentialError(EngineError):
    reason = "credential_error"
    status_code = 409


class CredentialCollision(CredentialError):
    reason = "credential_collision"
    status_code = 503


class CredentialNotFound(CredentialError):
    reason = "not_found"
    status_code = 404


class CredentialAlreadyConsumed(CredentialError):
    reason = "already_validated"


# ==================== Consistency ====================


class InvalidTransition(EngineError):
    """A state change was requested from a state that does not allow it."""

    reason = "invalid_transition"
    status_code = 409
