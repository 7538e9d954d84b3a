# eventvalidate/services/eligibility/form_schema.py
"""
Declarative registration form validation.

An event describes its extra questions as a list of ``FormField`` entries.
One generic validator walks that list; there is no per-category code path.
"""

import re
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping

from pydantic import ValidationError

from eventvalidate.core.exceptions import (
    CategoryNotPermitted,
    InputValidationError,
    MissingField,
)
from eventvalidate.schemas.enums import RegistrationType
from eventvalidate.schemas.form import FieldType, FormField

# Identity fields each category must supply on top of first/last name
BASE_REQUIREMENTS: Dict[RegistrationType, tuple] = {
    RegistrationType.MEMBER: ("auxiliary_body",),
    RegistrationType.GUEST: ("email",),
    RegistrationType.INVITEE: ("email",),
}

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^\+?[0-9 ()-]{7,20}$")


def load_fields(raw: Iterable[Any]) -> List[FormField]:
    """Parse stored field definitions, rejecting a malformed form config."""
    try:
        return [f if isinstance(f, FormField) else FormField.model_validate(f) for f in raw or []]
    except ValidationError as e:
        raise InputValidationError(
            "Event form configuration is invalid", reason="invalid_form_config", errors=str(e)
        )


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip()) or value == []


def _check_type(field: FormField, value: Any) -> None:
    name = field.name
    if field.type in (FieldType.TEXT, FieldType.EMAIL, FieldType.PHONE, FieldType.SELECT):
        if not isinstance(value, str):
            raise InputValidationError(f"'{name}' must be text", field=name)
        if field.max_length and len(value) > field.max_length:
            raise InputValidationError(
                f"'{name}' must be at most {field.max_length} characters", field=name
            )
    if field.type == FieldType.EMAIL and not _EMAIL_RE.match(value):
        raise InputValidationError(f"'{name}' must be a valid email address", field=name)
    if field.type == FieldType.PHONE and not _PHONE_RE.match(value):
        raise InputValidationError(f"'{name}' must be a valid phone number", field=name)
    if field.type == FieldType.SELECT and field.options and value not in field.options:
        raise InputValidationError(
            f"'{name}' must be one of: {', '.join(field.options)}", field=name
        )
    if field.type == FieldType.NUMBER and (
        isinstance(value, bool) or not isinstance(value, (int, float))
    ):
        raise InputValidationError(f"'{name}' must be a number", field=name)
    if field.type == FieldType.CHECKBOX and not isinstance(value, bool):
        raise InputValidationError(f"'{name}' must be true or false", field=name)
    if field.type == FieldType.DATE:
        try:
            date.fromisoformat(str(value))
        except ValueError:
            raise InputValidationError(f"'{name}' must be an ISO date", field=name)


def validate_answers(
    fields: Iterable[Any],
    registration_type: RegistrationType,
    answers: Mapping[str, Any],
) -> Dict[str, Any]:
    """
    Validate ``answers`` against the form for one participant category.

    Returns the answers restricted to fields visible to that category.
    Unknown keys are dropped rather than stored.
    """
    cleaned: Dict[str, Any] = {}
    for field in load_fields(fields):
        if field.visible_for and registration_type not in field.visible_for:
            continue
        value = answers.get(field.name)
        required = field.required or registration_type in field.required_for
        if _is_blank(value):
            if required:
                raise MissingField(
                    f"'{field.label or field.name}' is required", field=field.name
                )
            continue
        _check_type(field, value)
        cleaned[field.name] = value
    return cleaned


def check_base_requirements(
    registration_type: RegistrationType,
    submission: Mapping[str, Any],
    eligible_auxiliary_bodies: Iterable[str] = (),
) -> None:
    for name in BASE_REQUIREMENTS[registration_type]:
        if _is_blank(submission.get(name)):
            raise MissingField(
                f"'{name}' is required for {registration_type.value} registrations",
                field=name,
            )

    bodies = list(eligible_auxiliary_bodies or [])
    if registration_type == RegistrationType.MEMBER and bodies:
        if submission.get("auxiliary_body") not in bodies:
            raise CategoryNotPermitted(
                "Auxiliary body is not eligible for this event",
                reason="auxiliary_body_not_eligible",
                field="auxiliary_body",
            )
