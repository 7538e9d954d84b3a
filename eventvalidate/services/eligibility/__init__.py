from .pricing import (
    PaymentRequirement,
    check_eligibility,
    resolve_payment,
    resolve_ticket_price,
)
from .form_schema import check_base_requirements, validate_answers
