# eventvalidate/api/v1/endpoints/validation.py
"""
Entrance validation endpoint used by door staff.

Door-level rejections (already used, payment pending, wrong event...) are
normal answers and come back as 200 with ``accepted=false`` and a reason.
"""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from eventvalidate import crud
from eventvalidate.api import deps
from eventvalidate.core.config import settings
from eventvalidate.core.exceptions import EventNotFound
from eventvalidate.core.limiter import limiter
from eventvalidate.db.session import get_db
from eventvalidate.schemas.token import TokenPayload
from eventvalidate.schemas.validation import ValidationRequest, ValidationResult
from eventvalidate.services.validation.gateway import ValidationGateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Validation"])


@router.post("/validation", response_model=ValidationResult)
@limiter.limit(settings.VALIDATION_RATE_LIMIT)
def validate_credential(
    request: Request,
    validation_in: ValidationRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    gateway: ValidationGateway = Depends(deps.get_validation_gateway),
    relay=Depends(deps.get_outbox_relay),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    event = crud.event.get(db, validation_in.event_id)
    if not event:
        raise EventNotFound(f"Event {validation_in.event_id} not found")
    deps.ensure_organization_access(event.organization_id, current_user)

    result = gateway.validate(db, validation_in, staff_id=current_user.sub)
    if result.accepted:
        background_tasks.add_task(relay)
    return result
