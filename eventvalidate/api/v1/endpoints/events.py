# eventvalidate/api/v1/endpoints/events.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from eventvalidate import crud
from eventvalidate.api import deps
from eventvalidate.core.exceptions import EventNotFound
from eventvalidate.db.session import get_db
from eventvalidate.schemas.event import Event, EventBase, EventCreate
from eventvalidate.schemas.token import TokenPayload

router = APIRouter(tags=["Events"])


@router.post("/events", response_model=Event, status_code=status.HTTP_201_CREATED)
def create_event(
    event_in: EventBase,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Create an event owned by the caller's organization."""
    if not current_user.org_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token is not scoped to an organization",
        )
    obj_in = EventCreate(
        **event_in.model_dump(),
        organization_id=current_user.org_id,
        owner_id=current_user.sub,
    )
    return crud.event.create(db, obj_in=obj_in)


@router.get("/events/{event_id}", response_model=Event)
def get_event(event_id: str, db: Session = Depends(get_db)):
    event = crud.event.get(db, event_id)
    if not event:
        raise EventNotFound(f"Event {event_id} not found", event_id=event_id)
    return event
