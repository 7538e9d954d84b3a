# eventvalidate/crud/crud_event.py
from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from eventvalidate.crud.base import CRUDBase
from eventvalidate.models.event import Event
from eventvalidate.schemas.event import EventCreate


class CRUDEvent(CRUDBase[Event, EventCreate, EventCreate]):
    def create(self, db: Session, *, obj_in: EventCreate) -> Event:
        data = obj_in.model_dump(mode="json")
        # Datetimes must stay datetimes for the DateTime columns
        for key in ("start_date", "end_date", "registration_start_date", "registration_end_date"):
            data[key] = getattr(obj_in, key)
        db_obj = self.model(**data)
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def reserve_slot(self, db: Session, *, event_id: str) -> bool:
        """
        Take one capacity slot, or report that the event is full.

        The comparison and the increment happen inside one UPDATE, so two
        concurrent submissions can never both take the last slot.
        """
        result = db.execute(
            update(Event)
            .where(
                Event.id == event_id,
                or_(
                    Event.max_attendees.is_(None),
                    Event.registered_count < Event.max_attendees,
                ),
            )
            .values(registered_count=Event.registered_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def release_slot(self, db: Session, *, event_id: str) -> bool:
        result = db.execute(
            update(Event)
            .where(Event.id == event_id, Event.registered_count > 0)
            .values(registered_count=Event.registered_count - 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


event = CRUDEvent(Event)
