# eventvalidate/crud/base.py
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy import and_, update
from sqlalchemy.orm import Session

from eventvalidate.db.base_class import Base

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)


class CRUDBase(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    def __init__(self, model: Type[ModelType]):
        self.model = model

    def get(self, db: Session, id: Any) -> Optional[ModelType]:
        return db.query(self.model).filter(self.model.id == id).first()

    def create(self, db: Session, *, obj_in: CreateSchemaType) -> ModelType:
        db_obj = self.model(**obj_in.model_dump())
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def transition(
        self,
        db: Session,
        *,
        conditions: List[Any],
        values: Dict[str, Any],
    ) -> bool:
        """
        Apply ``values`` with a single conditional UPDATE.

        Returns True when exactly the guarded row changed. The caller owns
        the transaction: nothing is committed here, so the change can share
        a commit with outbox rows or counter updates.
        """
        result = db.execute(
            update(self.model)
            .where(and_(*conditions))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
