# eventvalidate/schemas/domain_event.py
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel


class DomainEvent(BaseModel):
    id: str
    event_id: str
    event_type: str
    subject_id: Optional[str] = None
    timestamp: datetime
    user_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    published_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
