# eventvalidate/schemas/token.py
from pydantic import BaseModel, Field
from typing import Optional


class TokenPayload(BaseModel):
    sub: str  # Staff user ID
    org_id: Optional[str] = Field(default=None, alias="orgId")
    role: Optional[str] = None
    exp: int

    model_config = {
        "populate_by_name": True,
        "from_attributes": True,
    }
