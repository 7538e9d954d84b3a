# eventvalidate/schemas/form.py
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from eventvalidate.schemas.enums import RegistrationType


class FieldType(str, Enum):
    TEXT = "text"
    EMAIL = "email"
    PHONE = "phone"
    NUMBER = "number"
    SELECT = "select"
    CHECKBOX = "checkbox"
    DATE = "date"


class FormField(BaseModel):
    """
    One custom question on an event's registration form.

    ``visible_for`` limits which participant categories see the field (empty
    means all). ``required_for`` makes it mandatory for specific categories
    on top of the blanket ``required`` flag.
    """

    name: str
    label: Optional[str] = None
    type: FieldType = FieldType.TEXT
    required: bool = False
    required_for: List[RegistrationType] = []
    visible_for: List[RegistrationType] = []
    options: List[str] = []
    max_length: Optional[int] = None
