from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MessageCreate(BaseModel):
    message: str = Field(min_length=1, max_length=2000)

    @field_validator("message")
    @classmethod
    def not_blank(cls, v: str):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class MessageOut(BaseModel):
    id: int
    booking_id: int
    sender_id: Optional[str]
    message: str
    is_from_owner: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
