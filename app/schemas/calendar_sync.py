from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class CalendarSyncCreate(BaseModel):
    platform: str = Field(max_length=80)
    ical_url: str = Field(max_length=2000)

    @field_validator("platform", "ical_url")
    @classmethod
    def not_blank(cls, v: str):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class CalendarSyncOut(BaseModel):
    id: int
    platform: str
    ical_url: str
    is_active: bool
    last_synced_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CalendarSyncResultOut(BaseModel):
    sync: CalendarSyncOut
    ok: bool
    intervals_count: int
    message: str
