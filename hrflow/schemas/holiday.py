"""
Holiday calendar schemas
"""
from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class HolidayCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    holiday_date: date
    location_id: Optional[int] = Field(None, description="Omit for a holiday that applies everywhere")
    hours: Optional[Decimal] = Field(None, ge=0, le=24, description="Defaults to the standard working day")


class HolidayOut(BaseModel):
    id: int
    name: str
    holiday_date: date
    location_id: Optional[int]
    hours: Decimal
    active: bool

    model_config = ConfigDict(from_attributes=True)
