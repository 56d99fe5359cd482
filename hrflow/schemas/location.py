"""
Location tree schemas
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from hrflow.models.location import LocationStatus


class LocationCreate(BaseModel):
    name: str = Field(..., min_length=1, description="Location name")
    parent_id: Optional[int] = Field(None, description="Parent location; omit for a root")


class LocationMove(BaseModel):
    new_parent_id: Optional[int] = Field(None, description="New parent; null moves the node to the root")


class LocationOut(BaseModel):
    id: int
    name: str
    parent_id: Optional[int]
    path: str
    level: int
    status: LocationStatus

    model_config = ConfigDict(from_attributes=True)
