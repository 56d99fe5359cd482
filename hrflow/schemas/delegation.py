"""
Delegation schemas
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

from hrflow.models.delegation import DelegationStatus
from hrflow.utils.datetime_utils import iso_8601_utc


class DelegationCreate(BaseModel):
    """Schema for creating a delegation (self, or by an administrator on behalf)"""
    delegate_id: int = Field(..., description="User receiving the authority")
    permission: str = Field(..., description="Permission name being delegated")
    location_id: int = Field(..., description="Location the delegation applies to (not hierarchical)")
    starts_at: Optional[datetime] = Field(None, description="Defaults to now")
    ends_at: Optional[datetime] = Field(None, description="Open ended when omitted")
    reason: Optional[str] = None
    delegator_id: Optional[int] = Field(None, description="Administrators only: delegate on behalf of this user")

    @model_validator(mode="after")
    def ends_after_start(self) -> "DelegationCreate":
        if self.starts_at and self.ends_at and self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        return self


class DelegationOut(BaseModel):
    id: int
    delegator_id: int
    delegate_id: int
    permission_id: int
    location_id: int
    status: DelegationStatus
    starts_at: datetime
    ends_at: Optional[datetime]
    revoked_at: Optional[datetime]
    revoked_by: Optional[int]
    reason: Optional[str]

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("starts_at", "ends_at", "revoked_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_8601_utc(dt)
