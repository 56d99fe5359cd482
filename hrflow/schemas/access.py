"""
Role and permission scope schemas
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from hrflow.models.access import RoleScopeMode, RoleStatus, ScopeSource, ScopeStatus
from hrflow.utils.datetime_utils import iso_8601_utc


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Role name (case-insensitive unique)")
    description: Optional[str] = None
    scope_mode: RoleScopeMode = Field(RoleScopeMode.SCOPED, description="global grants apply at every location")
    permissions: List[str] = Field(default_factory=list, description="Permission names (module.action)")

    @field_validator("permissions")
    @classmethod
    def validate_permission_names(cls, v: List[str]) -> List[str]:
        for name in v:
            if "." not in name:
                raise ValueError(f"Permission '{name}' must look like module.action")
        return v


class RoleOut(BaseModel):
    id: int
    name: str
    description: Optional[str]
    status: RoleStatus
    scope_mode: RoleScopeMode

    model_config = ConfigDict(from_attributes=True)


class RoleAssignment(BaseModel):
    user_id: int


class RolePermissionGrant(BaseModel):
    permission: str = Field(..., description="Permission name (module.action)")


class ScopeGrant(BaseModel):
    user_id: int
    permission: str
    location_id: Optional[int] = None
    include_descendants: bool = False
    is_global: bool = False
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None


class ScopeOut(BaseModel):
    id: int
    user_id: int
    permission_id: int
    location_id: Optional[int]
    include_descendants: bool
    is_global: bool
    valid_from: datetime
    valid_until: Optional[datetime]
    status: ScopeStatus
    source: ScopeSource

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("valid_from", "valid_until", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_8601_utc(dt)

