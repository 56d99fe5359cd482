"""
Location tree endpoints
"""
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from hrflow.core.constants import PERM_LOCATIONS_READ, PERM_LOCATIONS_UPDATE
from hrflow.core.deps import get_db, require_permission
from hrflow.models.user import User
from hrflow.schemas.location import LocationCreate, LocationMove, LocationOut
from hrflow.services import location_service

router = APIRouter()


@router.post("", response_model=LocationOut, status_code=status.HTTP_201_CREATED)
async def create_location(
    body: LocationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_LOCATIONS_UPDATE))
):
    """Create a location under parent_id, or a new root"""
    return location_service.create_location(db, body.name, body.parent_id, actor_id=current_user.id)


@router.get("/{location_id}", response_model=LocationOut)
async def get_location(
    location_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_LOCATIONS_READ))
):
    return location_service.get_location(db, location_id)


@router.get("/{location_id}/ancestors", response_model=List[LocationOut])
async def get_ancestors(
    location_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_LOCATIONS_READ))
):
    """Ancestors from the root down, excluding the location itself"""
    return location_service.get_ancestors(db, location_id)


@router.get("/{location_id}/descendants", response_model=List[LocationOut])
async def get_descendants(
    location_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_LOCATIONS_READ))
):
    """All locations below this one, excluding the location itself"""
    return location_service.get_descendants(db, location_id)


@router.post("/{location_id}/move", response_model=LocationOut)
async def move_location(
    location_id: int,
    body: LocationMove,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_LOCATIONS_UPDATE))
):
    """
    Re-parent a location

    Paths and levels of the whole subtree are rewritten in one transaction.
    Moving a location under itself or one of its descendants is rejected.
    """
    return location_service.move_location(db, location_id, body.new_parent_id, actor_id=current_user.id)
