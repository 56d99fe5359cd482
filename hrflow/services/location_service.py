"""
Location tree service (materialized path).

Every node's path equals its parent's path plus its own id, joined by ".",
and its level equals the number of separators in the path. Ancestor and
descendant queries are prefix comparisons on ``path``.
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from hrflow.core.constants import LOCATION_PATH_SEPARATOR as SEP
from hrflow.core.errors import NotFoundError, PreconditionError, ConsistencyError
from hrflow.models.location import Location, LocationStatus
from hrflow.services.audit_service import log_audit

logger = logging.getLogger(__name__)


def build_path(parent: Optional[Location], location_id: int) -> str:
    if parent is None:
        return str(location_id)
    return f"{parent.path}{SEP}{location_id}"


def calculate_level(path: str) -> int:
    return path.count(SEP)


def path_is_under(path: str, ancestor_path: str) -> bool:
    """Strict descendant test on materialized paths."""
    return path.startswith(ancestor_path + SEP)


def get_location(db: Session, location_id: int) -> Location:
    location = db.get(Location, location_id)
    if not location:
        raise NotFoundError(f"Location {location_id} not found")
    return location


def create_location(
    db: Session,
    name: str,
    parent_id: Optional[int] = None,
    actor_id: Optional[int] = None,
) -> Location:
    """Create a node under parent_id (or as a root) and compute its path/level."""
    parent = None
    if parent_id is not None:
        parent = get_location(db, parent_id)
        if parent.status != LocationStatus.ACTIVE:
            raise PreconditionError(f"Parent location {parent_id} is inactive")

    location = Location(name=name, parent_id=parent_id, path="", level=0)
    db.add(location)
    db.flush()  # assigns id
    location.path = build_path(parent, location.id)
    location.level = calculate_level(location.path)
    log_audit(db, actor_id, "CREATE", "location", location.id, {"name": name, "parent_id": parent_id})
    db.commit()
    db.refresh(location)
    return location


def get_descendants(db: Session, location_id: int) -> List[Location]:
    location = get_location(db, location_id)
    return (
        db.query(Location)
        .filter(Location.path.startswith(location.path + SEP, autoescape=True))
        .order_by(Location.level, Location.id)
        .all()
    )


def get_ancestors(db: Session, location_id: int) -> List[Location]:
    """Ancestors ordered from the root down to the direct parent."""
    location = get_location(db, location_id)
    ancestor_ids = [int(part) for part in location.path.split(SEP)[:-1]]
    if not ancestor_ids:
        return []
    rows = db.query(Location).filter(Location.id.in_(ancestor_ids)).all()
    by_id = {row.id: row for row in rows}
    return [by_id[i] for i in ancestor_ids if i in by_id]


def is_descendant_of(db: Session, location_id: int, ancestor_id: int) -> bool:
    """True when location_id lies strictly below ancestor_id."""
    if location_id == ancestor_id:
        return False
    location = db.get(Location, location_id)
    ancestor = db.get(Location, ancestor_id)
    if not location or not ancestor:
        return False
    return path_is_under(location.path, ancestor.path)


def is_same_or_descendant(db: Session, location_id: int, ancestor_id: int) -> bool:
    return location_id == ancestor_id or is_descendant_of(db, location_id, ancestor_id)


def validate_tree_integrity(db: Session, location_id: int) -> bool:
    """
    Check path/level of the node and its whole subtree against their parents.
    """
    root = db.get(Location, location_id)
    if not root:
        return False
    nodes = [root] + (
        db.query(Location)
        .filter(Location.path.startswith(root.path + SEP, autoescape=True))
        .all()
    )
    for node in nodes:
        parent = db.get(Location, node.parent_id) if node.parent_id is not None else None
        if node.parent_id is not None and parent is None:
            return False
        if node.path != build_path(parent, node.id):
            return False
        if node.level != calculate_level(node.path):
            return False
    return True


def move_location(
    db: Session,
    location_id: int,
    new_parent_id: Optional[int],
    actor_id: Optional[int] = None,
) -> Location:
    """
    Re-parent a node, rewriting its own and every descendant's path/level
    in one transaction. Moving a node under itself or one of its
    descendants is rejected with no mutation.
    """
    location = (
        db.query(Location)
        .filter(Location.id == location_id)
        .with_for_update()
        .first()
    )
    if not location:
        raise NotFoundError(f"Location {location_id} not found")

    new_parent = None
    if new_parent_id is not None:
        if new_parent_id == location_id:
            raise PreconditionError("Cannot move location to itself")
        new_parent = get_location(db, new_parent_id)
        if path_is_under(new_parent.path, location.path):
            raise PreconditionError("Cannot move location to its own descendant")
        if new_parent.status != LocationStatus.ACTIVE:
            raise PreconditionError(f"Parent location {new_parent_id} is inactive")

    old_path = location.path
    new_path = build_path(new_parent, location.id)

    try:
        descendants = (
            db.query(Location)
            .filter(Location.path.startswith(old_path + SEP, autoescape=True))
            .with_for_update()
            .all()
        )
        location.parent_id = new_parent_id
        location.path = new_path
        location.level = calculate_level(new_path)
        for node in descendants:
            node.path = new_path + node.path[len(old_path):]
            node.level = calculate_level(node.path)
        db.flush()

        if not validate_tree_integrity(db, location.id):
            raise ConsistencyError("Tree integrity validation failed after move")

        log_audit(
            db, actor_id, "MOVE", "location", location.id,
            {"old_path": old_path, "new_path": new_path, "descendants": len(descendants)},
        )
        db.commit()
    except (ConsistencyError, SQLAlchemyError):
        db.rollback()
        logger.error("Location move %s -> %s rolled back", location_id, new_parent_id, exc_info=True)
        raise

    db.refresh(location)
    logger.info("Moved location %s from %s to %s (%d descendants)", location_id, old_path, new_path, len(descendants))
    return location


def get_fallback_location_id(db: Session) -> Optional[int]:
    """First active location system-wide, used when a caller has no primary location."""
    row = (
        db.query(Location.id)
        .filter(Location.status == LocationStatus.ACTIVE)
        .order_by(Location.level, Location.id)
        .first()
    )
    return row[0] if row else None
