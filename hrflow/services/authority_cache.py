"""
Read-through cache for authority results.

Entries are keyed by (user_id, location_id, permission, include_descendants).
The cache is a derived view of committed grants. A flush that touches roles,
grants, scopes, delegations, users or the location tree invalidates the
affected entries at once, and again when its transaction commits or rolls
back, so results computed by other sessions in between do not survive.
Entries never outlive the next scope or delegation window boundary that
produced them; the caller passes that as the entry TTL.
"""
import fnmatch
import json
import logging
import threading
from datetime import timedelta
from typing import Any, Dict, Optional, Set

from sqlalchemy import event
from sqlalchemy.orm import Session

from hrflow.core.config import settings
from hrflow.utils.datetime_utils import now_utc

logger = logging.getLogger(__name__)

KEY_PREFIX = "authz"
PENDING_INFO_KEY = "authority_cache_pending"


class CacheBackend:
    """Abstract cache backend interface"""

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set(self, key: str, value: Any, expire: Optional[int] = None) -> bool:
        raise NotImplementedError

    def clear(self, pattern: str = "*") -> int:
        raise NotImplementedError


class InMemoryBackend(CacheBackend):
    """Process-local backend for development and tests"""

    def __init__(self):
        self._cache: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if entry["expires"] and now_utc() >= entry["expires"]:
                del self._cache[key]
                return None
            return entry["value"]

    def set(self, key: str, value: Any, expire: Optional[int] = None) -> bool:
        with self._lock:
            expires = now_utc() + timedelta(seconds=expire) if expire else None
            self._cache[key] = {"value": value, "expires": expires}
            return True

    def clear(self, pattern: str = "*") -> int:
        with self._lock:
            if pattern == "*":
                count = len(self._cache)
                self._cache.clear()
                return count
            matching = [key for key in self._cache if fnmatch.fnmatch(key, pattern)]
            for key in matching:
                del self._cache[key]
            return len(matching)


class RedisBackend(CacheBackend):
    """Shared backend so every worker process sees the same invalidations"""

    def __init__(self, url: str):
        import redis

        self.client = redis.Redis.from_url(url, decode_responses=True)

    def get(self, key: str) -> Optional[Any]:
        value = self.client.get(key)
        return json.loads(value) if value is not None else None

    def set(self, key: str, value: Any, expire: Optional[int] = None) -> bool:
        return bool(self.client.set(key, json.dumps(value), ex=expire))

    def clear(self, pattern: str = "*") -> int:
        keys = list(self.client.scan_iter(match=pattern))
        if keys:
            self.client.delete(*keys)
        return len(keys)


class AuthorityCache:
    def __init__(self, backend: CacheBackend, ttl_seconds: int):
        self.backend = backend
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(user_id: int, location_id: int, permission: str, include_descendants: bool) -> str:
        return f"{KEY_PREFIX}:{user_id}:{location_id}:{permission}:{int(include_descendants)}"

    def get(self, user_id: int, location_id: int, permission: str, include_descendants: bool) -> Optional[dict]:
        return self.backend.get(self._key(user_id, location_id, permission, include_descendants))

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def put(
        self,
        user_id: int,
        location_id: int,
        permission: str,
        include_descendants: bool,
        result: dict,
        ttl: Optional[int] = None,
    ) -> bool:
        """Store a result for at most ttl seconds (capped at the configured TTL). False when not stored."""
        expire = self.ttl_seconds if ttl is None else min(ttl, self.ttl_seconds)
        if expire < 1:
            return False
        return self.backend.set(self._key(user_id, location_id, permission, include_descendants), result, expire)

    def invalidate_user(self, user_id: int) -> int:
        return self.backend.clear(f"{KEY_PREFIX}:{user_id}:*")

    def invalidate_all(self) -> int:
        return self.backend.clear(f"{KEY_PREFIX}:*")


def _build_backend() -> CacheBackend:
    if settings.AUTHORITY_CACHE_BACKEND == "redis":
        logger.info("Authority cache using redis backend")
        return RedisBackend(settings.REDIS_URL)
    if settings.APP_ENV != "local" and settings.AUTHORITY_CACHE_TTL_SECONDS > 0:
        logger.warning(
            "Authority cache using in-memory backend in %s; invalidations stay in this process, "
            "so other workers may serve revoked grants for up to %ss",
            settings.APP_ENV, settings.AUTHORITY_CACHE_TTL_SECONDS,
        )
    return InMemoryBackend()


authority_cache = AuthorityCache(_build_backend(), settings.AUTHORITY_CACHE_TTL_SECONDS)


def _affected_users(session: Session) -> tuple:
    """
    Collect (invalidate_everything, user_ids) for the rows touched by a flush.

    A delegation only changes what its delegate can do. Any other grant or
    user change can reach other users through delegations, so it clears
    every entry.
    """
    from hrflow.models import (
        Delegation,
        Location,
        Permission,
        PermissionScope,
        Role,
        RolePermission,
        User,
        UserRole,
    )

    tracked = (Role, RolePermission, Permission, Location, UserRole, PermissionScope, User)
    everything = False
    user_ids: Set[int] = set()
    for obj in list(session.new) + list(session.dirty) + list(session.deleted):
        if isinstance(obj, tracked):
            everything = True
        elif isinstance(obj, Delegation):
            user_ids.add(obj.delegate_id)
    return everything, user_ids


def _invalidate(everything: bool, user_ids: Set[int]) -> None:
    if everything:
        authority_cache.invalidate_all()
        return
    for user_id in user_ids:
        if user_id is not None:
            authority_cache.invalidate_user(user_id)


@event.listens_for(Session, "after_flush")
def _invalidate_on_flush(session, flush_context):
    everything, user_ids = _affected_users(session)
    if not everything and not user_ids:
        return
    pending = session.info.setdefault(PENDING_INFO_KEY, {"everything": False, "user_ids": set()})
    pending["everything"] = pending["everything"] or everything
    pending["user_ids"].update(user_ids)
    _invalidate(everything, user_ids)


@event.listens_for(Session, "after_commit")
def _invalidate_on_commit(session):
    pending = session.info.pop(PENDING_INFO_KEY, None)
    if pending:
        _invalidate(pending["everything"], pending["user_ids"])


@event.listens_for(Session, "after_rollback")
def _invalidate_on_rollback(session):
    # Results computed against the discarded rows must not outlive them
    pending = session.info.pop(PENDING_INFO_KEY, None)
    if pending:
        _invalidate(pending["everything"], pending["user_ids"])
