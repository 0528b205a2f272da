"""
TTL caches fronting role→permission and principal→team-permission lookups.

Both sit on Django's cache framework (locmem or Redis), which is safe for
concurrent reads and deletes. Values are stored as sorted lists and handed
back as frozensets.
"""
import logging
import time
from typing import Callable, FrozenSet, Iterable, Optional

from django.conf import settings
from django.db import transaction

from apps.core.cache import CacheKeys, CacheService, CacheTTL

logger = logging.getLogger(__name__)


class PermissionCache:
    """
    Role slug → permission slugs. Shared by every principal holding the role.

    Entries live under a per-role generation. Invalidation bumps the
    generation instead of deleting the entry, so a reader that loaded the
    old grants before the bump can only write them under a generation no
    later read will use. Inside a transaction the bump is repeated on
    commit, so a refill from another connection before the commit is
    superseded as well.
    """

    def __init__(self, ttl: int = None):
        self.ttl = ttl or getattr(settings, 'ACCESS_ROLE_PERMISSIONS_TTL', CacheTTL.ROLE_PERMISSIONS)

    @staticmethod
    def key(role_slug: str, version: int = None) -> str:
        key = CacheKeys.format(CacheKeys.ROLE_PERMISSIONS, role_slug=role_slug)
        if version is None:
            return key
        return f"{key}:v{version}"

    @staticmethod
    def version_key(role_slug: str) -> str:
        return CacheKeys.format(CacheKeys.ROLE_PERMISSIONS_VERSION, role_slug=role_slug)

    @staticmethod
    def _initial_version() -> int:
        # Clock-seeded so an evicted counter never reuses an older generation
        return time.time_ns()

    def current_version(self, role_slug: str) -> Optional[int]:
        """Current generation of the role's entry, or None when the cache is unusable."""
        key = self.version_key(role_slug)
        version = CacheService.get(key)
        if version is None:
            CacheService.add(key, self._initial_version())
            version = CacheService.get(key)
        return version

    def get_or_load(self, role_slug: str, loader: Callable[[], Iterable[str]]) -> FrozenSet[str]:
        version = self.current_version(role_slug)
        if version is None:
            return frozenset(loader())
        value = CacheService.get_or_set(
            self.key(role_slug, version),
            lambda: sorted(loader()),
            self.ttl,
        )
        return frozenset(value)

    def _bump(self, role_slug: str) -> bool:
        return CacheService.incr(self.version_key(role_slug), initial=self._initial_version()) is not None

    def invalidate(self, role_slug: str) -> bool:
        cleared = self._bump(role_slug)
        if transaction.get_connection().in_atomic_block:
            transaction.on_commit(lambda: self._bump(role_slug))
        logger.info(f"Invalidated permission cache for role {role_slug}")
        return cleared

    def invalidate_many(self, role_slugs: Iterable[str]) -> bool:
        results = [self.invalidate(slug) for slug in role_slugs]
        return all(results)


class TeamMembershipCache:
    """(principal, org) → team-derived permission slugs."""

    def __init__(self, ttl: int = None):
        self.ttl = ttl or getattr(settings, 'ACCESS_TEAM_PERMISSIONS_TTL', CacheTTL.TEAM_PERMISSIONS)

    @staticmethod
    def key(principal_id: str, org_id: str) -> str:
        return CacheKeys.format(CacheKeys.TEAM_PERMISSIONS, principal_id=principal_id, org_id=org_id)

    def get(self, principal_id: str, org_id: str):
        """Cached permission set, or None on a miss."""
        value = CacheService.get(self.key(principal_id, org_id))
        if value is None:
            return None
        return frozenset(value)

    def set(self, principal_id: str, org_id: str, permissions: Iterable[str]) -> bool:
        return CacheService.set(self.key(principal_id, org_id), sorted(permissions), self.ttl)

    def invalidate(self, principal_id: str, org_id: str = None) -> bool:
        """
        Drop cached team permissions for a principal.

        Without ``org_id`` every organization is cleared, which needs a
        backend with pattern deletion (django-redis).
        """
        if org_id is not None:
            cleared = CacheService.delete(self.key(principal_id, org_id))
        else:
            cleared = CacheService.delete_pattern(
                CacheKeys.format(CacheKeys.TEAM_PERMISSIONS_FOR_PRINCIPAL, principal_id=principal_id)
            )
        logger.info(
            f"Invalidated team permission cache for principal {principal_id}",
            extra={'principal_id': principal_id, 'org_id': org_id}
        )
        return cleared
