"""
Effective permission computation.

Aggregates permissions from:
1. Every role applicable in the context (role slug → permissions, cached)
2. Teams the principal belongs to in the context organization (cached)

Team permissions are supplementary: when the team directory is unreachable
the principal keeps every role-derived permission and gets no team ones.
"""
import logging
from typing import FrozenSet, Iterable

from apps.rbac.caches import PermissionCache, TeamMembershipCache
from apps.rbac.exceptions import TeamDirectoryUnavailable
from apps.rbac.models import RolePermission
from apps.rbac.resolver import RoleResolver
from apps.rbac.scopes import ScopeKey

logger = logging.getLogger(__name__)


class PermissionAggregator:
    """
    Service combining role and team permissions for a principal.
    """

    def __init__(self, resolver: RoleResolver = None, permission_cache: PermissionCache = None,
                 team_cache: TeamMembershipCache = None, directory=None):
        self.resolver = resolver or RoleResolver()
        self.permission_cache = permission_cache or PermissionCache()
        self.team_cache = team_cache or TeamMembershipCache()
        self._directory = directory

    @property
    def directory(self):
        """Team directory client, built from settings on first use."""
        if self._directory is None:
            from apps.directory.clients import get_team_directory_client
            self._directory = get_team_directory_client()
        return self._directory

    def role_permissions(self, role_slug: str) -> FrozenSet[str]:
        """
        Permission slugs granted by a role.

        Cached per role slug for ACCESS_ROLE_PERMISSIONS_TTL seconds.
        """
        return self.permission_cache.get_or_load(
            role_slug,
            lambda: RolePermission.objects.filter(
                role__slug=role_slug
            ).values_list('permission__slug', flat=True),
        )

    def team_permissions(self, principal_id: str, org_id: str) -> FrozenSet[str]:
        """
        Permission slugs granted through the principal's teams in ``org_id``.

        Cached per (principal, org) for ACCESS_TEAM_PERMISSIONS_TTL seconds.
        Any directory failure yields an empty set, which is not cached.
        """
        cached = self.team_cache.get(principal_id, org_id)
        if cached is not None:
            return cached

        try:
            teams = self.directory.get_user_teams(principal_id, org_id)
            if teams:
                team_ids = [team.id for team in teams]
                permissions = frozenset(self.directory.get_team_permissions(team_ids, org_id))
            else:
                permissions = frozenset()
        except TeamDirectoryUnavailable as e:
            logger.warning(
                f"Team directory unavailable, continuing without team permissions: {e.message}",
                extra={'principal_id': principal_id, 'org_id': org_id}
            )
            return frozenset()
        except Exception as e:
            logger.error(
                f"Unexpected team directory error, continuing without team permissions: {str(e)}",
                extra={'principal_id': principal_id, 'org_id': org_id},
                exc_info=True
            )
            return frozenset()

        self.team_cache.set(principal_id, org_id, permissions)
        return permissions

    def all_permissions(self, principal_id: str, context: ScopeKey) -> FrozenSet[str]:
        """
        Get all permissions for the principal in ``context``.

        Role permissions from every applicable role, plus team permissions
        when the context names an organization.
        """
        permissions = set()
        for role in self.resolver.applicable_roles(principal_id, context):
            permissions |= self.role_permissions(role.slug)

        if context.org_id is not None:
            permissions |= self.team_permissions(principal_id, context.org_id)

        return frozenset(permissions)

    def has_permission(self, principal_id: str, permission: str, context: ScopeKey) -> bool:
        """Check if the principal has a specific permission in ``context``."""
        return permission in self.all_permissions(principal_id, context)

    def has_any_permission(self, principal_id: str, permissions: Iterable[str], context: ScopeKey) -> bool:
        """Check if the principal has any of the permissions."""
        required = set(permissions)
        return bool(required & self.all_permissions(principal_id, context))

    def has_all_permissions(self, principal_id: str, permissions: Iterable[str], context: ScopeKey) -> bool:
        """Check if the principal has all of the permissions."""
        required = set(permissions)
        return required.issubset(self.all_permissions(principal_id, context))

    def clear_team_cache(self, principal_id: str, org_id: str = None) -> bool:
        """Forget cached team permissions (e.g., after upstream membership changes)."""
        return self.team_cache.invalidate(principal_id, org_id)

    def clear_role_cache(self, role_slug: str) -> bool:
        """Forget the cached permission set of a role."""
        return self.permission_cache.invalidate(role_slug)
