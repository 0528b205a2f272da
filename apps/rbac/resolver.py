"""
Role resolution for a principal in an access context.

An assignment is applicable to a context when any of these holds:
1. it is global (no organization),
2. it is org-wide for the context organization,
3. it is branch-specific for the exact context (organization, branch).

Resolution is a set union over the three tests: every tier contributes at
once and a principal may hold several active roles.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Union

from django.conf import settings

from apps.rbac.scopes import ScopeKey
from apps.rbac.store import RoleAssignmentStore

logger = logging.getLogger(__name__)


DEFAULT_ROLE_LEVELS = {
    'admin': 100,
    'manager': 50,
    'member': 10,
}


@dataclass(frozen=True)
class ResolvedRole:
    """Plain-data view of a role, safe to hand to callers outside the ORM."""

    id: str
    slug: str
    name: str
    level: int

    @classmethod
    def from_model(cls, role) -> 'ResolvedRole':
        return cls(id=str(role.id), slug=role.slug, name=role.name, level=role.level)


class RoleResolver:
    """
    Computes the roles applicable to a principal in a context.

    Stateless apart from its store; safe to share between threads.
    """

    def __init__(self, store: RoleAssignmentStore = None):
        self.store = store or RoleAssignmentStore()

    def applicable_roles(self, principal_id: str, context: ScopeKey) -> Set[ResolvedRole]:
        """
        Get all roles active for the principal in ``context``.

        Args:
            principal_id: Principal identifier
            context: Access context (use the global scope for "no org")

        Returns:
            Set of ResolvedRole (a role held at several applicable scopes
            appears once)
        """
        assignments = self.store.list_applicable(principal_id, context)
        roles = {ResolvedRole.from_model(assignment.role) for assignment in assignments}

        logger.debug(
            f"Resolved {len(roles)} roles for principal {principal_id} in {context}",
            extra={
                'principal_id': principal_id,
                'org_id': context.org_id,
                'branch_id': context.branch_id,
            }
        )
        return roles

    def has_role_in_context(self, principal_id: str, slug: str, context: ScopeKey) -> bool:
        """Check if the principal holds the role ``slug`` in ``context``."""
        return any(role.slug == slug for role in self.applicable_roles(principal_id, context))

    def highest_level(self, principal_id: str, context: ScopeKey) -> int:
        """Highest role level in ``context``; 0 when no role applies."""
        return max(
            (role.level for role in self.applicable_roles(principal_id, context)),
            default=0,
        )

    def meets_level(self, principal_id: str, required: Union[int, str], context: ScopeKey) -> bool:
        """
        Check if the principal holds ``required`` or a more privileged role.

        Args:
            principal_id: Principal identifier
            required: Minimum level, or a role slug looked up in ACCESS_ROLE_LEVELS
                (unknown slugs require level 0)
            context: Access context
        """
        if isinstance(required, str):
            role_levels = getattr(settings, 'ACCESS_ROLE_LEVELS', DEFAULT_ROLE_LEVELS)
            required_level = role_levels.get(required, 0)
        else:
            required_level = required

        return self.highest_level(principal_id, context) >= required_level

    def describe_assignments(self, principal_id: str, org_id: Optional[str] = None) -> List[Dict]:
        """
        List the principal's assignments with their scope.

        With ``org_id`` only global assignments and assignments inside that
        organization are listed.
        """
        if org_id is not None:
            org_id = ScopeKey.from_raw(org_id).org_id

        assignments = self.store.list_visible_in_org(principal_id, org_id)
        return [
            {
                'role': {
                    'id': str(assignment.role.id),
                    'name': assignment.role.name,
                    'slug': assignment.role.slug,
                    'level': assignment.role.level,
                },
                'scope': assignment.scope.tier.value,
                'org_id': assignment.org_id,
                'branch_id': assignment.branch_id,
            }
            for assignment in assignments
        ]
