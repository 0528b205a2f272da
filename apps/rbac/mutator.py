"""
Role assignment mutations: assign, remove and scope-bounded sync.

Every operation works on one exact scope. Assignments the principal holds
in other scopes, including other assignments of the same role, are never
read or written.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional, Tuple

from django.db import transaction

from apps.rbac.exceptions import (
    AccessControlError, AssignmentNotFound, DuplicateAssignment,
    RoleNotFound, ScopeSyncError, StoreUnavailable,
)
from apps.rbac.models import Role, RoleAssignment
from apps.rbac.scopes import ScopeKey
from apps.rbac.store import RoleAssignmentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncResult:
    """Role ids attached and detached by a scope sync."""

    attached: FrozenSet[uuid.UUID] = field(default_factory=frozenset)
    detached: FrozenSet[uuid.UUID] = field(default_factory=frozenset)

    @property
    def changed(self) -> bool:
        return bool(self.attached or self.detached)


def _as_role_id(value) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise RoleNotFound(f"Role '{value}' not found")


def _as_scope(scope) -> ScopeKey:
    """Accept a ScopeKey or a raw (org_id, branch_id) pair."""
    if isinstance(scope, ScopeKey):
        return scope
    if scope is None:
        return ScopeKey.global_scope()
    org_id, branch_id = scope
    return ScopeKey.from_raw(org_id, branch_id)


class AssignmentMutator:
    """
    Service for changing role assignments.
    """

    def __init__(self, store: RoleAssignmentStore = None):
        self.store = store or RoleAssignmentStore()

    def assign(self, principal_id: str, role_id, scope, assigned_by: Optional[str] = None) -> RoleAssignment:
        """
        Assign a role to a principal at an exact scope.

        Args:
            principal_id: Principal identifier
            role_id: Role UUID
            scope: ScopeKey or raw (org_id, branch_id) pair
            assigned_by: Principal performing the change

        Returns:
            The new RoleAssignment

        Raises:
            InvalidScope: If a branch is given without an organization
            RoleNotFound: If the role doesn't exist
            DuplicateAssignment: If the exact scope already holds this role
        """
        scope = _as_scope(scope)
        role = self._get_role(role_id)

        assignment = self.store.create(principal_id, role.id, scope, assigned_by=assigned_by)

        logger.info(
            f"Assigned role {role.slug} to principal {principal_id} at {scope}",
            extra={
                'principal_id': principal_id,
                'role_slug': role.slug,
                'org_id': scope.org_id,
                'branch_id': scope.branch_id,
                'assigned_by': assigned_by,
            }
        )
        return assignment

    def assign_idempotent(self, principal_id: str, role_id, scope,
                          assigned_by: Optional[str] = None) -> Tuple[Optional[RoleAssignment], bool]:
        """
        Assign a role, treating an existing identical assignment as success.

        Returns:
            (assignment, True) when created, (None, False) when it already existed
        """
        try:
            return self.assign(principal_id, role_id, scope, assigned_by=assigned_by), True
        except DuplicateAssignment:
            return None, False

    def remove(self, principal_id: str, role_id, scope, removed_by: Optional[str] = None) -> int:
        """
        Remove a role assignment at an exact scope.

        Returns:
            Number of assignments removed (0 means there was nothing to remove)
        """
        scope = _as_scope(scope)
        removed = self.store.delete(principal_id, _as_role_id(role_id), scope)

        if removed:
            logger.info(
                f"Removed role {role_id} from principal {principal_id} at {scope}",
                extra={
                    'principal_id': principal_id,
                    'role_id': str(role_id),
                    'org_id': scope.org_id,
                    'branch_id': scope.branch_id,
                    'removed_by': removed_by,
                }
            )
        return removed

    def remove_strict(self, principal_id: str, role_id, scope, removed_by: Optional[str] = None) -> int:
        """Like remove(), but a missing assignment raises AssignmentNotFound."""
        removed = self.remove(principal_id, role_id, scope, removed_by=removed_by)
        if not removed:
            raise AssignmentNotFound()
        return removed

    def sync_scope(self, principal_id: str, desired_role_ids: Iterable, scope,
                   assigned_by: Optional[str] = None) -> SyncResult:
        """
        Make the principal's roles at ``scope`` exactly ``desired_role_ids``.

        Only assignments at this exact scope are considered and changed.
        Detaches run before attaches, all inside one transaction.

        Returns:
            SyncResult with the attached and detached role ids

        Raises:
            RoleNotFound: If a desired role doesn't exist (nothing is changed)
            ScopeSyncError: If the diff could not be applied (nothing is changed)
        """
        scope = _as_scope(scope)
        desired = {_as_role_id(role_id) for role_id in desired_role_ids}

        existing = set(Role.objects.filter(id__in=desired).values_list('id', flat=True))
        missing = desired - existing
        if missing:
            raise RoleNotFound(
                f"Roles not found: {', '.join(sorted(str(role_id) for role_id in missing))}"
            )

        to_attach = frozenset()
        to_detach = frozenset()
        try:
            with transaction.atomic():
                current = {
                    assignment.role_id
                    for assignment in self.store.list_in_scope(principal_id, scope)
                }
                to_attach = frozenset(desired - current)
                to_detach = frozenset(current - desired)

                for role_id in to_detach:
                    self.store.delete(principal_id, role_id, scope)
                for role_id in to_attach:
                    self.store.create(principal_id, role_id, scope, assigned_by=assigned_by)
        except StoreUnavailable:
            raise
        except AccessControlError as e:
            logger.error(
                f"Role sync failed for principal {principal_id} at {scope}: {e.message}",
                extra={'principal_id': principal_id, 'org_id': scope.org_id, 'branch_id': scope.branch_id}
            )
            raise ScopeSyncError(to_attach, to_detach) from e

        result = SyncResult(attached=to_attach, detached=to_detach)
        if result.changed:
            logger.info(
                f"Synced roles for principal {principal_id} at {scope}: "
                f"{len(to_attach)} attached, {len(to_detach)} detached",
                extra={'principal_id': principal_id, 'org_id': scope.org_id, 'branch_id': scope.branch_id}
            )
        return result

    @staticmethod
    def _get_role(role_id) -> Role:
        role = Role.objects.filter(id=_as_role_id(role_id)).first()
        if role is None:
            raise RoleNotFound(f"Role '{role_id}' not found")
        return role
