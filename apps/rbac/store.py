"""
Persistence for scoped role assignments.

The database unique constraint on (principal_id, role, scope_key) is the
only guard against duplicate assignments: inserts are attempted inside a
savepoint and a constraint violation is reported as DuplicateAssignment.
"""
import logging
from functools import wraps
from typing import List

from django.db import IntegrityError, InterfaceError, OperationalError, transaction

from apps.rbac.exceptions import DuplicateAssignment, RoleNotFound, StoreUnavailable
from apps.rbac.models import Role, RoleAssignment
from apps.rbac.scopes import ScopeKey

logger = logging.getLogger(__name__)


def _store_operation(func):
    """Surface database connectivity failures as StoreUnavailable."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (OperationalError, InterfaceError) as e:
            logger.error(
                f"Role assignment store failure in {func.__name__}: {str(e)}",
                exc_info=True
            )
            raise StoreUnavailable(str(e)) from e
    return wrapper


class RoleAssignmentStore:
    """
    Store for RoleAssignment rows.

    All scope matching is exact: a ScopeKey only ever matches rows with the
    same scope_key, so operations on one scope never touch another.
    """

    @_store_operation
    def create(self, principal_id: str, role_id, scope: ScopeKey,
               assigned_by: str = None) -> RoleAssignment:
        """
        Create an assignment for the exact (principal, role, scope) triple.

        Raises:
            DuplicateAssignment: If the triple already exists
            RoleNotFound: If the role was deleted before the insert
        """
        try:
            with transaction.atomic():
                return RoleAssignment.objects.create(
                    principal_id=principal_id,
                    role_id=role_id,
                    org_id=scope.org_id,
                    branch_id=scope.branch_id,
                    assigned_by=assigned_by,
                )
        except IntegrityError as e:
            # A role deleted after the caller looked it up fails the foreign key
            if not Role.objects.filter(id=role_id).exists():
                logger.info(
                    "Role assignment rejected, role no longer exists",
                    extra={'principal_id': principal_id, 'role_id': str(role_id)}
                )
                raise RoleNotFound(f"Role '{role_id}' not found") from e
            logger.info(
                "Duplicate role assignment rejected",
                extra={
                    'principal_id': principal_id,
                    'role_id': str(role_id),
                    'scope': scope.storage_key,
                }
            )
            raise DuplicateAssignment(principal_id, role_id, scope) from e

    @_store_operation
    def delete(self, principal_id: str, role_id, scope: ScopeKey) -> int:
        """
        Delete the assignment for the exact triple.

        Returns:
            Number of rows removed (0 or 1)
        """
        deleted_count, _ = RoleAssignment.objects.filter(
            principal_id=principal_id,
            role_id=role_id,
        ).in_scope(scope).delete()
        return deleted_count

    @_store_operation
    def list_for_principal(self, principal_id: str) -> List[RoleAssignment]:
        return list(
            RoleAssignment.objects.for_principal(principal_id).select_related('role')
        )

    @_store_operation
    def list_in_scope(self, principal_id: str, scope: ScopeKey) -> List[RoleAssignment]:
        return list(
            RoleAssignment.objects.for_principal(principal_id)
            .in_scope(scope)
            .select_related('role')
        )

    @_store_operation
    def list_applicable(self, principal_id: str, context: ScopeKey) -> List[RoleAssignment]:
        return list(
            RoleAssignment.objects.for_principal(principal_id)
            .applicable_to(context)
            .select_related('role')
        )

    @_store_operation
    def list_visible_in_org(self, principal_id: str, org_id: str = None) -> List[RoleAssignment]:
        queryset = RoleAssignment.objects.for_principal(principal_id)
        if org_id is not None:
            queryset = queryset.visible_in_org(org_id)
        return list(queryset.select_related('role'))
