"""
Tests for AssignmentMutator: assign, remove and scope-bounded sync.
"""
import uuid

import pytest
from unittest.mock import patch

from apps.rbac.exceptions import (
    AssignmentNotFound, DuplicateAssignment, InvalidScope, RoleNotFound, ScopeSyncError,
)
from apps.rbac.models import RoleAssignment
from apps.rbac.mutator import AssignmentMutator, SyncResult
from apps.rbac.scopes import ScopeKey


@pytest.fixture
def mutator():
    return AssignmentMutator()


def scopes_of(principal_id):
    return {
        (a.role.slug, a.org_id, a.branch_id)
        for a in RoleAssignment.objects.filter(principal_id=principal_id).select_related('role')
    }


@pytest.mark.django_db
class TestAssign:

    def test_assign_accepts_raw_pair(self, mutator, manager_role):
        assignment = mutator.assign('p1', manager_role.id, ('O1', None))
        assert assignment.scope == ScopeKey('O1')

    def test_assign_twice_fails_with_duplicate(self, mutator, manager_role):
        mutator.assign('p1', manager_role.id, ScopeKey('O1', 'B1'))

        with pytest.raises(DuplicateAssignment):
            mutator.assign('p1', manager_role.id, ScopeKey('O1', 'B1'))

        assert RoleAssignment.objects.filter(principal_id='p1').count() == 1

    def test_assign_invalid_scope(self, mutator, manager_role):
        with pytest.raises(InvalidScope):
            mutator.assign('p1', manager_role.id, (None, 'B1'))
        assert not RoleAssignment.objects.exists()

    def test_assign_unknown_role(self, mutator):
        with pytest.raises(RoleNotFound):
            mutator.assign('p1', uuid.uuid4(), ScopeKey())

    def test_assign_malformed_role_id(self, mutator):
        with pytest.raises(RoleNotFound):
            mutator.assign('p1', 'not-a-uuid', ScopeKey())

    def test_assign_idempotent(self, mutator, manager_role):
        first, created = mutator.assign_idempotent('p1', manager_role.id, ScopeKey())
        assert created is True
        assert first is not None

        second, created = mutator.assign_idempotent('p1', manager_role.id, ScopeKey())
        assert created is False
        assert second is None
        assert RoleAssignment.objects.count() == 1


@pytest.mark.django_db
class TestRemove:

    def test_remove_exact_scope(self, mutator, manager_role):
        mutator.assign('p1', manager_role.id, ScopeKey())
        mutator.assign('p1', manager_role.id, ScopeKey('O1'))

        assert mutator.remove('p1', manager_role.id, ScopeKey('O1')) == 1
        assert scopes_of('p1') == {('manager', None, None)}

    def test_remove_missing_returns_zero(self, mutator, manager_role):
        assert mutator.remove('p1', manager_role.id, ScopeKey()) == 0

    def test_remove_strict_missing_raises(self, mutator, manager_role):
        with pytest.raises(AssignmentNotFound) as exc_info:
            mutator.remove_strict('p1', manager_role.id, ScopeKey())
        assert exc_info.value.code == 'ASSIGNMENT_NOT_FOUND'


@pytest.mark.django_db
class TestSyncScope:

    def test_sync_attaches_and_detaches(self, mutator, admin_role, manager_role, member_role):
        mutator.assign('p1', manager_role.id, ScopeKey('O1'))
        mutator.assign('p1', member_role.id, ScopeKey('O1'))

        result = mutator.sync_scope('p1', [admin_role.id, member_role.id], ScopeKey('O1'))

        assert result == SyncResult(
            attached=frozenset({admin_role.id}),
            detached=frozenset({manager_role.id}),
        )
        assert scopes_of('p1') == {('admin', 'O1', None), ('member', 'O1', None)}

    def test_sync_accepts_string_ids(self, mutator, admin_role):
        result = mutator.sync_scope('p1', [str(admin_role.id)], ScopeKey('O1'))
        assert result.attached == frozenset({admin_role.id})

    def test_sync_is_scope_isolated(self, mutator, admin_role, manager_role):
        """Syncing an unrelated branch leaves global and other-branch assignments alone."""
        mutator.assign('p1', admin_role.id, ScopeKey())
        mutator.assign('p1', manager_role.id, ScopeKey('O', 'B1'))

        result = mutator.sync_scope('p1', [], ScopeKey('O', 'B2'))

        assert result == SyncResult()
        assert not result.changed
        assert scopes_of('p1') == {('admin', None, None), ('manager', 'O', 'B1')}

    def test_sync_same_role_other_scope_untouched(self, mutator, manager_role):
        mutator.assign('p1', manager_role.id, ScopeKey())
        mutator.assign('p1', manager_role.id, ScopeKey('O1'))

        mutator.sync_scope('p1', [], ScopeKey('O1'))

        assert scopes_of('p1') == {('manager', None, None)}

    def test_sync_no_change(self, mutator, manager_role):
        mutator.assign('p1', manager_role.id, ScopeKey('O1'))
        result = mutator.sync_scope('p1', [manager_role.id], ScopeKey('O1'))
        assert not result.changed

    def test_sync_unknown_role_changes_nothing(self, mutator, manager_role):
        mutator.assign('p1', manager_role.id, ScopeKey('O1'))

        with pytest.raises(RoleNotFound):
            mutator.sync_scope('p1', [uuid.uuid4()], ScopeKey('O1'))

        assert scopes_of('p1') == {('manager', 'O1', None)}

    def test_sync_failure_rolls_back_whole_unit(self, mutator, admin_role, manager_role):
        mutator.assign('p1', manager_role.id, ScopeKey('O1'))

        with patch.object(
            mutator.store, 'create',
            side_effect=DuplicateAssignment('p1', admin_role.id, ScopeKey('O1')),
        ):
            with pytest.raises(ScopeSyncError) as exc_info:
                mutator.sync_scope('p1', [admin_role.id], ScopeKey('O1'))

        error = exc_info.value
        assert error.code == 'SCOPE_SYNC_FAILED'
        assert error.attached == frozenset({admin_role.id})
        assert error.detached == frozenset({manager_role.id})
        assert isinstance(error.__cause__, DuplicateAssignment)
        # The detach ran before the failing attach and was rolled back
        assert scopes_of('p1') == {('manager', 'O1', None)}
