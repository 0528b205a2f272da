"""
Tests for RoleResolver tier semantics and level checks.
"""
import pytest

from apps.rbac.mutator import AssignmentMutator
from apps.rbac.resolver import ResolvedRole, RoleResolver
from apps.rbac.scopes import ScopeKey


@pytest.fixture
def resolver():
    return RoleResolver()


@pytest.fixture
def mutator():
    return AssignmentMutator()


@pytest.fixture
def layered_principal(mutator, viewer_role, manager_role, admin_role):
    """viewer globally, manager org-wide for O1, admin for (O1, B1)."""
    mutator.assign('p1', viewer_role.id, ScopeKey())
    mutator.assign('p1', manager_role.id, ScopeKey('O1'))
    mutator.assign('p1', admin_role.id, ScopeKey('O1', 'B1'))
    return 'p1'


@pytest.mark.django_db
class TestHighestLevel:

    def test_layered_scenario(self, resolver, layered_principal):
        p = layered_principal
        assert resolver.highest_level(p, ScopeKey()) == 5
        assert resolver.highest_level(p, ScopeKey('O1')) == 50
        assert resolver.highest_level(p, ScopeKey('O1', 'B1')) == 100
        assert resolver.highest_level(p, ScopeKey('O1', 'B2')) == 50

    def test_no_roles_is_zero(self, resolver):
        assert resolver.highest_level('nobody', ScopeKey('O1')) == 0


@pytest.mark.django_db
class TestApplicableRoles:

    def test_returns_plain_dataclasses(self, resolver, layered_principal, admin_role):
        roles = resolver.applicable_roles(layered_principal, ScopeKey('O1', 'B1'))

        assert ResolvedRole(id=str(admin_role.id), slug='admin', name='Administrator', level=100) in roles
        assert {role.slug for role in roles} == {'viewer', 'manager', 'admin'}

    def test_same_role_at_two_scopes_counted_once(self, resolver, mutator, manager_role):
        mutator.assign('p1', manager_role.id, ScopeKey())
        mutator.assign('p1', manager_role.id, ScopeKey('O1'))

        roles = resolver.applicable_roles('p1', ScopeKey('O1'))
        assert len(roles) == 1

    def test_other_principals_ignored(self, resolver, mutator, admin_role):
        mutator.assign('p2', admin_role.id, ScopeKey())
        assert resolver.applicable_roles('p1', ScopeKey()) == set()


@pytest.mark.django_db
class TestHasRoleInContext:

    @pytest.mark.parametrize('context', [
        ScopeKey(),
        ScopeKey('O1'),
        ScopeKey('O2', 'B9'),
    ])
    def test_global_visible_everywhere(self, resolver, mutator, member_role, context):
        mutator.assign('p1', member_role.id, ScopeKey())
        assert resolver.has_role_in_context('p1', 'member', context)

    def test_org_wide_containment(self, resolver, mutator, manager_role):
        mutator.assign('p1', manager_role.id, ScopeKey('O'))

        assert resolver.has_role_in_context('p1', 'manager', ScopeKey('O'))
        assert resolver.has_role_in_context('p1', 'manager', ScopeKey('O', 'B7'))
        assert not resolver.has_role_in_context('p1', 'manager', ScopeKey('O2'))
        assert not resolver.has_role_in_context('p1', 'manager', ScopeKey())

    def test_branch_exactness(self, resolver, mutator, manager_role):
        mutator.assign('p1', manager_role.id, ScopeKey('O', 'B1'))

        assert resolver.has_role_in_context('p1', 'manager', ScopeKey('O', 'B1'))
        assert not resolver.has_role_in_context('p1', 'manager', ScopeKey('O', 'B2'))
        assert not resolver.has_role_in_context('p1', 'manager', ScopeKey('O'))


@pytest.mark.django_db
class TestMeetsLevel:

    def test_int_threshold(self, resolver, layered_principal):
        assert resolver.meets_level(layered_principal, 50, ScopeKey('O1'))
        assert not resolver.meets_level(layered_principal, 51, ScopeKey('O1'))

    def test_slug_threshold_uses_configured_levels(self, resolver, layered_principal):
        assert resolver.meets_level(layered_principal, 'manager', ScopeKey('O1'))
        assert not resolver.meets_level(layered_principal, 'admin', ScopeKey('O1', 'B2'))
        assert resolver.meets_level(layered_principal, 'admin', ScopeKey('O1', 'B1'))

    def test_unknown_slug_requires_nothing(self, resolver):
        assert resolver.meets_level('nobody', 'unknown-role', ScopeKey())

    def test_custom_levels(self, resolver, layered_principal, settings):
        settings.ACCESS_ROLE_LEVELS = {'manager': 60}
        assert not resolver.meets_level(layered_principal, 'manager', ScopeKey('O1'))


@pytest.mark.django_db
class TestDescribeAssignments:

    def test_all_assignments(self, resolver, layered_principal, mutator, member_role):
        mutator.assign('p1', member_role.id, ScopeKey('O2'))

        described = resolver.describe_assignments(layered_principal)
        scopes = sorted((d['role']['slug'], d['scope'], d['org_id'], d['branch_id']) for d in described)

        assert scopes == [
            ('admin', 'branch', 'O1', 'B1'),
            ('manager', 'org-wide', 'O1', None),
            ('member', 'org-wide', 'O2', None),
            ('viewer', 'global', None, None),
        ]

    def test_filtered_by_org(self, resolver, layered_principal, mutator, member_role):
        mutator.assign('p1', member_role.id, ScopeKey('O2'))

        described = resolver.describe_assignments(layered_principal, org_id='O1')
        assert {d['role']['slug'] for d in described} == {'viewer', 'manager', 'admin'}

    def test_role_payload(self, resolver, mutator, admin_role):
        mutator.assign('p1', admin_role.id, ScopeKey())

        [described] = resolver.describe_assignments('p1')
        assert described['role'] == {
            'id': str(admin_role.id),
            'name': 'Administrator',
            'slug': 'admin',
            'level': 100,
        }
