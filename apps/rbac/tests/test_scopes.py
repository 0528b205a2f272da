"""
Tests for ScopeKey validation and applicability rules.
"""
import pytest
from hypothesis import given, strategies as st

from apps.rbac.exceptions import AccessControlError, InvalidScope
from apps.rbac.scopes import GLOBAL_STORAGE_KEY, ScopeKey, ScopeTier


ids = st.text(alphabet='abc123-:/%*', min_size=1, max_size=6).filter(lambda s: s.strip())


@st.composite
def scopes(draw):
    org_id = draw(st.one_of(st.none(), ids))
    branch_id = draw(st.one_of(st.none(), ids)) if org_id is not None else None
    return ScopeKey(org_id, branch_id)


class TestScopeKeyValidation:

    def test_global(self):
        scope = ScopeKey.global_scope()
        assert scope.org_id is None
        assert scope.branch_id is None
        assert scope.tier == ScopeTier.GLOBAL
        assert scope.is_global

    def test_branch_without_org_rejected(self):
        with pytest.raises(InvalidScope) as exc_info:
            ScopeKey.from_raw(None, 'b1')
        assert exc_info.value.code == 'INVALID_SCOPE'

    def test_invalid_scope_is_value_error(self):
        with pytest.raises(ValueError):
            ScopeKey(branch_id='b1')
        assert issubclass(InvalidScope, AccessControlError)

    def test_empty_strings_normalize_to_none(self):
        assert ScopeKey.from_raw('', '') == ScopeKey.global_scope()
        assert ScopeKey.from_raw('  ', None) == ScopeKey.global_scope()
        assert ScopeKey.from_raw('org-a', ' ') == ScopeKey('org-a')

    def test_empty_org_with_branch_rejected(self):
        with pytest.raises(InvalidScope):
            ScopeKey.from_raw('', 'b1')

    @pytest.mark.parametrize('org_id, branch_id', [
        ('', None),
        (' ', None),
        ('\t', None),
        ('org-a', '  '),
    ])
    def test_direct_blank_component_rejected(self, org_id, branch_id):
        with pytest.raises(InvalidScope):
            ScopeKey(org_id, branch_id)

    def test_int_ids_coerced(self):
        scope = ScopeKey.from_raw(42, 7)
        assert scope == ScopeKey('42', '7')

    def test_tiers(self):
        assert ScopeKey('o').tier == ScopeTier.ORG
        assert ScopeKey('o', 'b').tier == ScopeTier.BRANCH
        assert ScopeTier.ORG.value == 'org-wide'

    def test_equality_is_exact(self):
        assert ScopeKey('o') != ScopeKey('o', 'b')
        assert ScopeKey('o', 'b') == ScopeKey('o', 'b')
        assert hash(ScopeKey('o', 'b')) == hash(ScopeKey('o', 'b'))


class TestStorageKey:

    def test_formats(self):
        assert ScopeKey().storage_key == GLOBAL_STORAGE_KEY
        assert ScopeKey('org-a').storage_key == 'org:org-a'
        assert ScopeKey('org-a', 'b1').storage_key == 'org:org-a/branch:b1'

    def test_separator_characters_cannot_collide(self):
        """An org id containing the separator must not look like a branch scope."""
        tricky = ScopeKey('a/branch:b')
        branch = ScopeKey('a', 'b')
        assert tricky.storage_key != branch.storage_key

    @given(scopes(), scopes())
    def test_storage_key_is_injective(self, first, second):
        assert (first.storage_key == second.storage_key) == (first == second)


class TestAppliesTo:

    def test_concrete_cases(self):
        context = ScopeKey('o1', 'b1')

        assert ScopeKey().applies_to(context)
        assert ScopeKey('o1').applies_to(context)
        assert ScopeKey('o1', 'b1').applies_to(context)
        assert not ScopeKey('o1', 'b2').applies_to(context)
        assert not ScopeKey('o2').applies_to(context)

    def test_org_context_excludes_branch_assignments(self):
        assert not ScopeKey('o1', 'b1').applies_to(ScopeKey('o1'))

    def test_global_context_only_sees_global(self):
        context = ScopeKey.global_scope()
        assert ScopeKey().applies_to(context)
        assert not ScopeKey('o1').applies_to(context)
        assert not ScopeKey('o1', 'b1').applies_to(context)

    @given(scopes())
    def test_global_applies_everywhere(self, context):
        assert ScopeKey.global_scope().applies_to(context)

    @given(scopes(), scopes())
    def test_non_global_requires_same_org(self, assignment, context):
        if not assignment.is_global and assignment.applies_to(context):
            assert assignment.org_id == context.org_id

    @given(scopes(), scopes())
    def test_branch_assignment_requires_exact_context(self, assignment, context):
        if assignment.tier == ScopeTier.BRANCH:
            assert assignment.applies_to(context) == (assignment == context)

    @given(scopes())
    def test_scope_applies_to_itself(self, scope):
        assert scope.applies_to(scope)
