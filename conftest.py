"""
Pytest configuration and fixtures.
"""
import pytest
from django.conf import settings
import django
from django.core.cache import cache
from django.core.management import call_command


def pytest_configure(config):
    """Configure Django settings for tests."""
    settings.DATABASES['default'] = {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
        'ATOMIC_REQUESTS': False,
    }
    settings.CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'access-tests',
        }
    }
    settings.TEAM_DIRECTORY_URL = None
    django.setup()


@pytest.fixture(scope='session')
def django_db_setup(django_db_setup, django_db_blocker):
    """Set up test database; apps ship no migrations, so tables come from syncdb."""
    with django_db_blocker.unblock():
        call_command('migrate', '--run-syncdb', verbosity=0)


@pytest.fixture(autouse=True)
def clear_cache():
    """Clear cache before and after each test."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def make_role(db):
    """Factory for roles."""
    from apps.rbac.models import Role

    def _make_role(slug, level=10, name=None):
        return Role.objects.create(slug=slug, name=name or slug.title(), level=level)

    return _make_role


@pytest.fixture
def make_permission(db):
    """Factory for permissions."""
    from apps.rbac.models import Permission

    def _make_permission(slug, group=''):
        return Permission.objects.create(slug=slug, name=slug, group=group)

    return _make_permission


@pytest.fixture
def grant(db):
    """Grant permission slugs to a role, creating missing permissions."""
    from apps.rbac.models import Permission, RolePermission

    def _grant(role, *slugs):
        for slug in slugs:
            permission, _ = Permission.objects.get_or_create_permission(slug=slug, name=slug)
            RolePermission.objects.grant_permission(role, permission)

    return _grant


@pytest.fixture
def admin_role(make_role):
    return make_role('admin', level=100, name='Administrator')


@pytest.fixture
def manager_role(make_role):
    return make_role('manager', level=50, name='Manager')


@pytest.fixture
def member_role(make_role):
    return make_role('member', level=10, name='Member')


@pytest.fixture
def viewer_role(make_role):
    return make_role('viewer', level=5, name='Viewer')


class StubDirectory:
    """In-memory team directory for aggregator tests."""

    def __init__(self, teams=None, permissions=None, error=None):
        self.teams = teams or {}
        self.permissions = permissions or {}
        self.error = error
        self.team_calls = 0

    def get_user_teams(self, principal_id, org_id):
        self.team_calls += 1
        if self.error is not None:
            raise self.error
        return list(self.teams.get((principal_id, org_id), []))

    def get_team_permissions(self, team_ids, org_id):
        if self.error is not None:
            raise self.error
        result = set()
        for team_id in team_ids:
            result |= set(self.permissions.get(team_id, ()))
        return result


@pytest.fixture
def stub_directory():
    return StubDirectory()
