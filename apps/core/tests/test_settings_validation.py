"""
Tests for access-control settings validation.

Validates:
- Cache TTLs are positive integers
- ACCESS_ROLE_LEVELS maps slugs to integers
- TEAM_DIRECTORY_TIMEOUT is positive
"""
import pytest
from unittest.mock import patch
from django.apps import apps
from django.core.exceptions import ImproperlyConfigured


@pytest.fixture
def core_config():
    return apps.get_app_config('core')


class TestCacheTTLValidation:

    def test_defaults_are_valid(self, core_config):
        core_config._validate_cache_ttls()

    @pytest.mark.parametrize('value', [0, -5, '300', True])
    def test_invalid_ttl_rejected(self, core_config, settings, value):
        settings.ACCESS_ROLE_PERMISSIONS_TTL = value
        with pytest.raises(ImproperlyConfigured) as exc_info:
            core_config._validate_cache_ttls()
        assert 'ACCESS_ROLE_PERMISSIONS_TTL' in str(exc_info.value)


class TestRoleLevelValidation:

    def test_defaults_are_valid(self, core_config):
        core_config._validate_role_levels()

    def test_non_dict_rejected(self, core_config, settings):
        settings.ACCESS_ROLE_LEVELS = [('admin', 100)]
        with pytest.raises(ImproperlyConfigured):
            core_config._validate_role_levels()

    def test_non_integer_level_rejected(self, core_config, settings):
        settings.ACCESS_ROLE_LEVELS = {'admin': 'high'}
        with pytest.raises(ImproperlyConfigured) as exc_info:
            core_config._validate_role_levels()
        assert "ACCESS_ROLE_LEVELS['admin']" in str(exc_info.value)


class TestTeamDirectoryValidation:

    def test_zero_timeout_rejected(self, core_config, settings):
        settings.TEAM_DIRECTORY_TIMEOUT = 0
        with pytest.raises(ImproperlyConfigured):
            core_config._validate_team_directory()

    def test_missing_url_only_warns(self, core_config, settings):
        settings.TEAM_DIRECTORY_URL = None
        settings.TEAM_DIRECTORY_TIMEOUT = 5.0
        with patch('apps.core.apps.logger') as mock_logger:
            core_config._validate_team_directory()
        mock_logger.warning.assert_called_once()
