from django.apps import AppConfig
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
import logging

logger = logging.getLogger(__name__)


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core'
    verbose_name = 'Core'

    def ready(self):
        """
        Validate access-control configuration when Django initializes.
        
        Misconfigured TTLs or role levels would silently change authorization
        outcomes, so they fail fast at startup.
        """
        self._validate_cache_ttls()
        self._validate_role_levels()
        self._validate_team_directory()

    def _validate_cache_ttls(self):
        """Cache TTLs must be positive integers (seconds)."""
        for name in ('ACCESS_ROLE_PERMISSIONS_TTL', 'ACCESS_TEAM_PERMISSIONS_TTL'):
            value = getattr(settings, name, 300)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ImproperlyConfigured(
                    f"{name} must be a positive number of seconds. Current value: {value!r}"
                )

    def _validate_role_levels(self):
        """ACCESS_ROLE_LEVELS maps role slugs to integer levels."""
        role_levels = getattr(settings, 'ACCESS_ROLE_LEVELS', {})
        if not isinstance(role_levels, dict):
            raise ImproperlyConfigured("ACCESS_ROLE_LEVELS must be a dict of slug -> level")
        
        for slug, level in role_levels.items():
            if not isinstance(level, int) or isinstance(level, bool):
                raise ImproperlyConfigured(
                    f"ACCESS_ROLE_LEVELS['{slug}'] must be an integer. Current value: {level!r}"
                )

    def _validate_team_directory(self):
        """Directory calls must always be bounded by a timeout."""
        timeout = getattr(settings, 'TEAM_DIRECTORY_TIMEOUT', 5.0)
        if not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ImproperlyConfigured(
                f"TEAM_DIRECTORY_TIMEOUT must be a positive number of seconds. Current value: {timeout!r}"
            )
        
        if not getattr(settings, 'TEAM_DIRECTORY_URL', None):
            logger.warning(
                "⚠ TEAM_DIRECTORY_URL is not set. Team permissions will be read "
                "from the local directory mirror only."
            )
