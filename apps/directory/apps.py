"""
Directory app configuration.
"""
from django.apps import AppConfig


class DirectoryConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.directory'
    verbose_name = 'Team Directory'

    def ready(self):
        """Import signals when app is ready."""
        import apps.directory.signals  # noqa
