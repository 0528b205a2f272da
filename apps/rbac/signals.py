"""
RBAC signals for permission cache invalidation.

Role permission sets are cached by role slug. These receivers clear the
affected entries whenever definitions change through the ORM, including
changes made outside RoleService/PermissionService (admin, shell, fixtures).
"""
import logging

from django.db.models.signals import post_delete, post_save, pre_delete
from django.dispatch import receiver

from apps.rbac.caches import PermissionCache
from apps.rbac.models import Permission, Role, RolePermission

logger = logging.getLogger(__name__)


def _role_slug(role_id):
    return Role.objects.filter(id=role_id).values_list('slug', flat=True).first()


@receiver(post_save, sender=RolePermission)
@receiver(post_delete, sender=RolePermission)
def invalidate_role_on_grant_change(sender, instance, **kwargs):
    """Clear the role's cached permissions when a grant is added or removed."""
    slug = _role_slug(instance.role_id)
    if slug is None:
        # Role itself is being deleted; handled by its pre_delete receiver
        return
    PermissionCache().invalidate(slug)


@receiver(pre_delete, sender=Role)
def invalidate_role_on_delete(sender, instance, **kwargs):
    PermissionCache().invalidate(instance.slug)


@receiver(pre_delete, sender=Permission)
def invalidate_roles_on_permission_delete(sender, instance, **kwargs):
    """Clear every role that grants the permission being deleted."""
    slugs = list(
        Role.objects.filter(role_permissions__permission=instance)
        .values_list('slug', flat=True)
        .distinct()
    )
    if slugs:
        PermissionCache().invalidate_many(slugs)
        logger.debug(
            f"Permission {instance.slug} deleted, cleared {len(slugs)} role caches",
            extra={'permission_slug': instance.slug, 'roles': slugs}
        )
