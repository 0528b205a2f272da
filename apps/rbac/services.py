"""
Administration services for role and permission definitions.

Implements:
- RoleService: role CRUD, protected system roles, permission sync
- PermissionService: permission CRUD, grouping, role × permission matrix

Every change to a role's permission set clears that role's cached
permission set before the call returns.
"""
import logging
import uuid
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Q

from apps.rbac.caches import PermissionCache
from apps.rbac.exceptions import (
    DuplicatePermission, DuplicateRole, PermissionNotFound, ProtectedRole, RoleNotFound,
)
from apps.rbac.models import Permission, Role, RolePermission

logger = logging.getLogger(__name__)


DEFAULT_PROTECTED_ROLES = ('admin', 'manager', 'member')


def _parse_uuid(value) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


class RoleService:
    """
    Service for role definitions.
    """

    @classmethod
    def list(cls) -> List[Role]:
        """All roles, most privileged first, with their permission count."""
        return [
            role for role in Role.objects.by_level().annotate(
                permissions_count=Count('role_permissions')
            )
        ]

    @classmethod
    def get(cls, role_id) -> Role:
        """
        Get role by id.

        Raises:
            RoleNotFound: If the role doesn't exist
        """
        parsed = _parse_uuid(role_id)
        role = Role.objects.filter(id=parsed).first() if parsed else None
        if role is None:
            raise RoleNotFound(f"Role '{role_id}' not found")
        return role

    @classmethod
    def get_by_slug(cls, slug: str) -> Optional[Role]:
        return Role.objects.by_slug(slug)

    @classmethod
    def create(cls, slug: str, name: str, level: int, description: str = '') -> Role:
        """
        Create a new role.

        Raises:
            DuplicateRole: If a role with this slug or name already exists
        """
        if Role.objects.filter(Q(slug=slug) | Q(name=name)).exists():
            raise DuplicateRole()

        try:
            with transaction.atomic():
                role = Role.objects.create(
                    slug=slug,
                    name=name,
                    level=level,
                    description=description or '',
                )
        except IntegrityError as e:
            raise DuplicateRole() from e

        logger.info(
            f"Created role {slug}",
            extra={'role_slug': slug, 'level': level}
        )
        return role

    @classmethod
    def update(cls, role: Role, name: str = None, level: int = None, description: str = None) -> Role:
        """
        Update a role. The slug cannot be changed.

        Raises:
            DuplicateRole: If the new name is taken by another role
        """
        if name is not None and name != role.name:
            if Role.objects.filter(name=name).exclude(id=role.id).exists():
                raise DuplicateRole()
            role.name = name
        if level is not None:
            role.level = level
        if description is not None:
            role.description = description

        role.save(update_fields=['name', 'level', 'description', 'updated_at'])
        PermissionCache().invalidate(role.slug)

        logger.info(f"Updated role {role.slug}", extra={'role_slug': role.slug})
        return role

    @classmethod
    def delete(cls, role: Role) -> None:
        """
        Delete a role and, by cascade, every assignment of it.

        Raises:
            ProtectedRole: If the role is a protected system role
        """
        protected = getattr(settings, 'ACCESS_PROTECTED_ROLES', DEFAULT_PROTECTED_ROLES)
        if role.slug in protected:
            raise ProtectedRole(f"Role '{role.slug}' is a system role and cannot be deleted")

        slug = role.slug
        PermissionCache().invalidate(slug)
        role.delete()

        logger.info(f"Deleted role {slug}", extra={'role_slug': slug})

    @classmethod
    def get_permissions(cls, role: Role) -> Dict:
        return {
            'role': {
                'id': str(role.id),
                'slug': role.slug,
                'name': role.name,
            },
            'permissions': list(role.get_permissions().order_by('group', 'slug')),
        }

    @classmethod
    def sync_permissions(cls, role: Role, permission_ids: Iterable) -> Dict[str, int]:
        """
        Make the role's permissions exactly ``permission_ids``.

        Args:
            role: Role to update
            permission_ids: Permission UUIDs or slugs; unknown entries are ignored

        Returns:
            {'attached': int, 'detached': int}
        """
        uuids = set()
        slugs = set()
        for item in permission_ids:
            parsed = _parse_uuid(item)
            if parsed is not None:
                uuids.add(parsed)
            else:
                slugs.add(str(item))

        target_ids = set(
            Permission.objects.filter(Q(id__in=uuids) | Q(slug__in=slugs)).values_list('id', flat=True)
        )

        with transaction.atomic():
            current_ids = set(
                RolePermission.objects.for_role(role).values_list('permission_id', flat=True)
            )
            to_attach = target_ids - current_ids
            to_detach = current_ids - target_ids

            if to_detach:
                RolePermission.objects.filter(role=role, permission_id__in=to_detach).delete()
            RolePermission.objects.bulk_create([
                RolePermission(role=role, permission_id=permission_id)
                for permission_id in to_attach
            ])

        PermissionCache().invalidate(role.slug)

        logger.info(
            f"Synced permissions for role {role.slug}: "
            f"{len(to_attach)} attached, {len(to_detach)} detached",
            extra={'role_slug': role.slug}
        )
        return {'attached': len(to_attach), 'detached': len(to_detach)}


class PermissionService:
    """
    Service for permission definitions.
    """

    @classmethod
    def list(cls, search: str = None, group: str = None) -> List[Permission]:
        """Permissions filtered by a name/slug search and an exact group."""
        queryset = Permission.objects.all()
        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(slug__icontains=search))
        if group:
            queryset = queryset.filter(group=group)
        return [permission for permission in queryset.order_by('group', 'slug')]

    @classmethod
    def groups(cls) -> List[str]:
        """Distinct non-empty group names, sorted."""
        return sorted(
            set(Permission.objects.exclude(group='').values_list('group', flat=True))
        )

    @classmethod
    def grouped(cls) -> Dict[str, List[Permission]]:
        """Permissions keyed by group, groups and names in order."""
        result = OrderedDict()
        for permission in Permission.objects.order_by('group', 'name'):
            result.setdefault(permission.group, []).append(permission)
        return result

    @classmethod
    def get(cls, permission_id) -> Permission:
        """
        Get permission by id.

        Raises:
            PermissionNotFound: If the permission doesn't exist
        """
        parsed = _parse_uuid(permission_id)
        permission = Permission.objects.filter(id=parsed).first() if parsed else None
        if permission is None:
            raise PermissionNotFound(f"Permission '{permission_id}' not found")
        return permission

    @classmethod
    def get_by_slug(cls, slug: str) -> Optional[Permission]:
        return Permission.objects.by_slug(slug)

    @classmethod
    def create(cls, slug: str, name: str, group: str = '', description: str = '') -> Permission:
        """
        Create a new permission.

        Raises:
            DuplicatePermission: If the slug is taken
        """
        if Permission.objects.filter(slug=slug).exists():
            raise DuplicatePermission()

        try:
            with transaction.atomic():
                permission = Permission.objects.create(
                    slug=slug,
                    name=name,
                    group=group or '',
                    description=description or '',
                )
        except IntegrityError as e:
            raise DuplicatePermission() from e

        logger.info(f"Created permission {slug}", extra={'permission_slug': slug})
        return permission

    @classmethod
    def update(cls, permission: Permission, name: str = None, group: str = None,
               description: str = None) -> Permission:
        """Update a permission. The slug cannot be changed."""
        if name is not None:
            permission.name = name
        if group is not None:
            permission.group = group
        if description is not None:
            permission.description = description

        permission.save(update_fields=['name', 'group', 'description', 'updated_at'])
        return permission

    @classmethod
    def delete(cls, permission: Permission) -> None:
        """Delete a permission and clear the cache of every role that held it."""
        role_slugs = list(
            Role.objects.filter(role_permissions__permission=permission)
            .values_list('slug', flat=True)
            .distinct()
        )
        slug = permission.slug
        permission.delete()
        PermissionCache().invalidate_many(role_slugs)

        logger.info(
            f"Deleted permission {slug}",
            extra={'permission_slug': slug, 'affected_roles': role_slugs}
        )

    @classmethod
    def matrix(cls) -> Dict:
        """
        Role × permission grid.

        Returns:
            {'roles', 'permissions', 'groups', 'matrix'} where
            matrix[role_id][permission_id] is True when the role grants it
        """
        roles = [role for role in Role.objects.order_by('-level', 'slug')]
        permissions = [permission for permission in Permission.objects.order_by('group', 'name')]

        granted = set(
            (str(role_id), str(permission_id))
            for role_id, permission_id in RolePermission.objects.values_list('role_id', 'permission_id')
        )

        grid = {}
        for role in roles:
            role_key = str(role.id)
            grid[role_key] = {
                str(permission.id): (role_key, str(permission.id)) in granted
                for permission in permissions
            }

        return {
            'roles': roles,
            'permissions': permissions,
            'groups': cls.groups(),
            'matrix': grid,
        }

    @classmethod
    def list_with_role_count(cls) -> List[Permission]:
        """Permissions annotated with ``role_count``."""
        return [
            permission for permission in Permission.objects.annotate(
                role_count=Count('role_permissions')
            ).order_by('group', 'name')
        ]
