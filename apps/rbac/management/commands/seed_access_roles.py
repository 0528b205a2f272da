"""
Management command to seed default roles and permissions.

Creates the five default roles (admin, manager, supervisor, member, viewer),
the service administration permissions, and the default role → permission
grants. This command is idempotent and safe to re-run.
"""
from django.core.management.base import BaseCommand
from django.db import transaction

from apps.rbac.models import Permission, Role
from apps.rbac.services import RoleService


def _name_from_slug(slug):
    """'service-admin.role.view' -> 'Service Admin Role View'"""
    for separator in ('.', '_', '-'):
        slug = slug.replace(separator, ' ')
    return slug.title()


class Command(BaseCommand):
    help = 'Seed default roles, permissions and role grants (idempotent)'

    DEFAULT_ROLES = [
        {
            'slug': 'admin',
            'name': 'Administrator',
            'description': 'Full access to all features',
            'level': 100,
        },
        {
            'slug': 'manager',
            'name': 'Manager',
            'description': 'Can manage users, teams and view reports',
            'level': 50,
        },
        {
            'slug': 'supervisor',
            'name': 'Supervisor',
            'description': 'Can view and approve team activities',
            'level': 30,
        },
        {
            'slug': 'member',
            'name': 'Member',
            'description': 'Basic access for regular users',
            'level': 10,
        },
        {
            'slug': 'viewer',
            'name': 'Viewer',
            'description': 'Read-only access to dashboards and reports',
            'level': 5,
        },
    ]

    DEFAULT_PERMISSIONS = [
        # Service Admin - Roles
        {'slug': 'service-admin.role.view', 'group': 'service-admin.role'},
        {'slug': 'service-admin.role.create', 'group': 'service-admin.role'},
        {'slug': 'service-admin.role.edit', 'group': 'service-admin.role'},
        {'slug': 'service-admin.role.delete', 'group': 'service-admin.role'},
        {'slug': 'service-admin.role.sync-permissions', 'group': 'service-admin.role'},

        # Service Admin - Permissions
        {'slug': 'service-admin.permission.view', 'group': 'service-admin.permission'},
        {'slug': 'service-admin.permission.create', 'group': 'service-admin.permission'},
        {'slug': 'service-admin.permission.edit', 'group': 'service-admin.permission'},
        {'slug': 'service-admin.permission.delete', 'group': 'service-admin.permission'},
        {'slug': 'service-admin.permission.sync', 'group': 'service-admin.permission'},

        # Service Admin - Users
        {'slug': 'service-admin.user.view', 'group': 'service-admin.user'},
        {'slug': 'service-admin.user.create', 'group': 'service-admin.user'},
        {'slug': 'service-admin.user.edit', 'group': 'service-admin.user'},
        {'slug': 'service-admin.user.delete', 'group': 'service-admin.user'},
        {'slug': 'service-admin.user.assign-roles', 'group': 'service-admin.user'},

        # Service Admin - Teams
        {'slug': 'service-admin.team.view', 'group': 'service-admin.team'},
        {'slug': 'service-admin.team.create', 'group': 'service-admin.team'},
        {'slug': 'service-admin.team.edit', 'group': 'service-admin.team'},
        {'slug': 'service-admin.team.delete', 'group': 'service-admin.team'},

        # Dashboard
        {'slug': 'dashboard.view', 'group': 'dashboard'},
        {'slug': 'dashboard.analytics', 'group': 'dashboard'},
    ]

    # Manager gets everything except these
    MANAGER_EXCLUDED = {
        'service-admin.role.delete',
        'service-admin.permission.delete',
        'service-admin.user.delete',
        'service-admin.team.delete',
        'service-admin.permission.sync',
    }

    SUPERVISOR_EXTRA = {
        'service-admin.user.edit',
        'service-admin.team.edit',
    }

    def handle(self, *args, **options):
        """Create or update roles and permissions, then sync grants."""
        with transaction.atomic():
            self._seed_roles()
            self._seed_permissions()
            self._seed_grants()

        self.stdout.write(self.style.SUCCESS('\n✓ Access roles seeded'))

    def _seed_roles(self):
        self.stdout.write('Seeding roles...')
        for role_data in self.DEFAULT_ROLES:
            role, created = Role.objects.update_or_create(
                slug=role_data['slug'],
                defaults={
                    'name': role_data['name'],
                    'description': role_data['description'],
                    'level': role_data['level'],
                    'is_system': True,
                }
            )
            if created:
                self.stdout.write(self.style.SUCCESS(f'  ✓ Created role: {role.slug}'))
            else:
                self.stdout.write(self.style.HTTP_INFO(f'    Exists: {role.slug}'))

    def _seed_permissions(self):
        self.stdout.write('Seeding permissions...')
        created_count = 0
        for permission_data in self.DEFAULT_PERMISSIONS:
            _, created = Permission.objects.update_or_create(
                slug=permission_data['slug'],
                defaults={
                    'name': permission_data.get('name') or _name_from_slug(permission_data['slug']),
                    'group': permission_data['group'],
                }
            )
            if created:
                created_count += 1
        self.stdout.write(
            f'  {created_count} created, '
            f'{len(self.DEFAULT_PERMISSIONS) - created_count} updated'
        )

    def _seed_grants(self):
        """Sync each default role to its default permission set."""
        self.stdout.write('Assigning default permissions...')
        all_slugs = set(Permission.objects.values_list('slug', flat=True))

        grants = {
            'admin': all_slugs,
            'manager': all_slugs - self.MANAGER_EXCLUDED,
            'supervisor': {
                slug for slug in all_slugs
                if slug.endswith('.view') or slug.startswith('dashboard.') or slug in self.SUPERVISOR_EXTRA
            },
            'member': {
                slug for slug in all_slugs
                if slug.endswith('.view') or slug == 'dashboard.view'
            },
            'viewer': {'dashboard.view'} & all_slugs,
        }

        for role_slug, permission_slugs in grants.items():
            role = Role.objects.by_slug(role_slug)
            if role is None:
                continue
            RoleService.sync_permissions(role, permission_slugs)
            self.stdout.write(f'  • {role.name:<15} {len(permission_slugs)} permissions')
