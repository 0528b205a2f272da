"""
RBAC models for scoped, multi-tenant access control.

Implements:
- Permission (global canonical permissions)
- Role (global role definitions with a privilege level)
- RolePermission (maps permissions to roles)
- RoleAssignment (principal holds a role at a scope: global, org-wide or branch)
"""
import logging
from django.db import models
from django.db.models import Q

from apps.core.models import BaseModel
from apps.rbac.scopes import ScopeKey

logger = logging.getLogger(__name__)


class PermissionManager(models.Manager):
    """Manager for Permission queries."""

    def by_slug(self, slug):
        """Find permission by slug."""
        return self.filter(slug=slug).first()

    def get_or_create_permission(self, slug, name, group='', description=''):
        """Get or create permission (idempotent)."""
        permission, created = self.get_or_create(
            slug=slug,
            defaults={
                'name': name,
                'group': group,
                'description': description,
            }
        )
        return permission, created


class Permission(BaseModel):
    """
    Global permission definitions.

    A permission is a grantable capability identified by its slug
    (e.g., 'orders.view').
    """

    slug = models.CharField(
        max_length=150,
        unique=True,
        db_index=True,
        help_text="Unique permission slug (e.g., 'orders.view')"
    )
    name = models.CharField(
        max_length=255,
        help_text="Human-readable name (e.g., 'View Orders')"
    )
    group = models.CharField(
        max_length=100,
        blank=True,
        db_index=True,
        help_text="Permission group (e.g., 'orders', 'service-admin.role')"
    )
    description = models.TextField(
        blank=True,
        help_text="Detailed description of what this permission grants"
    )

    # Custom manager
    objects = PermissionManager()

    class Meta:
        db_table = 'permissions'
        ordering = ['group', 'slug']
        indexes = [
            models.Index(fields=['group', 'name']),
        ]

    def __str__(self):
        return f"{self.slug} - {self.name}"


class RoleManager(models.Manager):
    """Manager for Role queries."""

    def by_slug(self, slug):
        """Find role by slug."""
        return self.filter(slug=slug).first()

    def by_level(self):
        """All roles, most privileged first."""
        return self.order_by('-level', 'slug')


class Role(BaseModel):
    """
    Role definitions.

    Roles bundle permissions and carry a privilege level used for
    "at least this role" checks: higher level = more privileged.
    """

    slug = models.CharField(
        max_length=100,
        unique=True,
        db_index=True,
        help_text="Immutable role slug (e.g., 'admin', 'manager')"
    )
    name = models.CharField(
        max_length=100,
        unique=True,
        help_text="Role name (e.g., 'Administrator')"
    )
    level = models.IntegerField(
        default=0,
        db_index=True,
        help_text="Privilege level (higher = more privileged)"
    )
    description = models.TextField(
        blank=True,
        help_text="Role description"
    )
    is_system = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether this is a system-seeded role"
    )

    # Custom manager
    objects = RoleManager()

    class Meta:
        db_table = 'roles'
        ordering = ['-level', 'slug']

    def __str__(self):
        return f"{self.name} ({self.slug}, level {self.level})"

    def get_permissions(self):
        """Get all permissions granted by this role."""
        return Permission.objects.filter(
            role_permissions__role=self
        ).distinct()

    def permission_slugs(self):
        """Slugs of every permission granted by this role."""
        return set(
            self.role_permissions.values_list('permission__slug', flat=True)
        )


class RolePermissionManager(models.Manager):
    """Manager for RolePermission queries."""

    def for_role(self, role):
        """Get all permissions for a role."""
        return self.filter(role=role)

    def grant_permission(self, role, permission):
        """Grant permission to role (idempotent)."""
        role_permission, created = self.get_or_create(
            role=role,
            permission=permission
        )
        return role_permission, created

    def revoke_permission(self, role, permission):
        """Revoke permission from role."""
        return self.filter(role=role, permission=permission).delete()


class RolePermission(BaseModel):
    """
    Maps permissions to roles.

    Defines which permissions are granted by each role.
    """

    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='role_permissions',
        db_index=True,
        help_text="Role that grants this permission"
    )
    permission = models.ForeignKey(
        Permission,
        on_delete=models.CASCADE,
        related_name='role_permissions',
        db_index=True,
        help_text="Permission being granted"
    )

    # Custom manager
    objects = RolePermissionManager()

    class Meta:
        db_table = 'role_permissions'
        unique_together = [('role', 'permission')]
        ordering = ['role', 'permission']

    def __str__(self):
        return f"{self.role.slug} -> {self.permission.slug}"


class RoleAssignmentQuerySet(models.QuerySet):
    """QuerySet helpers for scoped role assignments."""

    def for_principal(self, principal_id):
        return self.filter(principal_id=principal_id)

    def in_scope(self, scope: ScopeKey):
        """Exact-scope match; absent components only match absent components."""
        return self.filter(scope_key=scope.storage_key)

    def applicable_to(self, context: ScopeKey):
        """
        Assignments active in ``context``: global, plus org-wide for the
        context org, plus branch-exact for the context branch.
        """
        condition = Q(org_id__isnull=True)
        if context.org_id is not None:
            condition |= Q(org_id=context.org_id, branch_id__isnull=True)
            if context.branch_id is not None:
                condition |= Q(org_id=context.org_id, branch_id=context.branch_id)
        return self.filter(condition)

    def visible_in_org(self, org_id):
        """Global assignments plus any assignment inside ``org_id``."""
        return self.filter(Q(org_id__isnull=True) | Q(org_id=org_id))


class RoleAssignment(BaseModel):
    """
    A principal holding a role at a scope.

    First-class relation entity: the same role can be held several times
    by one principal, once per distinct scope. ``scope_key`` is derived from
    ``(org_id, branch_id)`` and is never NULL, so the unique constraint
    treats absent components as concrete values on every database.
    """

    principal_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Opaque identifier of the principal (user)"
    )
    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='assignments',
        db_index=True,
        help_text="Role held by the principal"
    )
    org_id = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        db_index=True,
        help_text="Organization scope (null = global)"
    )
    branch_id = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        help_text="Branch scope within the organization (null = org-wide)"
    )
    scope_key = models.CharField(
        max_length=255,
        editable=False,
        help_text="Canonical scope key derived from org_id and branch_id"
    )

    # Audit fields
    assigned_by = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        help_text="Principal who made this assignment"
    )

    objects = RoleAssignmentQuerySet.as_manager()

    class Meta:
        db_table = 'role_assignments'
        ordering = ['principal_id', 'scope_key']
        constraints = [
            models.UniqueConstraint(
                fields=['principal_id', 'role', 'scope_key'],
                name='uniq_role_assignment_per_scope',
            ),
            models.CheckConstraint(
                condition=Q(branch_id__isnull=True) | Q(org_id__isnull=False),
                name='role_assignment_branch_requires_org',
            ),
        ]
        indexes = [
            models.Index(fields=['principal_id', 'org_id', 'branch_id']),
            models.Index(fields=['principal_id', 'scope_key']),
        ]

    def __str__(self):
        return f"{self.principal_id} -> {self.role.slug} @ {self.scope_key}"

    @property
    def scope(self) -> ScopeKey:
        return ScopeKey(org_id=self.org_id, branch_id=self.branch_id)

    def save(self, *args, **kwargs):
        """Validate the scope and derive scope_key before saving."""
        scope = ScopeKey.from_raw(self.org_id, self.branch_id)
        self.org_id = scope.org_id
        self.branch_id = scope.branch_id
        self.scope_key = scope.storage_key

        update_fields = kwargs.get('update_fields')
        if update_fields is not None:
            kwargs['update_fields'] = set(update_fields) | {'org_id', 'branch_id', 'scope_key'}
        super().save(*args, **kwargs)
