"""
Local mirror of the upstream team directory.

Teams are scoped to an organization and identified by their upstream id.
The mirror answers team lookups when the upstream service is unreachable.
"""
from django.db import models

from apps.core.models import BaseModel


class Team(BaseModel):
    """
    Team within an organization, mirrored from the directory.
    """

    external_id = models.CharField(
        max_length=100,
        help_text="Team id in the upstream directory"
    )
    org_id = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Organization the team belongs to"
    )
    name = models.CharField(
        max_length=255,
        help_text="Team name"
    )
    path = models.CharField(
        max_length=500,
        null=True,
        blank=True,
        help_text="Hierarchical path of the team (e.g., 'sales/north')"
    )
    parent_external_id = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        help_text="Upstream id of the parent team"
    )

    class Meta:
        db_table = 'directory_teams'
        ordering = ['org_id', 'name']
        constraints = [
            models.UniqueConstraint(
                fields=['org_id', 'external_id'],
                name='uniq_team_external_id_per_org',
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.org_id}/{self.external_id})"


class TeamMember(BaseModel):
    """
    Membership of a principal in a team.
    """

    team = models.ForeignKey(
        Team,
        on_delete=models.CASCADE,
        related_name='members',
        help_text="Team"
    )
    principal_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Opaque identifier of the member principal"
    )
    is_leader = models.BooleanField(
        default=False,
        help_text="Whether the principal leads the team"
    )

    class Meta:
        db_table = 'directory_team_members'
        ordering = ['team', 'principal_id']
        constraints = [
            models.UniqueConstraint(
                fields=['team', 'principal_id'],
                name='uniq_team_member',
            ),
        ]

    def __str__(self):
        return f"{self.principal_id} in {self.team.name}"


class TeamPermission(BaseModel):
    """
    Permission granted to every member of a team.
    """

    team = models.ForeignKey(
        Team,
        on_delete=models.CASCADE,
        related_name='team_permissions',
        help_text="Team receiving the permission"
    )
    permission = models.ForeignKey(
        'rbac.Permission',
        on_delete=models.CASCADE,
        related_name='team_permissions',
        help_text="Permission granted"
    )

    class Meta:
        db_table = 'directory_team_permissions'
        ordering = ['team', 'permission']
        constraints = [
            models.UniqueConstraint(
                fields=['team', 'permission'],
                name='uniq_team_permission',
            ),
        ]

    def __str__(self):
        return f"{self.team.name} -> {self.permission.slug}"
