"""
Directory mirror signals.

Changes to mirrored memberships or team permissions clear the cached team
permissions of the affected principals.
"""
from django.db.models.signals import post_delete, post_save, pre_delete
from django.dispatch import receiver

from apps.directory.models import Team, TeamMember, TeamPermission
from apps.rbac.caches import TeamMembershipCache


def _invalidate_team_members(team_id):
    team = Team.objects.filter(id=team_id).first()
    if team is None:
        return
    cache = TeamMembershipCache()
    for principal_id in team.members.values_list('principal_id', flat=True):
        cache.invalidate(principal_id, team.org_id)


@receiver(post_save, sender=TeamMember)
@receiver(post_delete, sender=TeamMember)
def invalidate_member_on_change(sender, instance, **kwargs):
    org_id = Team.objects.filter(id=instance.team_id).values_list('org_id', flat=True).first()
    if org_id is None:
        return
    TeamMembershipCache().invalidate(instance.principal_id, org_id)


@receiver(post_save, sender=TeamPermission)
@receiver(post_delete, sender=TeamPermission)
def invalidate_members_on_team_permission_change(sender, instance, **kwargs):
    _invalidate_team_members(instance.team_id)


@receiver(pre_delete, sender=Team)
def invalidate_members_on_team_delete(sender, instance, **kwargs):
    _invalidate_team_members(instance.id)
