"""
Team directory clients.

The access core only depends on TeamDirectoryClient. Implementations:
- HttpTeamDirectoryClient: upstream directory REST API, bounded by a timeout
- DatabaseTeamDirectoryClient: local mirror (apps.directory.models)
- FallbackTeamDirectoryClient: primary with a secondary on failure

Every failure is reported as TeamDirectoryUnavailable.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set
from urllib.parse import quote

import requests
from django.conf import settings
from django.db import DatabaseError, transaction

from apps.directory.models import Team, TeamMember, TeamPermission
from apps.rbac.exceptions import TeamDirectoryUnavailable

logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT = 5


@dataclass(frozen=True)
class TeamInfo:
    """A team the principal belongs to."""

    id: str
    name: str
    is_leader: bool = False
    path: Optional[str] = None
    parent_id: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> 'TeamInfo':
        """
        Build from a directory API item.

        Raises:
            ValueError: If the item has no id
        """
        if not isinstance(data, dict) or data.get('id') in (None, ''):
            raise ValueError(f"Malformed team entry: {data!r}")
        parent_id = data.get('parent_id')
        return cls(
            id=str(data['id']),
            name=data.get('name') or 'Unknown Team',
            is_leader=bool(data.get('is_leader', False)),
            path=data.get('path'),
            parent_id=str(parent_id) if parent_id is not None else None,
        )


class TeamDirectoryClient(ABC):
    """
    Source of team memberships and team permissions.

    Implementations report lookup failures as TeamDirectoryUnavailable.
    """

    @abstractmethod
    def get_user_teams(self, principal_id: str, org_id: str) -> List[TeamInfo]:
        """Teams the principal belongs to in ``org_id``."""

    @abstractmethod
    def get_team_permissions(self, team_ids: Iterable[str], org_id: str) -> Set[str]:
        """Permission slugs granted to any of ``team_ids`` in ``org_id``."""


class HttpTeamDirectoryClient(TeamDirectoryClient):
    """
    Client for the upstream directory REST API.

    Endpoints:
        GET {base}/api/v1/orgs/{org}/members/{principal}/teams -> {"teams": [...]}
        GET {base}/api/v1/orgs/{org}/teams/permissions?team_ids=1,2 -> {"permissions": [...]}
    """

    def __init__(self, base_url: str, api_token: str = None, timeout: float = DEFAULT_TIMEOUT):
        """
        Initialize the client.

        Args:
            base_url: Directory service URL (e.g., https://directory.example.com)
            api_token: Bearer token sent with every request
            timeout: Seconds before a request is abandoned
        """
        self.base_url = base_url.rstrip('/')
        self.api_base = f"{self.base_url}/api/v1"
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({'Accept': 'application/json'})
        if api_token:
            self.session.headers.update({'Authorization': f'Bearer {api_token}'})

    def get_user_teams(self, principal_id: str, org_id: str) -> List[TeamInfo]:
        url = f"{self.api_base}/orgs/{quote(str(org_id), safe='')}/members/{quote(str(principal_id), safe='')}/teams"
        payload = self._get(url)

        teams = payload.get('teams')
        if not isinstance(teams, list):
            raise TeamDirectoryUnavailable("Directory returned a malformed teams payload")
        try:
            result = [TeamInfo.from_payload(item) for item in teams]
        except ValueError as e:
            raise TeamDirectoryUnavailable(str(e)) from e

        logger.debug(
            f"Fetched {len(result)} teams from directory",
            extra={'principal_id': principal_id, 'org_id': org_id}
        )
        return result

    def get_team_permissions(self, team_ids: Iterable[str], org_id: str) -> Set[str]:
        team_ids = [str(team_id) for team_id in team_ids]
        if not team_ids:
            return set()

        url = f"{self.api_base}/orgs/{quote(str(org_id), safe='')}/teams/permissions"
        payload = self._get(url, params={'team_ids': ','.join(team_ids)})

        permissions = payload.get('permissions')
        if not isinstance(permissions, list) or not all(isinstance(p, str) for p in permissions):
            raise TeamDirectoryUnavailable("Directory returned a malformed permissions payload")
        return set(permissions)

    def _get(self, url: str, params: Dict[str, Any] = None) -> Dict[str, Any]:
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            logger.error(
                f"Team directory HTTP error",
                extra={'url': url, 'status_code': status_code}
            )
            raise TeamDirectoryUnavailable(f"Directory HTTP error: {status_code}") from e
        except requests.exceptions.Timeout as e:
            logger.error(
                f"Team directory request timed out",
                extra={'url': url, 'timeout': self.timeout}
            )
            raise TeamDirectoryUnavailable("Directory request timed out") from e
        except requests.exceptions.RequestException as e:
            logger.error(
                f"Team directory request error",
                extra={'url': url, 'error': str(e)}
            )
            raise TeamDirectoryUnavailable(f"Directory request error: {str(e)}") from e
        except ValueError as e:
            raise TeamDirectoryUnavailable("Directory returned invalid JSON") from e

        if not isinstance(payload, dict):
            raise TeamDirectoryUnavailable("Directory returned a malformed payload")
        return payload


class DatabaseTeamDirectoryClient(TeamDirectoryClient):
    """
    Client reading the local team mirror.
    """

    def get_user_teams(self, principal_id: str, org_id: str) -> List[TeamInfo]:
        try:
            memberships = list(
                TeamMember.objects.filter(
                    principal_id=principal_id,
                    team__org_id=org_id,
                ).select_related('team').order_by('team__name')
            )
        except DatabaseError as e:
            raise TeamDirectoryUnavailable(f"Team mirror unavailable: {str(e)}") from e

        return [
            TeamInfo(
                id=membership.team.external_id,
                name=membership.team.name,
                is_leader=membership.is_leader,
                path=membership.team.path,
                parent_id=membership.team.parent_external_id,
            )
            for membership in memberships
        ]

    def get_team_permissions(self, team_ids: Iterable[str], org_id: str) -> Set[str]:
        team_ids = [str(team_id) for team_id in team_ids]
        if not team_ids:
            return set()

        try:
            return set(
                TeamPermission.objects.filter(
                    team__org_id=org_id,
                    team__external_id__in=team_ids,
                ).values_list('permission__slug', flat=True)
            )
        except DatabaseError as e:
            raise TeamDirectoryUnavailable(f"Team mirror unavailable: {str(e)}") from e

    def store_user_teams(self, principal_id: str, org_id: str, teams: Iterable[TeamInfo]) -> None:
        """
        Replace the principal's mirrored memberships in ``org_id`` with ``teams``.

        Team rows are created or updated; memberships in teams not listed
        are removed.
        """
        teams = list(teams)
        try:
            with transaction.atomic():
                kept_team_ids = []
                for info in teams:
                    team, _ = Team.objects.update_or_create(
                        org_id=org_id,
                        external_id=info.id,
                        defaults={
                            'name': info.name,
                            'path': info.path,
                            'parent_external_id': info.parent_id,
                        }
                    )
                    TeamMember.objects.update_or_create(
                        team=team,
                        principal_id=principal_id,
                        defaults={'is_leader': info.is_leader},
                    )
                    kept_team_ids.append(team.id)

                TeamMember.objects.filter(
                    principal_id=principal_id,
                    team__org_id=org_id,
                ).exclude(team_id__in=kept_team_ids).delete()
        except DatabaseError as e:
            raise TeamDirectoryUnavailable(f"Team mirror unavailable: {str(e)}") from e

        logger.debug(
            f"Mirrored {len(teams)} teams",
            extra={'principal_id': principal_id, 'org_id': org_id}
        )


class FallbackTeamDirectoryClient(TeamDirectoryClient):
    """
    Uses ``primary`` and falls back to ``secondary`` when it is unavailable.

    Team lookups answered by the primary are mirrored into the secondary
    when it supports ``store_user_teams``.
    """

    def __init__(self, primary: TeamDirectoryClient, secondary: TeamDirectoryClient):
        self.primary = primary
        self.secondary = secondary

    def get_user_teams(self, principal_id: str, org_id: str) -> List[TeamInfo]:
        try:
            teams = self.primary.get_user_teams(principal_id, org_id)
        except TeamDirectoryUnavailable as e:
            logger.warning(
                f"Primary team directory unavailable, using fallback: {e.message}",
                extra={'principal_id': principal_id, 'org_id': org_id}
            )
            return self.secondary.get_user_teams(principal_id, org_id)

        store = getattr(self.secondary, 'store_user_teams', None)
        if store is not None:
            try:
                store(principal_id, org_id, teams)
            except TeamDirectoryUnavailable as e:
                logger.warning(
                    f"Failed to mirror teams: {e.message}",
                    extra={'principal_id': principal_id, 'org_id': org_id}
                )
        return teams

    def get_team_permissions(self, team_ids: Iterable[str], org_id: str) -> Set[str]:
        team_ids = list(team_ids)
        try:
            return self.primary.get_team_permissions(team_ids, org_id)
        except TeamDirectoryUnavailable as e:
            logger.warning(
                f"Primary team directory unavailable, using fallback: {e.message}",
                extra={'org_id': org_id}
            )
            return self.secondary.get_team_permissions(team_ids, org_id)


def get_team_directory_client() -> TeamDirectoryClient:
    """
    Build the configured team directory client.

    Without TEAM_DIRECTORY_URL only the local mirror is used.
    """
    database_client = DatabaseTeamDirectoryClient()

    base_url = getattr(settings, 'TEAM_DIRECTORY_URL', None)
    if not base_url:
        return database_client

    http_client = HttpTeamDirectoryClient(
        base_url=base_url,
        api_token=getattr(settings, 'TEAM_DIRECTORY_TOKEN', None),
        timeout=getattr(settings, 'TEAM_DIRECTORY_TIMEOUT', DEFAULT_TIMEOUT),
    )
    return FallbackTeamDirectoryClient(http_client, database_client)
