"""
Effective permission resolution

Effective permissions = role permissions ∪ custom user grants ∪ grants of
every active team the user belongs to ∪ permissions of every delegation to
the user whose derived status is active at `now`.

Nothing is cached: a delegation can expire between two checks without any
write, so every check recomputes from the projections.
"""

from datetime import datetime

from clinic_teams.delegation.models import DelegationStatus
from clinic_teams.delegation.projections import DelegationRegistry, record_status
from clinic_teams.directory.projections import TeamRegistry, UserDirectory
from clinic_teams.kernel.errors import UserNotFoundError
from clinic_teams.kernel.metrics import authorization_checks_total
from clinic_teams.kernel.time import TimeProvider, ensure_utc
from clinic_teams.permissions.catalog import PermissionCatalog


class EffectivePermissionResolver:
    """
    Computes what a user may do at a given instant

    Args:
        catalog: Role -> permission mapping
        users: UserDirectory projection
        teams: TeamRegistry projection
        delegations: DelegationRegistry projection
        time_provider: Default "now" when a call passes none
    """

    def __init__(
        self,
        catalog: PermissionCatalog,
        users: UserDirectory,
        teams: TeamRegistry,
        delegations: DelegationRegistry,
        time_provider: TimeProvider,
    ) -> None:
        self.catalog = catalog
        self.users = users
        self.teams = teams
        self.delegations = delegations
        self.time_provider = time_provider

    def _now(self, now: datetime | None) -> datetime:
        return ensure_utc(now) if now is not None else self.time_provider.now()

    def _require_user(self, user_id: str) -> dict:
        user = self.users.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def delegable_permissions(self, user_id: str) -> set[str]:
        """
        What the user may hand on: role and custom grants only

        Team grants and received delegations are not re-delegatable.
        """
        return self.catalog.get_user_permissions(self._require_user(user_id))

    def role_and_team_permissions(self, user_id: str) -> set[str]:
        permissions = set(self.delegable_permissions(user_id))
        for team in self.teams.teams_for_user(user_id):
            permissions.update(team["permissions"])
        return permissions

    def active_delegations_to(self, user_id: str, now: datetime | None = None) -> list[dict]:
        """Delegations received by the user whose derived status is active"""
        now = self._now(now)
        return [
            d
            for d in self.delegations.list_active_now(user_id, now)
            if d["to_user_id"] == user_id and record_status(d, now) is DelegationStatus.ACTIVE
        ]

    def resolve(self, user_id: str, now: datetime | None = None) -> set[str]:
        """
        Effective permissions of a user at `now`

        Inactive or deleted users hold nothing.

        Raises:
            UserNotFoundError: Unknown user id
        """
        user = self._require_user(user_id)
        if user["is_deleted"] or not user["is_active"]:
            return set()

        permissions = self.role_and_team_permissions(user_id)
        for delegation in self.active_delegations_to(user_id, now):
            permissions.update(delegation["permissions"])
        return permissions

    def has_permission(self, user_id: str, permission: str, now: datetime | None = None) -> bool:
        """Authorization check (recomputed every call)"""
        granted = permission in self.resolve(user_id, now)
        authorization_checks_total.labels(result="granted" if granted else "denied").inc()
        return granted

    def explain(self, user_id: str, now: datetime | None = None) -> dict[str, list[str]]:
        """
        Where each effective permission comes from

        Returns:
            permission -> sorted sources, each "role", "team:<id>" or
            "delegation:<id>" ("role" covers custom user grants too)
        """
        user = self._require_user(user_id)
        if user["is_deleted"] or not user["is_active"]:
            return {}

        sources: dict[str, set[str]] = {}
        for permission in self.delegable_permissions(user_id):
            sources.setdefault(permission, set()).add("role")
        for team in self.teams.teams_for_user(user_id):
            for permission in team["permissions"]:
                sources.setdefault(permission, set()).add(f"team:{team['team_id']}")
        for delegation in self.active_delegations_to(user_id, now):
            for permission in delegation["permissions"]:
                sources.setdefault(permission, set()).add(
                    f"delegation:{delegation['delegation_id']}"
                )
        return {permission: sorted(found) for permission, found in sorted(sources.items())}
