"""
Dashboard statistics

A pure read-side view over the directory and delegation projections. Safe
to call at any frequency; an empty store yields all zeros.
"""

from collections import Counter
from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from clinic_teams.delegation.models import DelegationStatus
from clinic_teams.delegation.projections import DelegationRegistry, record_status
from clinic_teams.directory.projections import TeamRegistry
from clinic_teams.kernel.policy import ClinicPolicy
from clinic_teams.kernel.time import ensure_utc


class ClinicStatistics(BaseModel):
    """
    Snapshot of team and delegation counts

    Serialises with camelCase keys (totalTeams, activeDelegations, ...) when
    dumped by alias.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_teams: int = 0
    total_members: int = 0
    total_delegations: int = 0
    active_delegations: int = 0
    pending_approvals: int = 0
    teams_by_department: dict[str, int] = Field(default_factory=dict)
    delegations_this_week: int = 0
    computed_at: datetime


class StatisticsAggregator:
    """
    Computes ClinicStatistics from the projections

    Team counts cover active, non-deleted teams; members are counted once
    even when they belong to several teams.
    """

    def __init__(
        self,
        teams: TeamRegistry,
        delegations: DelegationRegistry,
        policy: ClinicPolicy,
    ) -> None:
        self.teams = teams
        self.delegations = delegations
        self.policy = policy

    def compute(self, now: datetime) -> ClinicStatistics:
        now = ensure_utc(now)
        active_teams = self.teams.list_active()

        members: set[str] = set()
        for team in active_teams:
            members.update(team["members"])

        departments = Counter(team["department"] or "Unassigned" for team in active_teams)

        records = self.delegations.list_all()
        recent_cutoff = now - timedelta(days=self.policy.recent_activity_days)

        return ClinicStatistics(
            total_teams=len(active_teams),
            total_members=len(members),
            total_delegations=len(records),
            active_delegations=sum(
                1 for d in records if record_status(d, now) is DelegationStatus.ACTIVE
            ),
            pending_approvals=sum(
                1 for d in records if d["is_active"] and d["approved_by"] is None
            ),
            teams_by_department=dict(departments),
            delegations_this_week=sum(
                1 for d in records if ensure_utc(d["created_at"]) >= recent_cutoff
            ),
            computed_at=now,
        )
