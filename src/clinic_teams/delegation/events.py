"""
Delegation Events - facts about grants

Derived status never appears here: only the stored facts it is computed from.
"""

from datetime import datetime

from pydantic import BaseModel

from clinic_teams.delegation.models import NotificationPreferences


class DelegationCreated(BaseModel):
    """A delegation was recorded (active flag set, not yet approved)"""

    delegation_id: str
    from_user_id: str
    to_user_id: str
    permissions: list[str]
    reason: str
    start_date: datetime
    end_date: datetime
    team_id: str | None
    notifications: NotificationPreferences
    created_at: datetime
    created_by: str | None


class DelegationApproved(BaseModel):
    """A delegation was approved (happens at most once)"""

    delegation_id: str
    approved_by: str
    approved_at: datetime


class DelegationRevoked(BaseModel):
    """A delegation was explicitly revoked"""

    delegation_id: str
    revoked_by: str | None
    revoked_at: datetime
    reason: str | None


class DelegationDeactivated(BaseModel):
    """A delegation was switched off because its team was deleted"""

    delegation_id: str
    team_id: str
    deactivated_by: str | None
    deactivated_at: datetime
    reason: str
