"""
Delegation Commands - intentions to grant, approve and revoke

Only the shape is checked here. The ordered business validation (users,
self-delegation, window, held permissions, team) lives in the invariants so
callers always see the first rule that fails, in the documented order.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from clinic_teams.delegation.models import NotificationPreferences
from clinic_teams.kernel.time import ensure_utc


class CreateDelegation(BaseModel):
    """
    Grant a subset of from_user_id's permissions to to_user_id for a window

    Dates accept datetimes, plain dates (midnight UTC) or ISO strings.
    Omitted notifications fall back to the policy defaults.
    """

    from_user_id: str = Field(..., min_length=1)
    to_user_id: str = Field(..., min_length=1)
    permissions: list[str] = Field(default_factory=list)
    reason: str = ""
    start_date: datetime
    end_date: datetime
    team_id: str | None = None
    notifications: NotificationPreferences | None = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _parse_date(cls, value: Any) -> Any:
        if isinstance(value, (str, date)):
            return ensure_utc(value)
        return value

    @field_validator("permissions")
    @classmethod
    def _dedupe(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(p.strip() for p in value if p.strip()))

    @field_validator("team_id")
    @classmethod
    def _blank_team_is_none(cls, value: str | None) -> str | None:
        return value or None


class ApproveDelegation(BaseModel):
    """Approve a delegation (idempotent, approval is never withdrawn)"""

    delegation_id: str = Field(..., min_length=1)
    approver_id: str = Field(..., min_length=1)


class RevokeDelegation(BaseModel):
    """Stop a delegation early (terminal)"""

    delegation_id: str = Field(..., min_length=1)
    reason: str | None = None

