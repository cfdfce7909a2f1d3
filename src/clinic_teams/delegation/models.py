"""
Delegation Models - time-bounded grants and their derived status

A delegation stores only facts (window, approval, revocation). Its status
is computed from those facts and "now" on every read and is never stored,
so an approved delegation silently moves from pending to active to expired
without any write.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from clinic_teams.kernel.time import ensure_utc


class DelegationStatus(str, Enum):
    """
    Derived delegation phase

    pending_approval → (approve) → pending → active → expired
    Any phase → (revoke / team deletion) → inactive
    inactive and expired are terminal.
    """

    PENDING_APPROVAL = "pending_approval"  # Not yet approved
    PENDING = "pending"  # Approved, window not started
    ACTIVE = "active"  # Approved and inside the window
    EXPIRED = "expired"  # Approved, window over
    INACTIVE = "inactive"  # Revoked or deactivated with its team


def derive_status(
    *,
    is_active: bool,
    approved_by: str | None,
    start_date: datetime,
    end_date: datetime,
    now: datetime,
) -> DelegationStatus:
    """
    Status of a delegation at a given instant

    Rules are evaluated in order; the window is closed at both ends.
    """
    if not is_active:
        return DelegationStatus.INACTIVE
    if approved_by is None:
        return DelegationStatus.PENDING_APPROVAL
    now = ensure_utc(now)
    if now < ensure_utc(start_date):
        return DelegationStatus.PENDING
    if now > ensure_utc(end_date):
        return DelegationStatus.EXPIRED
    return DelegationStatus.ACTIVE


class NotificationPreferences(BaseModel):
    """Which notification intents a delegation asks for (delivery is external)"""

    start_notification: bool = True
    end_notification: bool = True
    daily_reminder: bool = False


class Delegation(BaseModel):
    """
    A time-bounded grant of part of one user's permissions to another

    Attributes:
        delegation_id: Unique identifier
        from_user_id: Delegator (must hold every granted permission)
        to_user_id: Recipient
        permissions: Granted permission identifiers
        start_date: Window start (inclusive)
        end_date: Window end (inclusive), strictly after start_date
        is_active: Storage flag, False only after revocation or team deletion
        team_id: Team the delegation belongs to, if any
        approved_by: Approver (immutable once set)
    """

    delegation_id: str
    from_user_id: str
    to_user_id: str
    permissions: list[str]
    reason: str = ""
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    team_id: str | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    revoked_by: str | None = None
    revoked_at: datetime | None = None
    revocation_reason: str | None = None
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)
    created_at: datetime
    created_by: str | None = None

    @field_validator("start_date", "end_date", "created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def status(self, now: datetime) -> DelegationStatus:
        """Derived status at `now`"""
        return derive_status(
            is_active=self.is_active,
            approved_by=self.approved_by,
            start_date=self.start_date,
            end_date=self.end_date,
            now=now,
        )


class DelegationOutcome(BaseModel):
    """
    Result of creating a delegation

    conflict is advisory: the first active delegation to the same recipient
    whose window overlaps the new one. Creation is never blocked by it.
    """

    delegation: Delegation
    conflict: Delegation | None = None

    @property
    def has_conflict(self) -> bool:
        return self.conflict is not None
