"""
Delegation - time-bounded, approvable, revocable permission grants

A delegator hands part of their own permissions to a recipient for a
closed window. Grants need approval to take effect, expire on their own
and can be revoked at any time; overlapping grants are reported, not refused.
"""

from clinic_teams.delegation.models import (
    Delegation,
    DelegationOutcome,
    DelegationStatus,
    NotificationPreferences,
    derive_status,
)
from clinic_teams.delegation.projections import DelegationRegistry

__all__ = [
    "Delegation",
    "DelegationOutcome",
    "DelegationStatus",
    "NotificationPreferences",
    "derive_status",
    "DelegationRegistry",
]
