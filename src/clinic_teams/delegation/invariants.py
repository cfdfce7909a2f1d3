"""
Delegation Invariants - validation rules and conflict detection

Creation is validated in a fixed order so that callers always receive the
first failing rule:

(a) both users exist, are active and not deleted  -> UserNotFoundError
(b) delegator and recipient differ                -> SelfDelegationError
(c) start strictly before end (and policy cap)    -> InvalidWindowError
(d) non-empty grant, all held by the delegator    -> PermissionNotHeldError
(e) referenced team exists and is not deleted     -> ValidationError

Conflicts are not a rule: find_conflict only reports them.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from clinic_teams.kernel.errors import (
    InvalidWindowError,
    PermissionNotHeldError,
    SelfDelegationError,
    UserNotFoundError,
    ValidationError,
)
from clinic_teams.kernel.policy import ClinicPolicy
from clinic_teams.kernel.time import ensure_utc


def validate_user_available(user_id: str, users: Mapping[str, Mapping[str, Any]]) -> None:
    """
    Raises:
        UserNotFoundError: Unknown, deleted or deactivated user
    """
    user = users.get(user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    if user["is_deleted"]:
        raise UserNotFoundError(user_id, "is deleted")
    if not user["is_active"]:
        raise UserNotFoundError(user_id, "is inactive")


def validate_not_self(from_user_id: str, to_user_id: str) -> None:
    if from_user_id == to_user_id:
        raise SelfDelegationError(from_user_id)


def validate_window(
    start_date: datetime,
    end_date: datetime,
    policy: ClinicPolicy,
) -> None:
    """
    start < end strictly; optionally no longer than policy.max_delegation_days

    Raises:
        InvalidWindowError: Empty, reversed or over-long window
    """
    start, end = ensure_utc(start_date), ensure_utc(end_date)
    if start >= end:
        raise InvalidWindowError(start.isoformat(), end.isoformat())
    if policy.max_delegation_days is not None:
        days = (end - start).total_seconds() / 86400
        if days > policy.max_delegation_days:
            raise InvalidWindowError(
                start.isoformat(),
                end.isoformat(),
                f"Delegation window of {days:g} days exceeds the maximum of "
                f"{policy.max_delegation_days} days",
            )


def validate_permissions_held(
    from_user_id: str,
    permissions: Iterable[str],
    delegable: set[str],
) -> None:
    """
    Granted permissions must be a non-empty subset of what the delegator holds

    Args:
        delegable: Role and custom permissions of the delegator. Team grants
            and received delegations are deliberately absent: delegation is
            not re-delegatable.

    Raises:
        PermissionNotHeldError: Empty grant, or missing permissions listed
    """
    requested = list(permissions)
    if not requested:
        raise PermissionNotHeldError(from_user_id, [])
    missing = [p for p in requested if p not in delegable]
    if missing:
        raise PermissionNotHeldError(from_user_id, missing)


def validate_team_reference(
    team_id: str | None,
    teams: Mapping[str, Mapping[str, Any]],
) -> None:
    """
    Raises:
        ValidationError: team_id given but unknown or deleted
    """
    if team_id is None:
        return
    team = teams.get(team_id)
    if team is None or team["is_deleted"]:
        raise ValidationError(f"team_id: team {team_id} does not exist", field="team_id")


# Conflict detection


def windows_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    """Closed-interval overlap: touching boundaries count as overlapping"""
    return ensure_utc(start_a) <= ensure_utc(end_b) and ensure_utc(end_a) >= ensure_utc(start_b)


def find_conflict(
    delegations: Iterable[Mapping[str, Any]],
    to_user_id: str,
    start_date: datetime,
    end_date: datetime,
    exclude_id: str | None = None,
) -> Mapping[str, Any] | None:
    """
    First active delegation to the same recipient whose window overlaps

    Iteration order of `delegations` decides which conflict is "first".
    Approval and temporal status are ignored: only the stored active flag
    matters.

    Args:
        delegations: Delegation records (DelegationRegistry order)
        to_user_id: Recipient of the candidate
        start_date: Candidate window start
        end_date: Candidate window end
        exclude_id: Delegation to ignore (the one being edited)

    Returns:
        The conflicting record, or None
    """
    for record in delegations:
        if record["to_user_id"] != to_user_id or not record["is_active"]:
            continue
        if exclude_id is not None and record["delegation_id"] == exclude_id:
            continue
        if windows_overlap(start_date, end_date, record["start_date"], record["end_date"]):
            return record
    return None
