"""
Directory Invariants - rules every user and team write must satisfy

Pure functions over projection state. Normalisers return the corrected
value; validators raise a DomainError and return nothing.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from clinic_teams.directory.models import TimeSlot
from clinic_teams.kernel.errors import DuplicateNameError, ValidationError
from clinic_teams.kernel.policy import WEEKDAYS, ClinicPolicy
from clinic_teams.permissions.catalog import PermissionCatalog


def normalize_members(leader_id: str, members: Iterable[str]) -> list[str]:
    """
    Members with the leader included

    The caller's list is never trusted to contain the leader: a missing
    leader is added at the front, duplicates are dropped.
    """
    normalized = list(dict.fromkeys(m for m in members if m))
    if leader_id not in normalized:
        normalized.insert(0, leader_id)
    return normalized


def validate_unique_team_name(
    name: str,
    teams: Iterable[Mapping[str, Any]],
    exclude_team_id: str | None = None,
) -> None:
    """
    Team names are unique, case-insensitively, among non-deleted teams

    Args:
        name: Candidate name
        teams: Team records from the TeamRegistry
        exclude_team_id: The team being renamed (never collides with itself)

    Raises:
        DuplicateNameError: If another non-deleted team already uses the name
    """
    wanted = name.strip().casefold()
    for team in teams:
        if team["is_deleted"] or team["team_id"] == exclude_team_id:
            continue
        if team["name"].strip().casefold() == wanted:
            raise DuplicateNameError(name, team["team_id"])


def validate_leader(leader_id: str, users: Mapping[str, Mapping[str, Any]]) -> None:
    """
    The leader must be an existing, non-deleted user

    Raises:
        ValidationError: If leader_id does not resolve
    """
    user = users.get(leader_id)
    if user is None or user["is_deleted"]:
        raise ValidationError(
            f"leader_id: user {leader_id} does not exist", field="leader_id"
        )


def normalize_schedule(
    schedule: Mapping[str, Any] | None,
    policy: ClinicPolicy,
) -> dict[str, dict[str, str] | None]:
    """
    Full seven-day schedule

    None yields the policy's default template. Missing weekdays are closed
    (None). Overnight slots (start after end) are accepted.

    Raises:
        ValidationError: Unknown weekday or malformed time
    """
    if schedule is None:
        return policy.default_schedule()

    unknown = sorted(set(schedule) - set(WEEKDAYS))
    if unknown:
        raise ValidationError(
            f"schedule: unknown weekday(s) {', '.join(unknown)}", field="schedule"
        )

    normalized: dict[str, dict[str, str] | None] = {}
    for day in WEEKDAYS:
        slot = schedule.get(day)
        if slot is None:
            normalized[day] = None
        elif isinstance(slot, TimeSlot):
            normalized[day] = slot.model_dump()
        else:
            try:
                normalized[day] = TimeSlot.model_validate(slot).model_dump()
            except ValueError as e:
                raise ValidationError(
                    f"schedule.{day}: expected HH:MM start and end", field=f"schedule.{day}"
                ) from e
    return normalized


def validate_known_role(role: str, catalog: PermissionCatalog) -> None:
    """
    Raises:
        ValidationError: If the catalog does not define the role
    """
    if role not in {r.id for r in catalog.get_all_roles()}:
        raise ValidationError(f"role: unknown role '{role}'", field="role")


def validate_known_permissions(
    permissions: Iterable[str],
    catalog: PermissionCatalog,
    field: str = "permissions",
) -> None:
    """
    Raises:
        ValidationError: If any identifier is missing from the catalog
    """
    known = {p.id for p in catalog.get_all_permissions()}
    unknown = sorted(set(permissions) - known)
    if unknown:
        raise ValidationError(
            f"{field}: unknown permission(s) {', '.join(unknown)}", field=field
        )
