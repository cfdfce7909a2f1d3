"""
Tests for directory invariants

Pure functions: the leader/members rule, name uniqueness, leader
resolution, schedule normalisation and catalog checks.
"""

import pytest

from clinic_teams.directory.invariants import (
    normalize_members,
    normalize_schedule,
    validate_known_permissions,
    validate_known_role,
    validate_leader,
    validate_unique_team_name,
)
from clinic_teams.directory.models import TimeSlot
from clinic_teams.kernel.errors import DuplicateNameError, ValidationError
from clinic_teams.kernel.policy import ClinicPolicy
from clinic_teams.permissions.catalog import StaticPermissionCatalog


def test_normalize_members_adds_missing_leader_first() -> None:
    assert normalize_members("lead", ["a", "b"]) == ["lead", "a", "b"]


def test_normalize_members_keeps_leader_position_and_dedupes() -> None:
    assert normalize_members("lead", ["a", "lead", "a", ""]) == ["a", "lead"]


def test_normalize_members_empty_list_is_just_leader() -> None:
    assert normalize_members("lead", []) == ["lead"]


def test_unique_name_is_case_insensitive() -> None:
    teams = [{"team_id": "team_1", "name": "Cardiology", "is_deleted": False}]

    with pytest.raises(DuplicateNameError) as exc_info:
        validate_unique_team_name("  CARDIOLOGY ", teams)
    assert exc_info.value.existing_team_id == "team_1"


def test_unique_name_ignores_deleted_teams_and_self() -> None:
    teams = [
        {"team_id": "team_1", "name": "Cardiology", "is_deleted": True},
        {"team_id": "team_2", "name": "Oncology", "is_deleted": False},
    ]
    validate_unique_team_name("cardiology", teams)
    validate_unique_team_name("Oncology", teams, exclude_team_id="team_2")


def test_validate_leader() -> None:
    users = {
        "dr_house": {"user_id": "dr_house", "is_deleted": False},
        "gone": {"user_id": "gone", "is_deleted": True},
    }
    validate_leader("dr_house", users)

    for leader_id in ("gone", "nobody"):
        with pytest.raises(ValidationError) as exc_info:
            validate_leader(leader_id, users)
        assert exc_info.value.field == "leader_id"


def test_normalize_schedule_defaults_to_policy_template(policy: ClinicPolicy) -> None:
    assert normalize_schedule(None, policy) == policy.default_schedule()


def test_normalize_schedule_fills_missing_days_as_closed(policy: ClinicPolicy) -> None:
    schedule = normalize_schedule(
        {"monday": {"start": "22:00", "end": "06:00"}, "tuesday": TimeSlot(start="08:00", end="12:00")},
        policy,
    )
    # Overnight slot accepted as given
    assert schedule["monday"] == {"start": "22:00", "end": "06:00"}
    assert schedule["tuesday"] == {"start": "08:00", "end": "12:00"}
    assert schedule["wednesday"] is None
    assert len(schedule) == 7


def test_normalize_schedule_rejects_unknown_day(policy: ClinicPolicy) -> None:
    with pytest.raises(ValidationError, match="funday"):
        normalize_schedule({"funday": None}, policy)


def test_normalize_schedule_rejects_bad_time(policy: ClinicPolicy) -> None:
    with pytest.raises(ValidationError) as exc_info:
        normalize_schedule({"friday": {"start": "25:00", "end": "18:00"}}, policy)
    assert exc_info.value.field == "schedule.friday"


def test_catalog_checks() -> None:
    catalog = StaticPermissionCatalog()
    validate_known_role("nurse", catalog)
    validate_known_permissions(["patients.view", "teams.edit"], catalog)

    with pytest.raises(ValidationError):
        validate_known_role("wizard", catalog)
    with pytest.raises(ValidationError, match="spells.cast"):
        validate_known_permissions(["patients.view", "spells.cast"], catalog)
