"""
Tests for team and delegation exports
"""

import csv
import io
import json

import pytest

from clinic_teams.clinic import ClinicTeams
from clinic_teams.kernel.errors import ValidationError
from clinic_teams.reporting.export import DELEGATION_COLUMNS, TEAM_COLUMNS
from tests.helpers import delegation_data, team_data, utc


def _rows(text: str) -> list[dict[str, str]]:
    return list(csv.DictReader(io.StringIO(text)))


def test_team_json_skips_deleted_teams(staffed_clinic: ClinicTeams) -> None:
    kept = staffed_clinic.create_team(team_data("Cardiology", "dr_house", ["nurse_joy"]))
    gone = staffed_clinic.create_team(team_data("Research", "dr_grey"))
    staffed_clinic.delete_team(gone.team_id)

    exported = json.loads(staffed_clinic.export_teams("json"))

    assert [t["team_id"] for t in exported] == [kept.team_id]
    assert exported[0]["members"] == ["dr_house", "nurse_joy"]
    assert exported[0]["schedule"]["monday"] == {"start": "08:00", "end": "17:00"}


def test_team_csv_columns(staffed_clinic: ClinicTeams) -> None:
    team = staffed_clinic.create_team(team_data("Cardiology", "dr_house", ["nurse_joy", "dr_grey"]))

    text = staffed_clinic.export_teams("csv")

    assert text.splitlines()[0] == ",".join(TEAM_COLUMNS)
    [row] = _rows(text)
    assert row["id"] == team.team_id
    assert row["leader_id"] == "dr_house"
    assert row["member_count"] == "3"
    assert row["is_active"] == "True"


def test_delegation_json_carries_derived_status(staffed_clinic: ClinicTeams) -> None:
    delegation_id = staffed_clinic.create_delegation(delegation_data()).delegation.delegation_id

    [record] = json.loads(staffed_clinic.export_delegations("json"))

    assert record["delegation_id"] == delegation_id
    assert record["status"] == "pending_approval"
    assert record["permissions"] == ["medical_records.edit"]


def test_delegation_csv_joins_permissions(staffed_clinic: ClinicTeams) -> None:
    delegation_id = staffed_clinic.create_delegation(
        delegation_data(permissions=["medical_records.edit", "patients.view"])
    ).delegation.delegation_id
    staffed_clinic.approve_delegation(delegation_id, "admin")

    text = staffed_clinic.export_delegations("csv", now=utc(2025, 11, 1))

    assert text.splitlines()[0] == ",".join(DELEGATION_COLUMNS)
    [row] = _rows(text)
    assert row["permissions"] == "medical_records.edit;patients.view"
    assert row["approved"] == "True"
    assert row["status"] == "expired"


def test_empty_exports(clinic: ClinicTeams) -> None:
    assert json.loads(clinic.export_teams()) == []
    assert clinic.export_delegations("csv").splitlines() == [",".join(DELEGATION_COLUMNS)]


@pytest.mark.parametrize("fmt", ["xml", "JSON", ""])
def test_unknown_format_rejected(clinic: ClinicTeams, fmt: str) -> None:
    with pytest.raises(ValidationError) as exc_info:
        clinic.export_teams(fmt)
    assert exc_info.value.field == "format"

    with pytest.raises(ValidationError):
        clinic.export_delegations(fmt)
