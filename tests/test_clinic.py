"""
Tests for the ClinicTeams facade

Covers wiring concerns: projections rebuilt from the log, patch filtering,
lookups and optimistic locking between two engines sharing one database.
"""

from pathlib import Path

import pytest

from clinic_teams.clinic import ClinicTeams
from clinic_teams.delegation.models import DelegationStatus
from clinic_teams.kernel.audit import MemoryAuditSink
from clinic_teams.kernel.errors import (
    StreamVersionConflict,
    TeamNotFound,
    UserNotFoundError,
    ValidationError,
)
from clinic_teams.kernel.time import TestTimeProvider
from clinic_teams.permissions.catalog import StaticPermissionCatalog
from tests.helpers import delegation_data, team_data


def _reopen(temp_db: Path, test_time: TestTimeProvider, catalog: StaticPermissionCatalog) -> ClinicTeams:
    return ClinicTeams(temp_db, time_provider=test_time, catalog=catalog, audit_sink=MemoryAuditSink())


class TestUsers:
    def test_lookups(self, staffed_clinic: ClinicTeams) -> None:
        assert staffed_clinic.require_user("sam").role == "scheduler"
        assert staffed_clinic.get_user("ghost") is None
        with pytest.raises(UserNotFoundError):
            staffed_clinic.require_user("ghost")

    def test_available_users_exclude_inactive_and_deleted(self, staffed_clinic: ClinicTeams) -> None:
        staffed_clinic.update_user("sam", {"is_active": False})
        staffed_clinic.delete_user("alex")

        available = {u.user_id for u in staffed_clinic.list_available_users()}
        assert available == {"admin", "dr_house", "dr_grey", "nurse_joy"}
        assert len(staffed_clinic.list_users()) == 5
        assert len(staffed_clinic.list_users(include_deleted=True)) == 6

    def test_update_rejects_unknown_fields(self, staffed_clinic: ClinicTeams) -> None:
        with pytest.raises(ValidationError):
            staffed_clinic.update_user("sam", {"salary": 10})


class TestTeams:
    def test_update_ignores_protected_fields(self, staffed_clinic: ClinicTeams) -> None:
        team = staffed_clinic.create_team(team_data(), actor_id="admin")

        updated = staffed_clinic.update_team(
            team.team_id,
            {
                "id": "hijack",
                "team_id": "hijack",
                "created_at": "2000-01-01T00:00:00Z",
                "created_by": "mallory",
                "description": "Heart care",
            },
            actor_id="dr_house",
        )

        assert updated.team_id == team.team_id
        assert updated.created_at == team.created_at
        assert updated.created_by == "admin"
        assert updated.updated_by == "dr_house"
        assert updated.description == "Heart care"

    def test_fetched_team_can_be_sent_back_as_patch(self, staffed_clinic: ClinicTeams) -> None:
        team = staffed_clinic.create_team(team_data(members=["nurse_joy"]), actor_id="admin")
        staffed_clinic.update_team(team.team_id, {"description": "Heart care"}, actor_id="admin")

        patch = staffed_clinic.require_team(team.team_id).model_dump(mode="json")
        patch["name"] = "Cardio 2"
        updated = staffed_clinic.update_team(team.team_id, patch, actor_id="dr_house")

        assert updated.name == "Cardio 2"
        assert updated.description == "Heart care"
        assert updated.members == ["dr_house", "nurse_joy"]
        assert updated.updated_by == "dr_house"
        assert not updated.is_deleted
        assert staffed_clinic.event_store.get_stream_version(team.team_id) == 3

    def test_require_team(self, staffed_clinic: ClinicTeams) -> None:
        team = staffed_clinic.create_team(team_data())
        assert staffed_clinic.require_team(team.team_id).name == "Cardiology"
        with pytest.raises(TeamNotFound):
            staffed_clinic.require_team("team_404")

    def test_search(self, staffed_clinic: ClinicTeams) -> None:
        cardio = staffed_clinic.create_team(team_data(specialties=["Echocardiography"]))
        desk = staffed_clinic.create_team(team_data("Front desk", "alex", ["sam"], department="Reception"))
        staffed_clinic.update_team(desk.team_id, {"is_active": False})

        assert [t.team_id for t in staffed_clinic.search_teams(query="echo")] == [cardio.team_id]
        assert [t.team_id for t in staffed_clinic.search_teams(department="recep")] == [desk.team_id]
        assert [t.team_id for t in staffed_clinic.search_teams(is_active=True)] == [cardio.team_id]
        assert [t.team_id for t in staffed_clinic.search_teams(leader_id="alex")] == [desk.team_id]
        assert staffed_clinic.search_teams(query="ortho") == []

    def test_user_teams_only_active(self, staffed_clinic: ClinicTeams) -> None:
        cardio = staffed_clinic.create_team(team_data(members=["nurse_joy"]))
        night = staffed_clinic.create_team(team_data("Night shift", "dr_grey", ["nurse_joy"]))
        staffed_clinic.update_team(night.team_id, {"is_active": False})

        assert [t.team_id for t in staffed_clinic.get_user_teams("nurse_joy")] == [cardio.team_id]
        assert [t.team_id for t in staffed_clinic.get_user_teams("dr_house")] == [cardio.team_id]
        assert staffed_clinic.get_user_teams("sam") == []


class TestReplay:
    def test_state_survives_reopen(
        self,
        staffed_clinic: ClinicTeams,
        temp_db: Path,
        test_time: TestTimeProvider,
        catalog: StaticPermissionCatalog,
    ) -> None:
        team = staffed_clinic.create_team(team_data(members=["nurse_joy"]))
        delegation_id = staffed_clinic.create_delegation(
            delegation_data(team_id=team.team_id)
        ).delegation.delegation_id
        staffed_clinic.approve_delegation(delegation_id, "admin")
        staffed_clinic.delete_user("alex")

        reopened = _reopen(temp_db, test_time, catalog)

        assert reopened.get_team(team.team_id) == staffed_clinic.get_team(team.team_id)
        assert reopened.get_delegation(delegation_id) == staffed_clinic.get_delegation(delegation_id)
        assert reopened.get_user("alex").is_deleted
        assert reopened.delegation_status(delegation_id) is DelegationStatus.ACTIVE
        assert reopened.has_permission("nurse_joy", "medical_records.edit")

    def test_stale_engine_hits_version_conflict(
        self,
        staffed_clinic: ClinicTeams,
        temp_db: Path,
        test_time: TestTimeProvider,
        catalog: StaticPermissionCatalog,
    ) -> None:
        team = staffed_clinic.create_team(team_data())
        other = _reopen(temp_db, test_time, catalog)

        staffed_clinic.update_team(team.team_id, {"description": "first writer"})

        with pytest.raises(StreamVersionConflict):
            other.update_team(team.team_id, {"description": "second writer"})

        other.refresh()
        assert other.update_team(team.team_id, {"description": "second writer"}).description == (
            "second writer"
        )
        assert staffed_clinic.event_store.get_stream_version(team.team_id) == 3

    def test_stale_engine_cannot_attach_delegation_to_deleted_team(
        self,
        staffed_clinic: ClinicTeams,
        temp_db: Path,
        test_time: TestTimeProvider,
        catalog: StaticPermissionCatalog,
    ) -> None:
        team = staffed_clinic.create_team(team_data(members=["nurse_joy"]))
        stale = _reopen(temp_db, test_time, catalog)

        staffed_clinic.delete_team(team.team_id)

        with pytest.raises(StreamVersionConflict):
            stale.create_delegation(delegation_data(team_id=team.team_id))

        reloaded = _reopen(temp_db, test_time, catalog)
        assert reloaded.list_delegations() == []

        stale.refresh()
        with pytest.raises(ValidationError):
            stale.create_delegation(delegation_data(team_id=team.team_id))

    def test_stale_engine_cannot_delegate_to_deactivated_recipient(
        self,
        staffed_clinic: ClinicTeams,
        temp_db: Path,
        test_time: TestTimeProvider,
        catalog: StaticPermissionCatalog,
    ) -> None:
        stale = _reopen(temp_db, test_time, catalog)
        staffed_clinic.update_user("nurse_joy", {"is_active": False})

        with pytest.raises(StreamVersionConflict):
            stale.create_delegation(delegation_data())
        assert stale.event_store.query_events(stream_type="delegation") == []

    def test_every_event_reaches_the_audit_sink(
        self, staffed_clinic: ClinicTeams, audit_sink: MemoryAuditSink
    ) -> None:
        before = len(audit_sink.entries)
        team = staffed_clinic.create_team(team_data(), actor_id="admin")

        [entry] = audit_sink.entries[before:]
        assert entry.action == "TeamCreated"
        assert entry.entity_id == team.team_id
        assert entry.actor == "admin"
