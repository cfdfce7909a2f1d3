"""
Tests for delegation command handlers and the DelegationRegistry projection
"""

import pytest

from clinic_teams.delegation.commands import (
    ApproveDelegation,
    CreateDelegation,
    RevokeDelegation,
)
from clinic_teams.delegation.handlers import DelegationCommandHandlers
from clinic_teams.delegation.models import DelegationStatus, NotificationPreferences
from clinic_teams.delegation.projections import DelegationRegistry
from clinic_teams.kernel.ids import generate_id
from clinic_teams.kernel.time import ensure_utc
from tests.helpers import make_event, utc

USERS = {
    "dr_house": {
        "user_id": "dr_house",
        "role": "doctor",
        "permissions": [],
        "is_active": True,
        "is_deleted": False,
    },
    "nurse_joy": {
        "user_id": "nurse_joy",
        "role": "nurse",
        "permissions": [],
        "is_active": True,
        "is_deleted": False,
    },
}
TEAMS = {"team_1": {"team_id": "team_1", "is_deleted": False}}


def _create(handlers, registry, **overrides):
    data = {
        "from_user_id": "dr_house",
        "to_user_id": "nurse_joy",
        "permissions": ["medical_records.edit"],
        "start_date": "2025-10-01",
        "end_date": "2025-10-15",
    }
    data.update(overrides)
    events = handlers.handle_create_delegation(
        CreateDelegation.model_validate(data), generate_id(), "dr_house", USERS, TEAMS
    )
    for event in events:
        registry.apply_event(event)
    return events[0].stream_id


def test_create_event_payload(
    delegation_handlers: DelegationCommandHandlers, delegation_registry: DelegationRegistry
) -> None:
    delegation_id = _create(
        delegation_handlers,
        delegation_registry,
        team_id="team_1",
        permissions=["medical_records.edit", " medical_records.edit "],
    )

    record = delegation_registry.get(delegation_id)
    assert record["permissions"] == ["medical_records.edit"]
    assert ensure_utc(record["start_date"]) == utc(2025, 10, 1)
    assert record["team_id"] == "team_1"
    assert record["is_active"] is True
    assert record["approved_by"] is None
    assert record["version"] == 1


def test_explicit_notifications_override_policy(delegation_handlers, delegation_registry) -> None:
    delegation_id = _create(
        delegation_handlers,
        delegation_registry,
        notifications={"start_notification": False, "daily_reminder": True},
    )
    prefs = NotificationPreferences.model_validate(
        delegation_registry.get(delegation_id)["notifications"]
    )
    assert prefs == NotificationPreferences(
        start_notification=False, end_notification=True, daily_reminder=True
    )


def test_blank_team_id_means_no_team(delegation_handlers, delegation_registry) -> None:
    delegation_id = _create(delegation_handlers, delegation_registry, team_id="")
    assert delegation_registry.get(delegation_id)["team_id"] is None


def test_approve_sets_approver_as_actor(delegation_handlers, delegation_registry) -> None:
    delegation_id = _create(delegation_handlers, delegation_registry)

    events = delegation_handlers.handle_approve_delegation(
        ApproveDelegation(delegation_id=delegation_id, approver_id="admin"),
        generate_id(),
        delegation_registry,
    )

    assert events[0].actor_id == "admin"
    assert events[0].version == 2
    delegation_registry.apply_event(events[0])
    assert delegation_registry.get(delegation_id)["approved_by"] == "admin"


def test_replayed_duplicate_approval_keeps_first(delegation_handlers, delegation_registry, test_time) -> None:
    delegation_id = _create(delegation_handlers, delegation_registry)
    command = ApproveDelegation(delegation_id=delegation_id, approver_id="admin")
    first = delegation_handlers.handle_approve_delegation(command, generate_id(), delegation_registry)

    # A second approval computed against the same stale state
    test_time.advance_days(1)
    second = delegation_handlers.handle_approve_delegation(
        ApproveDelegation(delegation_id=delegation_id, approver_id="dr_grey"),
        generate_id(),
        delegation_registry,
    )

    delegation_registry.apply_event(first[0])
    delegation_registry.apply_event(second[0])
    record = delegation_registry.get(delegation_id)
    assert record["approved_by"] == "admin"
    assert record["approved_at"].startswith("2025-10-01")


def test_revoke_without_reason(delegation_handlers, delegation_registry) -> None:
    delegation_id = _create(delegation_handlers, delegation_registry)

    events = delegation_handlers.handle_revoke_delegation(
        RevokeDelegation(delegation_id=delegation_id), generate_id(), None, delegation_registry
    )
    delegation_registry.apply_event(events[0])

    record = delegation_registry.get(delegation_id)
    assert record["is_active"] is False
    assert record["revoked_by"] is None
    assert record["revocation_reason"] is None
    assert delegation_handlers.handle_revoke_delegation(
        RevokeDelegation(delegation_id=delegation_id), generate_id(), None, delegation_registry
    ) == []


def test_cascade_only_touches_active_team_delegations(delegation_handlers, delegation_registry) -> None:
    in_team = _create(delegation_handlers, delegation_registry, team_id="team_1")
    revoked = _create(delegation_handlers, delegation_registry, team_id="team_1")
    outside = _create(delegation_handlers, delegation_registry)
    for event in delegation_handlers.handle_revoke_delegation(
        RevokeDelegation(delegation_id=revoked), generate_id(), "dr_house", delegation_registry
    ):
        delegation_registry.apply_event(event)

    command_id = generate_id()
    events = delegation_handlers.handle_cascade_deactivate_by_team(
        "team_1", command_id, "admin", delegation_registry, reason="Team merged"
    )

    assert [e.stream_id for e in events] == [in_team]
    assert events[0].event_type == "DelegationDeactivated"
    assert events[0].command_id == command_id
    assert events[0].payload["reason"] == "Team merged"
    assert delegation_registry.get(outside)["is_active"] is True


def test_registry_status_queries(delegation_handlers, delegation_registry) -> None:
    approved = _create(delegation_handlers, delegation_registry)
    waiting = _create(delegation_handlers, delegation_registry, start_date="2025-11-01", end_date="2025-11-02")
    for event in delegation_handlers.handle_approve_delegation(
        ApproveDelegation(delegation_id=approved, approver_id="admin"),
        generate_id(),
        delegation_registry,
    ):
        delegation_registry.apply_event(event)

    now = utc(2025, 10, 2)
    assert [d["delegation_id"] for d in delegation_registry.list_by_status("active", now)] == [approved]
    assert [
        d["delegation_id"]
        for d in delegation_registry.list_by_status(DelegationStatus.PENDING_APPROVAL, now)
    ] == [waiting]
    assert delegation_registry.list_by_status("expired", now) == []

    with pytest.raises(ValueError):
        delegation_registry.list_by_status("paused", now)


def test_unknown_events_are_ignored(delegation_registry) -> None:
    delegation_registry.apply_event(
        make_event("delegation_9", "DelegationApproved", {"delegation_id": "delegation_9"})
    )
    assert delegation_registry.list_all() == []
