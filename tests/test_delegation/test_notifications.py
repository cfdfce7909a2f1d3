"""
Tests for notification intents

Only active delegations produce intents; delivery is someone else's job.
"""

from datetime import date

from clinic_teams.clinic import ClinicTeams
from clinic_teams.delegation.models import Delegation
from clinic_teams.delegation.notifications import due_notifications
from tests.helpers import delegation_data, utc


def _delegation(**overrides) -> Delegation:
    data = {
        "delegation_id": "delegation_1",
        "from_user_id": "dr_house",
        "to_user_id": "nurse_joy",
        "permissions": ["medical_records.edit"],
        "start_date": utc(2025, 10, 1, 8),
        "end_date": utc(2025, 10, 15, 18),
        "approved_by": "admin",
        "created_at": utc(2025, 9, 30),
        "notifications": {"start_notification": True, "end_notification": True, "daily_reminder": True},
    }
    data.update(overrides)
    return Delegation.model_validate(data)


def test_start_day_intents() -> None:
    intents = due_notifications([_delegation()], utc(2025, 10, 1, 9))

    assert [i.kind for i in intents] == ["start", "daily_reminder"]
    assert intents[0].due_on == date(2025, 10, 1)
    assert intents[0].to_user_id == "nurse_joy"
    assert intents[0].permissions == ["medical_records.edit"]


def test_end_day_and_middle_days() -> None:
    assert [i.kind for i in due_notifications([_delegation()], utc(2025, 10, 15, 12))] == [
        "end",
        "daily_reminder",
    ]
    assert [i.kind for i in due_notifications([_delegation()], utc(2025, 10, 7))] == ["daily_reminder"]


def test_flags_switch_intents_off() -> None:
    quiet = _delegation(notifications={"start_notification": False, "end_notification": True, "daily_reminder": False})
    assert due_notifications([quiet], utc(2025, 10, 1, 9)) == []


def test_non_active_delegations_produce_nothing() -> None:
    # Start day, but before the start hour: still pending
    assert due_notifications([_delegation()], utc(2025, 10, 1, 7)) == []
    assert due_notifications([_delegation(approved_by=None)], utc(2025, 10, 5)) == []
    assert due_notifications([_delegation(is_active=False)], utc(2025, 10, 5)) == []
    assert due_notifications([_delegation()], utc(2025, 10, 16)) == []


def test_facade_uses_policy_defaults(staffed_clinic: ClinicTeams) -> None:
    delegation_id = staffed_clinic.create_delegation(delegation_data()).delegation.delegation_id
    assert staffed_clinic.due_notifications() == []

    staffed_clinic.approve_delegation(delegation_id, "admin")

    intents = staffed_clinic.due_notifications()
    assert [(i.kind, i.delegation_id) for i in intents] == [("start", delegation_id)]
    assert staffed_clinic.due_notifications(utc(2025, 10, 15))[0].kind == "end"
