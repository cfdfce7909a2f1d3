"""
Tests for derived delegation status

Status is never stored: it is a function of the stored facts and "now".
The window is closed at both ends.
"""

import pytest

from clinic_teams.delegation.models import (
    Delegation,
    DelegationOutcome,
    DelegationStatus,
    derive_status,
)
from tests.helpers import utc

START = utc(2025, 10, 1)
END = utc(2025, 10, 15)


def _status(now, *, is_active=True, approved_by="admin"):
    return derive_status(
        is_active=is_active, approved_by=approved_by, start_date=START, end_date=END, now=now
    )


@pytest.mark.parametrize(
    ("now", "expected"),
    [
        (utc(2025, 9, 30, 23, 59), DelegationStatus.PENDING),
        (START, DelegationStatus.ACTIVE),
        (utc(2025, 10, 5), DelegationStatus.ACTIVE),
        (END, DelegationStatus.ACTIVE),
        (utc(2025, 10, 15, 0, 1), DelegationStatus.EXPIRED),
    ],
)
def test_approved_delegation_follows_the_clock(now, expected) -> None:
    assert _status(now) is expected


def test_unapproved_is_pending_approval_whatever_the_time() -> None:
    for now in (utc(2025, 9, 1), utc(2025, 10, 5), utc(2025, 12, 1)):
        assert _status(now, approved_by=None) is DelegationStatus.PENDING_APPROVAL


def test_inactive_wins_over_everything() -> None:
    assert _status(utc(2025, 10, 5), is_active=False) is DelegationStatus.INACTIVE
    assert _status(utc(2025, 10, 5), is_active=False, approved_by=None) is DelegationStatus.INACTIVE


def test_naive_now_is_utc() -> None:
    from datetime import datetime

    assert _status(datetime(2025, 10, 15, 0, 0)) is DelegationStatus.ACTIVE


def test_status_values_are_wire_strings() -> None:
    assert [s.value for s in DelegationStatus] == [
        "pending_approval",
        "pending",
        "active",
        "expired",
        "inactive",
    ]


def _delegation(**overrides) -> Delegation:
    data = {
        "delegation_id": "delegation_1",
        "from_user_id": "dr_house",
        "to_user_id": "nurse_joy",
        "permissions": ["medical_records.edit"],
        "start_date": "2025-10-01T00:00:00",
        "end_date": "2025-10-15T00:00:00+00:00",
        "created_at": "2025-09-30T12:00:00+00:00",
    }
    data.update(overrides)
    return Delegation.model_validate(data)


def test_delegation_model_normalises_dates_to_utc() -> None:
    delegation = _delegation()
    assert delegation.start_date == START
    assert delegation.start_date.tzinfo is not None
    assert delegation.notifications.start_notification is True
    assert delegation.notifications.daily_reminder is False


def test_delegation_model_status_and_window() -> None:
    delegation = _delegation(approved_by="admin")

    assert delegation.status(utc(2025, 10, 5)) is DelegationStatus.ACTIVE
    assert delegation.status(END) is DelegationStatus.ACTIVE
    assert delegation.status(utc(2025, 10, 16)) is DelegationStatus.EXPIRED

    pending = _delegation()
    assert pending.status(utc(2025, 10, 5)) is DelegationStatus.PENDING_APPROVAL


def test_outcome_conflict_flag() -> None:
    assert not DelegationOutcome(delegation=_delegation()).has_conflict
    assert DelegationOutcome(delegation=_delegation(), conflict=_delegation()).has_conflict
