"""
Test Helper Functions - Builders

Form-like dicts accepted by the facade, with sensible defaults so each test
only spells out the fields it is about.
"""

from datetime import datetime, timezone
from typing import Any

from clinic_teams.kernel.events import Event, create_event
from clinic_teams.kernel.ids import generate_id


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def team_data(
    name: str = "Cardiology",
    leader_id: str = "dr_house",
    members: list[str] | None = None,
    **overrides: Any,
) -> dict[str, Any]:
    """
    Builder for create_team input

    Example:
        >>> team_data("Night shift", "nurse_joy", ["dr_grey"], department="ER")
    """
    data: dict[str, Any] = {
        "name": name,
        "leader_id": leader_id,
        "members": members if members is not None else [],
        "department": "Cardiology",
        "description": f"{name} team",
    }
    data.update(overrides)
    return data


def delegation_data(
    from_user_id: str = "dr_house",
    to_user_id: str = "nurse_joy",
    permissions: list[str] | None = None,
    start: datetime | str = "2025-10-01",
    end: datetime | str = "2025-10-15",
    **overrides: Any,
) -> dict[str, Any]:
    """
    Builder for create_delegation input

    Defaults: a doctor hands medical_records.edit to a nurse for the first
    half of October 2025.
    """
    data: dict[str, Any] = {
        "from_user_id": from_user_id,
        "to_user_id": to_user_id,
        "permissions": permissions if permissions is not None else ["medical_records.edit"],
        "start_date": start,
        "end_date": end,
        "reason": "Annual leave",
    }
    data.update(overrides)
    return data


def make_event(
    stream_id: str,
    event_type: str,
    payload: dict[str, Any],
    version: int = 1,
    stream_type: str = "test",
    command_id: str | None = None,
) -> Event:
    """Raw event for event store tests"""
    return create_event(
        event_id=generate_id(),
        stream_id=stream_id,
        stream_type=stream_type,
        event_type=event_type,
        occurred_at=utc(2025, 10, 1),
        command_id=command_id or generate_id(),
        actor_id="tester",
        payload=payload,
        version=version,
    )
