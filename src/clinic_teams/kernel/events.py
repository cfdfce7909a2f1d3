"""
Base Event model

Every change to users, teams and delegations is stored as an immutable event.
The event log is the source of truth; projections are rebuilt from it.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class Event(BaseModel):
    """
    Base event class - all domain events are stored in this envelope

    Events are:
    - Immutable (never modified after creation)
    - Append-only (never deleted, soft deletes are events too)
    - Versioned per stream (optimistic locking)
    - Keyed by command_id (idempotency)
    """

    event_id: str = Field(
        ...,
        description="Unique event identifier (time-ordered)",
    )

    stream_id: str = Field(
        ...,
        description="Record identifier - a user, team or delegation id",
    )

    stream_type: str = Field(
        ...,
        description="Type of record: 'user', 'team' or 'delegation'",
    )

    event_type: str = Field(
        ...,
        description="Specific event type: 'TeamCreated', 'DelegationApproved', etc.",
    )

    occurred_at: datetime = Field(
        ...,
        description="UTC timestamp when event occurred",
    )

    actor_id: str | None = Field(
        default=None,
        description="User who triggered this event (None for system events)",
    )

    command_id: str = Field(
        ...,
        description="ID of the operation that caused this event (idempotency key)",
    )

    payload: dict = Field(
        default_factory=dict,
        description="Event-specific data (must be JSON-serializable)",
    )

    version: int = Field(
        ...,
        description="Stream version after this event (monotonically increasing)",
        ge=1,
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "event_id": "01908e9a-3b87-7000-8000-123456789abc",
                    "stream_id": "delegation_01908e9a-3b87-7000-8000-abcdefabcdef",
                    "stream_type": "delegation",
                    "event_type": "DelegationApproved",
                    "occurred_at": "2025-09-26T10:30:00Z",
                    "actor_id": "user_2",
                    "command_id": "cmd-123",
                    "payload": {"approved_by": "user_2"},
                    "version": 2,
                }
            ]
        },
    }


def create_event(
    *,
    event_id: str,
    stream_id: str,
    stream_type: str,
    event_type: str,
    occurred_at: datetime,
    command_id: str,
    version: int,
    actor_id: str | None = None,
    payload: dict | None = None,
) -> Event:
    """Factory function for creating events with named parameters"""
    return Event(
        event_id=event_id,
        stream_id=stream_id,
        stream_type=stream_type,
        event_type=event_type,
        occurred_at=occurred_at,
        actor_id=actor_id,
        command_id=command_id,
        payload=payload or {},
        version=version,
    )
