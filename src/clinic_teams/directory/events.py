"""
Directory Events - facts about users and teams

Payloads are stored as JSON in the event log; datetimes are serialised by
pydantic (model_dump(mode="json")) before append.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel


# User Events


class UserRegistered(BaseModel):
    """A staff member was added to the directory"""

    user_id: str
    role: str
    department: str
    display_name: str
    permissions: list[str]
    is_active: bool
    registered_at: datetime


class UserUpdated(BaseModel):
    """Some fields of a user changed (only the changed fields are carried)"""

    user_id: str
    changes: dict[str, Any]
    updated_at: datetime


class UserDeleted(BaseModel):
    """A user was soft-deleted"""

    user_id: str
    deleted_at: datetime


# Team Events


class TeamCreated(BaseModel):
    """A team was created; members already include the leader"""

    team_id: str
    name: str
    description: str
    department: str
    leader_id: str
    members: list[str]
    specialties: list[str]
    schedule: dict[str, Any]
    permissions: list[str]
    is_active: bool
    created_at: datetime
    created_by: str | None


class TeamUpdated(BaseModel):
    """
    A team was patched

    changes holds the merged values after normalisation, so replaying the
    event never has to re-apply the leader/members rule.
    """

    team_id: str
    changes: dict[str, Any]
    updated_at: datetime
    updated_by: str | None


class TeamDeleted(BaseModel):
    """A team was soft-deleted (its delegations are deactivated in the same batch)"""

    team_id: str
    deleted_at: datetime
    deleted_by: str | None
