"""
Directory Models - users and teams

Typed views over the records held by the directory projections.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class User(BaseModel):
    """
    A clinic staff member

    Deleted users are retained for audit and history but excluded from all
    "available" queries.

    Attributes:
        user_id: Unique identifier
        role: Role id understood by the PermissionCatalog
        department: Free-text department label
        permissions: Custom per-user grants on top of the role
        is_active: Account enabled
        is_deleted: Soft-deleted
    """

    user_id: str
    role: str
    department: str = ""
    display_name: str = ""
    permissions: list[str] = Field(default_factory=list)
    is_active: bool = True
    is_deleted: bool = False
    created_at: datetime | None = None


class TimeSlot(BaseModel):
    """Opening hours for one weekday ("HH:MM" strings, overnight allowed)"""

    start: str = Field(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    end: str = Field(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")


class Team(BaseModel):
    """
    A care team

    Invariants (enforced by the handlers, never assumed of callers):
    - leader_id is always in members
    - name is unique, case-insensitively, among non-deleted teams

    Attributes:
        team_id: Unique identifier
        name: Display name
        leader_id: Team leader (always a member)
        members: Member user ids, leader included
        specialties: Free-text specialty labels
        schedule: weekday -> {"start", "end"} or None when closed
        permissions: Team-level grants added to every member
    """

    team_id: str
    name: str
    description: str = ""
    department: str = ""
    leader_id: str
    members: list[str] = Field(default_factory=list)
    specialties: list[str] = Field(default_factory=list)
    schedule: dict[str, TimeSlot | None] = Field(default_factory=dict)
    permissions: list[str] = Field(default_factory=list)
    is_active: bool = True
    is_deleted: bool = False
    created_at: datetime
    created_by: str | None = None
    updated_at: datetime
    updated_by: str | None = None
    deleted_at: datetime | None = None
    deleted_by: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "team_id": "team_1",
                    "name": "General Medicine",
                    "description": "Doctors and nurses of the general practice",
                    "department": "General Medicine",
                    "leader_id": "user_3",
                    "members": ["user_3", "user_4"],
                    "specialties": ["General Medicine", "General Care"],
                    "schedule": {"monday": {"start": "08:00", "end": "18:00"}, "sunday": None},
                    "permissions": ["patients.view", "appointments.view"],
                    "is_active": True,
                    "is_deleted": False,
                    "created_at": "2025-01-15T00:00:00Z",
                    "created_by": "user_2",
                    "updated_at": "2025-09-20T00:00:00Z",
                }
            ]
        }
    }
