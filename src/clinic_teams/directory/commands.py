"""
Directory Commands - intentions to change users and teams

Commands are validated by pydantic for shape; cross-record rules (name
uniqueness, leader resolution) are checked by the handlers.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from clinic_teams.directory.models import TimeSlot


def _dedupe(values: list[str]) -> list[str]:
    """Drop blanks and duplicates, keep first-seen order"""
    seen: dict[str, None] = {}
    for value in values:
        value = value.strip()
        if value:
            seen.setdefault(value, None)
    return list(seen)


# User Commands


class RegisterUser(BaseModel):
    """Add a staff member to the directory"""

    user_id: str | None = Field(default=None, min_length=1)
    role: str = Field(..., min_length=1)
    department: str = ""
    display_name: str = ""
    permissions: list[str] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("permissions")
    @classmethod
    def _normalize(cls, value: list[str]) -> list[str]:
        return _dedupe(value)


class UpdateUser(BaseModel):
    """Change role, department, custom permissions or activation of a user"""

    model_config = {"extra": "forbid"}

    role: str | None = Field(default=None, min_length=1)
    department: str | None = None
    display_name: str | None = None
    permissions: list[str] | None = None
    is_active: bool | None = None

    @field_validator("permissions")
    @classmethod
    def _normalize(cls, value: list[str] | None) -> list[str] | None:
        return _dedupe(value) if value is not None else None

    def changes(self) -> dict[str, Any]:
        """Fields explicitly supplied by the caller"""
        supplied = self.model_dump(exclude_unset=True)
        return {key: value for key, value in supplied.items() if value is not None}


class DeleteUser(BaseModel):
    """Soft-delete a user (retained for history)"""

    user_id: str = Field(..., min_length=1)


# Team Commands


class CreateTeam(BaseModel):
    """
    Create a team

    The leader is added to members by the handler if absent; a missing
    schedule is replaced by the policy's default template.
    """

    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    department: str = ""
    leader_id: str = Field(..., min_length=1)
    members: list[str] = Field(default_factory=list)
    specialties: list[str] = Field(default_factory=list)
    schedule: dict[str, TimeSlot | None] | None = None
    permissions: list[str] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value

    @field_validator("members", "specialties", "permissions")
    @classmethod
    def _normalize_lists(cls, value: list[str]) -> list[str]:
        return _dedupe(value)


class UpdateTeam(BaseModel):
    """
    Patch a team

    Only the fields present in the patch change. id, created_at, created_by
    and the other read-only record fields are stripped before validation.
    """

    model_config = {"extra": "forbid"}

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    department: str | None = None
    leader_id: str | None = Field(default=None, min_length=1)
    members: list[str] | None = None
    specialties: list[str] | None = None
    schedule: dict[str, TimeSlot | None] | None = None
    permissions: list[str] | None = None
    is_active: bool | None = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value

    @field_validator("members", "specialties", "permissions")
    @classmethod
    def _normalize_lists(cls, value: list[str] | None) -> list[str] | None:
        return _dedupe(value) if value is not None else None

    def changes(self) -> dict[str, Any]:
        """Fields explicitly supplied by the caller (None means unchanged), JSON-ready"""
        supplied = self.model_dump(mode="json", exclude_unset=True)
        return {key: value for key, value in supplied.items() if value is not None}


class DeleteTeam(BaseModel):
    """Soft-delete a team and deactivate its delegations"""

    team_id: str = Field(..., min_length=1)


PROTECTED_TEAM_FIELDS = frozenset({"id", "team_id", "created_at", "created_by"})

# Every stored field a patch cannot change (a fetched record may be sent back as a patch)
READ_ONLY_TEAM_FIELDS = PROTECTED_TEAM_FIELDS | {
    "updated_at",
    "updated_by",
    "is_deleted",
    "deleted_at",
    "deleted_by",
    "version",
}
