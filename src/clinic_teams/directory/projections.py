"""
Directory Projections - current users and teams, rebuilt from events

Records are plain dicts keyed by id, holding the JSON payload values plus
the stream version used for optimistic locking on the next write.
"""

from typing import Any

from clinic_teams.directory.models import Team, User
from clinic_teams.kernel.events import Event


class UserDirectory:
    """
    Projection: every user ever registered (deleted ones included)

    Deleted users stay resolvable so history and exports keep their names.
    """

    def __init__(self) -> None:
        self.users: dict[str, dict[str, Any]] = {}

    def apply_event(self, event: Event) -> None:
        """Apply an event to update projection state"""
        if event.event_type == "UserRegistered":
            user_id = event.payload["user_id"]
            self.users[user_id] = {
                "user_id": user_id,
                "role": event.payload["role"],
                "department": event.payload.get("department", ""),
                "display_name": event.payload.get("display_name", ""),
                "permissions": list(event.payload.get("permissions", [])),
                "is_active": event.payload.get("is_active", True),
                "is_deleted": False,
                "created_at": event.payload["registered_at"],
                "version": event.version,
            }

        elif event.event_type == "UserUpdated":
            user = self.users.get(event.payload["user_id"])
            if user is not None:
                user.update(event.payload["changes"])
                user["version"] = event.version

        elif event.event_type == "UserDeleted":
            user = self.users.get(event.payload["user_id"])
            if user is not None:
                user["is_deleted"] = True
                user["is_active"] = False
                user["deleted_at"] = event.payload["deleted_at"]
                user["version"] = event.version

    def get(self, user_id: str) -> dict[str, Any] | None:
        """Get user record by ID (deleted users included)"""
        return self.users.get(user_id)

    def get_user(self, user_id: str) -> User | None:
        record = self.users.get(user_id)
        return User.model_validate(record) if record else None

    def list_available(self) -> list[dict[str, Any]]:
        """Active, non-deleted users"""
        return [
            u for u in self.users.values() if u["is_active"] and not u["is_deleted"]
        ]

    def list_all(self, include_deleted: bool = False) -> list[dict[str, Any]]:
        return [u for u in self.users.values() if include_deleted or not u["is_deleted"]]


class TeamRegistry:
    """
    Projection: Registry of all teams

    Soft-deleted teams are kept so their names can be reused while their
    history still resolves.
    """

    def __init__(self) -> None:
        self.teams: dict[str, dict[str, Any]] = {}

    def apply_event(self, event: Event) -> None:
        """Apply an event to update projection state"""
        if event.event_type == "TeamCreated":
            payload = event.payload
            self.teams[payload["team_id"]] = {
                "team_id": payload["team_id"],
                "name": payload["name"],
                "description": payload.get("description", ""),
                "department": payload.get("department", ""),
                "leader_id": payload["leader_id"],
                "members": list(payload["members"]),
                "specialties": list(payload.get("specialties", [])),
                "schedule": payload.get("schedule", {}),
                "permissions": list(payload.get("permissions", [])),
                "is_active": payload.get("is_active", True),
                "is_deleted": False,
                "created_at": payload["created_at"],
                "created_by": payload.get("created_by"),
                "updated_at": payload["created_at"],
                "updated_by": payload.get("created_by"),
                "deleted_at": None,
                "deleted_by": None,
                "version": event.version,
            }

        elif event.event_type == "TeamUpdated":
            team = self.teams.get(event.payload["team_id"])
            if team is not None:
                team.update(event.payload["changes"])
                team["updated_at"] = event.payload["updated_at"]
                team["updated_by"] = event.payload.get("updated_by")
                team["version"] = event.version

        elif event.event_type == "TeamDeleted":
            team = self.teams.get(event.payload["team_id"])
            if team is not None:
                team["is_deleted"] = True
                team["is_active"] = False
                team["deleted_at"] = event.payload["deleted_at"]
                team["deleted_by"] = event.payload.get("deleted_by")
                team["updated_at"] = event.payload["deleted_at"]
                team["updated_by"] = event.payload.get("deleted_by")
                team["version"] = event.version

    def get(self, team_id: str) -> dict[str, Any] | None:
        """Get team record by ID (deleted teams included)"""
        return self.teams.get(team_id)

    def get_team(self, team_id: str) -> Team | None:
        record = self.teams.get(team_id)
        return Team.model_validate(record) if record else None

    def list_all(self, include_deleted: bool = False) -> list[dict[str, Any]]:
        """Teams in creation order"""
        return [t for t in self.teams.values() if include_deleted or not t["is_deleted"]]

    def list_active(self) -> list[dict[str, Any]]:
        """Active, non-deleted teams"""
        return [t for t in self.teams.values() if t["is_active"] and not t["is_deleted"]]

    def teams_for_user(self, user_id: str) -> list[dict[str, Any]]:
        """Active, non-deleted teams the user leads or belongs to"""
        return [
            t
            for t in self.list_active()
            if t["leader_id"] == user_id or user_id in t["members"]
        ]

    def search(
        self,
        query: str | None = None,
        department: str | None = None,
        is_active: bool | None = None,
        leader_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Filter non-deleted teams

        Args:
            query: Case-insensitive match on name, description, department
                or any specialty
            department: Case-insensitive substring of the department
            is_active: Exact match on the active flag
            leader_id: Exact match on the leader
        """
        results = []
        needle = query.strip().casefold() if query else ""
        department_needle = department.strip().casefold() if department else ""

        for team in self.list_all():
            if needle:
                haystack = [team["name"], team["description"], team["department"]]
                haystack.extend(team["specialties"])
                if not any(needle in text.casefold() for text in haystack):
                    continue
            if department_needle and department_needle not in team["department"].casefold():
                continue
            if is_active is not None and team["is_active"] != is_active:
                continue
            if leader_id is not None and team["leader_id"] != leader_id:
                continue
            results.append(team)
        return results
