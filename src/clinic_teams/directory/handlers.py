"""
Directory Handlers - Command→Event transformation for users and teams

Handlers load state from the projections, enforce the invariants and return
the events to append. They never write; the facade appends the events and
applies them to the projections. An empty list means "nothing to do".
"""

from clinic_teams.directory.commands import (
    CreateTeam,
    DeleteTeam,
    DeleteUser,
    RegisterUser,
    UpdateTeam,
    UpdateUser,
)
from clinic_teams.directory.events import (
    TeamCreated,
    TeamDeleted,
    TeamUpdated,
    UserDeleted,
    UserRegistered,
    UserUpdated,
)
from clinic_teams.directory.invariants import (
    normalize_members,
    normalize_schedule,
    validate_known_permissions,
    validate_known_role,
    validate_leader,
    validate_unique_team_name,
)
from clinic_teams.directory.projections import TeamRegistry, UserDirectory
from clinic_teams.kernel.errors import TeamNotFound, UserNotFoundError, ValidationError
from clinic_teams.kernel.events import Event, create_event
from clinic_teams.kernel.ids import IdFactory, default_id_factory, generate_id
from clinic_teams.kernel.policy import ClinicPolicy
from clinic_teams.kernel.time import TimeProvider
from clinic_teams.permissions.catalog import PermissionCatalog


class DirectoryCommandHandlers:
    """
    Command handlers for users and teams

    Handlers convert commands into events, enforcing invariants.
    They depend on projections to get current state.
    """

    def __init__(
        self,
        time_provider: TimeProvider,
        policy: ClinicPolicy,
        catalog: PermissionCatalog,
        id_factory: IdFactory = default_id_factory,
    ) -> None:
        """
        Initialize handlers with dependencies

        Args:
            time_provider: For timestamps (injectable for testing)
            policy: Schedule template and other tunables
            catalog: Known roles and permission identifiers
            id_factory: Record id generation
        """
        self.time_provider = time_provider
        self.policy = policy
        self.catalog = catalog
        self.id_factory = id_factory

    # Users

    def handle_register_user(
        self,
        command: RegisterUser,
        command_id: str,
        actor_id: str | None,
        users: UserDirectory,
    ) -> list[Event]:
        """
        Handle RegisterUser command

        Raises:
            ValidationError: Unknown role or permission, or duplicate user id
        """
        validate_known_role(command.role, self.catalog)
        validate_known_permissions(command.permissions, self.catalog)

        user_id = command.user_id or self.id_factory.generate("user")
        if users.get(user_id) is not None:
            raise ValidationError(f"user_id: user {user_id} already exists", field="user_id")

        now = self.time_provider.now()
        payload = UserRegistered(
            user_id=user_id,
            role=command.role,
            department=command.department,
            display_name=command.display_name,
            permissions=command.permissions,
            is_active=command.is_active,
            registered_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                stream_id=user_id,
                stream_type="user",
                event_type="UserRegistered",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=payload,
                version=1,
            )
        ]

    def handle_update_user(
        self,
        user_id: str,
        command: UpdateUser,
        command_id: str,
        actor_id: str | None,
        users: UserDirectory,
    ) -> list[Event]:
        """
        Handle UpdateUser command

        Raises:
            UserNotFoundError: Unknown or deleted user
            ValidationError: Unknown role or permission
        """
        user = users.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        if user["is_deleted"]:
            raise UserNotFoundError(user_id, "is deleted")

        changes = command.changes()
        if "role" in changes:
            validate_known_role(changes["role"], self.catalog)
        if "permissions" in changes:
            validate_known_permissions(changes["permissions"], self.catalog)
        if not changes:
            return []

        now = self.time_provider.now()
        payload = UserUpdated(user_id=user_id, changes=changes, updated_at=now).model_dump(
            mode="json"
        )
        return [
            create_event(
                event_id=generate_id(),
                stream_id=user_id,
                stream_type="user",
                event_type="UserUpdated",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=payload,
                version=user["version"] + 1,
            )
        ]

    def handle_delete_user(
        self,
        command: DeleteUser,
        command_id: str,
        actor_id: str | None,
        users: UserDirectory,
    ) -> list[Event]:
        """
        Handle DeleteUser command (soft delete, repeat is a no-op)

        Raises:
            UserNotFoundError: Unknown user
        """
        user = users.get(command.user_id)
        if user is None:
            raise UserNotFoundError(command.user_id)
        if user["is_deleted"]:
            return []

        now = self.time_provider.now()
        payload = UserDeleted(user_id=command.user_id, deleted_at=now).model_dump(mode="json")
        return [
            create_event(
                event_id=generate_id(),
                stream_id=command.user_id,
                stream_type="user",
                event_type="UserDeleted",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=payload,
                version=user["version"] + 1,
            )
        ]

    # Teams

    def handle_create_team(
        self,
        command: CreateTeam,
        command_id: str,
        actor_id: str | None,
        users: UserDirectory,
        teams: TeamRegistry,
    ) -> list[Event]:
        """
        Handle CreateTeam command

        Validates:
        - Leader resolves to a non-deleted user
        - Name unique among non-deleted teams (case-insensitive)
        - Team permissions known to the catalog

        Normalises members (leader included) and the schedule (policy
        template when absent).

        Raises:
            ValidationError: Leader or permission does not resolve
            DuplicateNameError: Name already taken
        """
        validate_leader(command.leader_id, users.users)
        validate_unique_team_name(command.name, teams.list_all())
        validate_known_permissions(command.permissions, self.catalog)

        now = self.time_provider.now()
        team_id = self.id_factory.generate("team")

        payload = TeamCreated(
            team_id=team_id,
            name=command.name,
            description=command.description,
            department=command.department,
            leader_id=command.leader_id,
            members=normalize_members(command.leader_id, command.members),
            specialties=command.specialties,
            schedule=normalize_schedule(command.schedule, self.policy),
            permissions=command.permissions,
            is_active=command.is_active,
            created_at=now,
            created_by=actor_id,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                stream_id=team_id,
                stream_type="team",
                event_type="TeamCreated",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=payload,
                version=1,
            )
        ]

    def handle_update_team(
        self,
        team_id: str,
        command: UpdateTeam,
        command_id: str,
        actor_id: str | None,
        users: UserDirectory,
        teams: TeamRegistry,
    ) -> list[Event]:
        """
        Handle UpdateTeam command

        The patch is merged over the stored record; the leader/members rule
        is re-applied to the merged result, so a patch that only changes the
        leader still leaves the leader among the members.

        Raises:
            TeamNotFound: Unknown or deleted team
            DuplicateNameError: Renamed onto another team's name
            ValidationError: New leader or permission does not resolve
        """
        team = teams.get(team_id)
        if team is None or team["is_deleted"]:
            raise TeamNotFound(team_id)

        changes = command.changes()
        if "name" in changes:
            validate_unique_team_name(changes["name"], teams.list_all(), exclude_team_id=team_id)
        if "leader_id" in changes:
            validate_leader(changes["leader_id"], users.users)
        if "permissions" in changes:
            validate_known_permissions(changes["permissions"], self.catalog)
        if "schedule" in changes:
            changes["schedule"] = normalize_schedule(changes["schedule"], self.policy)
        if "leader_id" in changes or "members" in changes:
            changes["members"] = normalize_members(
                changes.get("leader_id", team["leader_id"]),
                changes.get("members", team["members"]),
            )
        if not changes:
            return []

        now = self.time_provider.now()
        payload = TeamUpdated(
            team_id=team_id,
            changes=changes,
            updated_at=now,
            updated_by=actor_id,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                stream_id=team_id,
                stream_type="team",
                event_type="TeamUpdated",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=payload,
                version=team["version"] + 1,
            )
        ]

    def handle_delete_team(
        self,
        command: DeleteTeam,
        command_id: str,
        actor_id: str | None,
        teams: TeamRegistry,
    ) -> list[Event]:
        """
        Handle DeleteTeam command

        Only the TeamDeleted event is produced here; the caller appends the
        cascading delegation deactivations in the same batch.

        Raises:
            TeamNotFound: Unknown team
        """
        team = teams.get(command.team_id)
        if team is None:
            raise TeamNotFound(command.team_id)
        if team["is_deleted"]:
            return []

        now = self.time_provider.now()
        payload = TeamDeleted(
            team_id=command.team_id,
            deleted_at=now,
            deleted_by=actor_id,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                stream_id=command.team_id,
                stream_type="team",
                event_type="TeamDeleted",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=payload,
                version=team["version"] + 1,
            )
        ]
