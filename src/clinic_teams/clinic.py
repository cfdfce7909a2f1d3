"""
ClinicTeams - Main façade class

The primary interface to the team and delegation engine. It hides the
event log, the projections and the command handlers behind plain method
calls that take form-like dicts and return typed records.

Example:
    >>> from clinic_teams import ClinicTeams
    >>> clinic = ClinicTeams("clinic.db")
    >>> doctor = clinic.register_user(role="doctor", department="Cardiology")
    >>> nurse = clinic.register_user(role="nurse", department="Cardiology")
    >>> team = clinic.create_team({"name": "Cardiology", "leader_id": doctor.user_id})
    >>> outcome = clinic.create_delegation({
    ...     "from_user_id": doctor.user_id,
    ...     "to_user_id": nurse.user_id,
    ...     "permissions": ["medical_records.edit"],
    ...     "start_date": "2025-10-01",
    ...     "end_date": "2025-10-15",
    ... })
    >>> clinic.approve_delegation(outcome.delegation.delegation_id, approver_id="admin")
    >>> clinic.has_permission(nurse.user_id, "medical_records.edit")
"""

import time
from datetime import datetime
from pathlib import Path
from typing import Any

from clinic_teams.delegation.commands import (
    ApproveDelegation,
    CreateDelegation,
    RevokeDelegation,
)
from clinic_teams.delegation.handlers import DelegationCommandHandlers
from clinic_teams.delegation.invariants import find_conflict
from clinic_teams.delegation.models import Delegation, DelegationOutcome, DelegationStatus
from clinic_teams.delegation.notifications import NotificationIntent, due_notifications
from clinic_teams.delegation.projections import DelegationRegistry, Direction, record_status
from clinic_teams.directory.commands import (
    READ_ONLY_TEAM_FIELDS,
    CreateTeam,
    DeleteTeam,
    DeleteUser,
    RegisterUser,
    UpdateTeam,
    UpdateUser,
)
from clinic_teams.directory.handlers import DirectoryCommandHandlers
from clinic_teams.directory.models import Team, User
from clinic_teams.directory.projections import TeamRegistry, UserDirectory
from clinic_teams.kernel.audit import AuditSink, StructlogAuditSink, attach_audit_sink
from clinic_teams.kernel.bus import EventBus
from clinic_teams.kernel.commands import build_command
from clinic_teams.kernel.errors import DelegationNotFound, TeamNotFound, UserNotFoundError
from clinic_teams.kernel.event_store import SQLiteEventStore
from clinic_teams.kernel.events import Event
from clinic_teams.kernel.ids import IdFactory, default_id_factory, generate_id
from clinic_teams.kernel.logging import LogOperation, get_logger
from clinic_teams.kernel.metrics import (
    delegation_conflicts_total,
    projection_rebuild_duration_seconds,
    track_operation,
    update_dashboard_gauges,
)
from clinic_teams.kernel.policy import ClinicPolicy
from clinic_teams.kernel.retry import retry_projection_rebuild
from clinic_teams.kernel.time import RealTimeProvider, TimeProvider, ensure_utc
from clinic_teams.permissions.catalog import PermissionCatalog, default_catalog
from clinic_teams.permissions.resolver import EffectivePermissionResolver
from clinic_teams.reporting.export import ExportFormat, export_delegations, export_teams
from clinic_teams.reporting.statistics import ClinicStatistics, StatisticsAggregator

logger = get_logger(__name__)


class ClinicTeams:
    """
    Clinic team and delegation façade

    Provides a unified API for:
    - User directory (register, update, soft delete)
    - Team management (leader/member normalisation, unique names, cascade delete)
    - Delegations (create with advisory conflicts, approve, revoke, derived status)
    - Effective permissions and authorization checks
    - Statistics and exports
    """

    def __init__(
        self,
        sqlite_path: str | Path,
        policy: ClinicPolicy | None = None,
        time_provider: TimeProvider | None = None,
        catalog: PermissionCatalog | None = None,
        audit_sink: AuditSink | None = None,
        id_factory: IdFactory | None = None,
    ) -> None:
        """
        Initialize the engine

        Args:
            sqlite_path: Path to SQLite database
            policy: Clinic policy (uses defaults if None)
            time_provider: Time provider (uses real time if None)
            catalog: Role/permission catalog (built-in clinic roles if None)
            audit_sink: Receives one record per appended event (structlog if None)
            id_factory: Record id generation (UUIDv7-style if None)
        """
        self.sqlite_path = Path(sqlite_path)
        self.policy = policy or ClinicPolicy()
        self.time_provider = time_provider or RealTimeProvider()
        self.catalog = catalog or default_catalog
        self.id_factory = id_factory or default_id_factory

        # Initialize infrastructure
        self.event_store = SQLiteEventStore(self.sqlite_path)
        self.event_bus = EventBus()
        self.audit_sink = audit_sink or StructlogAuditSink()
        attach_audit_sink(self.event_bus, self.audit_sink)

        self.directory_handlers = DirectoryCommandHandlers(
            self.time_provider, self.policy, self.catalog, self.id_factory
        )
        self.delegation_handlers = DelegationCommandHandlers(
            self.time_provider, self.policy, self.catalog, self.id_factory
        )

        # Initialize projections
        self.user_directory = UserDirectory()
        self.team_registry = TeamRegistry()
        self.delegation_registry = DelegationRegistry()

        self.resolver = EffectivePermissionResolver(
            self.catalog,
            self.user_directory,
            self.team_registry,
            self.delegation_registry,
            self.time_provider,
        )
        self.statistics_aggregator = StatisticsAggregator(
            self.team_registry, self.delegation_registry, self.policy
        )

        # Rebuild projections from event store
        self._rebuild_projections()

    @retry_projection_rebuild()
    def _rebuild_projections(self) -> None:
        """Rebuild all projections from event store"""
        start = time.perf_counter()
        self.user_directory.users.clear()
        self.team_registry.teams.clear()
        self.delegation_registry.delegations.clear()

        all_events = self.event_store.load_all_events()
        for event in all_events:
            self._apply(event)

        projection_rebuild_duration_seconds.observe(time.perf_counter() - start)
        logger.debug("Projections rebuilt", event_count=len(all_events))

    def refresh(self) -> None:
        """
        Reload state written by other processes

        Call after a StreamVersionConflict before retrying the operation.
        """
        self._rebuild_projections()

    def _apply(self, event: Event) -> None:
        if event.stream_type == "user":
            self.user_directory.apply_event(event)
        elif event.stream_type == "team":
            self.team_registry.apply_event(event)
        elif event.stream_type == "delegation":
            self.delegation_registry.apply_event(event)

    def _commit(
        self, events: list[Event], read_versions: dict[str, int] | None = None
    ) -> list[Event]:
        """
        Append a batch atomically, then update projections and notify the bus

        Each stream's expected version is the version its first event
        follows, so a concurrent write to any touched record fails the
        whole batch with StreamVersionConflict.

        Args:
            events: Events to append
            read_versions: Records the decision was based on but the batch
                does not write (stream_id -> version read); a concurrent
                write to any of them also fails the batch
        """
        if not events:
            return []

        expected_versions: dict[str, int] = dict(read_versions or {})
        for event in events:
            expected_versions.setdefault(event.stream_id, event.version - 1)

        stored = self.event_store.append_batch(events, expected_versions)
        for event in stored:
            self._apply(event)
        self.event_bus.publish_events(stored)
        return stored

    def _now(self, now: datetime | None) -> datetime:
        return ensure_utc(now) if now is not None else self.time_provider.now()

    def _delegation_read_versions(self, created: Event) -> dict[str, int]:
        """Versions of both parties and the team a new delegation was validated against"""
        payload = created.payload
        versions = {
            user_id: self.user_directory.users[user_id]["version"]
            for user_id in (payload["from_user_id"], payload["to_user_id"])
        }
        team_id = payload.get("team_id")
        if team_id:
            versions[team_id] = self.team_registry.teams[team_id]["version"]
        return versions

    # User operations

    @track_operation("register_user")
    def register_user(
        self,
        role: str,
        department: str = "",
        permissions: list[str] | None = None,
        user_id: str | None = None,
        display_name: str = "",
        is_active: bool = True,
        actor_id: str | None = None,
    ) -> User:
        """
        Add a staff member

        Args:
            role: Role id known to the catalog
            department: Department label
            permissions: Custom grants on top of the role
            user_id: Explicit id (generated if None)
            actor_id: Who registers the user

        Returns:
            The registered User
        """
        with LogOperation(logger, "register_user", role=role, actor_id=actor_id):
            command = build_command(
                RegisterUser,
                {
                    "user_id": user_id,
                    "role": role,
                    "department": department,
                    "display_name": display_name,
                    "permissions": permissions or [],
                    "is_active": is_active,
                },
            )
            events = self.directory_handlers.handle_register_user(
                command, generate_id(), actor_id, self.user_directory
            )
            self._commit(events)
        return self.user_directory.get_user(events[0].stream_id)

    @track_operation("update_user")
    def update_user(
        self, user_id: str, patch: dict[str, Any], actor_id: str | None = None
    ) -> User:
        """
        Change role, department, custom permissions or activation

        Raises:
            UserNotFoundError: Unknown or deleted user
        """
        with LogOperation(logger, "update_user", user_id=user_id, actor_id=actor_id):
            command = build_command(UpdateUser, patch)
            events = self.directory_handlers.handle_update_user(
                user_id, command, generate_id(), actor_id, self.user_directory
            )
            self._commit(events)
        return self.user_directory.get_user(user_id)

    @track_operation("delete_user")
    def delete_user(self, user_id: str, actor_id: str | None = None) -> User:
        """
        Soft-delete a user (kept for history, excluded from availability)

        Raises:
            UserNotFoundError: Unknown user
        """
        with LogOperation(logger, "delete_user", user_id=user_id, actor_id=actor_id):
            command = build_command(DeleteUser, {"user_id": user_id})
            events = self.directory_handlers.handle_delete_user(
                command, generate_id(), actor_id, self.user_directory
            )
            self._commit(events)
        return self.user_directory.get_user(user_id)

    def get_user(self, user_id: str) -> User | None:
        return self.user_directory.get_user(user_id)

    def list_users(self, include_deleted: bool = False) -> list[User]:
        return [User.model_validate(u) for u in self.user_directory.list_all(include_deleted)]

    def list_available_users(self) -> list[User]:
        """Active, non-deleted users"""
        return [User.model_validate(u) for u in self.user_directory.list_available()]

    # Team operations

    @track_operation("create_team")
    def create_team(self, data: dict[str, Any], actor_id: str | None = None) -> Team:
        """
        Create a team

        Args:
            data: name and leader_id (required), description, department,
                members, specialties, schedule, permissions, is_active
            actor_id: Recorded as created_by

        Returns:
            The created Team, its members including the leader

        Raises:
            ValidationError: Missing name/leader, unknown leader or permission
            DuplicateNameError: Name already used by a non-deleted team
        """
        with LogOperation(logger, "create_team", actor_id=actor_id):
            command = build_command(CreateTeam, data)
            events = self.directory_handlers.handle_create_team(
                command, generate_id(), actor_id, self.user_directory, self.team_registry
            )
            self._commit(events)
        return self.team_registry.get_team(events[0].stream_id)

    @track_operation("update_team")
    def update_team(
        self, team_id: str, patch: dict[str, Any], actor_id: str | None = None
    ) -> Team:
        """
        Patch a team

        id, team_id, created_at, created_by and the other read-only record
        fields (updated_*, deleted_*, is_deleted, version) in the patch are
        ignored, so a fetched team can be sent back as a patch.

        Raises:
            TeamNotFound: Unknown or deleted team
            DuplicateNameError: Renamed onto another team's name
            ValidationError: Malformed field, unknown leader or permission
        """
        with LogOperation(logger, "update_team", team_id=team_id, actor_id=actor_id):
            allowed = {k: v for k, v in patch.items() if k not in READ_ONLY_TEAM_FIELDS}
            command = build_command(UpdateTeam, allowed)
            events = self.directory_handlers.handle_update_team(
                team_id,
                command,
                generate_id(),
                actor_id,
                self.user_directory,
                self.team_registry,
            )
            self._commit(events)
        return self.team_registry.get_team(team_id)

    @track_operation("delete_team")
    def delete_team(self, team_id: str, actor_id: str | None = None) -> Team:
        """
        Soft-delete a team and deactivate its active delegations

        The TeamDeleted event and every DelegationDeactivated event are
        appended in one batch: either all of them are stored or none.

        Raises:
            TeamNotFound: Unknown team
        """
        with LogOperation(logger, "delete_team", team_id=team_id, actor_id=actor_id) as op:
            command = build_command(DeleteTeam, {"team_id": team_id})
            command_id = generate_id()
            events = self.directory_handlers.handle_delete_team(
                command, command_id, actor_id, self.team_registry
            )
            if events:
                cascade = self.delegation_handlers.handle_cascade_deactivate_by_team(
                    team_id, command_id, actor_id, self.delegation_registry
                )
                op.context["deactivated_delegations"] = len(cascade)
                events.extend(cascade)
            self._commit(events)
        return self.team_registry.get_team(team_id)

    def get_team(self, team_id: str) -> Team | None:
        return self.team_registry.get_team(team_id)

    def list_teams(self, include_deleted: bool = False) -> list[Team]:
        return [Team.model_validate(t) for t in self.team_registry.list_all(include_deleted)]

    def search_teams(
        self,
        query: str | None = None,
        department: str | None = None,
        is_active: bool | None = None,
        leader_id: str | None = None,
    ) -> list[Team]:
        """Non-deleted teams matching every given filter"""
        return [
            Team.model_validate(t)
            for t in self.team_registry.search(query, department, is_active, leader_id)
        ]

    def get_user_teams(self, user_id: str) -> list[Team]:
        """Active, non-deleted teams the user leads or belongs to"""
        return [Team.model_validate(t) for t in self.team_registry.teams_for_user(user_id)]

    # Delegation operations

    @track_operation("create_delegation")
    def create_delegation(
        self, data: dict[str, Any], actor_id: str | None = None
    ) -> DelegationOutcome:
        """
        Create a delegation (unapproved, active flag set)

        Args:
            data: from_user_id, to_user_id, permissions, start_date,
                end_date (required); reason, team_id, notifications
            actor_id: Delegator or administrator (defaults to from_user_id)

        Returns:
            DelegationOutcome with the stored delegation and, if any, the
            first overlapping active delegation to the same recipient.
            A conflict is a warning only.

        Raises:
            UserNotFoundError, SelfDelegationError, InvalidWindowError,
            PermissionNotHeldError, ValidationError
        """
        with LogOperation(logger, "create_delegation", actor_id=actor_id) as op:
            command = build_command(CreateDelegation, data)
            actor_id = actor_id or command.from_user_id
            events = self.delegation_handlers.handle_create_delegation(
                command,
                generate_id(),
                actor_id,
                self.user_directory.users,
                self.team_registry.teams,
            )
            conflict = find_conflict(
                self.delegation_registry.list_all(),
                command.to_user_id,
                command.start_date,
                command.end_date,
            )
            self._commit(events, self._delegation_read_versions(events[0]))

            delegation_id = events[0].stream_id
            op.context["delegation_id"] = delegation_id
            if conflict is not None:
                delegation_conflicts_total.inc()
                logger.warning(
                    "Delegation overlaps an existing grant to the same recipient",
                    delegation_id=delegation_id,
                    conflicting_delegation_id=conflict["delegation_id"],
                )

        return DelegationOutcome(
            delegation=self.delegation_registry.get_delegation(delegation_id),
            conflict=Delegation.model_validate(conflict) if conflict is not None else None,
        )

    @track_operation("approve_delegation")
    def approve_delegation(self, delegation_id: str, approver_id: str) -> Delegation:
        """
        Approve a delegation

        Idempotent: a second approval returns the record unchanged and keeps
        the first approved_at. Approving a revoked delegation changes nothing.

        Raises:
            DelegationNotFound: Unknown id
        """
        with LogOperation(
            logger, "approve_delegation", delegation_id=delegation_id, approver_id=approver_id
        ):
            command = build_command(
                ApproveDelegation,
                {"delegation_id": delegation_id, "approver_id": approver_id},
            )
            events = self.delegation_handlers.handle_approve_delegation(
                command, generate_id(), self.delegation_registry
            )
            self._commit(events)
        return self.delegation_registry.get_delegation(delegation_id)

    @track_operation("revoke_delegation")
    def revoke_delegation(
        self,
        delegation_id: str,
        actor_id: str | None = None,
        reason: str | None = None,
    ) -> Delegation:
        """
        Revoke a delegation (terminal; repeat calls are no-ops)

        Raises:
            DelegationNotFound: Unknown id
        """
        with LogOperation(
            logger, "revoke_delegation", delegation_id=delegation_id, actor_id=actor_id
        ):
            command = build_command(
                RevokeDelegation, {"delegation_id": delegation_id, "reason": reason}
            )
            events = self.delegation_handlers.handle_revoke_delegation(
                command, generate_id(), actor_id, self.delegation_registry
            )
            self._commit(events)
        return self.delegation_registry.get_delegation(delegation_id)

    def check_conflict(
        self,
        to_user_id: str,
        start_date: datetime | str,
        end_date: datetime | str,
        exclude_id: str | None = None,
    ) -> Delegation | None:
        """First active delegation to to_user_id overlapping the window, if any"""
        conflict = find_conflict(
            self.delegation_registry.list_all(),
            to_user_id,
            ensure_utc(start_date),
            ensure_utc(end_date),
            exclude_id,
        )
        return Delegation.model_validate(conflict) if conflict is not None else None

    def get_delegation(self, delegation_id: str) -> Delegation | None:
        return self.delegation_registry.get_delegation(delegation_id)

    def delegation_status(
        self, delegation_id: str, now: datetime | None = None
    ) -> DelegationStatus:
        """
        Derived status at `now` (defaults to the time provider)

        Raises:
            DelegationNotFound: Unknown id
        """
        record = self.delegation_registry.get(delegation_id)
        if record is None:
            raise DelegationNotFound(delegation_id)
        return record_status(record, self._now(now))

    def list_delegations(
        self,
        status: DelegationStatus | str | None = None,
        from_user_id: str | None = None,
        to_user_id: str | None = None,
        query: str | None = None,
        now: datetime | None = None,
    ) -> list[Delegation]:
        """
        Filter delegations

        Args:
            status: Derived status at `now`
            from_user_id: Delegator
            to_user_id: Recipient
            query: Case-insensitive match on reason or a permission id
            now: Instant used for status (defaults to the time provider)
        """
        now = self._now(now)
        wanted = DelegationStatus(status) if status is not None else None
        needle = query.strip().casefold() if query else ""

        records = (
            self.delegation_registry.list_by_status(wanted, now)
            if wanted is not None
            else self.delegation_registry.list_all()
        )

        results = []
        for record in records:
            if from_user_id is not None and record["from_user_id"] != from_user_id:
                continue
            if to_user_id is not None and record["to_user_id"] != to_user_id:
                continue
            if needle:
                texts = [record["reason"], *record["permissions"]]
                if not any(needle in text.casefold() for text in texts):
                    continue
            results.append(Delegation.model_validate(record))
        return results

    def list_for_user(self, user_id: str, direction: Direction = "both") -> list[Delegation]:
        """Delegations given, received or both, regardless of status"""
        return [
            Delegation.model_validate(d)
            for d in self.delegation_registry.list_for_user(user_id, direction)
        ]

    def list_active_now(self, user_id: str, now: datetime | None = None) -> list[Delegation]:
        """Delegations involving the user, active flag set, `now` inside the window"""
        return [
            Delegation.model_validate(d)
            for d in self.delegation_registry.list_active_now(user_id, self._now(now))
        ]

    def due_notifications(self, now: datetime | None = None) -> list[NotificationIntent]:
        """Notification intents due on the calendar day of `now`"""
        delegations = [
            Delegation.model_validate(d) for d in self.delegation_registry.list_all()
        ]
        return due_notifications(delegations, self._now(now))

    # Permission checks

    def resolve_permissions(self, user_id: str, now: datetime | None = None) -> set[str]:
        """
        Effective permissions at `now`, recomputed on every call

        Raises:
            UserNotFoundError: Unknown user
        """
        return self.resolver.resolve(user_id, self._now(now))

    def has_permission(
        self, user_id: str, permission: str, now: datetime | None = None
    ) -> bool:
        return self.resolver.has_permission(user_id, permission, self._now(now))

    def explain_permissions(
        self, user_id: str, now: datetime | None = None
    ) -> dict[str, list[str]]:
        return self.resolver.explain(user_id, self._now(now))

    def delegable_permissions(self, user_id: str) -> set[str]:
        return self.resolver.delegable_permissions(user_id)

    # Reporting

    def statistics(self, now: datetime | None = None) -> ClinicStatistics:
        """Dashboard counts (also published as Prometheus gauges)"""
        stats = self.statistics_aggregator.compute(self._now(now))
        update_dashboard_gauges(
            delegations_active=stats.active_delegations,
            approvals_pending=stats.pending_approvals,
            teams_active=stats.total_teams,
        )
        return stats

    def export_teams(self, fmt: ExportFormat = "json") -> str:
        return export_teams(self.list_teams(), fmt)

    def export_delegations(self, fmt: ExportFormat = "json", now: datetime | None = None) -> str:
        delegations = [
            Delegation.model_validate(d) for d in self.delegation_registry.list_all()
        ]
        return export_delegations(delegations, self._now(now), fmt)

    def require_user(self, user_id: str) -> User:
        """
        Raises:
            UserNotFoundError: Unknown user
        """
        user = self.user_directory.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def require_team(self, team_id: str) -> Team:
        """
        Raises:
            TeamNotFound: Unknown team
        """
        team = self.team_registry.get_team(team_id)
        if team is None:
            raise TeamNotFound(team_id)
        return team
