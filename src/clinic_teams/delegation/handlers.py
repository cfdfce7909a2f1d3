"""
Delegation Handlers - Command→Event transformation for grants

The only code allowed to decide delegation state changes. Every rule runs
before an event is built, so a failing command never produces a partial
write. Repeated approvals and revocations return no events (idempotent).
"""

from collections.abc import Mapping
from typing import Any

from clinic_teams.delegation.commands import (
    ApproveDelegation,
    CreateDelegation,
    RevokeDelegation,
)
from clinic_teams.delegation.events import (
    DelegationApproved,
    DelegationCreated,
    DelegationDeactivated,
    DelegationRevoked,
)
from clinic_teams.delegation.invariants import (
    validate_not_self,
    validate_permissions_held,
    validate_team_reference,
    validate_user_available,
    validate_window,
)
from clinic_teams.delegation.models import NotificationPreferences
from clinic_teams.delegation.projections import DelegationRegistry
from clinic_teams.kernel.errors import DelegationNotFound
from clinic_teams.kernel.events import Event, create_event
from clinic_teams.kernel.ids import IdFactory, default_id_factory, generate_id
from clinic_teams.kernel.logging import get_logger
from clinic_teams.kernel.policy import ClinicPolicy
from clinic_teams.kernel.time import TimeProvider
from clinic_teams.permissions.catalog import PermissionCatalog

logger = get_logger(__name__)


class DelegationCommandHandlers:
    """
    Command handlers for delegations

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
        self.time_provider = time_provider
        self.policy = policy
        self.catalog = catalog
        self.id_factory = id_factory

    def handle_create_delegation(
        self,
        command: CreateDelegation,
        command_id: str,
        actor_id: str | None,
        users: Mapping[str, Mapping[str, Any]],
        teams: Mapping[str, Mapping[str, Any]],
    ) -> list[Event]:
        """
        Handle CreateDelegation command

        Validates (in order): participants available, not self, window,
        permissions held by the delegator, team reference.

        Args:
            command: CreateDelegation command
            command_id: Idempotency key
            actor_id: The delegator or an administrator acting for them
            users: UserDirectory records
            teams: TeamRegistry records

        Returns:
            A single DelegationCreated event
        """
        validate_user_available(command.from_user_id, users)
        validate_user_available(command.to_user_id, users)
        validate_not_self(command.from_user_id, command.to_user_id)
        validate_window(command.start_date, command.end_date, self.policy)
        validate_permissions_held(
            command.from_user_id,
            command.permissions,
            self.catalog.get_user_permissions(users[command.from_user_id]),
        )
        validate_team_reference(command.team_id, teams)

        now = self.time_provider.now()
        delegation_id = self.id_factory.generate("delegation")
        notifications = command.notifications or NotificationPreferences(
            **self.policy.default_notifications
        )

        payload = DelegationCreated(
            delegation_id=delegation_id,
            from_user_id=command.from_user_id,
            to_user_id=command.to_user_id,
            permissions=command.permissions,
            reason=command.reason,
            start_date=command.start_date,
            end_date=command.end_date,
            team_id=command.team_id,
            notifications=notifications,
            created_at=now,
            created_by=actor_id,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                stream_id=delegation_id,
                stream_type="delegation",
                event_type="DelegationCreated",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=payload,
                version=1,
            )
        ]

    def handle_approve_delegation(
        self,
        command: ApproveDelegation,
        command_id: str,
        delegations: DelegationRegistry,
    ) -> list[Event]:
        """
        Handle ApproveDelegation command

        Already approved: no events, approved_at is kept.
        Revoked or deactivated: no events (terminal state), logged.

        Raises:
            DelegationNotFound: Unknown id
        """
        record = delegations.get(command.delegation_id)
        if record is None:
            raise DelegationNotFound(command.delegation_id)
        if record["approved_by"] is not None:
            return []
        if not record["is_active"]:
            logger.warning(
                "Approval ignored for inactive delegation",
                delegation_id=command.delegation_id,
            )
            return []

        now = self.time_provider.now()
        payload = DelegationApproved(
            delegation_id=command.delegation_id,
            approved_by=command.approver_id,
            approved_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                stream_id=command.delegation_id,
                stream_type="delegation",
                event_type="DelegationApproved",
                occurred_at=now,
                command_id=command_id,
                actor_id=command.approver_id,
                payload=payload,
                version=record["version"] + 1,
            )
        ]

    def handle_revoke_delegation(
        self,
        command: RevokeDelegation,
        command_id: str,
        actor_id: str | None,
        delegations: DelegationRegistry,
    ) -> list[Event]:
        """
        Handle RevokeDelegation command (repeat revoke is a no-op)

        Raises:
            DelegationNotFound: Unknown id
        """
        record = delegations.get(command.delegation_id)
        if record is None:
            raise DelegationNotFound(command.delegation_id)
        if not record["is_active"]:
            return []

        now = self.time_provider.now()
        payload = DelegationRevoked(
            delegation_id=command.delegation_id,
            revoked_by=actor_id,
            revoked_at=now,
            reason=command.reason,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                stream_id=command.delegation_id,
                stream_type="delegation",
                event_type="DelegationRevoked",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=payload,
                version=record["version"] + 1,
            )
        ]

    def handle_cascade_deactivate_by_team(
        self,
        team_id: str,
        command_id: str,
        actor_id: str | None,
        delegations: DelegationRegistry,
        reason: str | None = None,
    ) -> list[Event]:
        """
        Deactivate every active delegation attached to a team

        Invoked only as part of a team deletion; the events are appended in
        the same batch as TeamDeleted.

        Returns:
            One DelegationDeactivated event per active delegation of the team
        """
        now = self.time_provider.now()
        reason = reason or self.policy.cascade_revocation_reason
        events = []

        for record in delegations.list_for_team(team_id):
            if not record["is_active"]:
                continue
            payload = DelegationDeactivated(
                delegation_id=record["delegation_id"],
                team_id=team_id,
                deactivated_by=actor_id,
                deactivated_at=now,
                reason=reason,
            ).model_dump(mode="json")
            events.append(
                create_event(
                    event_id=generate_id(),
                    stream_id=record["delegation_id"],
                    stream_type="delegation",
                    event_type="DelegationDeactivated",
                    occurred_at=now,
                    command_id=command_id,
                    actor_id=actor_id,
                    payload=payload,
                    version=record["version"] + 1,
                )
            )

        return events
