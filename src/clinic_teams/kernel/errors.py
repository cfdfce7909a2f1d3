"""
Custom exceptions for clinic team and delegation management

Every error is raised synchronously by the operation that detects it, before
any event is appended. None of them is fatal to the process: the caller
decides whether to resurface the message or retry with corrected input.
"""


class ClinicTeamsError(Exception):
    """Base exception for all clinic_teams errors"""

    pass


class EventStoreError(ClinicTeamsError):
    """Base class for event store errors"""

    pass


class CommandIdempotencyViolation(EventStoreError):
    """
    Raised when a command id was already processed for a stream

    Callers normally never see this: the store returns the previously
    appended events instead.
    """

    def __init__(self, command_id: str, message: str = "") -> None:
        self.command_id = command_id
        super().__init__(
            message or f"Command {command_id} already processed (idempotency preserved)"
        )


class StreamVersionConflict(EventStoreError):
    """
    Raised when stream version doesn't match expected (optimistic locking)

    Indicates a concurrent edit of the same record - reload and retry.
    """

    def __init__(
        self, stream_id: str, expected_version: int, actual_version: int
    ) -> None:
        self.stream_id = stream_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stream {stream_id} version mismatch: "
            f"expected {expected_version}, got {actual_version}"
        )


# Domain errors


class DomainError(ClinicTeamsError):
    """Base class for errors caused by caller input"""

    pass


class ValidationError(DomainError):
    """Raised when a required field is missing or malformed"""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class DuplicateNameError(DomainError):
    """Raised when a team name collides with a non-deleted team"""

    def __init__(self, name: str, existing_team_id: str) -> None:
        self.name = name
        self.existing_team_id = existing_team_id
        super().__init__(
            f"A team named '{name}' already exists ({existing_team_id})"
        )


class NotFoundError(DomainError):
    """Raised when an id does not resolve"""

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} {entity_id} not found")


class TeamNotFound(NotFoundError):
    """Raised when team does not exist"""

    def __init__(self, team_id: str) -> None:
        self.team_id = team_id
        super().__init__("team", team_id)


class DelegationNotFound(NotFoundError):
    """Raised when delegation does not exist"""

    def __init__(self, delegation_id: str) -> None:
        self.delegation_id = delegation_id
        super().__init__("delegation", delegation_id)


class UserNotFoundError(DomainError):
    """Raised when a user is unknown, deleted or deactivated"""

    def __init__(self, user_id: str, reason: str = "not found") -> None:
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"User {user_id} {reason}")


class SelfDelegationError(DomainError):
    """Raised when a user tries to delegate to themselves"""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id} cannot delegate to themselves")


class InvalidWindowError(DomainError):
    """Raised when a delegation window is empty, reversed or too long"""

    def __init__(self, start_date: str, end_date: str, message: str = "") -> None:
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            message
            or f"Delegation end {end_date} must be strictly after start {start_date}"
        )


class PermissionNotHeldError(DomainError):
    """Raised when a delegator grants permissions they do not hold"""

    def __init__(self, user_id: str, missing: list[str]) -> None:
        self.user_id = user_id
        self.missing = missing
        if missing:
            message = (
                f"User {user_id} does not hold {', '.join(sorted(missing))} "
                "and cannot delegate it"
            )
        else:
            message = "A delegation must grant at least one permission"
        super().__init__(message)
