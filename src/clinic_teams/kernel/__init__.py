"""
Kernel - Event log, time, identity and error infrastructure

Every domain module (directory, delegation, permissions, reporting) builds on
these primitives. The kernel knows nothing about teams or delegations; it only
guarantees append-only, versioned, idempotent storage of domain events.
"""

from clinic_teams.kernel.errors import (
    ClinicTeamsError,
    CommandIdempotencyViolation,
    DomainError,
    EventStoreError,
    StreamVersionConflict,
)
from clinic_teams.kernel.events import Event
from clinic_teams.kernel.ids import IdFactory, generate_id
from clinic_teams.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # IDs
    "IdFactory",
    "generate_id",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Events
    "Event",
    # Errors
    "ClinicTeamsError",
    "DomainError",
    "EventStoreError",
    "CommandIdempotencyViolation",
    "StreamVersionConflict",
]
