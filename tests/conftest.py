"""
Pytest configuration and shared fixtures

Every test gets its own SQLite file and a frozen clock. The clock starts at
2025-10-01 00:00 UTC, the first day of the delegation window used by most
tests, and is moved with advance_days()/set_time() instead of writing to
the store.
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import pytest

from clinic_teams.clinic import ClinicTeams
from clinic_teams.delegation.handlers import DelegationCommandHandlers
from clinic_teams.delegation.projections import DelegationRegistry
from clinic_teams.directory.handlers import DirectoryCommandHandlers
from clinic_teams.directory.projections import TeamRegistry, UserDirectory
from clinic_teams.kernel.audit import MemoryAuditSink
from clinic_teams.kernel.event_store import SQLiteEventStore
from clinic_teams.kernel.ids import SequentialIdFactory
from clinic_teams.kernel.policy import ClinicPolicy
from clinic_teams.kernel.time import TestTimeProvider
from clinic_teams.permissions.catalog import (
    DEFAULT_PERMISSIONS,
    DEFAULT_ROLES,
    PermissionDefinition,
    Role,
    StaticPermissionCatalog,
)


@pytest.fixture
def temp_db() -> Iterator[Path]:
    """Provide a temporary database file that's cleaned up after test"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # WAL mode leaves side files next to the database
    for path in (db_path, Path(f"{db_path}-wal"), Path(f"{db_path}-shm")):
        if path.exists():
            path.unlink()


@pytest.fixture
def event_store(temp_db: Path) -> SQLiteEventStore:
    """Provide a fresh event store for each test"""
    return SQLiteEventStore(temp_db)


@pytest.fixture
def test_time() -> TestTimeProvider:
    """Controllable clock frozen at 2025-10-01 00:00 UTC (a Wednesday)"""
    return TestTimeProvider(datetime(2025, 10, 1, tzinfo=timezone.utc))


@pytest.fixture
def policy() -> ClinicPolicy:
    return ClinicPolicy()


@pytest.fixture
def catalog() -> StaticPermissionCatalog:
    """
    Built-in clinic roles plus a "scheduler" role holding exactly
    appointments.read and appointments.update
    """
    scheduler = Role(
        id="scheduler",
        name="Scheduler",
        description="Books and moves appointments",
        level=40,
        permissions=["appointments.read", "appointments.update"],
    )
    permissions = [
        *DEFAULT_PERMISSIONS,
        PermissionDefinition(id="appointments.read", name="Appointments: read", category="appointments"),
        PermissionDefinition(id="appointments.update", name="Appointments: update", category="appointments"),
    ]
    return StaticPermissionCatalog(roles=[*DEFAULT_ROLES.values(), scheduler], permissions=permissions)


@pytest.fixture
def audit_sink() -> MemoryAuditSink:
    return MemoryAuditSink()


@pytest.fixture
def id_factory() -> SequentialIdFactory:
    """Deterministic ids: team_1, delegation_1, ..."""
    return SequentialIdFactory()


@pytest.fixture
def clinic(
    temp_db: Path,
    policy: ClinicPolicy,
    test_time: TestTimeProvider,
    catalog: StaticPermissionCatalog,
    audit_sink: MemoryAuditSink,
    id_factory: SequentialIdFactory,
) -> ClinicTeams:
    """Empty engine wired to the test clock, catalog and audit sink"""
    return ClinicTeams(
        temp_db,
        policy=policy,
        time_provider=test_time,
        catalog=catalog,
        audit_sink=audit_sink,
        id_factory=id_factory,
    )


@pytest.fixture
def staffed_clinic(clinic: ClinicTeams) -> ClinicTeams:
    """
    Engine with a small staff:

    - admin (admin, Administration)
    - dr_house (doctor, Cardiology)
    - dr_grey (doctor, Cardiology)
    - nurse_joy (nurse, Cardiology)
    - sam (scheduler, Front desk)
    - alex (secretary, Front desk)
    """
    staff = [
        ("admin", "admin", "Administration"),
        ("dr_house", "doctor", "Cardiology"),
        ("dr_grey", "doctor", "Cardiology"),
        ("nurse_joy", "nurse", "Cardiology"),
        ("sam", "scheduler", "Front desk"),
        ("alex", "secretary", "Front desk"),
    ]
    for user_id, role, department in staff:
        clinic.register_user(role=role, department=department, user_id=user_id, actor_id="admin")
    return clinic


# =============================================================================
# Handler-level fixtures
# =============================================================================


@pytest.fixture
def directory_handlers(
    test_time: TestTimeProvider,
    policy: ClinicPolicy,
    catalog: StaticPermissionCatalog,
    id_factory: SequentialIdFactory,
) -> DirectoryCommandHandlers:
    """Handlers are stateless - they take projections as parameters"""
    return DirectoryCommandHandlers(test_time, policy, catalog, id_factory)


@pytest.fixture
def delegation_handlers(
    test_time: TestTimeProvider,
    policy: ClinicPolicy,
    catalog: StaticPermissionCatalog,
    id_factory: SequentialIdFactory,
) -> DelegationCommandHandlers:
    return DelegationCommandHandlers(test_time, policy, catalog, id_factory)


@pytest.fixture
def user_directory() -> UserDirectory:
    return UserDirectory()


@pytest.fixture
def team_registry() -> TeamRegistry:
    return TeamRegistry()


@pytest.fixture
def delegation_registry() -> DelegationRegistry:
    return DelegationRegistry()
