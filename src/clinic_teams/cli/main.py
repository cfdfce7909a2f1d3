"""
Clinic Teams CLI

Command-line interface for the team and delegation engine.

Usage:
    clinic-teams init --db clinic.db
    clinic-teams user register --role doctor --department Cardiology
    clinic-teams team create --name Cardiology --leader <user_id> --member <user_id>
    clinic-teams delegation create --from <user_id> --to <user_id> \\
        --permission medical_records.edit --start 2025-10-01 --end 2025-10-15
    clinic-teams delegation approve <delegation_id> --approver <user_id>
    clinic-teams permissions check <user_id> medical_records.edit
    clinic-teams stats
    clinic-teams export delegations --format csv

Every command takes --db (or the CLINIC_TEAMS_DB environment variable).
"""

import json
import os
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from clinic_teams.clinic import ClinicTeams
from clinic_teams.delegation.models import Delegation
from clinic_teams.directory.models import Team
from clinic_teams.kernel.errors import ClinicTeamsError
from clinic_teams.kernel.logging import configure_logging
from clinic_teams.kernel.time import ensure_utc

# Logging goes to stderr (keeps stdout clean for JSON/CSV output)
configure_logging(log_level=os.getenv("LOG_LEVEL", "WARNING"))

app = typer.Typer(
    name="clinic-teams",
    help="Clinic teams and time-bounded permission delegation",
    add_completion=False,
)

# Sub-apps
user_app = typer.Typer(help="User directory commands")
team_app = typer.Typer(help="Team management commands")
delegation_app = typer.Typer(help="Delegation lifecycle commands")
permissions_app = typer.Typer(help="Effective permission commands")
export_app = typer.Typer(help="Export teams or delegations")

app.add_typer(user_app, name="user")
app.add_typer(team_app, name="team")
app.add_typer(delegation_app, name="delegation")
app.add_typer(permissions_app, name="permissions")
app.add_typer(export_app, name="export")

DEFAULT_DB = Path(".clinic_teams.db")

DbOption = Annotated[
    Optional[Path],
    typer.Option("--db", envvar="CLINIC_TEAMS_DB", help="Database path"),
]
ActorOption = Annotated[
    Optional[str],
    typer.Option("--actor", help="User performing the action"),
]


def get_clinic(db_path: Optional[Path] = None) -> ClinicTeams:
    """Open an existing database"""
    db = db_path or DEFAULT_DB
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'clinic-teams init --db {db}' to initialize", err=True)
        raise typer.Exit(1)
    return ClinicTeams(db)


@contextmanager
def domain_errors() -> Iterator[None]:
    """Report engine errors as 'Error: <message>' and exit 1"""
    try:
        yield
    except ClinicTeamsError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e


def _parse_json(value: Optional[str], option: str) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        typer.echo(f"Error: {option} is not valid JSON: {e.msg}", err=True)
        raise typer.Exit(1) from e


def _parse_instant(value: Optional[str], option: str) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return ensure_utc(value)
    except ValueError as e:
        typer.echo(f"Error: {option} is not an ISO date or datetime: {value}", err=True)
        raise typer.Exit(1) from e


def _echo_team(team: Team) -> None:
    typer.echo(f"  Name: {team.name}")
    typer.echo(f"  Department: {team.department or '-'}")
    typer.echo(f"  Leader: {team.leader_id}")
    typer.echo(f"  Members: {', '.join(team.members)}")
    if team.specialties:
        typer.echo(f"  Specialties: {', '.join(team.specialties)}")
    if team.permissions:
        typer.echo(f"  Permissions: {', '.join(team.permissions)}")


def _echo_delegation(delegation: Delegation, clinic: ClinicTeams) -> None:
    status = clinic.delegation_status(delegation.delegation_id)
    typer.echo(
        f"  {delegation.delegation_id}: {delegation.from_user_id} -> {delegation.to_user_id} "
        f"[{status.value}] {delegation.start_date.date()}..{delegation.end_date.date()} "
        f"({', '.join(delegation.permissions)})"
    )


# Initialization command


@app.command()
def init(db: DbOption = None) -> None:
    """Initialize a new database"""
    db = db or DEFAULT_DB
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    ClinicTeams(db)
    typer.echo(f"✓ Initialized clinic teams database: {db}")


# User commands


@user_app.command("register")
def user_register(
    role: Annotated[str, typer.Option("--role", help="Role id (doctor, nurse, ...)")],
    department: Annotated[str, typer.Option("--department", help="Department")] = "",
    name: Annotated[str, typer.Option("--name", help="Display name")] = "",
    permission: Annotated[
        Optional[list[str]],
        typer.Option("--permission", help="Custom permission (repeatable)"),
    ] = None,
    user_id: Annotated[
        Optional[str], typer.Option("--id", help="Explicit user id")
    ] = None,
    actor: ActorOption = None,
    db: DbOption = None,
) -> None:
    """Register a staff member"""
    clinic = get_clinic(db)
    with domain_errors():
        user = clinic.register_user(
            role=role,
            department=department,
            display_name=name,
            permissions=permission or [],
            user_id=user_id,
            actor_id=actor,
        )
    typer.echo(f"✓ Registered user: {user.user_id}")
    typer.echo(f"  Role: {user.role}")


@user_app.command("list")
def user_list(
    all_users: Annotated[
        bool, typer.Option("--all", help="Include deleted and inactive users")
    ] = False,
    db: DbOption = None,
) -> None:
    """List available users"""
    clinic = get_clinic(db)
    users = clinic.list_users(include_deleted=True) if all_users else clinic.list_available_users()

    if not users:
        typer.echo("No users")
        return

    typer.echo(f"Users ({len(users)}):")
    for user in users:
        flags = " (deleted)" if user.is_deleted else "" if user.is_active else " (inactive)"
        typer.echo(f"  {user.user_id}: {user.role} {user.department}{flags}".rstrip())


@user_app.command("delete")
def user_delete(
    user_id: Annotated[str, typer.Argument(help="User id")],
    actor: ActorOption = None,
    db: DbOption = None,
) -> None:
    """Soft-delete a user"""
    clinic = get_clinic(db)
    with domain_errors():
        clinic.delete_user(user_id, actor_id=actor)
    typer.echo(f"✓ Deleted user: {user_id}")


# Team commands


@team_app.command("create")
def team_create(
    name: Annotated[str, typer.Option("--name", help="Team name (unique)")],
    leader: Annotated[str, typer.Option("--leader", help="Leader user id")],
    member: Annotated[
        Optional[list[str]], typer.Option("--member", help="Member user id (repeatable)")
    ] = None,
    department: Annotated[str, typer.Option("--department", help="Department")] = "",
    description: Annotated[str, typer.Option("--description", help="Description")] = "",
    specialty: Annotated[
        Optional[list[str]], typer.Option("--specialty", help="Specialty (repeatable)")
    ] = None,
    permission: Annotated[
        Optional[list[str]],
        typer.Option("--permission", help="Team-level permission (repeatable)"),
    ] = None,
    schedule: Annotated[
        Optional[str],
        typer.Option("--schedule", help='Weekly schedule (JSON, e.g. {"monday": {"start": "08:00", "end": "18:00"}})'),
    ] = None,
    actor: ActorOption = None,
    db: DbOption = None,
) -> None:
    """Create a team"""
    clinic = get_clinic(db)
    data: dict[str, Any] = {
        "name": name,
        "leader_id": leader,
        "members": member or [],
        "department": department,
        "description": description,
        "specialties": specialty or [],
        "permissions": permission or [],
    }
    schedule_data = _parse_json(schedule, "--schedule")
    if schedule_data is not None:
        data["schedule"] = schedule_data

    with domain_errors():
        team = clinic.create_team(data, actor_id=actor)
    typer.echo(f"✓ Created team: {team.team_id}")
    _echo_team(team)


@team_app.command("update")
def team_update(
    team_id: Annotated[str, typer.Argument(help="Team id")],
    name: Annotated[Optional[str], typer.Option("--name", help="New name")] = None,
    leader: Annotated[Optional[str], typer.Option("--leader", help="New leader")] = None,
    member: Annotated[
        Optional[list[str]],
        typer.Option("--member", help="Replace members (repeatable)"),
    ] = None,
    department: Annotated[Optional[str], typer.Option("--department")] = None,
    description: Annotated[Optional[str], typer.Option("--description")] = None,
    active: Annotated[
        Optional[bool], typer.Option("--active/--inactive", help="Activation flag")
    ] = None,
    patch: Annotated[
        Optional[str], typer.Option("--patch", help="Additional fields (JSON)")
    ] = None,
    actor: ActorOption = None,
    db: DbOption = None,
) -> None:
    """Patch a team"""
    clinic = get_clinic(db)
    changes: dict[str, Any] = _parse_json(patch, "--patch") or {}
    for key, value in (
        ("name", name),
        ("leader_id", leader),
        ("members", member),
        ("department", department),
        ("description", description),
        ("is_active", active),
    ):
        if value is not None:
            changes[key] = value

    with domain_errors():
        team = clinic.update_team(team_id, changes, actor_id=actor)
    typer.echo(f"✓ Updated team: {team.team_id}")
    _echo_team(team)


@team_app.command("delete")
def team_delete(
    team_id: Annotated[str, typer.Argument(help="Team id")],
    actor: ActorOption = None,
    db: DbOption = None,
) -> None:
    """Soft-delete a team and deactivate its delegations"""
    clinic = get_clinic(db)
    with domain_errors():
        clinic.delete_team(team_id, actor_id=actor)
    typer.echo(f"✓ Deleted team: {team_id}")


@team_app.command("list")
def team_list(
    all_teams: Annotated[bool, typer.Option("--all", help="Include deleted teams")] = False,
    db: DbOption = None,
) -> None:
    """List teams"""
    clinic = get_clinic(db)
    teams = clinic.list_teams(include_deleted=all_teams)

    if not teams:
        typer.echo("No teams")
        return

    typer.echo(f"Teams ({len(teams)}):")
    for team in teams:
        flags = " (deleted)" if team.is_deleted else "" if team.is_active else " (inactive)"
        typer.echo(f"  {team.team_id}: {team.name} - {len(team.members)} members{flags}")


@team_app.command("search")
def team_search(
    query: Annotated[
        Optional[str], typer.Option("--query", help="Text in name, description, department or specialties")
    ] = None,
    department: Annotated[Optional[str], typer.Option("--department")] = None,
    leader: Annotated[Optional[str], typer.Option("--leader")] = None,
    db: DbOption = None,
) -> None:
    """Search non-deleted teams"""
    clinic = get_clinic(db)
    teams = clinic.search_teams(query=query, department=department, leader_id=leader)

    if not teams:
        typer.echo("No matching teams")
        return

    typer.echo(f"Matching teams ({len(teams)}):")
    for team in teams:
        typer.echo(f"  {team.team_id}: {team.name} ({team.department or '-'})")


@team_app.command("show")
def team_show(
    team_id: Annotated[str, typer.Argument(help="Team id")],
    db: DbOption = None,
) -> None:
    """Show a team"""
    clinic = get_clinic(db)
    with domain_errors():
        team = clinic.require_team(team_id)
    typer.echo(f"Team {team.team_id}{' (deleted)' if team.is_deleted else ''}")
    _echo_team(team)
    for day, slot in team.schedule.items():
        typer.echo(f"  {day.capitalize()}: {f'{slot.start}-{slot.end}' if slot else 'closed'}")


# Delegation commands


@delegation_app.command("create")
def delegation_create(
    from_user: Annotated[str, typer.Option("--from", help="Delegator user id")],
    to_user: Annotated[str, typer.Option("--to", help="Recipient user id")],
    permission: Annotated[
        list[str], typer.Option("--permission", help="Permission to grant (repeatable)")
    ],
    start: Annotated[str, typer.Option("--start", help="Start (ISO date or datetime)")],
    end: Annotated[str, typer.Option("--end", help="End (ISO date or datetime)")],
    reason: Annotated[str, typer.Option("--reason", help="Why")] = "",
    team: Annotated[Optional[str], typer.Option("--team", help="Team id")] = None,
    actor: ActorOption = None,
    db: DbOption = None,
) -> None:
    """Create a delegation (needs approval before it takes effect)"""
    clinic = get_clinic(db)
    with domain_errors():
        outcome = clinic.create_delegation(
            {
                "from_user_id": from_user,
                "to_user_id": to_user,
                "permissions": permission,
                "start_date": start,
                "end_date": end,
                "reason": reason,
                "team_id": team,
            },
            actor_id=actor,
        )
    typer.echo(f"✓ Created delegation: {outcome.delegation.delegation_id}")
    typer.echo("  Status: pending_approval")
    if outcome.conflict is not None:
        typer.echo(
            f"  Warning: overlaps delegation {outcome.conflict.delegation_id} "
            f"({outcome.conflict.start_date.date()}..{outcome.conflict.end_date.date()})"
        )


@delegation_app.command("approve")
def delegation_approve(
    delegation_id: Annotated[str, typer.Argument(help="Delegation id")],
    approver: Annotated[str, typer.Option("--approver", help="Approving user id")],
    db: DbOption = None,
) -> None:
    """Approve a delegation"""
    clinic = get_clinic(db)
    with domain_errors():
        delegation = clinic.approve_delegation(delegation_id, approver)
    typer.echo(f"✓ Approved delegation: {delegation.delegation_id}")
    typer.echo(f"  Approved by: {delegation.approved_by} at {delegation.approved_at}")


@delegation_app.command("revoke")
def delegation_revoke(
    delegation_id: Annotated[str, typer.Argument(help="Delegation id")],
    reason: Annotated[Optional[str], typer.Option("--reason", help="Revocation reason")] = None,
    actor: ActorOption = None,
    db: DbOption = None,
) -> None:
    """Revoke a delegation"""
    clinic = get_clinic(db)
    with domain_errors():
        clinic.revoke_delegation(delegation_id, actor_id=actor, reason=reason)
    typer.echo(f"✓ Revoked delegation: {delegation_id}")


@delegation_app.command("list")
def delegation_list(
    status: Annotated[
        Optional[str],
        typer.Option("--status", help="pending_approval, pending, active, expired or inactive"),
    ] = None,
    from_user: Annotated[Optional[str], typer.Option("--from")] = None,
    to_user: Annotated[Optional[str], typer.Option("--to")] = None,
    query: Annotated[Optional[str], typer.Option("--query", help="Text in reason or permissions")] = None,
    db: DbOption = None,
) -> None:
    """List delegations"""
    clinic = get_clinic(db)
    try:
        delegations = clinic.list_delegations(
            status=status, from_user_id=from_user, to_user_id=to_user, query=query
        )
    except ValueError as e:
        typer.echo(f"Error: unknown status '{status}'", err=True)
        raise typer.Exit(1) from e

    if not delegations:
        typer.echo("No delegations")
        return

    typer.echo(f"Delegations ({len(delegations)}):")
    for delegation in delegations:
        _echo_delegation(delegation, clinic)


@delegation_app.command("status")
def delegation_status(
    delegation_id: Annotated[str, typer.Argument(help="Delegation id")],
    at: Annotated[Optional[str], typer.Option("--at", help="Instant (ISO), default now")] = None,
    db: DbOption = None,
) -> None:
    """Show the derived status of a delegation"""
    clinic = get_clinic(db)
    with domain_errors():
        status = clinic.delegation_status(delegation_id, _parse_instant(at, "--at"))
    typer.echo(status.value)


@delegation_app.command("conflicts")
def delegation_conflicts(
    to_user: Annotated[str, typer.Option("--to", help="Recipient user id")],
    start: Annotated[str, typer.Option("--start")],
    end: Annotated[str, typer.Option("--end")],
    exclude: Annotated[Optional[str], typer.Option("--exclude", help="Delegation id to ignore")] = None,
    db: DbOption = None,
) -> None:
    """Check whether a window overlaps an active delegation to the recipient"""
    clinic = get_clinic(db)
    conflict = clinic.check_conflict(
        to_user,
        _parse_instant(start, "--start"),
        _parse_instant(end, "--end"),
        exclude_id=exclude,
    )
    if conflict is None:
        typer.echo("No conflict")
        return
    typer.echo("Conflict:")
    _echo_delegation(conflict, clinic)


# Permission commands


@permissions_app.command("resolve")
def permissions_resolve(
    user_id: Annotated[str, typer.Argument(help="User id")],
    at: Annotated[Optional[str], typer.Option("--at", help="Instant (ISO), default now")] = None,
    explain: Annotated[bool, typer.Option("--explain", help="Show where each comes from")] = False,
    db: DbOption = None,
) -> None:
    """Show the effective permissions of a user"""
    clinic = get_clinic(db)
    now = _parse_instant(at, "--at")
    with domain_errors():
        if explain:
            for permission, sources in clinic.explain_permissions(user_id, now).items():
                typer.echo(f"{permission}: {', '.join(sources)}")
            return
        permissions = clinic.resolve_permissions(user_id, now)
    for permission in sorted(permissions):
        typer.echo(permission)


@permissions_app.command("check")
def permissions_check(
    user_id: Annotated[str, typer.Argument(help="User id")],
    permission: Annotated[str, typer.Argument(help="Permission id")],
    at: Annotated[Optional[str], typer.Option("--at", help="Instant (ISO), default now")] = None,
    db: DbOption = None,
) -> None:
    """Authorization check: prints granted/denied, exits 1 when denied"""
    clinic = get_clinic(db)
    with domain_errors():
        granted = clinic.has_permission(user_id, permission, _parse_instant(at, "--at"))
    typer.echo("granted" if granted else "denied")
    if not granted:
        raise typer.Exit(1)


# Reporting commands


@app.command()
def stats(
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
    db: DbOption = None,
) -> None:
    """Show team and delegation statistics"""
    clinic = get_clinic(db)
    statistics = clinic.statistics()

    if json_output:
        typer.echo(json.dumps(statistics.model_dump(mode="json", by_alias=True), indent=2))
        return

    typer.echo("Teams:")
    typer.echo(f"  Total: {statistics.total_teams}")
    typer.echo(f"  Members: {statistics.total_members}")
    for department, count in sorted(statistics.teams_by_department.items()):
        typer.echo(f"    {department}: {count}")
    typer.echo("Delegations:")
    typer.echo(f"  Total: {statistics.total_delegations}")
    typer.echo(f"  Active: {statistics.active_delegations}")
    typer.echo(f"  Pending approval: {statistics.pending_approvals}")
    typer.echo(f"  Created this week: {statistics.delegations_this_week}")


FormatOption = Annotated[str, typer.Option("--format", help="json or csv")]


@export_app.command("teams")
def export_teams(fmt: FormatOption = "json", db: DbOption = None) -> None:
    """Export non-deleted teams to stdout"""
    clinic = get_clinic(db)
    with domain_errors():
        output = clinic.export_teams(fmt)  # type: ignore[arg-type]
    typer.echo(output, nl=False)


@export_app.command("delegations")
def export_delegations(fmt: FormatOption = "json", db: DbOption = None) -> None:
    """Export delegations (with derived status) to stdout"""
    clinic = get_clinic(db)
    with domain_errors():
        output = clinic.export_delegations(fmt)  # type: ignore[arg-type]
    typer.echo(output, nl=False)


@app.command()
def notifications(
    at: Annotated[Optional[str], typer.Option("--at", help="Instant (ISO), default now")] = None,
    db: DbOption = None,
) -> None:
    """List notification intents due today"""
    clinic = get_clinic(db)
    intents = clinic.due_notifications(_parse_instant(at, "--at"))

    if not intents:
        typer.echo("No notifications due")
        return

    for intent in intents:
        typer.echo(
            f"  {intent.kind}: {intent.delegation_id} "
            f"({intent.from_user_id} -> {intent.to_user_id})"
        )


@app.command()
def serve(
    port: Annotated[int, typer.Option("--port", help="Health endpoint port")] = 8080,
    metrics_port: Annotated[
        Optional[int], typer.Option("--metrics-port", help="Prometheus port (disabled if unset)")
    ] = None,
    db: DbOption = None,
) -> None:
    """Serve health endpoints (and optionally Prometheus metrics)"""
    from clinic_teams.health_server import initialize_health_server, run_health_server
    from clinic_teams.kernel.metrics import start_metrics_server

    clinic = get_clinic(db)
    initialize_health_server(clinic.sqlite_path, clinic)
    if metrics_port is not None:
        start_metrics_server(metrics_port)
    run_health_server(port=port)


if __name__ == "__main__":
    app()
