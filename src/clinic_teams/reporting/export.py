"""
Offline export of teams and delegations

JSON exports carry full records; CSV exports are flat, one row per record,
with a fixed column order. Deleted teams are never exported.
"""

import csv
import io
import json
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Literal

from clinic_teams.delegation.models import Delegation
from clinic_teams.directory.models import Team
from clinic_teams.kernel.errors import ValidationError

ExportFormat = Literal["json", "csv"]

TEAM_COLUMNS = (
    "id",
    "name",
    "description",
    "department",
    "leader_id",
    "member_count",
    "is_active",
    "created_at",
)

DELEGATION_COLUMNS = (
    "id",
    "from_user_id",
    "to_user_id",
    "permissions",
    "start_date",
    "end_date",
    "is_active",
    "approved",
    "status",
)


def _check_format(fmt: str) -> None:
    if fmt not in ("json", "csv"):
        raise ValidationError(f"format: expected 'json' or 'csv', got '{fmt}'", field="format")


def _to_csv(columns: tuple[str, ...], rows: Iterable[dict[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


def export_teams(teams: Iterable[Team], fmt: ExportFormat = "json") -> str:
    """
    Serialise non-deleted teams

    Args:
        teams: Teams to export (deleted ones are skipped)
        fmt: "json" or "csv"

    Raises:
        ValidationError: Unknown format
    """
    _check_format(fmt)
    kept = [team for team in teams if not team.is_deleted]

    if fmt == "json":
        return json.dumps([team.model_dump(mode="json") for team in kept], indent=2)

    return _to_csv(
        TEAM_COLUMNS,
        (
            {
                "id": team.team_id,
                "name": team.name,
                "description": team.description,
                "department": team.department,
                "leader_id": team.leader_id,
                "member_count": len(team.members),
                "is_active": team.is_active,
                "created_at": team.created_at.isoformat(),
            }
            for team in kept
        ),
    )


def export_delegations(
    delegations: Iterable[Delegation],
    now: datetime,
    fmt: ExportFormat = "json",
) -> str:
    """
    Serialise delegations with their derived status at `now`

    CSV permissions are joined with ";".

    Raises:
        ValidationError: Unknown format
    """
    _check_format(fmt)
    delegations = list(delegations)

    if fmt == "json":
        return json.dumps(
            [
                {**d.model_dump(mode="json"), "status": d.status(now).value}
                for d in delegations
            ],
            indent=2,
        )

    return _to_csv(
        DELEGATION_COLUMNS,
        (
            {
                "id": d.delegation_id,
                "from_user_id": d.from_user_id,
                "to_user_id": d.to_user_id,
                "permissions": ";".join(d.permissions),
                "start_date": d.start_date.isoformat(),
                "end_date": d.end_date.isoformat(),
                "is_active": d.is_active,
                "approved": d.approved_by is not None,
                "status": d.status(now).value,
            }
            for d in delegations
        ),
    )
