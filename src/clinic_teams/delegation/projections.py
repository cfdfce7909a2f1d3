"""
Delegation Projections - the delegation store's read side

DelegationRegistry keeps one record per delegation with the stored facts
only. Queries that depend on time take `now` explicitly and derive status
on the fly.
"""

from datetime import datetime
from typing import Any, Literal

from clinic_teams.delegation.models import Delegation, DelegationStatus, derive_status
from clinic_teams.kernel.events import Event
from clinic_teams.kernel.time import ensure_utc

Direction = Literal["from", "to", "both"]


def record_status(record: dict[str, Any], now: datetime) -> DelegationStatus:
    """Derived status of a registry record"""
    return derive_status(
        is_active=record["is_active"],
        approved_by=record["approved_by"],
        start_date=ensure_utc(record["start_date"]),
        end_date=ensure_utc(record["end_date"]),
        now=now,
    )


class DelegationRegistry:
    """
    Projection: every delegation, in creation order

    Iteration order is the order used by conflict detection to pick the
    "first" conflict.
    """

    def __init__(self) -> None:
        self.delegations: dict[str, dict[str, Any]] = {}

    def apply_event(self, event: Event) -> None:
        """Apply an event to update projection state"""
        payload = event.payload

        if event.event_type == "DelegationCreated":
            self.delegations[payload["delegation_id"]] = {
                "delegation_id": payload["delegation_id"],
                "from_user_id": payload["from_user_id"],
                "to_user_id": payload["to_user_id"],
                "permissions": list(payload["permissions"]),
                "reason": payload.get("reason", ""),
                "start_date": payload["start_date"],
                "end_date": payload["end_date"],
                "is_active": True,
                "team_id": payload.get("team_id"),
                "approved_by": None,
                "approved_at": None,
                "revoked_by": None,
                "revoked_at": None,
                "revocation_reason": None,
                "notifications": payload.get("notifications", {}),
                "created_at": payload["created_at"],
                "created_by": payload.get("created_by"),
                "version": event.version,
            }
            return

        record = self.delegations.get(payload.get("delegation_id", ""))
        if record is None:
            return

        if event.event_type == "DelegationApproved":
            # Approval is written once; a replayed duplicate never overwrites it
            if record["approved_by"] is None:
                record["approved_by"] = payload["approved_by"]
                record["approved_at"] = payload["approved_at"]

        elif event.event_type == "DelegationRevoked":
            record["is_active"] = False
            record["revoked_by"] = payload.get("revoked_by")
            record["revoked_at"] = payload["revoked_at"]
            record["revocation_reason"] = payload.get("reason")

        elif event.event_type == "DelegationDeactivated":
            record["is_active"] = False
            record["revoked_by"] = payload.get("deactivated_by")
            record["revoked_at"] = payload["deactivated_at"]
            record["revocation_reason"] = payload["reason"]

        else:
            return

        record["version"] = event.version

    def get(self, delegation_id: str) -> dict[str, Any] | None:
        """Get delegation record by ID"""
        return self.delegations.get(delegation_id)

    def get_delegation(self, delegation_id: str) -> Delegation | None:
        record = self.delegations.get(delegation_id)
        return Delegation.model_validate(record) if record else None

    def list_all(self) -> list[dict[str, Any]]:
        return list(self.delegations.values())

    def list_for_user(self, user_id: str, direction: Direction = "both") -> list[dict[str, Any]]:
        """
        Delegations given (from), received (to) or both, whatever their status
        """
        if direction not in ("from", "to", "both"):
            raise ValueError(f"direction must be 'from', 'to' or 'both', got {direction!r}")
        results = []
        for record in self.delegations.values():
            given = record["from_user_id"] == user_id
            received = record["to_user_id"] == user_id
            if (
                (direction == "from" and given)
                or (direction == "to" and received)
                or (direction == "both" and (given or received))
            ):
                results.append(record)
        return results

    def list_for_team(self, team_id: str) -> list[dict[str, Any]]:
        return [d for d in self.delegations.values() if d["team_id"] == team_id]

    def list_active_now(self, user_id: str, now: datetime) -> list[dict[str, Any]]:
        """
        Delegations involving the user whose active flag is set and whose
        window contains `now` (approval is not considered here)
        """
        now = ensure_utc(now)
        return [
            d
            for d in self.list_for_user(user_id, "both")
            if d["is_active"]
            and ensure_utc(d["start_date"]) <= now <= ensure_utc(d["end_date"])
        ]

    def list_by_status(self, status: DelegationStatus | str, now: datetime) -> list[dict[str, Any]]:
        wanted = DelegationStatus(status)
        return [d for d in self.delegations.values() if record_status(d, now) == wanted]
