"""
Audit collaborator

Every successful mutation is reported to an AuditSink as
record(actor, action, entity_id, metadata). Delivery is best-effort: the
facade publishes appended events on the EventBus and the subscriber below
turns each one into a record call; a failing sink is logged by the bus.
"""

from datetime import datetime
from typing import Any, Protocol

from pydantic import BaseModel, Field

from clinic_teams.kernel.bus import ALL_EVENTS, EventBus
from clinic_teams.kernel.events import Event
from clinic_teams.kernel.logging import get_logger

logger = get_logger(__name__)


class AuditSink(Protocol):
    """Fire-and-forget audit trail"""

    def record(
        self,
        actor: str | None,
        action: str,
        entity_id: str,
        metadata: dict[str, Any],
    ) -> None: ...


class AuditEntry(BaseModel):
    """One audit record as kept by MemoryAuditSink"""

    actor: str | None
    action: str
    entity_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class StructlogAuditSink:
    """Writes audit records to the structured log"""

    def __init__(self) -> None:
        self._logger = get_logger("clinic_teams.audit")

    def record(
        self,
        actor: str | None,
        action: str,
        entity_id: str,
        metadata: dict[str, Any],
    ) -> None:
        self._logger.info(
            "audit",
            actor=actor,
            action=action,
            entity_id=entity_id,
            **metadata,
        )


class MemoryAuditSink:
    """Keeps audit records in memory (tests and CLI inspection)"""

    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    def record(
        self,
        actor: str | None,
        action: str,
        entity_id: str,
        metadata: dict[str, Any],
    ) -> None:
        self.entries.append(
            AuditEntry(actor=actor, action=action, entity_id=entity_id, metadata=metadata)
        )

    def actions_for(self, entity_id: str) -> list[str]:
        return [e.action for e in self.entries if e.entity_id == entity_id]


def audit_metadata(event: Event) -> dict[str, Any]:
    """Metadata attached to the audit record of an event"""
    occurred: datetime = event.occurred_at
    return {
        "stream_type": event.stream_type,
        "version": event.version,
        "occurred_at": occurred.isoformat(),
        "command_id": event.command_id,
    }


def attach_audit_sink(bus: EventBus, sink: AuditSink) -> None:
    """Subscribe an audit sink to every event published on the bus"""

    def _record(event: Event) -> None:
        sink.record(event.actor_id, event.event_type, event.stream_id, audit_metadata(event))

    bus.subscribe(ALL_EVENTS, _record)
