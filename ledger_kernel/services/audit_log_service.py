"""
AuditLogService -- append-only audit rows for orchestrator mutations.

Responsibility:
    Writes one AuditLog row per business mutation (create, update, delete)
    with the actor, the entity and JSON snapshots of the old and new values.
    The row is flushed into the caller's transaction, so a rolled-back
    operation leaves no audit trace.

Architecture position:
    Kernel > Services.  Called by the SettlementOrchestrator.
"""

from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from ledger_kernel.domain.clock import Clock
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_log import AuditAction, AuditLog
from ledger_kernel.services.base import BaseService

logger = get_logger("services.audit_log")


def to_json_value(value: Any) -> Any:
    """Convert DTOs and scalar types into JSON-serializable structures."""
    if is_dataclass(value) and not isinstance(value, type):
        return to_json_value(asdict(value))
    if isinstance(value, dict):
        return {str(k): to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class AuditLogService(BaseService[AuditLog]):
    def __init__(self, session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    def record(
        self,
        action: AuditAction,
        entity: str,
        entity_id: str | UUID,
        actor_id: UUID | None,
        old_value: Any = None,
        new_value: Any = None,
    ) -> AuditLog:
        row = AuditLog(
            action=action,
            entity=entity,
            entity_id=str(entity_id),
            actor_id=actor_id,
            old_value=to_json_value(old_value),
            new_value=to_json_value(new_value),
            occurred_at=self._clock.now(),
        )
        self.session.add(row)
        self.session.flush()
        logger.debug(
            "audit_logged",
            extra={"action": action.value, "entity": entity, "entity_id": str(entity_id)},
        )
        return row
