"""
Module: ledger_kernel.models.audit_log
Responsibility: ORM persistence for the append-only audit log written by
    every orchestrator mutation.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit rows are append-only; no UPDATE or DELETE (db/immutability.py).
    - An audit row commits in the same transaction as the change it
      describes, so a rolled-back operation leaves no audit trace.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class AuditLog(Base):
    """One audited change to a business entity."""

    __tablename__ = "audit_logs"

    __table_args__ = (
        Index("idx_audit_entity", "entity", "entity_id"),
        Index("idx_audit_actor", "actor_id"),
    )

    action: Mapped[AuditAction] = mapped_column(String(20), nullable=False)

    # Entity name, e.g. "Sale", "Purchase", "StockAdjustment"
    entity: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)

    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    old_value: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    new_value: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.entity} {self.entity_id}>"
