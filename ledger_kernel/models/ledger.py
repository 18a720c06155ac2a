"""
Module: ledger_kernel.models.ledger
Responsibility: The append-only inventory ledger -- one row per stock
    quantity change, with before/after snapshots and the cause.
Architecture position: Kernel > Models.

Invariants enforced:
    - quantity_after = quantity_before + quantity_change; computed once by
      InventoryLedger.record from the locked stock row.
    - quantity_after >= 0 (ck_ledger_after_non_negative).
    - (stock_item_id, item_sequence) is unique, so an item's entries form a
      single gap-free chain.
    - Rows are never updated or deleted (ORM listeners in db/immutability.py).
      Corrections are new entries.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, UUIDString
from ledger_kernel.domain.values import ReferenceKind, TransactionKind
from ledger_kernel.models.stock import StockItem


class LedgerEntry(Base):
    """Immutable record of one stock quantity change."""

    __tablename__ = "ledger_entries"

    __table_args__ = (
        UniqueConstraint("stock_item_id", "item_sequence", name="uq_ledger_item_sequence"),
        CheckConstraint("quantity_after >= 0", name="ck_ledger_after_non_negative"),
        Index("idx_ledger_reference", "reference_id"),
        Index("idx_ledger_stock_item", "stock_item_id"),
    )

    stock_item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stock_items.id"),
        nullable=False,
    )

    # Position of this entry in the item's chain (1, 2, 3, ...)
    item_sequence: Mapped[int] = mapped_column(nullable=False)

    transaction_kind: Mapped[TransactionKind] = mapped_column(String(20), nullable=False)

    quantity_change: Mapped[Decimal] = mapped_column(nullable=False)

    quantity_before: Mapped[Decimal] = mapped_column(nullable=False)

    quantity_after: Mapped[Decimal] = mapped_column(nullable=False)

    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    reference_kind: Mapped[ReferenceKind | None] = mapped_column(String(20), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    stock_item: Mapped[StockItem] = relationship()

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.transaction_kind} {self.quantity_change:+} "
            f"({self.quantity_before} -> {self.quantity_after})>"
        )
