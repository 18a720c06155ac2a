"""
Module: ledger_kernel.models.replacement
Responsibility: Immutable record of a product replaced against a sale.
Architecture position: Kernel > Models.

Invariants enforced:
    - product_id is one of the referenced sale's line items (checked by the
      orchestrator before the row is written).
    - Rows are never updated or deleted (db/immutability.py).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString
from ledger_kernel.domain.values import ReplacementReason


class ReplacementRecord(Base):
    """A product handed out again because the sold unit was unusable."""

    __tablename__ = "replacement_records"

    __table_args__ = (
        UniqueConstraint("code", name="uq_replacement_code"),
        CheckConstraint("quantity > 0", name="ck_replacement_quantity_positive"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    sale_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("obligations.id"),
        nullable=False,
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("catalog_items.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    reason: Mapped[ReplacementReason] = mapped_column(String(20), nullable=False)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    replaced_on: Mapped[date] = mapped_column(Date, nullable=False)

    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
