"""
Module: ledger_kernel.models.stock
Responsibility: Current on-hand quantity for each stockable catalog item.
Architecture position: Kernel > Models.

Invariants enforced:
    - quantity_on_hand >= 0 (ck_stock_quantity_non_negative).
    - One stock row per catalog item (uq_stock_item).
    - ledger_version increments by exactly one per recorded ledger entry, so
      the newest entry for an item is the one whose item_sequence equals it.
    - Only StockStore.apply_delta changes quantity_on_hand, and only
      InventoryLedger.record calls it.

Failure modes:
    - IntegrityError if a write bypasses the stock store and goes negative.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.stock_status import classify_stock
from ledger_kernel.domain.values import ItemKind, StockStatus
from ledger_kernel.models.catalog import CatalogItem


class StockItem(TrackedBase):
    """
    Inventory row for a product or raw material.

    Created lazily on the first stock-affecting event, never deleted while
    ledger rows reference it.
    """

    __tablename__ = "stock_items"

    __table_args__ = (
        UniqueConstraint("item_id", name="uq_stock_item"),
        CheckConstraint("quantity_on_hand >= 0", name="ck_stock_quantity_non_negative"),
        Index("idx_stock_item_kind", "item_kind"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("catalog_items.id"),
        nullable=False,
    )

    item_kind: Mapped[ItemKind] = mapped_column(String(20), nullable=False)

    quantity_on_hand: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    unit: Mapped[str] = mapped_column(String(20), nullable=False)

    minimum_stock: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    reorder_point: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    maximum_stock: Mapped[Decimal | None] = mapped_column(nullable=True)

    last_restocked_at: Mapped[datetime | None] = mapped_column(nullable=True)

    ledger_version: Mapped[int] = mapped_column(nullable=False, default=0)

    item: Mapped[CatalogItem] = relationship()

    @property
    def status(self) -> StockStatus:
        return classify_stock(
            self.quantity_on_hand,
            self.minimum_stock,
            self.reorder_point,
            self.maximum_stock,
        )

    def __repr__(self) -> str:
        return f"<StockItem {self.item_id}: {self.quantity_on_hand} {self.unit}>"
