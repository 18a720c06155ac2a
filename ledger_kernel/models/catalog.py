"""
Module: ledger_kernel.models.catalog
Responsibility: ORM persistence for stockable catalog items -- finished
    products that are sold and raw materials that are purchased.
Architecture position: Kernel > Models.

Invariants enforced:
    - item_code is unique across products and materials.
    - item_kind never changes after creation.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.domain.values import ItemKind


class CatalogItem(TrackedBase):
    """A product or raw material."""

    __tablename__ = "catalog_items"

    __table_args__ = (
        UniqueConstraint("item_code", name="uq_catalog_item_code"),
        Index("idx_catalog_item_kind", "item_kind"),
    )

    item_code: Mapped[str] = mapped_column(String(50), nullable=False)

    item_kind: Mapped[ItemKind] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    unit: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # List price for products; materials are bought at negotiated totals
    unit_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<CatalogItem {self.item_code}: {self.name} ({self.item_kind})>"
