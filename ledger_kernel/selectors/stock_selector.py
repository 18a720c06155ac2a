"""
Module: ledger_kernel.selectors.stock_selector
Responsibility: Read-only stock level queries: one item's stock row and the
    low-stock alert list.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.dtos import StockItemInfo
from ledger_kernel.domain.values import ItemKind, StockStatus
from ledger_kernel.models.catalog import CatalogItem
from ledger_kernel.models.stock import StockItem
from ledger_kernel.selectors.base import BaseSelector

_ALERT_STATUSES = (StockStatus.LOW_STOCK, StockStatus.OUT_OF_STOCK)


class StockSelector(BaseSelector[StockItem]):
    def get_stock(self, item_id: UUID) -> StockItemInfo | None:
        """Current stock for an item, or None if it never had a movement."""
        stock = self.session.execute(
            select(StockItem).where(StockItem.item_id == item_id)
        ).scalar_one_or_none()
        return StockItemInfo.from_model(stock) if stock is not None else None

    def list_stock(self, item_kind: ItemKind | None = None) -> list[StockItemInfo]:
        stmt = (
            select(StockItem)
            .join(CatalogItem, StockItem.item_id == CatalogItem.id)
            .order_by(CatalogItem.item_code)
        )
        if item_kind is not None:
            stmt = stmt.where(StockItem.item_kind == ItemKind(item_kind))
        return [StockItemInfo.from_model(s) for s in self.session.execute(stmt).scalars()]

    def low_stock_alerts(self, item_kind: ItemKind | None = None) -> list[StockItemInfo]:
        """
        Stock rows at or below their reorder point (or minimum when no
        reorder point is set), including items that are out of stock.
        """
        return [s for s in self.list_stock(item_kind) if s.status in _ALERT_STATUSES]
