"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only queries over the inventory ledger: paged history
    per item, every entry caused by one reference, and chain reconciliation.
Architecture position: Kernel > Selectors.

Invariants checked by ``reconcile_item``:
    - Every entry satisfies quantity_after = quantity_before + quantity_change.
    - item_sequence runs 1, 2, 3, ... without gaps.
    - Each entry's quantity_before equals the previous entry's quantity_after
      (the first starts from zero).
    - The last quantity_after equals the live quantity_on_hand.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.domain.dtos import LedgerEntryInfo, Page, ReconciliationReport
from ledger_kernel.exceptions import NotFoundError
from ledger_kernel.models.ledger import LedgerEntry
from ledger_kernel.models.stock import StockItem
from ledger_kernel.selectors.base import BaseSelector


class LedgerSelector(BaseSelector[LedgerEntry]):
    """
    Selector for inventory ledger history.

    Guarantees:
        - Entries for one item are returned in item_sequence order, which is
          the order the changes were applied.
    """

    def _stock_item(self, item_id: UUID) -> StockItem:
        stock = self.session.execute(
            select(StockItem).where(StockItem.item_id == item_id)
        ).scalar_one_or_none()
        if stock is None:
            raise NotFoundError("StockItem", str(item_id))
        return stock

    def list_for_item(
        self,
        item_id: UUID,
        page: int = 1,
        page_size: int | None = None,
        newest_first: bool = True,
    ) -> Page[LedgerEntryInfo]:
        """
        Page through the ledger of one catalog item.

        Raises:
            NotFoundError: the item has never had a stock movement.
            ValueError: invalid paging arguments.
        """
        limit, offset = self._page_bounds(page, page_size)
        stock = self._stock_item(item_id)

        total = self.session.execute(
            select(func.count(LedgerEntry.id)).where(LedgerEntry.stock_item_id == stock.id)
        ).scalar_one()

        order = (
            LedgerEntry.item_sequence.desc()
            if newest_first
            else LedgerEntry.item_sequence.asc()
        )
        rows = self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.stock_item_id == stock.id)
            .order_by(order)
            .limit(limit)
            .offset(offset)
        ).scalars().all()

        return Page(
            items=tuple(LedgerEntryInfo.from_model(r) for r in rows),
            page=page,
            page_size=limit,
            total=total,
        )

    def list_by_reference(self, reference_id: UUID | str) -> list[LedgerEntryInfo]:
        """Every ledger entry caused by one sale, purchase or other event."""
        rows = self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.reference_id == str(reference_id))
            .order_by(LedgerEntry.stock_item_id, LedgerEntry.item_sequence)
        ).scalars().all()
        return [LedgerEntryInfo.from_model(r) for r in rows]

    def reconcile_item(self, item_id: UUID) -> ReconciliationReport:
        """Walk an item's ledger chain and report every inconsistency found."""
        stock = self._stock_item(item_id)
        entries = self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.stock_item_id == stock.id)
            .order_by(LedgerEntry.item_sequence)
        ).scalars().all()

        problems: list[str] = []
        running = Decimal("0")
        for expected_sequence, entry in enumerate(entries, start=1):
            if entry.item_sequence != expected_sequence:
                problems.append(
                    f"sequence gap: expected {expected_sequence}, found {entry.item_sequence}"
                )
            if entry.quantity_before + entry.quantity_change != entry.quantity_after:
                problems.append(
                    f"entry {entry.item_sequence}: {entry.quantity_before} + "
                    f"{entry.quantity_change} != {entry.quantity_after}"
                )
            if entry.quantity_before != running:
                problems.append(
                    f"entry {entry.item_sequence}: starts at {entry.quantity_before}, "
                    f"previous entry ended at {running}"
                )
            if entry.quantity_after < 0:
                problems.append(f"entry {entry.item_sequence}: negative quantity")
            running = entry.quantity_after

        if running != stock.quantity_on_hand:
            problems.append(
                f"ledger ends at {running} but quantity_on_hand is {stock.quantity_on_hand}"
            )

        return ReconciliationReport(
            stock_item_id=stock.id,
            entry_count=len(entries),
            ledger_quantity=running,
            live_quantity=stock.quantity_on_hand,
            problems=tuple(problems),
        )
