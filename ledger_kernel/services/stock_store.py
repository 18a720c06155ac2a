"""
StockStore -- current on-hand quantity per stockable item.

Responsibility:
    Owns the ``stock_items`` rows: lazy creation with caller-supplied
    defaults, row locking for check-then-decrement sequences, batch
    availability checks, and the single write path ``apply_delta``.

Architecture position:
    Kernel > Services.  ``apply_delta`` is called only by
    ``InventoryLedger.record``, so every quantity change has a ledger row.

Invariants enforced:
    - quantity_on_hand never goes below zero; a delta that would do so
      raises InsufficientStockError and changes nothing.
    - Compare-and-swap on ``ledger_version``: the UPDATE only matches the
      version that was read, so a concurrent writer that slipped in between
      read and write is detected (ConcurrentModificationError) instead of
      being silently overwritten.
    - Rows are locked in item_id order so two transactions locking
      overlapping item sets cannot deadlock.

Failure modes:
    - NotFoundError if no stock row exists for an item passed to
      ``apply_delta``.
    - InsufficientStockError, ConcurrentModificationError as above.
    - IntegrityError from a concurrent first creation of the same stock row
      (handled via savepoint rollback and re-read).
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import StockDefaults
from ledger_kernel.domain.values import ItemKind
from ledger_kernel.exceptions import (
    ConcurrentModificationError,
    InsufficientStockError,
    NotFoundError,
    StockShortage,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.catalog import CatalogItem
from ledger_kernel.models.stock import StockItem
from ledger_kernel.services.base import BaseService

logger = get_logger("services.stock_store")


class StockStore(BaseService[StockItem]):
    """
    Service for reading and mutating stock rows.

    Guarantees:
        - ``check_availability`` reports every shortage in one error.
        - ``apply_delta`` either applies the full delta or nothing.
    """

    def get(self, item_id: UUID) -> StockItem | None:
        return self.session.execute(
            select(StockItem).where(StockItem.item_id == item_id)
        ).scalar_one_or_none()

    def get_or_init_stock(
        self,
        item_id: UUID,
        item_kind: ItemKind,
        defaults: StockDefaults,
        actor_id: UUID,
    ) -> StockItem:
        """
        Return the stock row for ``item_id``, creating it at quantity zero
        with ``defaults`` when absent.

        The returned row is locked when the backend supports row locks.
        """
        existing = self.lock_stock([item_id]).get(item_id)
        if existing is not None:
            return existing

        stock = StockItem(
            item_id=item_id,
            item_kind=item_kind,
            quantity_on_hand=ZERO,
            unit=defaults.unit,
            minimum_stock=defaults.minimum_stock,
            reorder_point=defaults.reorder_point,
            maximum_stock=defaults.maximum_stock,
            ledger_version=0,
            created_by_id=actor_id,
        )
        # Two first receipts for the same item can both miss the row; the
        # savepoint lets the loser fall back to the winner's row.
        savepoint = self.session.begin_nested()
        try:
            self.session.add(stock)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("stock_item_init_race_retry", extra={"item_id": str(item_id)})
            existing = self.lock_stock([item_id]).get(item_id)
            if existing is None:
                raise ConcurrentModificationError(
                    "StockItem", str(item_id), expected="absent", actual="conflict"
                )
            return existing

        logger.info(
            "stock_item_initialized",
            extra={
                "item_id": str(item_id),
                "item_kind": ItemKind(item_kind).value,
                "unit": defaults.unit,
            },
        )
        return stock

    def lock_stock(self, item_ids: Iterable[UUID]) -> dict[UUID, StockItem]:
        """
        Lock and return the existing stock rows for ``item_ids``.

        Items without a stock row are simply absent from the result.
        Rows are re-read from the database so the caller sees committed
        values, not stale identity-map state.
        """
        ids = sorted(set(item_ids), key=str)
        if not ids:
            return {}
        rows = self.session.execute(
            select(StockItem)
            .where(StockItem.item_id.in_(ids))
            .order_by(StockItem.item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
        return {row.item_id: row for row in rows}

    def check_availability(
        self,
        demand: Mapping[UUID, Decimal],
        stock_rows: Mapping[UUID, StockItem] | None = None,
    ) -> None:
        """
        Verify every item in ``demand`` has at least the requested quantity.

        A missing stock row counts as zero on hand.  Nothing is reserved or
        mutated; the caller must already hold the row locks.

        Raises:
            InsufficientStockError: naming every item that falls short.
        """
        rows = stock_rows if stock_rows is not None else self.lock_stock(demand)

        shortages: list[StockShortage] = []
        for item_id, requested in demand.items():
            row = rows.get(item_id)
            available = row.quantity_on_hand if row is not None else ZERO
            if available < requested:
                catalog = self.session.get(CatalogItem, item_id)
                shortages.append(
                    StockShortage(
                        item_id=str(item_id),
                        item_kind=ItemKind(catalog.item_kind).value if catalog else "",
                        item_code=catalog.item_code if catalog else None,
                        requested=requested,
                        available=available,
                    )
                )

        if shortages:
            logger.warning(
                "stock_availability_failed",
                extra={
                    "shortage_count": len(shortages),
                    "item_ids": [s.item_id for s in shortages],
                },
            )
            raise InsufficientStockError(shortages)

    @staticmethod
    def aggregate_demand(lines: Iterable[tuple[UUID, Decimal]]) -> dict[UUID, Decimal]:
        """Sum quantities per item so repeated items are checked once."""
        totals: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for item_id, quantity in lines:
            totals[item_id] += quantity
        return dict(totals)

    def apply_delta(
        self,
        item_id: UUID,
        delta: Decimal,
        expected_before: Decimal | None = None,
        now: datetime | None = None,
    ) -> StockItem:
        """
        Apply a signed quantity change to one stock row.

        Preconditions:
            - A stock row exists for ``item_id``.

        Postconditions:
            - quantity_on_hand increased by ``delta``; ledger_version
              increased by one; last_restocked_at set when delta > 0.

        Raises:
            ConcurrentModificationError: ``expected_before`` is given and does
                not match, or the row changed between read and write.
            InsufficientStockError: the result would be negative.
        """
        stock = self.session.execute(
            select(StockItem)
            .where(StockItem.item_id == item_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if stock is None:
            raise NotFoundError("StockItem", str(item_id))

        before = stock.quantity_on_hand
        if expected_before is not None and before != expected_before:
            raise ConcurrentModificationError(
                "StockItem", str(item_id), expected=expected_before, actual=before
            )

        after = before + delta
        if after < ZERO:
            raise InsufficientStockError(
                [
                    StockShortage(
                        item_id=str(item_id),
                        item_kind=ItemKind(stock.item_kind).value,
                        item_code=stock.item.item_code if stock.item else None,
                        requested=-delta,
                        available=before,
                    )
                ]
            )

        values: dict = {
            "quantity_on_hand": after,
            "ledger_version": stock.ledger_version + 1,
        }
        if delta > ZERO and now is not None:
            values["last_restocked_at"] = now

        result = self.session.execute(
            update(StockItem)
            .where(
                StockItem.id == stock.id,
                StockItem.ledger_version == stock.ledger_version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "stock_cas_conflict",
                extra={"item_id": str(item_id), "version": stock.ledger_version},
            )
            raise ConcurrentModificationError(
                "StockItem",
                str(item_id),
                expected=stock.ledger_version,
                actual="changed",
            )

        self.session.refresh(stock)

        logger.info(
            "stock_delta_applied",
            extra={
                "item_id": str(item_id),
                "delta": str(delta),
                "quantity_before": str(before),
                "quantity_after": str(after),
            },
        )
        return stock
