"""
InventoryLedger -- the recording path for every stock quantity change.

Responsibility:
    ``record()`` reads the item's current quantity, applies the delta through
    the StockStore and appends the LedgerEntry with before/after snapshots.
    Both effects are flushed into the caller's transaction, so they commit
    together or not at all.

Architecture position:
    Kernel > Services.  The only caller of ``StockStore.apply_delta``.
    Read-side history queries live in selectors/ledger_selector.py.

Invariants enforced:
    - quantity_after = quantity_before + quantity_change for every entry.
    - The newest entry's quantity_after equals the live quantity_on_hand
      (item_sequence tracks the stock row's ledger_version).
    - A zero delta is rejected; every entry records an actual change.

Failure modes:
    - InsufficientStockError / ConcurrentModificationError from the store.
    - ValueError on a zero delta (programming error, not user input).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import LedgerEntryInfo, LedgerReference
from ledger_kernel.domain.values import TransactionKind
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.ledger import LedgerEntry
from ledger_kernel.models.stock import StockItem
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.stock_store import StockStore

logger = get_logger("services.inventory_ledger")


class InventoryLedger(BaseService[LedgerEntry]):
    """Append-only writer for stock movements."""

    def __init__(self, session, stock_store: StockStore | None = None):
        super().__init__(session)
        self._store = stock_store or StockStore(session)

    def record(
        self,
        stock_item: StockItem,
        transaction_kind: TransactionKind,
        delta: Decimal,
        reference: LedgerReference,
        notes: str | None = None,
        actor_id: UUID | None = None,
        now: datetime | None = None,
    ) -> LedgerEntryInfo:
        """
        Apply ``delta`` to ``stock_item`` and append the ledger entry.

        Preconditions:
            - ``stock_item`` is the caller's (locked) stock row.
            - ``delta`` is non-zero.

        Postconditions:
            - The stock row holds quantity_before + delta.
            - A LedgerEntry with the same before/after pair is flushed.
        """
        if delta == ZERO:
            raise ValueError("Ledger entries must record a non-zero change")

        before = stock_item.quantity_on_hand
        updated = self._store.apply_delta(
            stock_item.item_id,
            delta,
            expected_before=before,
            now=now,
        )

        entry = LedgerEntry(
            stock_item_id=updated.id,
            item_sequence=updated.ledger_version,
            transaction_kind=transaction_kind,
            quantity_change=delta,
            quantity_before=before,
            quantity_after=before + delta,
            reference_id=reference.reference_id,
            reference_kind=reference.reference_kind,
            notes=notes,
            actor_id=actor_id,
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "ledger_entry_recorded",
            extra={
                "stock_item_id": str(updated.id),
                "item_sequence": entry.item_sequence,
                "transaction_kind": TransactionKind(transaction_kind).value,
                "quantity_change": str(delta),
                "quantity_after": str(entry.quantity_after),
                "reference_id": reference.reference_id,
            },
        )
        return LedgerEntryInfo.from_model(entry)
