"""Selectors for the ledger kernel (read side)."""

from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.selectors.obligation_selector import ObligationSelector
from ledger_kernel.selectors.stock_selector import StockSelector

__all__ = [
    "LedgerSelector",
    "ObligationSelector",
    "StockSelector",
]
