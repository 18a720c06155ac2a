"""Stock level classification used by stock views and low-stock alerts."""

from decimal import Decimal

from ledger_kernel.domain.values import StockStatus


def classify_stock(
    quantity: Decimal,
    minimum_stock: Decimal,
    reorder_point: Decimal | None = None,
    maximum_stock: Decimal | None = None,
) -> StockStatus:
    """
    Classify a stock level.

    A zero reorder point falls back to the minimum stock threshold.
    """
    threshold = reorder_point if reorder_point else minimum_stock

    if quantity == 0:
        return StockStatus.OUT_OF_STOCK
    if quantity <= threshold:
        return StockStatus.LOW_STOCK
    if maximum_stock and quantity > maximum_stock:
        return StockStatus.OVERSTOCK
    return StockStatus.IN_STOCK
