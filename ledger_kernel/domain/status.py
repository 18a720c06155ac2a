"""
Status -- the single settlement-status function for sales and purchases.

Responsibility:
    ``derive_status(amount_paid, total)`` is the only place an obligation
    status is computed.  Services and ORM rows call it whenever either input
    changes; no caller writes a status string by hand.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

State machine (shared by sales and purchases):

    amount_paid == 0            -> pending
    0 < amount_paid < total     -> partial
    amount_paid >= total        -> paid
"""

from decimal import Decimal

from ledger_kernel.domain.values import ObligationStatus

_ZERO = Decimal("0")


def derive_status(amount_paid: Decimal, total: Decimal) -> ObligationStatus:
    """
    Return the obligation status for the given paid amount and total.

    Preconditions: amount_paid >= 0.
    """
    if amount_paid < _ZERO:
        raise ValueError(f"amount_paid must be non-negative (got {amount_paid})")
    if amount_paid == _ZERO:
        return ObligationStatus.PENDING
    if amount_paid < total:
        return ObligationStatus.PARTIAL
    return ObligationStatus.PAID


def balance_of(amount_paid: Decimal, total: Decimal) -> Decimal:
    """Remaining balance owed; never negative for a consistent obligation."""
    return total - amount_paid
