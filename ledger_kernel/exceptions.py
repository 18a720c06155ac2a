"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (API handlers, UI controllers) must tell business-rule failures apart
from infrastructure faults without parsing message strings:

  - Every error has a TYPED exception class (catch by type, not message).
  - Every exception has a CODE class attribute (machine-readable, API-safe).
  - Exceptions carry structured DATA (not just a message string).
  - ``client_safe`` says whether the message may be shown to the end user
    (4xx-equivalent) or must be replaced by a generic message
    (5xx-equivalent).

Example:

    try:
        orchestrator.create_sale(actor, request)
    except InsufficientStockError as e:
        return {"error": e.code, "items": [s.item_id for s in e.shortages]}
    except LedgerKernelError as e:
        if not e.client_safe:
            return {"error": "INTERNAL_ERROR"}
        return {"error": e.code, "message": str(e)}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- ValidationError
    +-- NotFoundError
    |   +-- ProductNotInSaleError (also an InvalidStateError)
    +-- InsufficientStockError
    +-- InsufficientPermissionError
    +-- InvalidStateError
    |   +-- PaymentExceedsBalanceError
    |   +-- TotalBelowPaymentsError
    |   +-- ObligationHasPaymentsError
    |   +-- ProductNotInSaleError
    +-- ConcurrentModificationError
    +-- ImmutabilityViolationError
    +-- InfrastructureFault

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | When Raised
----------------------------|--------------------------------------------------
VALIDATION_ERROR            | Malformed or missing input, nothing mutated
NOT_FOUND                   | Customer/supplier/item/obligation doesn't exist
INSUFFICIENT_STOCK          | One or more items lack the requested quantity
INSUFFICIENT_PERMISSION     | Role may not perform the action
INVALID_STATE               | Operation conflicts with recorded state
PAYMENT_EXCEEDS_BALANCE     | Payment larger than the remaining balance
TOTAL_BELOW_PAYMENTS        | Corrected total below money already recorded
OBLIGATION_HAS_PAYMENTS     | Deleting an obligation that has payments
PRODUCT_NOT_IN_SALE         | Replacement for a product the sale never had
CONCURRENT_MODIFICATION     | Optimistic check lost against another writer
IMMUTABILITY_VIOLATION      | Update/delete of an append-only row
INFRASTRUCTURE_FAULT        | Unexpected database/driver failure
"""

from dataclasses import dataclass
from decimal import Decimal


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    Subclasses must define a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"
    client_safe: bool = True


class ValidationError(LedgerKernelError):
    """Malformed or missing input. Raised before any mutation is attempted."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"Invalid {field}: {message}")


class NotFoundError(LedgerKernelError):
    """A referenced customer, supplier, item or obligation does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


@dataclass(frozen=True)
class StockShortage:
    """One line of an InsufficientStockError."""

    item_id: str
    item_kind: str
    item_code: str | None
    requested: Decimal
    available: Decimal


class InsufficientStockError(LedgerKernelError):
    """
    Requested quantity exceeds what is on hand.

    Carries every offending item, not just the first, so the caller can
    show one consolidated error.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, shortages: list[StockShortage] | tuple[StockShortage, ...]):
        self.shortages = tuple(shortages)
        details = ", ".join(
            f"{s.item_code or s.item_id} (available {s.available}, requested {s.requested})"
            for s in self.shortages
        )
        super().__init__(f"Insufficient stock for: {details}")

    @property
    def item_ids(self) -> tuple[str, ...]:
        return tuple(s.item_id for s in self.shortages)


class InsufficientPermissionError(LedgerKernelError):
    """The caller's role is not allowed to perform the action."""

    code: str = "INSUFFICIENT_PERMISSION"

    def __init__(self, role: str, resource: str, action: str):
        self.role = role
        self.resource = resource
        self.action = action
        super().__init__(
            f"Role '{role}' may not {action} {resource}"
        )


class InvalidStateError(LedgerKernelError):
    """The operation conflicts with the recorded state of an entity."""

    code: str = "INVALID_STATE"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(f"Invalid state for {entity_type} {entity_id}: {reason}")


class PaymentExceedsBalanceError(InvalidStateError):
    """A payment is larger than the obligation's remaining balance."""

    code: str = "PAYMENT_EXCEEDS_BALANCE"

    def __init__(self, obligation_id: str, amount: Decimal, balance: Decimal):
        self.amount = amount
        self.balance = balance
        super().__init__(
            "Obligation",
            obligation_id,
            f"payment {amount} exceeds remaining balance {balance}",
        )


class TotalBelowPaymentsError(InvalidStateError):
    """A corrected total would fall below the money already recorded."""

    code: str = "TOTAL_BELOW_PAYMENTS"

    def __init__(self, obligation_id: str, total: Decimal, paid: Decimal):
        self.total = total
        self.paid = paid
        super().__init__(
            "Obligation",
            obligation_id,
            f"total {total} is below recorded payments {paid}",
        )


class ObligationHasPaymentsError(InvalidStateError):
    """Obligations with recorded payments cannot be deleted."""

    code: str = "OBLIGATION_HAS_PAYMENTS"

    def __init__(self, obligation_id: str, payment_count: int):
        self.payment_count = payment_count
        super().__init__(
            "Obligation",
            obligation_id,
            f"has {payment_count} payment record(s) and cannot be deleted",
        )


class ProductNotInSaleError(NotFoundError, InvalidStateError):
    """
    A replacement names a product that the sale never contained.

    Catchable both as NotFoundError and as InvalidStateError.
    """

    code: str = "PRODUCT_NOT_IN_SALE"

    def __init__(self, sale_id: str, product_id: str):
        self.entity_type = "SaleLine"
        self.entity_id = str(product_id)
        self.sale_id = str(sale_id)
        self.reason = f"product {product_id} is not part of sale {sale_id}"
        LedgerKernelError.__init__(self, self.reason)


class ConcurrentModificationError(LedgerKernelError):
    """An optimistic check failed: the row changed under us."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str, expected, actual):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}: "
            f"expected {expected}, found {actual}"
        )


class ImmutabilityViolationError(LedgerKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"
    client_safe: bool = False

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class InfrastructureFault(LedgerKernelError):
    """Unexpected database or driver failure. Never shown verbatim to users."""

    code: str = "INFRASTRUCTURE_FAULT"
    client_safe: bool = False

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause_type = type(cause).__name__
        super().__init__(f"Infrastructure fault during {operation}")
