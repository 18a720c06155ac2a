"""
Values -- enumerations shared by every layer of the ledger kernel.

Responsibility:
    Defines the closed vocabularies of the system: item kinds, party types,
    obligation kinds and statuses, payment modes, ledger transaction kinds,
    adjustment directions, replacement reasons and stock statuses.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Imported by models/,
    services/ and selectors/.  No outward dependencies.

All enums subclass ``str`` so they compare equal to the raw strings stored
in String columns and serialize naturally into logs and audit JSON.
"""

from enum import Enum


class ItemKind(str, Enum):
    """What a stockable catalog item is."""

    PRODUCT = "product"
    MATERIAL = "material"


class PartyType(str, Enum):
    """Counterparty classification."""

    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class ObligationKind(str, Enum):
    """A sale owes money to us; a purchase owes money to a supplier."""

    SALE = "sale"
    PURCHASE = "purchase"


class ObligationStatus(str, Enum):
    """Settlement status, always derived by ``domain.status.derive_status``."""

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class PaymentMode(str, Enum):
    """How money changed hands."""

    CASH = "cash"
    TRANSFER = "transfer"
    POS = "pos"
    CREDIT = "credit"  # pay later
    OTHERS = "others"
    STORE_CREDIT = "store_credit"  # consumed customer credit balance


class TransactionKind(str, Enum):
    """Cause of a stock quantity change recorded in the inventory ledger."""

    SALE = "sale"
    PURCHASE = "purchase"
    ADJUSTMENT = "adjustment"
    GOODS_RECEIVED = "goods_received"
    REPLACEMENT = "replacement"


class ReferenceKind(str, Enum):
    """What a ledger entry's reference_id points at."""

    SALE = "sale"
    PURCHASE = "purchase"
    ADJUSTMENT = "adjustment"
    GOODS_RECEIVED = "goods_received"
    REPLACEMENT = "replacement"


class AdjustmentDirection(str, Enum):
    ADD = "add"
    SUBTRACT = "subtract"


class ReplacementReason(str, Enum):
    DAMAGED = "damaged"
    DEFECTIVE = "defective"
    EXPIRED = "expired"
    OTHER = "other"


class StockStatus(str, Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"
    OVERSTOCK = "overstock"
