"""ORM models for the ledger kernel."""

from ledger_kernel.models.audit_log import AuditAction, AuditLog
from ledger_kernel.models.catalog import CatalogItem
from ledger_kernel.models.ledger import LedgerEntry
from ledger_kernel.models.obligation import Obligation, ObligationLine, PaymentRecord
from ledger_kernel.models.party import Party
from ledger_kernel.models.replacement import ReplacementRecord
from ledger_kernel.models.stock import StockItem

__all__ = [
    "AuditAction",
    "AuditLog",
    "CatalogItem",
    "LedgerEntry",
    "Obligation",
    "ObligationLine",
    "Party",
    "PaymentRecord",
    "ReplacementRecord",
    "StockItem",
]
