"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.access_policy import AccessPolicy
from ledger_kernel.services.audit_log_service import AuditLogService
from ledger_kernel.services.catalog_service import CatalogService
from ledger_kernel.services.inventory_ledger import InventoryLedger
from ledger_kernel.services.obligation_service import ObligationService
from ledger_kernel.services.payment_allocator import PaymentAllocator
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.settlement_orchestrator import SettlementOrchestrator
from ledger_kernel.services.stock_store import StockStore

__all__ = [
    "AccessPolicy",
    "AuditLogService",
    "CatalogService",
    "InventoryLedger",
    "ObligationService",
    "PaymentAllocator",
    "SequenceService",
    "SettlementOrchestrator",
    "StockStore",
]
