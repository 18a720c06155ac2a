"""
Ledger Kernel

Transactional settlement and inventory ledger engine for a small business:
- Stock levels mutated only through an append-only inventory ledger
- Sales and purchases with derived settlement status
- FIFO allocation of excess payments and customer store credit
- All-or-nothing orchestrator operations
"""

__version__ = "0.1.0"
