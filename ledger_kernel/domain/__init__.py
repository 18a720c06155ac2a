"""
Pure domain layer.

Status derivation, stock classification, the allocation planner, the
clock abstraction, DTOs and the permission table.  Nothing here touches
the database.
"""

from ledger_kernel.domain.allocation import (
    AllocationApplication,
    AllocationPlan,
    OutstandingBalance,
    plan_allocation,
)
from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.permissions import Action, PermissionTable, Resource
from ledger_kernel.domain.policy import CodePrefixes, SettlementPolicy
from ledger_kernel.domain.status import derive_status
from ledger_kernel.domain.stock_status import classify_stock

__all__ = [
    "Action",
    "AllocationApplication",
    "AllocationPlan",
    "Clock",
    "CodePrefixes",
    "DeterministicClock",
    "OutstandingBalance",
    "PermissionTable",
    "Resource",
    "SettlementPolicy",
    "SystemClock",
    "classify_stock",
    "derive_status",
    "plan_allocation",
]
