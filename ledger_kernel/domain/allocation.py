"""
Allocation -- pure FIFO planner for excess customer payments.

Responsibility:
    Given an excess amount and a customer's outstanding obligations, decide
    how much goes to each obligation (oldest first) and how much is left over
    for the customer's credit balance.  The planner computes; the
    PaymentAllocator service applies the plan to rows.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Conservation: ``excess == sum(applications) + credit_added``.
    - No application exceeds the obligation's balance, so no balance is ever
      driven below zero.
    - Obligations are visited in the order given; callers pass them sorted by
      (occurred_on, code) ascending.

Failure modes:
    - ValueError if excess is negative or an outstanding balance is not
      positive.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from ledger_kernel.logging_config import get_logger

logger = get_logger("domain.allocation")

_ZERO = Decimal("0")


@dataclass(frozen=True)
class OutstandingBalance:
    """An obligation that still has money owed on it."""

    obligation_id: UUID
    code: str
    balance: Decimal

    def __post_init__(self) -> None:
        if self.balance <= _ZERO:
            raise ValueError(
                f"Outstanding balance must be positive for {self.code} (got {self.balance})"
            )


@dataclass(frozen=True)
class AllocationApplication:
    """Amount applied to one obligation."""

    obligation_id: UUID
    code: str
    amount: Decimal
    balance_after: Decimal

    @property
    def settles(self) -> bool:
        return self.balance_after == _ZERO


@dataclass(frozen=True)
class AllocationPlan:
    """
    Outcome of planning an excess allocation.

    Guarantees:
        ``excess == total_applied + credit_added``.
    """

    excess: Decimal
    applications: tuple[AllocationApplication, ...]
    credit_added: Decimal

    def __post_init__(self) -> None:
        if self.total_applied + self.credit_added != self.excess:
            raise ValueError(
                f"Allocation does not conserve money: {self.total_applied} applied + "
                f"{self.credit_added} credited != {self.excess}"
            )

    @property
    def total_applied(self) -> Decimal:
        return sum((a.amount for a in self.applications), _ZERO)


def plan_allocation(
    excess: Decimal,
    outstanding: Sequence[OutstandingBalance],
) -> AllocationPlan:
    """
    Plan the FIFO distribution of ``excess`` over ``outstanding``.

    For each obligation, in order, while money remains:
    ``payment = min(remaining, balance)``.  Whatever remains after the last
    obligation becomes credit.
    """
    if excess < _ZERO:
        raise ValueError(f"Excess must be non-negative (got {excess})")

    remaining = excess
    applications: list[AllocationApplication] = []

    for item in outstanding:
        if remaining <= _ZERO:
            break
        payment = min(remaining, item.balance)
        applications.append(
            AllocationApplication(
                obligation_id=item.obligation_id,
                code=item.code,
                amount=payment,
                balance_after=item.balance - payment,
            )
        )
        remaining -= payment

    plan = AllocationPlan(
        excess=excess,
        applications=tuple(applications),
        credit_added=remaining,
    )

    logger.debug(
        "allocation_planned",
        extra={
            "excess": str(excess),
            "obligation_count": len(plan.applications),
            "credit_added": str(plan.credit_added),
        },
    )
    return plan
