"""
PaymentAllocator -- distributes money that exceeds what one sale required.

Responsibility:
    Applies an excess amount to the customer's other outstanding sales,
    oldest first, and credits whatever remains to the customer's credit
    balance.  Also the only component that consumes or adds store credit.

Architecture position:
    Kernel > Services.  Planning is delegated to the pure
    ``domain.allocation.plan_allocation``; this service loads the inputs
    under lock and applies the plan to rows.

Invariants enforced:
    - Serialized per customer: the caller must hold the customer row lock
      (``CatalogService.require_party(..., for_update=True)``), and the
      outstanding sales are locked as they are read, so two allocations for
      the same customer cannot spend the same balance twice.
    - Scope: sales outstanding at the start of the pass, excluding the
      triggering sale, ordered by (occurred_on, code) ascending.
    - Conservation: excess == sum(payments applied) + credit added.
    - No obligation balance and no credit balance ever goes negative.

Failure modes:
    - InvalidStateError if asked to consume more credit than the customer
      holds (callers cap the amount first, so this indicates a bug).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.allocation import OutstandingBalance, plan_allocation
from ledger_kernel.domain.dtos import AllocationOutcome, PaymentInfo
from ledger_kernel.domain.values import ObligationKind, PaymentMode
from ledger_kernel.exceptions import InvalidStateError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.obligation import Obligation
from ledger_kernel.models.party import Party
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.obligation_service import ObligationService

logger = get_logger("services.payment_allocator")


class PaymentAllocator(BaseService[Obligation]):
    """Applies excess payments and manages customer store credit."""

    def __init__(self, session, obligations: ObligationService | None = None):
        super().__init__(session)
        self._obligations = obligations or ObligationService(session)

    def lock_customer(self, customer_id: UUID) -> Party | None:
        """
        Lock a customer row regardless of its active flag.

        Used before locking one of the customer's sales, so that every
        operation on a customer's money takes the customer lock first.
        """
        return self.session.execute(
            select(Party)
            .where(Party.id == customer_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def outstanding_sales(
        self,
        customer_id: UUID,
        exclude_id: UUID | None = None,
    ) -> list[Obligation]:
        """Lock and return the customer's unpaid sales, oldest first."""
        stmt = (
            select(Obligation)
            .where(
                Obligation.counterparty_id == customer_id,
                Obligation.kind == ObligationKind.SALE,
                Obligation.balance > ZERO,
            )
            .order_by(Obligation.occurred_on, Obligation.code)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if exclude_id is not None:
            stmt = stmt.where(Obligation.id != exclude_id)
        return list(self.session.execute(stmt).scalars().all())

    def allocate_excess(
        self,
        customer: Party,
        excess: Decimal,
        payment_date: date,
        payment_mode: PaymentMode,
        actor_id: UUID | None,
        source: Obligation | None = None,
    ) -> AllocationOutcome:
        """
        Distribute ``excess`` across the customer's outstanding sales.

        Preconditions:
            - ``customer`` is locked by the caller.
            - ``excess`` >= 0.

        Postconditions:
            - Each outstanding sale, oldest first, received
              ``min(remaining, balance)`` as a PaymentRecord noting ``source``.
            - Any remainder was added to ``customer.credit_balance``.
        """
        outstanding = self.outstanding_sales(
            customer.id, exclude_id=source.id if source is not None else None
        )
        by_id = {o.id: o for o in outstanding}

        plan = plan_allocation(
            excess,
            [OutstandingBalance(o.id, o.code, o.balance) for o in outstanding],
        )

        note = (
            f"Auto-allocated from overpayment on sale {source.code}"
            if source is not None
            else "Auto-allocated from customer payment"
        )
        payments: list[PaymentInfo] = []
        for application in plan.applications:
            obligation = by_id[application.obligation_id]
            record = self._obligations.add_payment(
                obligation,
                application.amount,
                payment_date,
                payment_mode,
                actor_id,
                notes=note,
            )
            payments.append(PaymentInfo.from_model(record))

        if plan.credit_added > ZERO:
            self.add_credit(customer, plan.credit_added)

        logger.info(
            "excess_allocated",
            extra={
                "customer_id": str(customer.id),
                "excess": str(excess),
                "applied": str(plan.total_applied),
                "obligations_paid": [a.code for a in plan.applications],
                "credit_added": str(plan.credit_added),
            },
        )

        return AllocationOutcome(
            customer_id=customer.id,
            excess=excess,
            payments=tuple(payments),
            credit_added=plan.credit_added,
        )

    def consume_credit(self, customer: Party, amount: Decimal) -> Decimal:
        """
        Debit ``amount`` from the customer's credit balance.

        Returns the new balance.
        """
        if amount < ZERO:
            raise ValueError(f"Credit amount must be non-negative (got {amount})")
        if amount > customer.credit_balance:
            raise InvalidStateError(
                "Customer",
                str(customer.id),
                f"credit {amount} exceeds available balance {customer.credit_balance}",
            )
        customer.credit_balance = customer.credit_balance - amount
        self.session.flush()
        logger.info(
            "credit_consumed",
            extra={
                "customer_id": str(customer.id),
                "amount": str(amount),
                "credit_balance": str(customer.credit_balance),
            },
        )
        return customer.credit_balance

    def add_credit(self, customer: Party, amount: Decimal) -> Decimal:
        if amount < ZERO:
            raise ValueError(f"Credit amount must be non-negative (got {amount})")
        customer.credit_balance = customer.credit_balance + amount
        self.session.flush()
        logger.info(
            "credit_added",
            extra={
                "customer_id": str(customer.id),
                "amount": str(amount),
                "credit_balance": str(customer.credit_balance),
            },
        )
        return customer.credit_balance
