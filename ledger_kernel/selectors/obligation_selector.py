"""
Module: ledger_kernel.selectors.obligation_selector
Responsibility: Read-only queries over sales and purchases: single lookups,
    a customer's outstanding sales, and the customer outstanding summary
    (total owed, store credit and the net of the two).
Architecture position: Kernel > Selectors.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.dtos import CustomerOutstandingSummary, ObligationInfo
from ledger_kernel.domain.values import ObligationKind, PartyType
from ledger_kernel.exceptions import NotFoundError
from ledger_kernel.models.obligation import Obligation
from ledger_kernel.models.party import Party
from ledger_kernel.selectors.base import BaseSelector

_LABELS = {ObligationKind.SALE: "Sale", ObligationKind.PURCHASE: "Purchase"}


class ObligationSelector(BaseSelector[Obligation]):
    def get(self, kind: ObligationKind, obligation_id: UUID) -> ObligationInfo:
        """
        Raises:
            NotFoundError: unknown id, or the id belongs to the other kind.
        """
        obligation = self.session.get(Obligation, obligation_id)
        if obligation is None or obligation.kind != ObligationKind(kind):
            raise NotFoundError(_LABELS[ObligationKind(kind)], str(obligation_id))
        return ObligationInfo.from_model(obligation)

    def get_by_code(self, code: str) -> ObligationInfo | None:
        obligation = self.session.execute(
            select(Obligation).where(Obligation.code == code)
        ).scalar_one_or_none()
        return ObligationInfo.from_model(obligation) if obligation is not None else None

    def list_for_counterparty(
        self,
        counterparty_id: UUID,
        kind: ObligationKind | None = None,
    ) -> list[ObligationInfo]:
        stmt = (
            select(Obligation)
            .where(Obligation.counterparty_id == counterparty_id)
            .order_by(Obligation.occurred_on, Obligation.code)
        )
        if kind is not None:
            stmt = stmt.where(Obligation.kind == ObligationKind(kind))
        return [ObligationInfo.from_model(o) for o in self.session.execute(stmt).scalars()]

    def outstanding_for_customer(self, customer_id: UUID) -> list[ObligationInfo]:
        """Unpaid sales oldest first, the order excess payments settle them in."""
        rows = self.session.execute(
            select(Obligation)
            .where(
                Obligation.counterparty_id == customer_id,
                Obligation.kind == ObligationKind.SALE,
                Obligation.balance > 0,
            )
            .order_by(Obligation.occurred_on, Obligation.code)
        ).scalars()
        return [ObligationInfo.from_model(o) for o in rows]

    def customer_outstanding_summary(self, customer_id: UUID) -> CustomerOutstandingSummary:
        """
        Raises:
            NotFoundError: unknown customer (or a supplier id).
        """
        customer = self.session.get(Party, customer_id)
        if customer is None or customer.party_type != PartyType.CUSTOMER:
            raise NotFoundError("Customer", str(customer_id))

        outstanding = self.outstanding_for_customer(customer_id)
        return CustomerOutstandingSummary(
            customer_id=customer.id,
            total_outstanding=sum((o.balance for o in outstanding), Decimal("0")),
            credit_balance=customer.credit_balance,
            outstanding_sales=tuple(outstanding),
        )
