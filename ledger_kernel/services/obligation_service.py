"""
ObligationService -- sales and purchases, their lines and their payments.

Responsibility:
    Creates obligations, resolves and locks them, and is the only writer of
    ``amount_paid``.  Every change to amount_paid goes through
    ``add_payment`` (or ``apply_correction``), which writes the matching
    PaymentRecord in the same flush, so the reconciliation invariant holds
    after every operation.

Architecture position:
    Kernel > Services.  Used by the PaymentAllocator and the
    SettlementOrchestrator.

Invariants enforced:
    - balance = total - amount_paid; status = derive_status(amount_paid,
      total) (via ``Obligation.apply_amounts``).
    - amount_paid == sum(PaymentRecord.amount).
    - A regular payment is positive and never exceeds the remaining balance.
    - A corrected total is never below the payments already recorded, and a
      corrected amount_paid never exceeds the total.

Failure modes:
    - NotFoundError for an unknown id or an id of the other kind.
    - ValidationError, PaymentExceedsBalanceError, TotalBelowPaymentsError.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.values import (
    ItemKind,
    ObligationKind,
    ObligationStatus,
    PaymentMode,
)
from ledger_kernel.exceptions import (
    NotFoundError,
    PaymentExceedsBalanceError,
    TotalBelowPaymentsError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.obligation import Obligation, ObligationLine, PaymentRecord
from ledger_kernel.services.base import BaseService

logger = get_logger("services.obligation")

_LABELS = {ObligationKind.SALE: "Sale", ObligationKind.PURCHASE: "Purchase"}


def obligation_label(kind: ObligationKind) -> str:
    return _LABELS[ObligationKind(kind)]


class ObligationService(BaseService[Obligation]):
    """Writes obligations, lines and payment records."""

    def create(
        self,
        kind: ObligationKind,
        code: str,
        counterparty_id: UUID,
        total: Decimal,
        occurred_on: date,
        payment_mode: PaymentMode,
        actor_id: UUID,
        notes: str | None = None,
    ) -> Obligation:
        """
        Create an obligation with nothing paid yet.

        Money already tendered is applied afterwards with ``add_payment`` so
        that every unit of amount_paid has a PaymentRecord behind it.
        """
        obligation = Obligation(
            kind=kind,
            code=code,
            counterparty_id=counterparty_id,
            occurred_on=occurred_on,
            payment_mode=payment_mode,
            notes=notes,
            created_by_id=actor_id,
        )
        obligation.apply_amounts(total, ZERO)
        self.session.add(obligation)
        self.session.flush()
        return obligation

    def add_line(
        self,
        obligation: Obligation,
        item_id: UUID,
        item_kind: ItemKind,
        quantity: Decimal,
        unit_price: Decimal | None,
        line_total: Decimal,
    ) -> ObligationLine:
        line = ObligationLine(
            line_number=len(obligation.lines) + 1,
            item_id=item_id,
            item_kind=item_kind,
            quantity=quantity,
            unit_price=unit_price,
            line_total=line_total,
        )
        obligation.lines.append(line)
        self.session.flush()
        return line

    def lock(self, kind: ObligationKind, obligation_id: UUID) -> Obligation:
        """
        Lock and re-read an obligation of the given kind.

        Raises:
            NotFoundError: unknown id, or the id belongs to the other kind.
        """
        obligation = self.session.execute(
            select(Obligation)
            .where(Obligation.id == obligation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if obligation is None or obligation.kind != kind:
            raise NotFoundError(obligation_label(kind), str(obligation_id))
        return obligation

    def add_payment(
        self,
        obligation: Obligation,
        amount: Decimal,
        payment_date: date,
        payment_mode: PaymentMode,
        actor_id: UUID | None,
        notes: str | None = None,
    ) -> PaymentRecord:
        """
        Apply a payment to an obligation and write its PaymentRecord.

        Raises:
            ValidationError: amount is not positive.
            PaymentExceedsBalanceError: amount is larger than the balance.
        """
        if amount <= ZERO:
            raise ValidationError("amount", "payment amount must be positive")
        if amount > obligation.balance:
            raise PaymentExceedsBalanceError(str(obligation.id), amount, obligation.balance)

        record = self._write_payment(
            obligation, amount, payment_date, payment_mode, actor_id, notes, False
        )
        logger.info(
            "payment_recorded",
            extra={
                "obligation_id": str(obligation.id),
                "code": obligation.code,
                "amount": str(amount),
                "payment_mode": PaymentMode(payment_mode).value,
                "status": ObligationStatus(obligation.status).value,
            },
        )
        return record

    def apply_correction(
        self,
        obligation: Obligation,
        new_total: Decimal,
        new_amount_paid: Decimal,
        payment_date: date,
        payment_mode: PaymentMode,
        actor_id: UUID | None,
    ) -> PaymentRecord | None:
        """
        Recompute an edited obligation's money fields.

        A change in amount_paid is written as a signed corrective
        PaymentRecord.  Returns it, or None when amount_paid is unchanged.

        Raises:
            ValidationError: new_amount_paid is negative or exceeds new_total,
                or new_total is negative.
            TotalBelowPaymentsError: new_total is below the payments
                already recorded.
        """
        if new_total < ZERO:
            raise ValidationError("total", "must not be negative")
        if new_amount_paid < ZERO:
            raise ValidationError("amount_paid", "must not be negative")
        recorded = self.payments_total(obligation)
        if new_total < recorded:
            raise TotalBelowPaymentsError(str(obligation.id), new_total, recorded)
        if new_amount_paid > new_total:
            raise ValidationError(
                "amount_paid", f"{new_amount_paid} exceeds total {new_total}"
            )

        delta = new_amount_paid - obligation.amount_paid
        if delta == ZERO:
            obligation.apply_amounts(new_total, obligation.amount_paid)
            self.session.flush()
            return None

        obligation.apply_amounts(new_total, obligation.amount_paid)
        return self._write_payment(
            obligation,
            delta,
            payment_date,
            payment_mode,
            actor_id,
            "Corrective adjustment of amount paid",
            True,
        )

    @staticmethod
    def payments_total(obligation: Obligation) -> Decimal:
        return sum((p.amount for p in obligation.payments), ZERO)

    def _write_payment(
        self,
        obligation: Obligation,
        amount: Decimal,
        payment_date: date,
        payment_mode: PaymentMode,
        actor_id: UUID | None,
        notes: str | None,
        is_correction: bool,
    ) -> PaymentRecord:
        record = PaymentRecord(
            payment_number=len(obligation.payments) + 1,
            amount=amount,
            payment_date=payment_date,
            payment_mode=payment_mode,
            notes=notes,
            is_correction=is_correction,
            actor_id=actor_id,
        )
        obligation.payments.append(record)
        obligation.apply_amounts(obligation.total, obligation.amount_paid + amount)
        self.session.flush()
        return record
