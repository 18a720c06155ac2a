"""
Module: ledger_kernel.models.obligation
Responsibility: ORM persistence for sales and purchases (obligations), their
    line items, and the payment records made against them.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - balance = total - amount_paid, and status = derive_status(amount_paid,
      total).  Both are written only through ``Obligation.apply_amounts``.
    - amount_paid >= 0 and balance >= 0 (check constraints).
    - amount_paid equals the sum of the obligation's PaymentRecords; every
      change to amount_paid is accompanied by exactly one PaymentRecord of
      the same signed amount.
    - PaymentRecords are append-only (db/immutability.py).
    - An obligation with payments is never deleted (before_flush guard in
      db/immutability.py).

Failure modes:
    - IntegrityError on duplicate code or a negative amount/balance.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, TrackedBase, UUIDString
from ledger_kernel.domain.status import balance_of, derive_status
from ledger_kernel.domain.values import (
    ItemKind,
    ObligationKind,
    ObligationStatus,
    PaymentMode,
)
from ledger_kernel.models.party import Party


class Obligation(TrackedBase):
    """
    A sale (money owed to us) or a purchase (money we owe).

    Contract:
        Services never assign ``balance`` or ``status`` directly; they call
        ``apply_amounts(total, amount_paid)``.
    """

    __tablename__ = "obligations"

    __table_args__ = (
        UniqueConstraint("code", name="uq_obligation_code"),
        CheckConstraint("amount_paid >= 0", name="ck_obligation_paid_non_negative"),
        CheckConstraint("balance >= 0", name="ck_obligation_balance_non_negative"),
        CheckConstraint("total >= 0", name="ck_obligation_total_non_negative"),
        Index("idx_obligation_counterparty", "counterparty_id", "kind"),
        Index("idx_obligation_outstanding", "counterparty_id", "balance"),
    )

    kind: Mapped[ObligationKind] = mapped_column(String(20), nullable=False)

    # Human-readable code, e.g. SAL-20260118-0001
    code: Mapped[str] = mapped_column(String(50), nullable=False)

    counterparty_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("parties.id"),
        nullable=False,
    )

    total: Mapped[Decimal] = mapped_column(nullable=False)

    amount_paid: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    balance: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[ObligationStatus] = mapped_column(String(20), nullable=False)

    # Supply date for sales, purchase date for purchases
    occurred_on: Mapped[date] = mapped_column(Date, nullable=False)

    payment_mode: Mapped[PaymentMode] = mapped_column(String(20), nullable=False)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    counterparty: Mapped[Party] = relationship()

    lines: Mapped[list["ObligationLine"]] = relationship(
        back_populates="obligation",
        cascade="all, delete-orphan",
        order_by="ObligationLine.line_number",
    )

    payments: Mapped[list["PaymentRecord"]] = relationship(
        back_populates="obligation",
        order_by="PaymentRecord.payment_number",
    )

    def apply_amounts(self, total: Decimal, amount_paid: Decimal) -> None:
        """Set total and amount paid, recomputing balance and status."""
        self.total = total
        self.amount_paid = amount_paid
        self.balance = balance_of(amount_paid, total)
        self.status = derive_status(amount_paid, total)

    def __repr__(self) -> str:
        return f"<Obligation {self.code}: {self.amount_paid}/{self.total} {self.status}>"


class ObligationLine(Base):
    """
    One stock-bearing line of an obligation.

    Sales carry one line per product; purchases carry exactly one material
    line whose unit_price is None (purchases are priced by total).
    """

    __tablename__ = "obligation_lines"

    __table_args__ = (
        UniqueConstraint("obligation_id", "line_number", name="uq_obligation_line_number"),
        CheckConstraint("quantity > 0", name="ck_obligation_line_quantity_positive"),
        Index("idx_obligation_line_item", "item_id"),
    )

    obligation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("obligations.id", ondelete="CASCADE"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(nullable=False)

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("catalog_items.id"),
        nullable=False,
    )

    item_kind: Mapped[ItemKind] = mapped_column(String(20), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    unit_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    line_total: Mapped[Decimal] = mapped_column(nullable=False)

    obligation: Mapped[Obligation] = relationship(back_populates="lines")


class PaymentRecord(Base):
    """
    Immutable record of money applied to an obligation.

    Amounts are positive except for corrective records written by an edit
    that lowers amount_paid (``is_correction`` is True on those).
    """

    __tablename__ = "payment_records"

    __table_args__ = (
        UniqueConstraint("obligation_id", "payment_number", name="uq_payment_number"),
        Index("idx_payment_obligation", "obligation_id"),
    )

    obligation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("obligations.id"),
        nullable=False,
    )

    # Position within the obligation's payments (1, 2, 3, ...)
    payment_number: Mapped[int] = mapped_column(nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    payment_mode: Mapped[PaymentMode] = mapped_column(String(20), nullable=False)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    is_correction: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    obligation: Mapped[Obligation] = relationship(back_populates="payments")

    def __repr__(self) -> str:
        return f"<PaymentRecord {self.amount} {self.payment_mode} on {self.payment_date}>"
