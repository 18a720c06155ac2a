"""
Module: ledger_kernel.models.party
Responsibility: ORM persistence for customers and suppliers.  A customer row
    also carries the customer's store-credit balance.
Architecture position: Kernel > Models.  May import from db/ and domain/values
    only.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - party_code is unique (uq_party_code).
    - credit_balance >= 0 (ck_party_credit_non_negative).  Only the
      PaymentAllocator mutates it, always under a row lock on this party.
    - Suppliers never hold store credit.

Failure modes:
    - IntegrityError on duplicate party_code or a negative credit balance.
"""

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.domain.values import PartyType


class Party(TrackedBase):
    """
    A customer or supplier.

    Guarantees:
        - party_type is set at creation and never changes.
        - credit_balance is never negative.
    """

    __tablename__ = "parties"

    __table_args__ = (
        UniqueConstraint("party_code", name="uq_party_code"),
        CheckConstraint("credit_balance >= 0", name="ck_party_credit_non_negative"),
        Index("idx_party_type", "party_type"),
    )

    party_code: Mapped[str] = mapped_column(String(50), nullable=False)

    party_type: Mapped[PartyType] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Prepaid / overpaid funds not yet consumed by any sale
    credit_balance: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    @property
    def is_customer(self) -> bool:
        return self.party_type == PartyType.CUSTOMER

    @property
    def is_supplier(self) -> bool:
        return self.party_type == PartyType.SUPPLIER

    def __repr__(self) -> str:
        return f"<Party {self.party_code}: {self.name} ({self.party_type})>"
