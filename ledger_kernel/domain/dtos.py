"""
DTOs -- immutable data crossing the kernel boundary.

Responsibility:
    Request objects accepted by the SettlementOrchestrator and the frozen
    read models it and the selectors return.  Callers never receive ORM
    rows, so nothing they hold can flush a change by accident.

Architecture position:
    Kernel > Domain -- free of database access.  ``from_model()`` class
    methods are boundary converters invoked only from services/ and
    selectors/.

Failure modes:
    - ValueError on a SaleRequest with no lines.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Generic, TypeVar
from uuid import UUID

from ledger_kernel.domain.values import (
    ItemKind,
    ObligationKind,
    ObligationStatus,
    PartyType,
    PaymentMode,
    ReferenceKind,
    ReplacementReason,
    StockStatus,
    TransactionKind,
)

if TYPE_CHECKING:
    from ledger_kernel.models.catalog import CatalogItem
    from ledger_kernel.models.ledger import LedgerEntry
    from ledger_kernel.models.obligation import Obligation, ObligationLine, PaymentRecord
    from ledger_kernel.models.party import Party
    from ledger_kernel.models.replacement import ReplacementRecord
    from ledger_kernel.models.stock import StockItem

T = TypeVar("T")


# =============================================================================
# Caller identity
# =============================================================================


@dataclass(frozen=True)
class Actor:
    """Identity supplied by the surrounding auth layer; trusted as given."""

    actor_id: UUID
    role: str


# =============================================================================
# Requests
# =============================================================================


@dataclass(frozen=True)
class SaleLineRequest:
    product_id: UUID
    quantity: Decimal
    unit_price: Decimal


@dataclass(frozen=True)
class SaleRequest:
    """
    Input to ``create_sale``.

    ``credit_cap`` limits how much store credit may be consumed; None means
    no cap beyond the customer's balance and the sale total.
    """

    customer_id: UUID
    lines: tuple[SaleLineRequest, ...]
    supply_date: date
    payment_mode: PaymentMode
    cash_tendered: Decimal = Decimal("0")
    use_credit: bool = False
    credit_cap: Decimal | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.lines, tuple):
            object.__setattr__(self, "lines", tuple(self.lines))
        if not self.lines:
            raise ValueError("SaleRequest must have at least one line")


@dataclass(frozen=True)
class PurchaseRequest:
    supplier_id: UUID
    material_id: UUID
    quantity: Decimal
    total_amount: Decimal
    purchase_date: date
    payment_mode: PaymentMode
    amount_paid: Decimal = Decimal("0")
    notes: str | None = None


@dataclass(frozen=True)
class LineCorrection:
    """New quantity and/or unit price for one existing line."""

    line_number: int
    quantity: Decimal | None = None
    unit_price: Decimal | None = None


@dataclass(frozen=True)
class ObligationCorrection:
    """
    Corrective edit of a sale or purchase.

    Fields left as None keep their recorded value.  ``total`` applies to
    purchases only; a sale's total is always the sum of its lines.
    """

    lines: tuple[LineCorrection, ...] = ()
    total: Decimal | None = None
    amount_paid: Decimal | None = None
    payment_mode: PaymentMode | None = None
    occurred_on: date | None = None
    notes: str | None = None


@dataclass(frozen=True)
class StockDefaults:
    """Values used when a stock row is created lazily."""

    unit: str
    minimum_stock: Decimal
    reorder_point: Decimal
    maximum_stock: Decimal | None = None


@dataclass(frozen=True)
class LedgerReference:
    """What caused a ledger entry."""

    reference_id: str | None
    reference_kind: ReferenceKind | None


# =============================================================================
# Read models
# =============================================================================


@dataclass(frozen=True)
class PartyInfo:
    id: UUID
    party_code: str
    party_type: PartyType
    name: str
    is_active: bool
    credit_balance: Decimal

    @classmethod
    def from_model(cls, party: Party) -> PartyInfo:
        return cls(
            id=party.id,
            party_code=party.party_code,
            party_type=PartyType(party.party_type),
            name=party.name,
            is_active=party.is_active,
            credit_balance=party.credit_balance,
        )


@dataclass(frozen=True)
class CatalogItemInfo:
    id: UUID
    item_code: str
    item_kind: ItemKind
    name: str
    unit: str | None
    unit_price: Decimal | None
    is_active: bool

    @classmethod
    def from_model(cls, item: CatalogItem) -> CatalogItemInfo:
        return cls(
            id=item.id,
            item_code=item.item_code,
            item_kind=ItemKind(item.item_kind),
            name=item.name,
            unit=item.unit,
            unit_price=item.unit_price,
            is_active=item.is_active,
        )


@dataclass(frozen=True)
class StockItemInfo:
    id: UUID
    item_id: UUID
    item_kind: ItemKind
    quantity_on_hand: Decimal
    unit: str
    minimum_stock: Decimal
    reorder_point: Decimal
    maximum_stock: Decimal | None
    last_restocked_at: datetime | None
    status: StockStatus
    ledger_version: int

    @classmethod
    def from_model(cls, stock: StockItem) -> StockItemInfo:
        return cls(
            id=stock.id,
            item_id=stock.item_id,
            item_kind=ItemKind(stock.item_kind),
            quantity_on_hand=stock.quantity_on_hand,
            unit=stock.unit,
            minimum_stock=stock.minimum_stock,
            reorder_point=stock.reorder_point,
            maximum_stock=stock.maximum_stock,
            last_restocked_at=stock.last_restocked_at,
            status=stock.status,
            ledger_version=stock.ledger_version,
        )


@dataclass(frozen=True)
class LedgerEntryInfo:
    id: UUID
    stock_item_id: UUID
    item_sequence: int
    transaction_kind: TransactionKind
    quantity_change: Decimal
    quantity_before: Decimal
    quantity_after: Decimal
    reference_id: str | None
    reference_kind: ReferenceKind | None
    notes: str | None
    actor_id: UUID | None
    created_at: datetime | None

    @classmethod
    def from_model(cls, entry: LedgerEntry) -> LedgerEntryInfo:
        return cls(
            id=entry.id,
            stock_item_id=entry.stock_item_id,
            item_sequence=entry.item_sequence,
            transaction_kind=TransactionKind(entry.transaction_kind),
            quantity_change=entry.quantity_change,
            quantity_before=entry.quantity_before,
            quantity_after=entry.quantity_after,
            reference_id=entry.reference_id,
            reference_kind=(
                ReferenceKind(entry.reference_kind) if entry.reference_kind else None
            ),
            notes=entry.notes,
            actor_id=entry.actor_id,
            created_at=entry.created_at,
        )


@dataclass(frozen=True)
class ObligationLineInfo:
    line_number: int
    item_id: UUID
    item_kind: ItemKind
    quantity: Decimal
    unit_price: Decimal | None
    line_total: Decimal

    @classmethod
    def from_model(cls, line: ObligationLine) -> ObligationLineInfo:
        return cls(
            line_number=line.line_number,
            item_id=line.item_id,
            item_kind=ItemKind(line.item_kind),
            quantity=line.quantity,
            unit_price=line.unit_price,
            line_total=line.line_total,
        )


@dataclass(frozen=True)
class PaymentInfo:
    id: UUID
    obligation_id: UUID
    payment_number: int
    amount: Decimal
    payment_date: date
    payment_mode: PaymentMode
    notes: str | None
    is_correction: bool

    @classmethod
    def from_model(cls, payment: PaymentRecord) -> PaymentInfo:
        return cls(
            id=payment.id,
            obligation_id=payment.obligation_id,
            payment_number=payment.payment_number,
            amount=payment.amount,
            payment_date=payment.payment_date,
            payment_mode=PaymentMode(payment.payment_mode),
            notes=payment.notes,
            is_correction=payment.is_correction,
        )


@dataclass(frozen=True)
class ObligationInfo:
    id: UUID
    kind: ObligationKind
    code: str
    counterparty_id: UUID
    total: Decimal
    amount_paid: Decimal
    balance: Decimal
    status: ObligationStatus
    occurred_on: date
    payment_mode: PaymentMode
    notes: str | None
    lines: tuple[ObligationLineInfo, ...] = ()
    payments: tuple[PaymentInfo, ...] = ()

    @property
    def payments_total(self) -> Decimal:
        return sum((p.amount for p in self.payments), Decimal("0"))

    @classmethod
    def from_model(cls, obligation: Obligation) -> ObligationInfo:
        return cls(
            id=obligation.id,
            kind=ObligationKind(obligation.kind),
            code=obligation.code,
            counterparty_id=obligation.counterparty_id,
            total=obligation.total,
            amount_paid=obligation.amount_paid,
            balance=obligation.balance,
            status=ObligationStatus(obligation.status),
            occurred_on=obligation.occurred_on,
            payment_mode=PaymentMode(obligation.payment_mode),
            notes=obligation.notes,
            lines=tuple(ObligationLineInfo.from_model(line) for line in obligation.lines),
            payments=tuple(PaymentInfo.from_model(p) for p in obligation.payments),
        )


@dataclass(frozen=True)
class ReplacementInfo:
    id: UUID
    code: str
    sale_id: UUID
    product_id: UUID
    quantity: Decimal
    reason: ReplacementReason
    notes: str | None
    replaced_on: date
    ledger_entry: LedgerEntryInfo

    @classmethod
    def from_model(
        cls, record: ReplacementRecord, ledger_entry: LedgerEntryInfo
    ) -> ReplacementInfo:
        return cls(
            id=record.id,
            code=record.code,
            sale_id=record.sale_id,
            product_id=record.product_id,
            quantity=record.quantity,
            reason=ReplacementReason(record.reason),
            notes=record.notes,
            replaced_on=record.replaced_on,
            ledger_entry=ledger_entry,
        )


@dataclass(frozen=True)
class AllocationOutcome:
    """What the PaymentAllocator did with an excess amount."""

    customer_id: UUID
    excess: Decimal
    payments: tuple[PaymentInfo, ...]
    credit_added: Decimal

    @property
    def excess_applied(self) -> Decimal:
        return sum((p.amount for p in self.payments), Decimal("0"))


@dataclass(frozen=True)
class SaleResult:
    """
    Outcome of ``create_sale``.

    ``excess_applied`` went to older outstanding sales; ``credit_added`` went
    to the customer's credit balance.
    """

    obligation: ObligationInfo
    credit_used: Decimal
    excess: Decimal
    excess_applied: Decimal
    credit_added: Decimal
    ledger_entries: tuple[LedgerEntryInfo, ...] = ()
    allocations: tuple[PaymentInfo, ...] = ()


@dataclass(frozen=True)
class ReconciliationReport:
    """Result of walking one item's ledger chain."""

    stock_item_id: UUID
    entry_count: int
    ledger_quantity: Decimal
    live_quantity: Decimal
    problems: tuple[str, ...] = ()

    @property
    def is_consistent(self) -> bool:
        return not self.problems


@dataclass(frozen=True)
class CustomerOutstandingSummary:
    customer_id: UUID
    total_outstanding: Decimal
    credit_balance: Decimal
    outstanding_sales: tuple[ObligationInfo, ...] = ()

    @property
    def net_balance(self) -> Decimal:
        return self.total_outstanding - self.credit_balance


@dataclass(frozen=True)
class Page(Generic[T]):
    items: tuple[T, ...]
    page: int
    page_size: int
    total: int

    @property
    def has_next(self) -> bool:
        return self.page * self.page_size < self.total


__all__ = [
    "Actor",
    "AllocationOutcome",
    "CatalogItemInfo",
    "CustomerOutstandingSummary",
    "LedgerEntryInfo",
    "LedgerReference",
    "LineCorrection",
    "ObligationCorrection",
    "ObligationInfo",
    "ObligationLineInfo",
    "Page",
    "PartyInfo",
    "PaymentInfo",
    "PurchaseRequest",
    "ReconciliationReport",
    "ReplacementInfo",
    "SaleLineRequest",
    "SaleRequest",
    "SaleResult",
    "StockDefaults",
    "StockItemInfo",
]

