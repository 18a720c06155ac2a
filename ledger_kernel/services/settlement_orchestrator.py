"""
SettlementOrchestrator -- the transactional boundary of the ledger kernel.

Responsibility:
    Every state-changing operation callers may invoke: create a sale or a
    purchase, record a payment, receive goods, adjust stock, record a
    replacement, correct or delete an obligation.  Each one composes the
    flush-only services below it inside a single unit of work and either
    commits everything or rolls everything back.

Architecture position:
    Kernel > Services -- imperative shell, owns transaction boundaries.
    The only component that calls ``session.commit()`` / ``rollback()``.

Operation flow (create_sale):
    1. Permission check (AccessPolicy) before any store access
    2. Validate input (nothing mutated yet)
    3. Lock the customer row (serializes credit and allocation per customer)
    4. Resolve products, lock their stock rows in item_id order
    5. Check availability for every line; fail with all shortages at once
    6. Compute total, credit used, amount applied and excess
    7. Allocate the sale code, create the obligation, record payments
    8. Write lines and negative ledger entries
    9. Hand any excess to the PaymentAllocator
    10. Audit row, commit

Lock order:
    customer -> obligation -> stock rows (item_id order) -> other
    obligations of the same customer.  Every operation that locks a sale
    takes its customer lock first, so the allocator's scan can never
    deadlock against a correction, replacement or deletion.

Invariants enforced:
    - All-or-nothing: no stock delta, ledger row, obligation, payment,
      credit change or audit row survives a failed operation.
    - Credit is consumed before cash when both are present.
    - A sale's total is the sum of its line totals; stock-bearing edits write
      compensating ledger entries instead of touching existing ones.

Failure modes:
    - Any LedgerKernelError: rolled back, logged at WARNING, re-raised.
    - SQLAlchemyError: rolled back, logged at ERROR with traceback, raised as
      InfrastructureFault (never retried here).
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Iterator
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, round_money, round_quantity, to_decimal
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    Actor,
    LedgerEntryInfo,
    LedgerReference,
    ObligationCorrection,
    ObligationInfo,
    PurchaseRequest,
    ReplacementInfo,
    SaleRequest,
    SaleResult,
)
from ledger_kernel.domain.permissions import Action, Resource
from ledger_kernel.domain.policy import SettlementPolicy
from ledger_kernel.domain.values import (
    AdjustmentDirection,
    ItemKind,
    ObligationKind,
    PartyType,
    PaymentMode,
    ReferenceKind,
    ReplacementReason,
    TransactionKind,
)
from ledger_kernel.exceptions import (
    InfrastructureFault,
    InvalidStateError,
    LedgerKernelError,
    NotFoundError,
    ObligationHasPaymentsError,
    ProductNotInSaleError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.audit_log import AuditAction
from ledger_kernel.models.obligation import Obligation
from ledger_kernel.models.replacement import ReplacementRecord
from ledger_kernel.models.stock import StockItem
from ledger_kernel.services.access_policy import AccessPolicy
from ledger_kernel.services.audit_log_service import AuditLogService
from ledger_kernel.services.catalog_service import CatalogService
from ledger_kernel.services.inventory_ledger import InventoryLedger
from ledger_kernel.services.obligation_service import ObligationService, obligation_label
from ledger_kernel.services.payment_allocator import PaymentAllocator
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.stock_store import StockStore

logger = get_logger("services.settlement")

_RESOURCES = {
    ObligationKind.SALE: Resource.SALES,
    ObligationKind.PURCHASE: Resource.PURCHASES,
}

_TRANSACTION_KINDS = {
    ObligationKind.SALE: TransactionKind.SALE,
    ObligationKind.PURCHASE: TransactionKind.PURCHASE,
}

_REFERENCE_KINDS = {
    ObligationKind.SALE: ReferenceKind.SALE,
    ObligationKind.PURCHASE: ReferenceKind.PURCHASE,
}


def _decimal(field: str, value) -> Decimal:
    try:
        return to_decimal(value)
    except (TypeError, ValueError, InvalidOperation) as exc:
        raise ValidationError(field, f"not a decimal number: {value!r}") from exc


def _positive(field: str, value, rounder=None) -> Decimal:
    result = _decimal(field, value)
    if rounder is not None:
        result = rounder(result)
    if result <= ZERO:
        raise ValidationError(field, "must be greater than zero")
    return result


def _non_negative(field: str, value, rounder=None) -> Decimal:
    result = _decimal(field, value)
    if rounder is not None:
        result = rounder(result)
    if result < ZERO:
        raise ValidationError(field, "must not be negative")
    return result


def _quantity(field: str, value) -> Decimal:
    # Rounded before the sign check; a quantity that rounds to zero is rejected.
    return _positive(field, value, round_quantity)


def _enum(field: str, enum_type, value):
    try:
        return enum_type(value)
    except ValueError as exc:
        raise ValidationError(field, f"unknown value {value!r}") from exc


class SettlementOrchestrator:
    """
    Entry point for every settlement operation.

    Contract:
        Each public method is one unit of work.  On return the work is
        committed and the result is a frozen DTO; on exception nothing
        was committed.

    Non-goals:
        - Authentication.  The caller supplies a trusted Actor.
        - Retries.  A ConcurrentModificationError or InfrastructureFault is
          surfaced and the caller decides whether to resubmit.
    """

    def __init__(
        self,
        session: Session,
        policy: SettlementPolicy,
        clock: Clock | None = None,
    ):
        self.session = session
        self._policy = policy
        self._clock = clock or SystemClock()
        self._access = AccessPolicy(policy.permissions)
        self._catalog = CatalogService(session)
        self._stock = StockStore(session)
        self._ledger = InventoryLedger(session, self._stock)
        self._obligations = ObligationService(session)
        self._allocator = PaymentAllocator(session, self._obligations)
        self._sequences = SequenceService(session)
        self._audit = AuditLogService(session, self._clock)

    # -------------------------------------------------------------------------
    # Sales
    # -------------------------------------------------------------------------

    def create_sale(self, actor: Actor, request: SaleRequest) -> SaleResult:
        """
        Settle a multi-item sale.

        Raises:
            InsufficientPermissionError, ValidationError, NotFoundError,
            InsufficientStockError (naming every short item).
        """
        self._access.require(actor, Resource.SALES, Action.CREATE)

        with self._unit_of_work("create_sale", actor):
            payment_mode = _enum("payment_mode", PaymentMode, request.payment_mode)
            cash = _non_negative("cash_tendered", request.cash_tendered, self._money)
            credit_cap = (
                _non_negative("credit_cap", request.credit_cap, self._money)
                if request.credit_cap is not None
                else None
            )
            lines = [
                (
                    line.product_id,
                    _quantity(f"lines[{i}].quantity", line.quantity),
                    _non_negative(f"lines[{i}].unit_price", line.unit_price),
                )
                for i, line in enumerate(request.lines)
            ]

            customer = self._catalog.require_party(
                request.customer_id, PartyType.CUSTOMER, for_update=True
            )
            for product_id, _, _ in lines:
                self._catalog.require_item(product_id, ItemKind.PRODUCT)

            demand = self._stock.aggregate_demand((pid, qty) for pid, qty, _ in lines)
            stock_rows = self._stock.lock_stock(demand)
            self._stock.check_availability(demand, stock_rows)

            line_totals = [self._money(qty * price) for _, qty, price in lines]
            total = sum(line_totals, ZERO)

            credit_used = ZERO
            if request.use_credit:
                available = customer.credit_balance
                requested = credit_cap if credit_cap is not None else available
                credit_used = self._money(min(requested, available, total))

            tendered = cash + credit_used
            applied = min(tendered, total)
            excess = max(ZERO, tendered - total)
            cash_applied = applied - credit_used

            today = self._clock.today()
            code = self._sequences.next_code(self._policy.code_prefixes.sale, today)
            sale = self._obligations.create(
                ObligationKind.SALE,
                code,
                customer.id,
                total,
                request.supply_date,
                payment_mode,
                actor.actor_id,
                notes=request.notes,
            )

            if credit_used > ZERO:
                self._allocator.consume_credit(customer, credit_used)
                self._obligations.add_payment(
                    sale,
                    credit_used,
                    today,
                    PaymentMode.STORE_CREDIT,
                    actor.actor_id,
                    notes="Store credit applied",
                )
            if cash_applied > ZERO:
                self._obligations.add_payment(
                    sale,
                    cash_applied,
                    today,
                    payment_mode,
                    actor.actor_id,
                    notes="Payment at sale",
                )

            reference = LedgerReference(str(sale.id), ReferenceKind.SALE)
            entries: list[LedgerEntryInfo] = []
            now = self._clock.now()
            for (product_id, qty, price), line_total in zip(lines, line_totals):
                self._obligations.add_line(
                    sale, product_id, ItemKind.PRODUCT, qty, price, line_total
                )
                entries.append(
                    self._ledger.record(
                        stock_rows[product_id],
                        TransactionKind.SALE,
                        -qty,
                        reference,
                        notes=f"Sale {code}",
                        actor_id=actor.actor_id,
                        now=now,
                    )
                )

            allocations = ()
            credit_added = ZERO
            if excess > ZERO:
                outcome = self._allocator.allocate_excess(
                    customer,
                    excess,
                    today,
                    payment_mode,
                    actor.actor_id,
                    source=sale,
                )
                allocations = outcome.payments
                credit_added = outcome.credit_added

            info = ObligationInfo.from_model(sale)
            self._audit.record(
                AuditAction.CREATE, "Sale", sale.id, actor.actor_id, new_value=info
            )
            logger.info(
                "sale_created",
                extra={
                    "sale_id": str(sale.id),
                    "code": code,
                    "total": str(total),
                    "credit_used": str(credit_used),
                    "excess": str(excess),
                    "status": info.status.value,
                    "line_count": len(lines),
                },
            )

        return SaleResult(
            obligation=info,
            credit_used=credit_used,
            excess=excess,
            excess_applied=sum((p.amount for p in allocations), ZERO),
            credit_added=credit_added,
            ledger_entries=tuple(entries),
            allocations=tuple(allocations),
        )

    # -------------------------------------------------------------------------
    # Purchases
    # -------------------------------------------------------------------------

    def create_purchase(self, actor: Actor, request: PurchaseRequest) -> ObligationInfo:
        """
        Record a single-material purchase and the stock it brings in.

        Raises:
            InsufficientPermissionError, ValidationError, NotFoundError.
        """
        self._access.require(actor, Resource.PURCHASES, Action.CREATE)

        with self._unit_of_work("create_purchase", actor):
            payment_mode = _enum("payment_mode", PaymentMode, request.payment_mode)
            quantity = _quantity("quantity", request.quantity)
            total = _positive("total_amount", request.total_amount, self._money)
            paid = _non_negative("amount_paid", request.amount_paid, self._money)
            if paid > total:
                raise ValidationError(
                    "amount_paid", f"{paid} exceeds total amount {total}"
                )

            supplier = self._catalog.require_party(request.supplier_id, PartyType.SUPPLIER)
            material = self._catalog.require_item(request.material_id, ItemKind.MATERIAL)

            code = self._sequences.next_code(
                self._policy.code_prefixes.purchase, self._clock.today()
            )
            purchase = self._obligations.create(
                ObligationKind.PURCHASE,
                code,
                supplier.id,
                total,
                request.purchase_date,
                payment_mode,
                actor.actor_id,
                notes=request.notes,
            )
            self._obligations.add_line(
                purchase, material.id, ItemKind.MATERIAL, quantity, None, total
            )

            stock = self._stock.get_or_init_stock(
                material.id,
                ItemKind.MATERIAL,
                self._policy.defaults_for(ItemKind.MATERIAL),
                actor.actor_id,
            )
            self._ledger.record(
                stock,
                TransactionKind.PURCHASE,
                quantity,
                LedgerReference(str(purchase.id), ReferenceKind.PURCHASE),
                notes=f"Purchase {code}",
                actor_id=actor.actor_id,
                now=self._clock.now(),
            )

            if paid > ZERO:
                self._obligations.add_payment(
                    purchase,
                    paid,
                    request.purchase_date,
                    payment_mode,
                    actor.actor_id,
                    notes="Initial payment",
                )

            info = ObligationInfo.from_model(purchase)
            self._audit.record(
                AuditAction.CREATE, "Purchase", purchase.id, actor.actor_id, new_value=info
            )
            logger.info(
                "purchase_created",
                extra={
                    "purchase_id": str(purchase.id),
                    "code": code,
                    "quantity": str(quantity),
                    "total": str(total),
                    "status": info.status.value,
                },
            )

        return info

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    def record_payment(
        self,
        actor: Actor,
        kind: ObligationKind,
        obligation_id: UUID,
        amount: Decimal,
        payment_date: date,
        payment_mode: PaymentMode,
        notes: str | None = None,
    ) -> ObligationInfo:
        """
        Apply a payment to a sale or purchase.

        Raises:
            ValidationError: amount is not positive.
            PaymentExceedsBalanceError: amount is above the remaining balance.
            NotFoundError: unknown obligation (or one of the other kind).
        """
        kind = _enum("kind", ObligationKind, kind)
        self._access.require(actor, _RESOURCES[kind], Action.UPDATE)

        with self._unit_of_work("record_payment", actor, reference_id=obligation_id):
            payment_mode = _enum("payment_mode", PaymentMode, payment_mode)
            amount = _positive("amount", amount, self._money)

            obligation = self._lock_obligation(kind, obligation_id)
            before = ObligationInfo.from_model(obligation)
            self._obligations.add_payment(
                obligation, amount, payment_date, payment_mode, actor.actor_id, notes=notes
            )

            info = ObligationInfo.from_model(obligation)
            self._audit.record(
                AuditAction.UPDATE,
                obligation_label(kind),
                obligation.id,
                actor.actor_id,
                old_value={"amount_paid": before.amount_paid, "status": before.status},
                new_value={"amount_paid": info.amount_paid, "status": info.status},
            )

        return info

    # -------------------------------------------------------------------------
    # Stock events
    # -------------------------------------------------------------------------

    def receive_goods(
        self,
        actor: Actor,
        item_kind: ItemKind,
        item_id: UUID,
        quantity: Decimal,
        reference_number: str | None = None,
        notes: str | None = None,
    ) -> LedgerEntryInfo:
        """Increase stock for goods that arrived outside a purchase."""
        self._access.require(actor, Resource.INVENTORY, Action.UPDATE)

        with self._unit_of_work("receive_goods", actor, reference_id=reference_number):
            item_kind = _enum("item_kind", ItemKind, item_kind)
            quantity = _quantity("quantity", quantity)
            self._catalog.require_item(item_id, item_kind)

            stock = self._stock.get_or_init_stock(
                item_id, item_kind, self._policy.defaults_for(item_kind), actor.actor_id
            )
            entry = self._ledger.record(
                stock,
                TransactionKind.GOODS_RECEIVED,
                quantity,
                LedgerReference(reference_number, ReferenceKind.GOODS_RECEIVED),
                notes=notes,
                actor_id=actor.actor_id,
                now=self._clock.now(),
            )
            self._audit.record(
                AuditAction.CREATE, "GoodsReceipt", entry.id, actor.actor_id, new_value=entry
            )

        return entry

    def adjust_stock(
        self,
        actor: Actor,
        item_kind: ItemKind,
        item_id: UUID,
        direction: AdjustmentDirection,
        quantity: Decimal,
        reason: str,
    ) -> LedgerEntryInfo:
        """
        Manual stock correction.

        Raises:
            ValidationError: blank reason, non-positive quantity, bad direction.
            InsufficientStockError: subtracting more than is on hand.
        """
        self._access.require(actor, Resource.INVENTORY, Action.UPDATE)

        with self._unit_of_work("adjust_stock", actor):
            item_kind = _enum("item_kind", ItemKind, item_kind)
            direction = _enum("direction", AdjustmentDirection, direction)
            quantity = _quantity("quantity", quantity)
            if not reason or not reason.strip():
                raise ValidationError("reason", "an adjustment reason is required")
            self._catalog.require_item(item_id, item_kind)

            if direction == AdjustmentDirection.SUBTRACT:
                rows = self._stock.lock_stock([item_id])
                self._stock.check_availability({item_id: quantity}, rows)
                stock = rows[item_id]
                delta = -quantity
            else:
                stock = self._stock.get_or_init_stock(
                    item_id, item_kind, self._policy.defaults_for(item_kind), actor.actor_id
                )
                delta = quantity

            entry = self._ledger.record(
                stock,
                TransactionKind.ADJUSTMENT,
                delta,
                LedgerReference(None, ReferenceKind.ADJUSTMENT),
                notes=reason.strip(),
                actor_id=actor.actor_id,
                now=self._clock.now(),
            )
            self._audit.record(
                AuditAction.CREATE, "StockAdjustment", entry.id, actor.actor_id, new_value=entry
            )

        return entry

    def record_replacement(
        self,
        actor: Actor,
        sale_id: UUID,
        product_id: UUID,
        quantity: Decimal,
        reason: ReplacementReason,
        notes: str | None = None,
    ) -> ReplacementInfo:
        """
        Hand out a product again against an earlier sale.

        Raises:
            ProductNotInSaleError: the sale never contained the product.
            InsufficientStockError: not enough of the product on hand.
        """
        self._access.require(actor, Resource.INVENTORY, Action.CREATE)

        with self._unit_of_work("record_replacement", actor, reference_id=sale_id):
            reason = _enum("reason", ReplacementReason, reason)
            quantity = _quantity("quantity", quantity)

            sale = self._lock_obligation(ObligationKind.SALE, sale_id)
            if not any(line.item_id == product_id for line in sale.lines):
                raise ProductNotInSaleError(str(sale_id), str(product_id))

            rows = self._stock.lock_stock([product_id])
            self._stock.check_availability({product_id: quantity}, rows)

            today = self._clock.today()
            code = self._sequences.next_code(self._policy.code_prefixes.replacement, today)
            record = ReplacementRecord(
                code=code,
                sale_id=sale.id,
                product_id=product_id,
                quantity=quantity,
                reason=reason,
                notes=notes,
                replaced_on=today,
                actor_id=actor.actor_id,
            )
            self.session.add(record)
            self.session.flush()

            entry = self._ledger.record(
                rows[product_id],
                TransactionKind.REPLACEMENT,
                -quantity,
                LedgerReference(str(record.id), ReferenceKind.REPLACEMENT),
                notes=f"Replacement {code} for sale {sale.code} ({reason.value})",
                actor_id=actor.actor_id,
                now=self._clock.now(),
            )

            info = ReplacementInfo.from_model(record, entry)
            self._audit.record(
                AuditAction.CREATE, "Replacement", record.id, actor.actor_id, new_value=info
            )
            logger.info(
                "replacement_recorded",
                extra={
                    "replacement_id": str(record.id),
                    "code": code,
                    "sale_code": sale.code,
                    "quantity": str(quantity),
                    "reason": reason.value,
                },
            )

        return info

    # -------------------------------------------------------------------------
    # Corrections and deletion
    # -------------------------------------------------------------------------

    def correct_obligation(
        self,
        actor: Actor,
        kind: ObligationKind,
        obligation_id: UUID,
        correction: ObligationCorrection,
    ) -> ObligationInfo:
        """
        Edit quantities, prices, total or amount paid of a sale or purchase.

        Quantity changes are written as compensating ledger entries against
        the obligation.  A sale's total is always recomputed from its lines;
        only a purchase accepts an explicit ``total``.

        Raises:
            ValidationError: malformed correction, or amount_paid above total.
            TotalBelowPaymentsError: new total below the payments recorded.
            InsufficientStockError: a quantity change needs stock that is gone.
        """
        kind = _enum("kind", ObligationKind, kind)
        self._access.require(actor, _RESOURCES[kind], Action.UPDATE)

        with self._unit_of_work("correct_obligation", actor, reference_id=obligation_id):
            if kind == ObligationKind.SALE and correction.total is not None:
                raise ValidationError("total", "a sale's total is the sum of its lines")

            obligation = self._lock_obligation(kind, obligation_id)
            before = ObligationInfo.from_model(obligation)
            lines_by_number = {line.line_number: line for line in obligation.lines}

            seen: set[int] = set()
            for change in correction.lines:
                if change.line_number in seen:
                    raise ValidationError(
                        "lines", f"line {change.line_number} corrected more than once"
                    )
                seen.add(change.line_number)
                if change.line_number not in lines_by_number:
                    raise ValidationError(
                        "lines", f"{obligation.code} has no line {change.line_number}"
                    )
                if change.unit_price is not None and kind == ObligationKind.PURCHASE:
                    raise ValidationError(
                        "unit_price", "purchases are priced by total, not per unit"
                    )

            deltas: dict[UUID, Decimal] = {}
            sign = Decimal("-1") if kind == ObligationKind.SALE else Decimal("1")
            for change in correction.lines:
                line = lines_by_number[change.line_number]
                if change.quantity is not None:
                    new_quantity = _quantity("quantity", change.quantity)
                    moved = new_quantity - line.quantity
                    if moved != ZERO:
                        deltas[line.item_id] = deltas.get(line.item_id, ZERO) + sign * moved
                    line.quantity = new_quantity
                if change.unit_price is not None:
                    line.unit_price = _non_negative("unit_price", change.unit_price)
                if kind == ObligationKind.SALE:
                    line.line_total = self._money(line.quantity * line.unit_price)

            self._write_stock_effects(
                obligation,
                {item_id: d for item_id, d in deltas.items() if d != ZERO},
                notes=f"Correction of {obligation.code}",
                actor=actor,
            )

            if kind == ObligationKind.SALE:
                new_total = sum((line.line_total for line in obligation.lines), ZERO)
            elif correction.total is not None:
                new_total = _positive("total", correction.total, self._money)
                for line in obligation.lines:
                    line.line_total = new_total
            else:
                new_total = obligation.total

            new_paid = (
                _non_negative("amount_paid", correction.amount_paid, self._money)
                if correction.amount_paid is not None
                else obligation.amount_paid
            )

            if correction.payment_mode is not None:
                obligation.payment_mode = _enum(
                    "payment_mode", PaymentMode, correction.payment_mode
                )
            if correction.occurred_on is not None:
                obligation.occurred_on = correction.occurred_on
            if correction.notes is not None:
                obligation.notes = correction.notes
            obligation.updated_by_id = actor.actor_id

            self._obligations.apply_correction(
                obligation,
                new_total,
                new_paid,
                self._clock.today(),
                PaymentMode(obligation.payment_mode),
                actor.actor_id,
            )

            info = ObligationInfo.from_model(obligation)
            self._audit.record(
                AuditAction.UPDATE,
                obligation_label(kind),
                obligation.id,
                actor.actor_id,
                old_value=before,
                new_value=info,
            )
            logger.info(
                "obligation_corrected",
                extra={
                    "obligation_id": str(obligation.id),
                    "code": obligation.code,
                    "total": str(info.total),
                    "amount_paid": str(info.amount_paid),
                    "stock_items_moved": len(deltas),
                },
            )

        return info

    def delete_obligation(
        self,
        actor: Actor,
        kind: ObligationKind,
        obligation_id: UUID,
    ) -> None:
        """
        Delete an unpaid sale or purchase and reverse its stock effect.

        Ledger history is kept: the reversal is written as new entries.

        Raises:
            ObligationHasPaymentsError: any PaymentRecord exists.
            InvalidStateError: replacements were recorded against the sale.
            InsufficientStockError: a purchase's material was already used.
        """
        kind = _enum("kind", ObligationKind, kind)
        self._access.require(actor, _RESOURCES[kind], Action.DELETE)

        with self._unit_of_work("delete_obligation", actor, reference_id=obligation_id):
            obligation = self._lock_obligation(kind, obligation_id)
            if obligation.payments:
                raise ObligationHasPaymentsError(str(obligation.id), len(obligation.payments))

            replacements = self.session.execute(
                select(func.count(ReplacementRecord.id)).where(
                    ReplacementRecord.sale_id == obligation.id
                )
            ).scalar_one()
            if replacements:
                raise InvalidStateError(
                    obligation_label(kind),
                    str(obligation.id),
                    f"{replacements} replacement record(s) reference it",
                )

            sign = Decimal("1") if kind == ObligationKind.SALE else Decimal("-1")
            deltas = self._stock.aggregate_demand(
                (line.item_id, sign * line.quantity) for line in obligation.lines
            )
            self._write_stock_effects(
                obligation,
                deltas,
                notes=f"Reversal of deleted {obligation.code}",
                actor=actor,
            )

            snapshot = ObligationInfo.from_model(obligation)
            self._audit.record(
                AuditAction.DELETE,
                obligation_label(kind),
                obligation.id,
                actor.actor_id,
                old_value=snapshot,
            )
            self.session.delete(obligation)
            self.session.flush()
            logger.info(
                "obligation_deleted",
                extra={"obligation_id": str(snapshot.id), "code": snapshot.code},
            )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @contextmanager
    def _unit_of_work(
        self,
        operation: str,
        actor: Actor,
        reference_id: UUID | str | None = None,
    ) -> Iterator[None]:
        correlation_id = str(uuid4())
        with LogContext.bind(
            correlation_id=correlation_id,
            actor_id=str(actor.actor_id),
            operation=operation,
            reference_id=str(reference_id) if reference_id is not None else None,
        ):
            logger.info(f"{operation}_started", extra={"role": actor.role})
            t0 = time.monotonic()
            try:
                yield
                self.session.commit()
            except LedgerKernelError as exc:
                self.session.rollback()
                logger.warning(
                    "transaction_rolled_back",
                    extra={
                        "error_code": exc.code,
                        "error": str(exc),
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
                raise
            except SQLAlchemyError as exc:
                self.session.rollback()
                logger.error(
                    "transaction_rolled_back",
                    extra={
                        "error_code": InfrastructureFault.code,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                    exc_info=True,
                )
                raise InfrastructureFault(operation, exc) from exc
            except Exception:
                self.session.rollback()
                logger.error(
                    "transaction_rolled_back",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise

            logger.info(
                f"{operation}_completed",
                extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
            )

    def _lock_obligation(self, kind: ObligationKind, obligation_id: UUID) -> Obligation:
        """Lock an obligation, taking the customer lock first for sales."""
        if kind == ObligationKind.SALE:
            counterparty_id = self.session.execute(
                select(Obligation.counterparty_id).where(
                    Obligation.id == obligation_id,
                    Obligation.kind == ObligationKind.SALE,
                )
            ).scalar_one_or_none()
            if counterparty_id is None:
                raise NotFoundError(obligation_label(kind), str(obligation_id))
            self._allocator.lock_customer(counterparty_id)
        return self._obligations.lock(kind, obligation_id)

    def _write_stock_effects(
        self,
        obligation: Obligation,
        deltas: dict[UUID, Decimal],
        notes: str,
        actor: Actor,
    ) -> list[LedgerEntryInfo]:
        """Write one ledger entry per item for an obligation's stock change."""
        if not deltas:
            return []

        kind = ObligationKind(obligation.kind)
        rows = self._stock.lock_stock(deltas)
        self._stock.check_availability(
            {item_id: -d for item_id, d in deltas.items() if d < ZERO}, rows
        )

        reference = LedgerReference(str(obligation.id), _REFERENCE_KINDS[kind])
        now = self._clock.now()
        entries = []
        for item_id in sorted(deltas, key=str):
            stock: StockItem | None = rows.get(item_id)
            if stock is None:
                item_kind = (
                    ItemKind.PRODUCT if kind == ObligationKind.SALE else ItemKind.MATERIAL
                )
                stock = self._stock.get_or_init_stock(
                    item_id, item_kind, self._policy.defaults_for(item_kind), actor.actor_id
                )
            entries.append(
                self._ledger.record(
                    stock,
                    _TRANSACTION_KINDS[kind],
                    deltas[item_id],
                    reference,
                    notes=notes,
                    actor_id=actor.actor_id,
                    now=now,
                )
            )
        return entries

    def _money(self, value: Decimal) -> Decimal:
        return round_money(value, self._policy.money_decimal_places)
