"""Purchases: obligation, stock increase and optional initial payment."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import PurchaseRequest
from ledger_kernel.domain.values import (
    ObligationStatus,
    PaymentMode,
    ReferenceKind,
    TransactionKind,
)
from ledger_kernel.exceptions import NotFoundError, ValidationError


@pytest.fixture
def buy(orchestrator, procurement_officer):
    def _buy(supplier, material, quantity, total, paid="0", purchase_date=date(2023, 12, 28)):
        return orchestrator.create_purchase(
            procurement_officer,
            PurchaseRequest(
                supplier_id=supplier.id,
                material_id=material.id,
                quantity=Decimal(quantity),
                total_amount=Decimal(total),
                purchase_date=purchase_date,
                payment_mode=PaymentMode.TRANSFER,
                amount_paid=Decimal(paid),
            ),
        )

    return _buy


class TestCreatePurchase:
    def test_unpaid_purchase_adds_stock(self, buy, on_hand, ledger_view, supplier, material):
        purchase = buy(supplier, material, "120", "600")

        assert purchase.code == "PUR-20240101-0001"
        assert purchase.status == ObligationStatus.PENDING
        assert purchase.balance == Decimal("600.00")
        assert purchase.lines[0].unit_price is None
        assert purchase.lines[0].line_total == Decimal("600.00")
        assert on_hand(material) == Decimal("120")

        (entry,) = ledger_view.list_by_reference(purchase.id)
        assert entry.transaction_kind == TransactionKind.PURCHASE
        assert entry.reference_kind == ReferenceKind.PURCHASE
        assert entry.quantity_change == Decimal("120")

    def test_first_purchase_initializes_stock_with_material_defaults(
        self, buy, session, supplier, material
    ):
        from ledger_kernel.selectors import StockSelector

        buy(supplier, material, "10", "50")

        stock = StockSelector(session).get_stock(material.id)
        assert stock.unit == "kg"
        assert stock.minimum_stock == Decimal("50")
        assert stock.reorder_point == Decimal("100")

    def test_initial_payment_dated_on_purchase(self, buy, supplier, material):
        purchase = buy(supplier, material, "10", "500", paid="200")

        assert purchase.status == ObligationStatus.PARTIAL
        assert purchase.amount_paid == Decimal("200.00")
        (payment,) = purchase.payments
        assert payment.notes == "Initial payment"
        assert payment.payment_date == date(2023, 12, 28)

    def test_fully_paid(self, buy, supplier, material):
        purchase = buy(supplier, material, "10", "500", paid="500")

        assert purchase.status == ObligationStatus.PAID
        assert purchase.balance == Decimal("0")

    def test_paid_above_total_rejected(self, buy, on_hand, supplier, material):
        with pytest.raises(ValidationError) as exc_info:
            buy(supplier, material, "10", "500", paid="600")

        assert exc_info.value.field == "amount_paid"
        assert on_hand(material) == Decimal("0")

    @pytest.mark.parametrize("quantity,total", [("0", "10"), ("5", "0"), ("-1", "10")])
    def test_non_positive_inputs(self, buy, supplier, material, quantity, total):
        with pytest.raises(ValidationError):
            buy(supplier, material, quantity, total)

    @pytest.mark.parametrize(
        "quantity,total,paid,field",
        [
            ("Infinity", "10", "0", "quantity"),
            ("5", "NaN", "0", "total_amount"),
            ("5", "10", "Infinity", "amount_paid"),
        ],
    )
    def test_non_finite_inputs(self, buy, on_hand, supplier, material, quantity, total, paid, field):
        with pytest.raises(ValidationError) as exc_info:
            buy(supplier, material, quantity, total, paid=paid)

        assert exc_info.value.field == field
        assert on_hand(material) == Decimal("0")

    def test_product_is_not_a_material(self, buy, supplier, product):
        with pytest.raises(NotFoundError) as exc_info:
            buy(supplier, product, "1", "10")
        assert exc_info.value.entity_type == "RawMaterial"

    def test_customer_is_not_a_supplier(self, buy, customer, material):
        with pytest.raises(NotFoundError) as exc_info:
            buy(customer, material, "1", "10")
        assert exc_info.value.entity_type == "Supplier"

    def test_unknown_supplier(self, orchestrator, admin, material):
        with pytest.raises(NotFoundError):
            orchestrator.create_purchase(
                admin,
                PurchaseRequest(
                    uuid4(), material.id, Decimal("1"), Decimal("1"),
                    date(2024, 1, 1), PaymentMode.CASH,
                ),
            )
