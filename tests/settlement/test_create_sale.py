"""Sale settlement: stock, payment, credit and excess allocation in one unit."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from ledger_kernel.domain.dtos import SaleLineRequest, SaleRequest
from ledger_kernel.domain.values import (
    ItemKind,
    ObligationKind,
    ObligationStatus,
    PaymentMode,
    ReferenceKind,
    TransactionKind,
)
from ledger_kernel.exceptions import (
    InfrastructureFault,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from ledger_kernel.models.obligation import Obligation
from ledger_kernel.services.sequence_service import SequenceService


class TestSingleLineSale:
    def test_overpayment_becomes_credit(self, sell, stock_up, on_hand, credit_of,
                                        customer, product):
        stock_up(product, 5)

        result = sell(customer, (product, "2", "100"), cash="250")

        sale = result.obligation
        assert sale.code == "SAL-20240101-0001"
        assert sale.total == Decimal("200.00")
        assert sale.amount_paid == Decimal("200.00")
        assert sale.status == ObligationStatus.PAID
        assert result.excess == Decimal("50.00")
        assert result.credit_added == Decimal("50.00")
        assert credit_of(customer) == Decimal("50.00")
        assert on_hand(product) == Decimal("3")

    def test_ledger_entry_references_sale(self, sell, stock_up, customer, product):
        stock_up(product, 5)

        result = sell(customer, (product, "2"), cash="200")

        (entry,) = result.ledger_entries
        assert entry.transaction_kind == TransactionKind.SALE
        assert entry.quantity_before == Decimal("5")
        assert entry.quantity_change == Decimal("-2")
        assert entry.quantity_after == Decimal("3")
        assert entry.reference_id == str(result.obligation.id)
        assert entry.reference_kind == ReferenceKind.SALE
        assert entry.notes == f"Sale {result.obligation.code}"

    def test_unpaid_sale_is_pending(self, sell, stock_up, customer, product):
        stock_up(product, 5)

        result = sell(customer, (product, "1"), mode=PaymentMode.CREDIT)

        assert result.obligation.status == ObligationStatus.PENDING
        assert result.obligation.balance == Decimal("100.00")
        assert result.obligation.payments == ()

    def test_partial_payment(self, sell, stock_up, customer, product):
        stock_up(product, 5)

        result = sell(customer, (product, "2"), cash="50")

        assert result.obligation.status == ObligationStatus.PARTIAL
        assert result.obligation.balance == Decimal("150.00")
        (payment,) = result.obligation.payments
        assert payment.notes == "Payment at sale"
        assert payment.payment_date == date(2024, 1, 1)

    def test_codes_increment_within_day(self, sell, stock_up, customer, product):
        stock_up(product, 5)

        first = sell(customer, (product, "1"), cash="100")
        second = sell(customer, (product, "1"), cash="100")

        assert first.obligation.code == "SAL-20240101-0001"
        assert second.obligation.code == "SAL-20240101-0002"

    def test_line_totals_rounded_to_money(self, sell, stock_up, customer, product):
        stock_up(product, 5)

        result = sell(customer, (product, "3", "0.333"))

        assert result.obligation.lines[0].line_total == Decimal("1.00")
        assert result.obligation.total == Decimal("1.00")

    def test_sub_cent_cash_rounded_before_settling(
        self, sell, stock_up, credit_of, customer, product
    ):
        stock_up(product, 5)

        result = sell(customer, (product, "1"), cash="100.004")

        assert result.obligation.amount_paid == Decimal("100.00")
        assert result.excess == Decimal("0")
        assert credit_of(customer) == Decimal("0")

    def test_half_cent_cash_rounds_up_into_credit(
        self, sell, stock_up, credit_of, customer, product
    ):
        stock_up(product, 5)

        result = sell(customer, (product, "1"), cash="100.005")

        assert result.excess == Decimal("0.01")
        assert credit_of(customer) == Decimal("0.01")

    def test_fractional_quantity_rounded_to_stock_precision(
        self, sell, stock_up, on_hand, customer, product
    ):
        stock_up(product, 5)

        result = sell(customer, (product, "1.2344", "10"))

        assert result.obligation.lines[0].quantity == Decimal("1.234")
        assert on_hand(product) == Decimal("3.766")


class TestMultiLineSale:
    def test_all_lines_settled_together(self, sell, stock_up, on_hand, make_item, customer):
        a = make_item(ItemKind.PRODUCT, Decimal("10"))
        b = make_item(ItemKind.PRODUCT, Decimal("25"))
        stock_up(a, 10)
        stock_up(b, 4)

        result = sell(customer, (a, "3"), (b, "2"), cash="80")

        assert result.obligation.total == Decimal("80.00")
        assert [line.line_number for line in result.obligation.lines] == [1, 2]
        assert on_hand(a) == Decimal("7")
        assert on_hand(b) == Decimal("2")
        assert len(result.ledger_entries) == 2

    def test_repeated_product_checked_on_combined_quantity(
        self, sell, stock_up, on_hand, customer, product
    ):
        stock_up(product, 3)

        with pytest.raises(InsufficientStockError) as exc_info:
            sell(customer, (product, "2"), (product, "2"))

        assert exc_info.value.shortages[0].requested == Decimal("4")
        assert on_hand(product) == Decimal("3")

    def test_every_short_item_reported(self, sell, stock_up, on_hand, make_item, customer):
        a = make_item(ItemKind.PRODUCT, Decimal("10"))
        b = make_item(ItemKind.PRODUCT, Decimal("10"))
        c = make_item(ItemKind.PRODUCT, Decimal("10"))
        stock_up(a, 1)
        stock_up(b, 10)

        with pytest.raises(InsufficientStockError) as exc_info:
            sell(customer, (a, "2"), (b, "1"), (c, "1"))

        assert set(exc_info.value.item_ids) == {str(a.id), str(c.id)}
        assert on_hand(b) == Decimal("10")


class TestInsufficientStock:
    def test_nothing_is_written(self, sell, stock_up, on_hand, session, customer, make_item,
                                 deterministic_clock):
        product_b = make_item(ItemKind.PRODUCT, Decimal("40"), "Product B")
        stock_up(product_b, 1)

        with pytest.raises(InsufficientStockError) as exc_info:
            sell(customer, (product_b, "3"), cash="120")

        shortage = exc_info.value.shortages[0]
        assert shortage.available == Decimal("1")
        assert shortage.requested == Decimal("3")
        assert on_hand(product_b) == Decimal("1")
        assert session.execute(select(func.count(Obligation.id))).scalar_one() == 0
        name = SequenceService.counter_name("SAL", deterministic_clock.today())
        assert SequenceService(session).current_value(name) is None

    def test_rolled_back_logs_warning(self, sell, captured_logs, customer, product):
        with pytest.raises(InsufficientStockError):
            sell(customer, (product, "1"))

        rollback = [r for r in captured_logs() if r["message"] == "transaction_rolled_back"]
        assert rollback[0]["level"] == "WARNING"
        assert rollback[0]["error_code"] == "INSUFFICIENT_STOCK"
        assert rollback[0]["operation"] == "create_sale"


class TestStoreCredit:
    def test_credit_applied_before_cash(self, sell, stock_up, credit_of, set_credit,
                                        customer, product):
        stock_up(product, 5)
        set_credit(customer.id, "30")

        result = sell(customer, (product, "1"), cash="70", use_credit=True)

        assert result.credit_used == Decimal("30.00")
        assert result.obligation.status == ObligationStatus.PAID
        modes = [p.payment_mode for p in result.obligation.payments]
        assert modes == [PaymentMode.STORE_CREDIT, PaymentMode.CASH]
        assert credit_of(customer) == Decimal("0")

    def test_credit_cap(self, sell, stock_up, credit_of, set_credit, customer, product):
        stock_up(product, 5)
        set_credit(customer.id, "80")

        result = sell(customer, (product, "1"), use_credit=True, credit_cap="25")

        assert result.credit_used == Decimal("25.00")
        assert result.obligation.balance == Decimal("75.00")
        assert credit_of(customer) == Decimal("55.00")

    def test_credit_never_exceeds_total(self, sell, stock_up, credit_of, set_credit,
                                        customer, product):
        stock_up(product, 5)
        set_credit(customer.id, "500")

        result = sell(customer, (product, "1"), use_credit=True)

        assert result.credit_used == Decimal("100.00")
        assert result.excess == Decimal("0")
        assert credit_of(customer) == Decimal("400.00")

    def test_credit_not_used_unless_asked(self, sell, stock_up, credit_of, set_credit,
                                          customer, product):
        stock_up(product, 5)
        set_credit(customer.id, "30")

        result = sell(customer, (product, "1"), mode=PaymentMode.CREDIT)

        assert result.credit_used == Decimal("0")
        assert credit_of(customer) == Decimal("30.00")


class TestExcessAllocation:
    def test_excess_settles_older_sales_first(
        self, sell, stock_up, credit_of, obligations, customer, product
    ):
        stock_up(product, 10)
        older = sell(customer, (product, "1", "60"), mode=PaymentMode.CREDIT,
                     supply_date=date(2023, 12, 1))
        newer = sell(customer, (product, "1", "50"), mode=PaymentMode.CREDIT,
                     supply_date=date(2023, 12, 15))

        result = sell(customer, (product, "1"), cash="250")

        assert result.excess == Decimal("150.00")
        assert result.excess_applied == Decimal("110.00")
        assert result.credit_added == Decimal("40.00")
        assert [p.obligation_id for p in result.allocations] == [
            older.obligation.id, newer.obligation.id
        ]
        assert obligations.get(ObligationKind.SALE, older.obligation.id).status == (
            ObligationStatus.PAID
        )
        assert obligations.get(ObligationKind.SALE, newer.obligation.id).status == (
            ObligationStatus.PAID
        )
        assert credit_of(customer) == Decimal("40.00")

    def test_conservation(self, sell, stock_up, credit_of, customer, product):
        stock_up(product, 10)
        sell(customer, (product, "1", "70"), mode=PaymentMode.CREDIT)

        result = sell(customer, (product, "1"), cash="130")

        allocated = sum((p.amount for p in result.allocations), Decimal("0"))
        assert result.excess == allocated + result.credit_added
        assert allocated == Decimal("30.00")
        assert credit_of(customer) == Decimal("0")


class TestValidation:
    def test_unknown_customer(self, orchestrator, admin, product):
        request = SaleRequest(
            uuid4(), (SaleLineRequest(product.id, Decimal("1"), Decimal("1")),),
            date(2024, 1, 1), PaymentMode.CASH,
        )
        with pytest.raises(NotFoundError) as exc_info:
            orchestrator.create_sale(admin, request)
        assert exc_info.value.entity_type == "Customer"

    def test_supplier_is_not_a_customer(self, sell, stock_up, supplier, product):
        stock_up(product, 1)
        with pytest.raises(NotFoundError):
            sell(supplier, (product, "1"))

    def test_material_cannot_be_sold(self, sell, stock_up, customer, material):
        stock_up(material, 5)
        with pytest.raises(NotFoundError):
            sell(customer, (material, "1", "10"))

    @pytest.mark.parametrize("quantity", ["0", "-1"])
    def test_non_positive_quantity(self, sell, customer, product, quantity):
        with pytest.raises(ValidationError) as exc_info:
            sell(customer, (product, quantity))
        assert exc_info.value.field == "lines[0].quantity"

    def test_negative_cash(self, sell, customer, product):
        with pytest.raises(ValidationError):
            sell(customer, (product, "1"), cash="-1")

    @pytest.mark.parametrize("cash", ["Infinity", "NaN", "-Infinity", "sNaN"])
    def test_non_finite_cash(self, sell, stock_up, on_hand, credit_of, customer, product, cash):
        stock_up(product, 5)

        with pytest.raises(ValidationError) as exc_info:
            sell(customer, (product, "1"), cash=cash)

        assert exc_info.value.field == "cash_tendered"
        assert on_hand(product) == Decimal("5")
        assert credit_of(customer) == Decimal("0")

    @pytest.mark.parametrize("quantity", ["Infinity", "NaN"])
    def test_non_finite_quantity(self, sell, customer, product, quantity):
        with pytest.raises(ValidationError) as exc_info:
            sell(customer, (product, quantity))
        assert exc_info.value.field == "lines[0].quantity"

    def test_quantity_rounding_to_zero(self, sell, customer, product):
        with pytest.raises(ValidationError) as exc_info:
            sell(customer, (product, "0.0004"))
        assert exc_info.value.field == "lines[0].quantity"

    def test_non_finite_credit_cap(self, sell, stock_up, set_credit, customer, product):
        stock_up(product, 5)
        set_credit(customer.id, "20")
        with pytest.raises(ValidationError) as exc_info:
            sell(customer, (product, "1"), use_credit=True, credit_cap="Infinity")
        assert exc_info.value.field == "credit_cap"

    def test_unknown_payment_mode(self, orchestrator, admin, customer, product):
        request = SaleRequest(
            customer.id, (SaleLineRequest(product.id, Decimal("1"), Decimal("1")),),
            date(2024, 1, 1), "barter",
        )
        with pytest.raises(ValidationError):
            orchestrator.create_sale(admin, request)


class TestFailureRollback:
    def test_late_failure_rolls_back_everything(
        self, sell, stock_up, on_hand, credit_of, set_credit, session, orchestrator,
        monkeypatch, customer, product,
    ):
        stock_up(product, 5)
        set_credit(customer.id, "20")

        def explode(*args, **kwargs):
            raise RuntimeError("allocation failed")

        monkeypatch.setattr(orchestrator._allocator, "allocate_excess", explode)

        with pytest.raises(RuntimeError):
            sell(customer, (product, "1"), cash="200", use_credit=True)

        assert on_hand(product) == Decimal("5")
        assert credit_of(customer) == Decimal("20.00")
        assert session.execute(select(func.count(Obligation.id))).scalar_one() == 0

    def test_database_error_becomes_infrastructure_fault(
        self, sell, stock_up, on_hand, orchestrator, monkeypatch, customer, product,
    ):
        stock_up(product, 5)

        def fail(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("connection lost"))

        monkeypatch.setattr(orchestrator._audit, "record", fail)

        with pytest.raises(InfrastructureFault) as exc_info:
            sell(customer, (product, "1"), cash="100")

        assert exc_info.value.client_safe is False
        assert exc_info.value.cause_type == "OperationalError"
        assert on_hand(product) == Decimal("5")


class TestLogging:
    def test_started_and_completed_share_correlation(
        self, sell, stock_up, captured_logs, customer, product
    ):
        stock_up(product, 1)

        sell(customer, (product, "1"), cash="100")

        records = [r for r in captured_logs() if r.get("operation") == "create_sale"]
        messages = [r["message"] for r in records]
        assert messages[0] == "create_sale_started"
        assert "sale_created" in messages
        assert messages[-1] == "create_sale_completed"
        assert len({r["correlation_id"] for r in records}) == 1
