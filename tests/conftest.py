"""
Pytest fixtures for the ledger kernel test suite.

Provides:
- A database session per test, isolated by an outer transaction that is
  rolled back at teardown (orchestrator commits only release savepoints)
- Settlement policy built from the packaged defaults
- Actors for every configured role
- Factories for customers, suppliers, products, materials and stock

Environment Variables:
- DATABASE_URL: database URL for the suite.  Defaults to in-memory SQLite.
  Point it at PostgreSQL (postgresql+psycopg2://...) to run the
  ``postgres``-marked concurrency tests as well.
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session

from ledger_config import get_active_settings
from ledger_config.bridges import build_settlement_policy
from ledger_kernel.db.base import Base
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from ledger_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.dtos import Actor, SaleLineRequest, SaleRequest
from ledger_kernel.domain.values import ItemKind, PartyType, PaymentMode
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.party import Party
from ledger_kernel.selectors import LedgerSelector, ObligationSelector, StockSelector
from ledger_kernel.services.catalog_service import CatalogService
from ledger_kernel.services.settlement_orchestrator import SettlementOrchestrator

# Actor used for master data created by fixtures
TEST_ACTOR_ID = uuid4()

DEFAULT_DATABASE_URL = "sqlite://"


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def is_postgres_url(url: str) -> bool:
    return url.startswith("postgresql")


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "postgres: mark test as requiring PostgreSQL")


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.create_sale(...)
            logs = captured_logs()
            assert any(r["message"] == "sale_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database infrastructure (engine + tables once per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(
        get_database_url(),
        echo=False,
        pool_size=10,
        max_overflow=10,
        pool_timeout=10,
    )
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end."""
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables()


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """
    Provide a database session for testing.

    Uses the SQLAlchemy 2.0 ``join_transaction_mode`` pattern:
    - Opens a dedicated connection with an outer transaction
    - The session *joins* it; every ``session.commit()`` (including the
      orchestrator's) releases a savepoint and every ``rollback()`` rolls
      back to one
    - At teardown the outer transaction is rolled back, undoing ALL data
      changes made during the test
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


def _truncate_all_tables(engine) -> None:
    """TRUNCATE every table; used after tests that really commit."""
    table_names = [t.name for t in reversed(Base.metadata.sorted_tables)]
    with engine.connect() as conn:
        conn.execute(text("TRUNCATE " + ", ".join(table_names) + " CASCADE"))
        conn.commit()


@pytest.fixture(scope="function")
def pg_session_factory(db_engine, db_tables):
    """
    Session factory for multi-threaded PostgreSQL tests.

    Sessions created here perform real commits; all data is truncated at
    teardown.  Skips the test on any other backend.
    """
    if not is_postgres_url(get_database_url()):
        pytest.skip("requires PostgreSQL (set DATABASE_URL)")
    factory = get_session_factory()
    created: list[Session] = []

    def tracked_factory() -> Session:
        s = factory()
        created.append(s)
        return s

    yield tracked_factory

    for s in created:
        s.close()
    _truncate_all_tables(db_engine)


# =============================================================================
# Kernel fixtures
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    """Clock fixed at 2024-01-01 12:00 UTC."""
    return DeterministicClock()


@pytest.fixture(scope="session")
def settings():
    return get_active_settings()


@pytest.fixture(scope="session")
def policy(settings):
    return build_settlement_policy(settings)


@pytest.fixture
def orchestrator(session, policy, deterministic_clock) -> SettlementOrchestrator:
    return SettlementOrchestrator(session, policy, deterministic_clock)


@pytest.fixture
def admin() -> Actor:
    return Actor(actor_id=uuid4(), role="admin")


@pytest.fixture
def sales_clerk() -> Actor:
    return Actor(actor_id=uuid4(), role="sales")


@pytest.fixture
def procurement_officer() -> Actor:
    return Actor(actor_id=uuid4(), role="procurement")


@pytest.fixture
def manager() -> Actor:
    return Actor(actor_id=uuid4(), role="management")


# =============================================================================
# Master data factories
# =============================================================================
#
# Each factory commits, so fixture rows survive an orchestrator rollback
# later in the test.


@pytest.fixture
def catalog(session) -> CatalogService:
    return CatalogService(session)


@pytest.fixture
def make_party(session, catalog):
    counter = {"n": 0}

    def _make(party_type: PartyType = PartyType.CUSTOMER, name: str | None = None):
        counter["n"] += 1
        prefix = "CUST" if party_type == PartyType.CUSTOMER else "SUPP"
        info = catalog.create_party(
            f"{prefix}-{counter['n']:03d}",
            party_type,
            name or f"{prefix.title()} {counter['n']}",
            TEST_ACTOR_ID,
        )
        session.commit()
        return info

    return _make


@pytest.fixture
def make_item(session, catalog):
    counter = {"n": 0}

    def _make(
        item_kind: ItemKind = ItemKind.PRODUCT,
        unit_price: Decimal | None = None,
        name: str | None = None,
    ):
        counter["n"] += 1
        prefix = "PRD" if item_kind == ItemKind.PRODUCT else "MAT"
        info = catalog.create_item(
            f"{prefix}-{counter['n']:03d}",
            item_kind,
            name or f"Item {counter['n']}",
            TEST_ACTOR_ID,
            unit_price=unit_price,
        )
        session.commit()
        return info

    return _make


@pytest.fixture
def customer(make_party):
    return make_party(PartyType.CUSTOMER, "Ada Stores")


@pytest.fixture
def supplier(make_party):
    return make_party(PartyType.SUPPLIER, "Basil Supplies")


@pytest.fixture
def product(make_item):
    return make_item(ItemKind.PRODUCT, Decimal("100"), "Product A")


@pytest.fixture
def material(make_item):
    return make_item(ItemKind.MATERIAL, name="Flour")


@pytest.fixture
def stock_up(orchestrator, admin):
    """Bring an item to a starting quantity through a goods-received entry."""

    def _stock(item, quantity) -> None:
        orchestrator.receive_goods(
            admin, item.item_kind, item.id, Decimal(quantity), reference_number="OPENING"
        )

    return _stock


@pytest.fixture
def set_credit(session):
    """Give a customer store credit directly (test setup only)."""

    def _set(customer_id: UUID, amount) -> None:
        party = session.get(Party, customer_id)
        party.credit_balance = Decimal(amount)
        session.commit()

    return _set


# =============================================================================
# Settlement helpers
# =============================================================================


@pytest.fixture
def sell(orchestrator, admin):
    """
    Create a sale of ``(item, quantity[, unit_price])`` tuples.

    The unit price defaults to the item's catalog price.
    """

    def _sell(customer, *lines, cash="0", mode=PaymentMode.CASH, actor=None,
              use_credit=False, credit_cap=None, supply_date=date(2024, 1, 1)):
        request = SaleRequest(
            customer_id=customer.id,
            lines=tuple(
                SaleLineRequest(
                    line[0].id,
                    Decimal(line[1]),
                    Decimal(line[2]) if len(line) > 2 else line[0].unit_price,
                )
                for line in lines
            ),
            supply_date=supply_date,
            payment_mode=mode,
            cash_tendered=Decimal(cash),
            use_credit=use_credit,
            credit_cap=Decimal(credit_cap) if credit_cap is not None else None,
        )
        return orchestrator.create_sale(actor or admin, request)

    return _sell


@pytest.fixture
def on_hand(session):
    """Current quantity on hand for an item (zero without a stock row)."""

    def _on_hand(item) -> Decimal:
        info = StockSelector(session).get_stock(item.id)
        return info.quantity_on_hand if info is not None else Decimal("0")

    return _on_hand


@pytest.fixture
def credit_of(session):
    def _credit(customer) -> Decimal:
        party = session.get(Party, customer.id)
        session.refresh(party)
        return party.credit_balance

    return _credit


@pytest.fixture
def obligations(session) -> ObligationSelector:
    return ObligationSelector(session)


@pytest.fixture
def ledger_view(session) -> LedgerSelector:
    return LedgerSelector(session)
