"""
LedgerSettings schema.

Frozen dataclasses the loader parses ``defaults.yaml`` (or an override file)
into.  These are plain data; ``bridges.py`` turns them into the kernel's
``SettlementPolicy``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StockDefaultsDef:
    """Defaults for a lazily created stock row of one item kind."""

    unit: str
    minimum_stock: Decimal
    reorder_point: Decimal
    maximum_stock: Decimal | None = None


# ---------------------------------------------------------------------------
# Sequences
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SequencePrefixesDef:
    sale: str
    purchase: str
    replacement: str


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerSettings:
    """
    Everything configurable about the ledger engine.

    ``permissions`` maps role -> resource -> allowed actions, exactly as
    written in YAML; the bridge validates names against the kernel's
    Resource and Action vocabularies.
    """

    database: DatabaseSettings
    log_level: str
    money_decimal_places: int
    stock_defaults: dict[str, StockDefaultsDef]
    sequence_prefixes: SequencePrefixesDef
    permissions: dict[str, dict[str, tuple[str, ...]]]
    checksum: str = field(default="", compare=False)
