"""
Config -> Kernel Bridges.

Convert loaded ``LedgerSettings`` into kernel inputs.  These live in
ledger_config (the producer) because the kernel never imports
ledger_config.

Usage:
    from ledger_config import get_active_settings
    from ledger_config.bridges import build_settlement_policy, init_engine_from_settings

    settings = get_active_settings()
    init_engine_from_settings(settings)
    policy = build_settlement_policy(settings)
    with session_scope() as session:
        orchestrator = SettlementOrchestrator(session, policy)
"""

from __future__ import annotations

from ledger_config.schema import LedgerSettings
from ledger_kernel.domain.dtos import StockDefaults
from ledger_kernel.domain.permissions import PermissionTable
from ledger_kernel.domain.policy import CodePrefixes, SettlementPolicy
from ledger_kernel.domain.values import ItemKind


def build_permission_table(settings: LedgerSettings) -> PermissionTable:
    """
    Raises:
        ValueError: if a resource or action name is not part of the kernel
            vocabulary.
    """
    return PermissionTable.from_mapping(settings.permissions)


def build_settlement_policy(settings: LedgerSettings) -> SettlementPolicy:
    """
    Build the orchestrator's policy from settings.

    Raises:
        ValueError: on an unknown item kind, resource or action, or when a
            stock default is missing for an item kind.
    """
    stock_defaults = {}
    for kind, d in settings.stock_defaults.items():
        try:
            item_kind = ItemKind(kind)
        except ValueError as exc:
            raise ValueError(f"Unknown item kind in stock_defaults: {kind!r}") from exc
        stock_defaults[item_kind] = StockDefaults(
            unit=d.unit,
            minimum_stock=d.minimum_stock,
            reorder_point=d.reorder_point,
            maximum_stock=d.maximum_stock,
        )

    prefixes = settings.sequence_prefixes
    return SettlementPolicy(
        stock_defaults=stock_defaults,
        permissions=build_permission_table(settings),
        code_prefixes=CodePrefixes(
            sale=prefixes.sale,
            purchase=prefixes.purchase,
            replacement=prefixes.replacement,
        ),
        money_decimal_places=settings.money_decimal_places,
    )


def init_engine_from_settings(settings: LedgerSettings):
    """
    Configure logging at the settings' level and initialize the kernel's
    engine from ``settings.database``.
    """
    from ledger_kernel.db.engine import init_engine_from_url
    from ledger_kernel.logging_config import configure_logging

    configure_logging(level=settings.log_level)
    db = settings.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )
