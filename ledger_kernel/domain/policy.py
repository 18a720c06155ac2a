"""
Policy -- the configuration inputs the orchestrator runs under.

Responsibility:
    A frozen bundle of everything configurable about settlement: lazy stock
    defaults per item kind, sequence code prefixes, the permission table
    and money precision.  The kernel never reads configuration files;
    ``ledger_config.bridges`` builds this object from loaded settings.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from ledger_kernel.domain.dtos import StockDefaults
from ledger_kernel.domain.permissions import PermissionTable
from ledger_kernel.domain.values import ItemKind


@dataclass(frozen=True)
class CodePrefixes:
    sale: str = "SAL"
    purchase: str = "PUR"
    replacement: str = "RPL"


@dataclass(frozen=True)
class SettlementPolicy:
    stock_defaults: Mapping[ItemKind, StockDefaults]
    permissions: PermissionTable
    code_prefixes: CodePrefixes = CodePrefixes()
    money_decimal_places: int = 2

    def __post_init__(self) -> None:
        missing = [k.value for k in ItemKind if k not in self.stock_defaults]
        if missing:
            raise ValueError(f"Stock defaults missing for item kinds: {missing}")
        object.__setattr__(self, "stock_defaults", MappingProxyType(dict(self.stock_defaults)))

    def defaults_for(self, item_kind: ItemKind) -> StockDefaults:
        return self.stock_defaults[ItemKind(item_kind)]
