"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into the frozen
``ledger_config.schema`` dataclasses.  Runtime callers go through
``ledger_config.get_active_settings()``; this module is its machinery.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required keys.
* Decimal thresholds are parsed from strings or integers, never floats.
* ``compute_checksum`` gives a deterministic SHA-256 of the parsed source.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError``.
* Wrong value types  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    DatabaseSettings,
    LedgerSettings,
    SequencePrefixesDef,
    StockDefaultsDef,
)

_REQUIRED_SECTIONS = (
    "database",
    "money_decimal_places",
    "stock_defaults",
    "sequence_prefixes",
    "permissions",
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML document must be a mapping")
    return data


def parse_decimal(value: Any, key: str) -> Decimal:
    """Parse a Decimal from a YAML string or integer."""
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"{key}: expected a quoted decimal or integer, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key}: not a decimal: {value!r}") from exc


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    return DatabaseSettings(
        url=data["url"],
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=int(data.get("pool_timeout", 30)),
        pool_recycle=int(data.get("pool_recycle", 1800)),
    )


def parse_stock_defaults(data: dict[str, Any]) -> dict[str, StockDefaultsDef]:
    """
    Parse per-item-kind stock defaults.

    Raises:
        KeyError: if a kind lacks unit, minimum_stock or reorder_point.
    """
    result: dict[str, StockDefaultsDef] = {}
    for kind, raw in data.items():
        maximum = raw.get("maximum_stock")
        result[kind] = StockDefaultsDef(
            unit=raw["unit"],
            minimum_stock=parse_decimal(raw["minimum_stock"], f"stock_defaults.{kind}.minimum_stock"),
            reorder_point=parse_decimal(raw["reorder_point"], f"stock_defaults.{kind}.reorder_point"),
            maximum_stock=(
                parse_decimal(maximum, f"stock_defaults.{kind}.maximum_stock")
                if maximum is not None
                else None
            ),
        )
    return result


def parse_sequence_prefixes(data: dict[str, Any]) -> SequencePrefixesDef:
    prefixes = SequencePrefixesDef(
        sale=data["sale"],
        purchase=data["purchase"],
        replacement=data["replacement"],
    )
    values = (prefixes.sale, prefixes.purchase, prefixes.replacement)
    if len(set(values)) != len(values):
        raise ValueError(f"sequence_prefixes must be distinct, got {values}")
    return prefixes


def parse_permissions(data: dict[str, Any]) -> dict[str, dict[str, tuple[str, ...]]]:
    result: dict[str, dict[str, tuple[str, ...]]] = {}
    for role, resources in data.items():
        if not isinstance(resources, dict):
            raise ValueError(f"permissions.{role} must be a mapping of resource -> actions")
        result[role] = {
            resource: tuple(actions or ()) for resource, actions in resources.items()
        }
    return result


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of a parsed YAML document."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    """
    Parse a full settings document.

    Raises:
        KeyError: if a required section is missing.
        ValueError: if a value has the wrong type.
    """
    for section in _REQUIRED_SECTIONS:
        if section not in data:
            raise KeyError(f"Missing required settings section: {section}")

    places = data["money_decimal_places"]
    if not isinstance(places, int) or isinstance(places, bool) or places < 0:
        raise ValueError(f"money_decimal_places must be a non-negative integer, got {places!r}")

    return LedgerSettings(
        database=parse_database(data["database"]),
        log_level=str(data.get("log_level", "INFO")).upper(),
        money_decimal_places=places,
        stock_defaults=parse_stock_defaults(data["stock_defaults"]),
        sequence_prefixes=parse_sequence_prefixes(data["sequence_prefixes"]),
        permissions=parse_permissions(data["permissions"]),
        checksum=compute_checksum(data),
    )


def load_settings(path: Path) -> LedgerSettings:
    return parse_settings(load_yaml_file(path))
