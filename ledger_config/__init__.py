"""
ledger_config -- single public entrypoint for ledger engine settings.

Responsibility:
    ``get_active_settings()`` is the only way runtime code obtains
    configuration.  No other component reads settings files or the
    ``LEDGER_*`` environment variables directly.

Architecture position:
    Configuration layer.  Sits above ``ledger_kernel``; the kernel never
    imports this package.  ``bridges`` translates settings into kernel
    inputs.

Environment:
    LEDGER_CONFIG_PATH   -- alternative YAML file (same layout as
                            defaults.yaml).
    LEDGER_DATABASE_URL  -- overrides ``database.url``.

Failure modes:
    - ``FileNotFoundError`` if the selected file does not exist.
    - ``KeyError`` / ``ValueError`` on malformed settings.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from ledger_config.loader import load_settings
from ledger_config.schema import LedgerSettings

_logger = logging.getLogger("ledger_kernel.config")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_PATH_ENV = "LEDGER_CONFIG_PATH"
DATABASE_URL_ENV = "LEDGER_DATABASE_URL"


def get_active_settings(path: Path | str | None = None) -> LedgerSettings:
    """
    Load the active settings.

    Resolution order for the file: explicit ``path``, then
    ``LEDGER_CONFIG_PATH``, then the packaged defaults.  ``LEDGER_DATABASE_URL``
    always wins over the file's database URL.
    """
    source = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_SETTINGS_PATH)
    settings = load_settings(source)

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        settings = replace(settings, database=replace(settings.database, url=database_url))

    _logger.info(
        "ledger_settings_loaded",
        extra={
            "source": str(source),
            "checksum": settings.checksum,
            "database_url_overridden": bool(database_url),
        },
    )
    return settings


__all__ = ["LedgerSettings", "get_active_settings", "DEFAULT_SETTINGS_PATH"]
