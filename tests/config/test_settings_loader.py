"""Tests for loading ledger settings and bridging them into the kernel."""

from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from ledger_config import DEFAULT_SETTINGS_PATH, get_active_settings
from ledger_config.bridges import (
    build_permission_table,
    build_settlement_policy,
    init_engine_from_settings,
)
from ledger_config.loader import load_yaml_file, parse_decimal, parse_settings
from ledger_kernel.domain.permissions import Action, Resource
from ledger_kernel.domain.values import ItemKind


@pytest.fixture
def raw_defaults() -> dict:
    return load_yaml_file(DEFAULT_SETTINGS_PATH)


def _write(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / "ledger.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestPackagedDefaults:
    def test_defaults_load(self, monkeypatch):
        monkeypatch.delenv("LEDGER_CONFIG_PATH", raising=False)
        monkeypatch.delenv("LEDGER_DATABASE_URL", raising=False)

        settings = get_active_settings()

        assert settings.money_decimal_places == 2
        assert settings.database.url.startswith("postgresql")
        assert settings.sequence_prefixes.sale == "SAL"
        assert settings.sequence_prefixes.purchase == "PUR"
        assert settings.sequence_prefixes.replacement == "RPL"
        assert settings.checksum

    def test_stock_defaults_match_goods_received_defaults(self):
        settings = get_active_settings(DEFAULT_SETTINGS_PATH)

        product = settings.stock_defaults["product"]
        material = settings.stock_defaults["material"]
        assert (product.unit, product.minimum_stock, product.reorder_point) == (
            "pcs",
            Decimal("10"),
            Decimal("20"),
        )
        assert (material.unit, material.minimum_stock, material.reorder_point) == (
            "kg",
            Decimal("50"),
            Decimal("100"),
        )

    def test_checksum_is_deterministic(self):
        first = get_active_settings(DEFAULT_SETTINGS_PATH)
        second = get_active_settings(DEFAULT_SETTINGS_PATH)
        assert first.checksum == second.checksum


class TestEnvironmentOverrides:
    def test_database_url_override(self, monkeypatch):
        monkeypatch.setenv("LEDGER_DATABASE_URL", "sqlite:///override.db")

        settings = get_active_settings(DEFAULT_SETTINGS_PATH)

        assert settings.database.url == "sqlite:///override.db"
        assert settings.database.pool_size == 20

    def test_config_path_override(self, monkeypatch, tmp_path, raw_defaults):
        raw_defaults["money_decimal_places"] = 3
        monkeypatch.setenv("LEDGER_CONFIG_PATH", str(_write(tmp_path, raw_defaults)))
        monkeypatch.delenv("LEDGER_DATABASE_URL", raising=False)

        assert get_active_settings().money_decimal_places == 3

    def test_explicit_path_wins_over_environment(self, monkeypatch, tmp_path, raw_defaults):
        monkeypatch.setenv("LEDGER_CONFIG_PATH", str(tmp_path / "missing.yaml"))

        settings = get_active_settings(DEFAULT_SETTINGS_PATH)

        assert settings.money_decimal_places == 2


class TestMalformedSettings:
    def test_missing_section(self, raw_defaults):
        del raw_defaults["permissions"]
        with pytest.raises(KeyError, match="permissions"):
            parse_settings(raw_defaults)

    def test_bad_decimal_places(self, raw_defaults):
        raw_defaults["money_decimal_places"] = "two"
        with pytest.raises(ValueError, match="money_decimal_places"):
            parse_settings(raw_defaults)

    def test_float_threshold_rejected(self, raw_defaults):
        raw_defaults["stock_defaults"]["product"]["minimum_stock"] = 10.5
        with pytest.raises(ValueError, match="minimum_stock"):
            parse_settings(raw_defaults)

    def test_missing_unit(self, raw_defaults):
        del raw_defaults["stock_defaults"]["material"]["unit"]
        with pytest.raises(KeyError):
            parse_settings(raw_defaults)

    def test_duplicate_prefixes(self, raw_defaults):
        raw_defaults["sequence_prefixes"]["purchase"] = "SAL"
        with pytest.raises(ValueError, match="distinct"):
            parse_settings(raw_defaults)

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_yaml_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_settings(tmp_path / "nope.yaml")

    def test_parse_decimal(self):
        assert parse_decimal("12.50", "k") == Decimal("12.50")
        assert parse_decimal(7, "k") == Decimal("7")
        with pytest.raises(ValueError):
            parse_decimal("abc", "k")
        with pytest.raises(ValueError):
            parse_decimal(True, "k")


class TestBridges:
    def test_policy_from_defaults(self):
        policy = build_settlement_policy(get_active_settings(DEFAULT_SETTINGS_PATH))

        assert policy.defaults_for(ItemKind.PRODUCT).unit == "pcs"
        assert policy.defaults_for(ItemKind.MATERIAL).reorder_point == Decimal("100")
        assert policy.code_prefixes.sale == "SAL"
        assert policy.money_decimal_places == 2

    def test_default_roles(self):
        table = build_permission_table(get_active_settings(DEFAULT_SETTINGS_PATH))

        assert table.allows("admin", Resource.PURCHASES, Action.DELETE)
        assert table.allows("sales", Resource.SALES, Action.CREATE)
        assert not table.allows("sales", Resource.PURCHASES, Action.CREATE)
        assert table.allows("procurement", Resource.INVENTORY, Action.UPDATE)
        assert not table.allows("management", Resource.SALES, Action.CREATE)
        assert table.allows("management", Resource.INVENTORY, Action.READ)

    def test_unknown_item_kind(self, raw_defaults):
        raw_defaults["stock_defaults"]["gadget"] = dict(
            raw_defaults["stock_defaults"]["product"]
        )
        with pytest.raises(ValueError, match="gadget"):
            build_settlement_policy(parse_settings(raw_defaults))

    def test_missing_item_kind(self, raw_defaults):
        del raw_defaults["stock_defaults"]["material"]
        with pytest.raises(ValueError, match="material"):
            build_settlement_policy(parse_settings(raw_defaults))

    def test_unknown_permission_action(self, raw_defaults):
        raw_defaults["permissions"]["sales"]["sales"] = ["create", "approve"]
        with pytest.raises(ValueError):
            build_settlement_policy(parse_settings(raw_defaults))

    def test_engine_initialized_from_database_settings(self, monkeypatch):
        calls = {}

        def fake_init(url, **kwargs):
            calls["url"] = url
            calls.update(kwargs)
            return "engine"

        monkeypatch.setattr("ledger_kernel.db.engine.init_engine_from_url", fake_init)
        monkeypatch.setenv("LEDGER_DATABASE_URL", "sqlite:///bridge.db")

        result = init_engine_from_settings(get_active_settings(DEFAULT_SETTINGS_PATH))

        assert result == "engine"
        assert calls["url"] == "sqlite:///bridge.db"
        assert calls["pool_size"] == 20
        assert calls["pool_recycle"] == 1800
