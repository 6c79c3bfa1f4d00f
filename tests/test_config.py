"""
tests/test_config.py — YAML Configuration Loader
=================================================
"""

from __future__ import annotations

import pytest

from tetobot.config import (
    DEFAULT_PURCHASE_CREDITS,
    EconomyConfig,
    SchedulerConfig,
    TetoConfig,
    load_config,
    parse_config,
)


class TestDefaults:
    def test_missing_file_returns_defaults(self, tmp_path):
        cfg = load_config(tmp_path / "nope.yaml")
        assert cfg == TetoConfig()
        assert cfg.economy.message_credit_cost == 1
        assert cfg.economy.daily_credit_refill_cap == 30
        assert cfg.economy.vote_credit_bonus == 30
        assert cfg.scheduler.enabled is False

    def test_empty_file_returns_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(path) == TetoConfig()

    def test_default_products(self):
        econ = EconomyConfig()
        assert econ.credits_for_product("6aefc078-a0da-4998-ae9b-5ff94c18aad5") == 150
        assert econ.credits_for_product("aaca78c2-b925-4f9b-8d47-b76161a1604d") == 315
        assert econ.credits_for_product("d4507c93-4aa8-4c60-a877-c8750d8fbb8c") == 660
        assert econ.credits_for_product("unknown") is None


class TestParsing:
    def test_yaml_overrides(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "economy:\n"
            "  message_credit_cost: 2\n"
            "  daily_credit_refill_cap: 50\n"
            "  vote_credit_bonus: 10\n"
            "  purchase_credits_by_product:\n"
            "    prod-a: 100\n"
            "scheduler:\n"
            "  enabled: true\n"
            "  reset_hour_utc: 4\n"
            "  reset_minute_utc: 30\n",
            encoding="utf-8",
        )
        cfg = load_config(path)
        assert cfg.economy.message_credit_cost == 2
        assert cfg.economy.daily_credit_refill_cap == 50
        assert cfg.economy.vote_credit_bonus == 10
        assert cfg.economy.credits_for_product("prod-a") == 100
        assert cfg.economy.credits_for_product(
            "6aefc078-a0da-4998-ae9b-5ff94c18aad5"
        ) is None
        assert cfg.scheduler == SchedulerConfig(True, 4, 30)

    def test_partial_economy_keeps_default_products(self):
        cfg = parse_config({"economy": {"vote_credit_bonus": 5}})
        assert cfg.economy.vote_credit_bonus == 5
        assert cfg.economy.purchase_credits_by_product == DEFAULT_PURCHASE_CREDITS

    def test_config_is_immutable(self):
        cfg = TetoConfig()
        with pytest.raises(AttributeError):
            cfg.site_title = "other"  # type: ignore[misc]


class TestValidation:
    @pytest.mark.parametrize(
        "field", ["message_credit_cost", "daily_credit_refill_cap", "vote_credit_bonus"]
    )
    def test_negative_economy_values_rejected(self, field):
        with pytest.raises(ValueError):
            EconomyConfig(**{field: -1})

    def test_negative_product_credits_rejected(self):
        with pytest.raises(ValueError):
            EconomyConfig(purchase_credits_by_product={"p": -5})

    @pytest.mark.parametrize("hour,minute", [(24, 0), (-1, 0), (0, 60)])
    def test_bad_reset_time_rejected(self, hour, minute):
        with pytest.raises(ValueError):
            parse_config({"scheduler": {"reset_hour_utc": hour, "reset_minute_utc": minute}})
