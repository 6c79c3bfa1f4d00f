"""
tetobot.config — YAML Configuration Loader
===========================================

**Why this file exists:**
Secrets (tokens, database URL) come from the environment.  Everything
else that an operator may want to tune without a redeploy (credit cost,
refill cap, bonus sizes, when the daily reset fires) lives in
``config.yaml`` and is parsed into immutable dataclasses here.

The economy knobs are bundled into :class:`EconomyConfig`, which is
passed explicitly to every service at construction time.  Nothing reads
a process-wide setting at call time.

Usage::

    from tetobot.config import load_config

    cfg = load_config()                       # reads ./config.yaml
    print(cfg.economy.daily_credit_refill_cap)  # 30
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

import yaml

# Product id → credits awarded when the order is paid.
DEFAULT_PURCHASE_CREDITS: Mapping[str, int] = MappingProxyType({
    "6aefc078-a0da-4998-ae9b-5ff94c18aad5": 150,
    "aaca78c2-b925-4f9b-8d47-b76161a1604d": 315,
    "d4507c93-4aa8-4c60-a877-c8750d8fbb8c": 660,
})


# ---------------------------------------------------------------------------
# Typed settings objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class EconomyConfig:
    """Tuning values for the credit / intimacy economy."""

    message_credit_cost: int = 1
    daily_credit_refill_cap: int = 30
    vote_credit_bonus: int = 30
    purchase_credits_by_product: Mapping[str, int] = field(
        default_factory=lambda: DEFAULT_PURCHASE_CREDITS
    )

    def __post_init__(self) -> None:
        for name in ("message_credit_cost", "daily_credit_refill_cap", "vote_credit_bonus"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        for product_id, credits in self.purchase_credits_by_product.items():
            if credits < 0:
                raise ValueError(f"Credits for product {product_id!r} must be >= 0")

    def credits_for_product(self, product_id: str) -> int | None:
        return self.purchase_credits_by_product.get(product_id)


@dataclass(frozen=True, slots=True)
class SchedulerConfig:
    """When (UTC) the daily reset loop fires, and whether the API runs it."""

    enabled: bool = False
    reset_hour_utc: int = 0
    reset_minute_utc: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.reset_hour_utc <= 23:
            raise ValueError("reset_hour_utc must be within 0..23")
        if not 0 <= self.reset_minute_utc <= 59:
            raise ValueError("reset_minute_utc must be within 0..59")


@dataclass(frozen=True, slots=True)
class TetoConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    site_title: str = "Kasane Teto Bot"
    dashboard_port: int = 3000
    economy: EconomyConfig = field(default_factory=EconomyConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def parse_config(raw: Mapping | None) -> TetoConfig:
    """Build a :class:`TetoConfig` from an already-parsed YAML mapping.

    Missing keys fall back to the dataclass defaults.
    """
    raw = raw or {}
    econ_raw = raw.get("economy") or {}
    sched_raw = raw.get("scheduler") or {}

    products = econ_raw.get("purchase_credits_by_product")
    economy = EconomyConfig(
        message_credit_cost=int(econ_raw.get("message_credit_cost", 1)),
        daily_credit_refill_cap=int(econ_raw.get("daily_credit_refill_cap", 30)),
        vote_credit_bonus=int(econ_raw.get("vote_credit_bonus", 30)),
        purchase_credits_by_product=(
            MappingProxyType({str(k): int(v) for k, v in products.items()})
            if products is not None
            else DEFAULT_PURCHASE_CREDITS
        ),
    )
    scheduler = SchedulerConfig(
        enabled=bool(sched_raw.get("enabled", False)),
        reset_hour_utc=int(sched_raw.get("reset_hour_utc", 0)),
        reset_minute_utc=int(sched_raw.get("reset_minute_utc", 0)),
    )
    return TetoConfig(
        site_title=raw.get("site_title", "Kasane Teto Bot"),
        dashboard_port=int(raw.get("dashboard_port", 3000)),
        economy=economy,
        scheduler=scheduler,
    )


def load_config(path: str | Path = "config.yaml") -> TetoConfig:
    """Read *path* and return a :class:`TetoConfig` instance.

    Unlike the secrets in ``.env``, every value here has a sane default,
    so a missing file is not an error: the defaults are returned.

    Raises
    ------
    ValueError
        If a value is out of range (negative credits, bad reset time).
    """
    config_path = Path(path)
    if not config_path.exists():
        return TetoConfig()

    with open(config_path, encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)

    return parse_config(raw)
