from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Literal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, settings as app_settings
from app.models.business_setting import BusinessSetting


COUPON_TYPE_ENFORCEMENT_KEY = "coupon_type_enforcement"
LOYALTY_ENABLED_KEY = "loyalty_enabled"
LOYALTY_EARN_RATE_KEY = "loyalty_earn_rate"
LOYALTY_REDEEM_RATE_KEY = "loyalty_redeem_rate"
LOYALTY_REDEEM_MINIMUM_KEY = "loyalty_redeem_minimum"
LOYALTY_EXCLUDED_SKUS_KEY = "loyalty_excluded_skus"
CARD_FEE_RATE_KEY = "card_fee_rate"
INVENTORY_ALLOW_OVERSELL_KEY = "inventory_allow_oversell"


@dataclass(frozen=True)
class EngineSettings:
    """Feature toggles and rates handed to the evaluators and the settlement pipeline per call."""

    coupon_type_enforcement: Literal["soft", "hard"] = "soft"
    loyalty_enabled: bool = True
    loyalty_earn_rate: Decimal = Decimal("1")
    loyalty_redeem_rate: Decimal = Decimal("0.05")
    loyalty_redeem_minimum: int = 100
    loyalty_excluded_skus: frozenset[str] = field(default_factory=lambda: frozenset({"0000001"}))
    card_fee_rate: Decimal = Decimal("0.05")
    inventory_allow_oversell: bool = False


def _parse_decimal(value: object | None, *, fallback: Decimal) -> Decimal:
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            return fallback
        try:
            return Decimal(candidate)
        except InvalidOperation:
            return fallback
    return fallback


def _parse_bool(value: object | None, *, fallback: bool) -> bool:
    if value is None:
        return fallback
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        candidate = value.strip().lower()
        if candidate in {"1", "true", "yes", "on"}:
            return True
        if candidate in {"0", "false", "no", "off"}:
            return False
    return fallback


def _parse_int(value: object | None, *, fallback: int) -> int:
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return fallback
    if isinstance(value, (int, float, str)):
        try:
            return int(value)
        except ValueError:
            return fallback
    return fallback


def _parse_skus(value: object | None, *, fallback: frozenset[str]) -> frozenset[str]:
    if value is None:
        return fallback
    if isinstance(value, str):
        value = value.split(",")
    if isinstance(value, (list, tuple, set, frozenset)):
        return frozenset(str(sku).strip() for sku in value if str(sku).strip())
    return fallback


def _normalize_enforcement(value: object | None, *, fallback: Literal["soft", "hard"]) -> Literal["soft", "hard"]:
    candidate = str(value or "").strip().lower()
    if candidate == "hard":
        return "hard"
    if candidate == "soft":
        return "soft"
    return fallback


def _clamp_rate(value: Decimal, *, fallback: Decimal, ceiling: Decimal | None = None) -> Decimal:
    if value < 0:
        return fallback
    if ceiling is not None and value > ceiling:
        return ceiling
    return value


def from_settings(source: Settings | None = None) -> EngineSettings:
    cfg = source or app_settings
    return EngineSettings(
        coupon_type_enforcement=cfg.coupon_type_enforcement,
        loyalty_enabled=cfg.loyalty_enabled,
        loyalty_earn_rate=cfg.loyalty_earn_rate,
        loyalty_redeem_rate=cfg.loyalty_redeem_rate,
        loyalty_redeem_minimum=cfg.loyalty_redeem_minimum,
        loyalty_excluded_skus=frozenset(cfg.loyalty_excluded_skus),
        card_fee_rate=cfg.card_fee_rate,
        inventory_allow_oversell=cfg.inventory_allow_oversell,
    )


def apply_overrides(base: EngineSettings, meta: dict[str, Any]) -> EngineSettings:
    return EngineSettings(
        coupon_type_enforcement=_normalize_enforcement(
            meta.get(COUPON_TYPE_ENFORCEMENT_KEY), fallback=base.coupon_type_enforcement
        ),
        loyalty_enabled=_parse_bool(meta.get(LOYALTY_ENABLED_KEY), fallback=base.loyalty_enabled),
        loyalty_earn_rate=_clamp_rate(
            _parse_decimal(meta.get(LOYALTY_EARN_RATE_KEY), fallback=base.loyalty_earn_rate),
            fallback=base.loyalty_earn_rate,
        ),
        loyalty_redeem_rate=_clamp_rate(
            _parse_decimal(meta.get(LOYALTY_REDEEM_RATE_KEY), fallback=base.loyalty_redeem_rate),
            fallback=base.loyalty_redeem_rate,
        ),
        loyalty_redeem_minimum=max(
            0, _parse_int(meta.get(LOYALTY_REDEEM_MINIMUM_KEY), fallback=base.loyalty_redeem_minimum)
        ),
        loyalty_excluded_skus=_parse_skus(meta.get(LOYALTY_EXCLUDED_SKUS_KEY), fallback=base.loyalty_excluded_skus),
        card_fee_rate=_clamp_rate(
            _parse_decimal(meta.get(CARD_FEE_RATE_KEY), fallback=base.card_fee_rate),
            fallback=base.card_fee_rate,
            ceiling=Decimal("1"),
        ),
        inventory_allow_oversell=_parse_bool(
            meta.get(INVENTORY_ALLOW_OVERSELL_KEY), fallback=base.inventory_allow_oversell
        ),
    )


async def get_engine_settings(session: AsyncSession, *, source: Settings | None = None) -> EngineSettings:
    rows = (await session.execute(select(BusinessSetting.key, BusinessSetting.value))).all()
    meta = {str(key): value for key, value in rows}
    return apply_overrides(from_settings(source), meta)
