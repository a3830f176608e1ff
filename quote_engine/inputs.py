"""
Turns a raw quote payload (form values, JSON body, stored row) into a QuoteRequest.

Every optional field gets exactly one default here so the calculator never has to
guess. Malformed values never raise: non-numeric, NaN and infinite numbers fall back
to the field default, negatives are clamped to zero and values above a
field maximum are clamped to that maximum.
"""

import json
import logging
from collections.abc import Mapping
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from quote_engine.models import (
    DEFAULT_WASTAGE_PCT,
    ZERO,
    DesignVariation,
    Finding,
    QuoteRequest,
    StoneCategory,
)

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")

# Upper bounds; larger values are clamped to the bound.
MAX_WEIGHT = Decimal("500")
MAX_WASTAGE = Decimal("50")
MAX_MARKUP = Decimal("200")
MAX_CAD_HOURS = Decimal("200")
MAX_CAD_BASE_RATE = Decimal("5000")
MAX_HOURS = Decimal("10000")
MAX_AMOUNT = Decimal("1000000000")
MAX_COUNT = Decimal("100000")
TRUE_STRINGS = {"1", "true", "yes", "on"}
FALSE_STRINGS = {"0", "false", "no", "off"}


def to_decimal(value: Any, default: Decimal = ZERO, maximum: Decimal = MAX_AMOUNT) -> Decimal:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return default
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default
    if not number.is_finite():
        return default
    if number < 0:
        return ZERO
    if number > maximum:
        return maximum
    return number


def to_money(value: Any, default: Decimal = ZERO, maximum: Decimal = MAX_AMOUNT) -> Decimal:
    return to_decimal(value, default, maximum).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_optional_money(value: Any) -> Decimal | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    sentinel = Decimal("-1")
    number = to_decimal(value, sentinel)
    if number == sentinel:
        return None
    return number.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_count(value: Any) -> int:
    return int(to_decimal(value, maximum=MAX_COUNT))


def to_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in TRUE_STRINGS:
        return True
    if text in FALSE_STRINGS:
        return False
    return default


def to_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_list(value: Any, field_name: str) -> list[Any]:
    # JSON columns come back as strings.
    if isinstance(value, str):
        try:
            value = json.loads(value) if value.strip() else []
        except json.JSONDecodeError:
            logger.warning("Ignoring unparseable %s payload", field_name)
            return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def parse_variation(raw: Mapping[str, Any], index: int) -> DesignVariation:
    return DesignVariation(
        enabled=to_bool(raw.get("enabled"), default=True),
        metal_type=to_text(raw.get("metal_type")) or None,
        weight=to_decimal(raw.get("metal_weight", raw.get("weight")), maximum=MAX_WEIGHT),
        wastage=to_money(raw.get("metal_wastage", raw.get("wastage")), DEFAULT_WASTAGE_PCT, MAX_WASTAGE),
        markup=to_money(raw.get("metal_markup", raw.get("markup")), maximum=MAX_MARKUP),
        name=to_text(raw.get("name")) or f"Variation {index + 1}",
    )


def parse_stone(raw: Mapping[str, Any]) -> StoneCategory:
    return StoneCategory(
        stone_type=to_text(raw.get("stone_type", raw.get("type"))),
        setting_style=to_text(raw.get("setting_style")),
        size_category=to_text(raw.get("size_category")),
        count=to_count(raw.get("count")),
        cost_per_stone=to_optional_money(raw.get("cost_per_stone")),
        setting_cost=to_optional_money(raw.get("setting_cost")),
    )


def parse_finding(raw: Mapping[str, Any]) -> Finding:
    return Finding(name=to_text(raw.get("name", raw.get("item"))), cost=to_money(raw.get("cost")))


def parse_quote_request(payload: Mapping[str, Any]) -> QuoteRequest:
    variations = tuple(
        parse_variation(item, index)
        for index, item in enumerate(_as_list(payload.get("design_variations"), "design_variations"))
        if isinstance(item, Mapping)
    )
    stones = tuple(
        parse_stone(item)
        for item in _as_list(payload.get("stone_categories"), "stone_categories")
        if isinstance(item, Mapping)
    )
    findings = tuple(
        parse_finding(item)
        for item in _as_list(payload.get("findings"), "findings")
        if isinstance(item, Mapping)
    )

    return QuoteRequest(
        metal_type=to_text(payload.get("metal_type")) or None,
        metal_weight=to_decimal(payload.get("metal_weight"), maximum=MAX_WEIGHT),
        metal_spot_price=to_optional_money(payload.get("metal_spot_price")),
        metal_wastage=to_money(payload.get("metal_wastage"), DEFAULT_WASTAGE_PCT, MAX_WASTAGE),
        metal_markup=to_money(payload.get("metal_markup"), maximum=MAX_MARKUP),
        design_variations=variations,
        stone_categories=stones,
        stone_markup=to_money(payload.get("stone_markup"), maximum=MAX_MARKUP),
        cad_hours=to_decimal(payload.get("cad_hours"), maximum=MAX_CAD_HOURS),
        cad_base_rate=to_money(payload.get("cad_base_rate"), maximum=MAX_CAD_BASE_RATE),
        cad_revisions=to_count(payload.get("cad_revisions")),
        cad_rendering_cost=to_money(payload.get("cad_rendering_cost")),
        include_rendering_cost=to_bool(payload.get("include_rendering_cost")),
        cad_technical_cost=to_money(payload.get("cad_technical_cost")),
        include_technical_cost=to_bool(payload.get("include_technical_cost")),
        cad_markup=to_money(payload.get("cad_markup"), maximum=MAX_MARKUP),
        manufacturing_technique=to_text(payload.get("manufacturing_technique")),
        manufacturing_hours=to_decimal(payload.get("manufacturing_hours"), maximum=MAX_HOURS),
        manufacturing_base_rate=to_money(payload.get("manufacturing_base_rate")),
        manufacturing_markup=to_money(payload.get("manufacturing_markup"), maximum=MAX_MARKUP),
        finishing_cost=to_money(payload.get("finishing_cost")),
        plating_cost=to_money(payload.get("plating_cost")),
        include_plating_cost=to_bool(payload.get("include_plating_cost")),
        finishing_markup=to_money(payload.get("finishing_markup"), maximum=MAX_MARKUP),
        findings=findings,
        findings_markup=to_money(payload.get("findings_markup"), maximum=MAX_MARKUP),
    )


def request_to_payload(request: QuoteRequest) -> dict[str, Any]:
    """Inverse of parse_quote_request, with decimals as strings so it survives json.dumps."""

    def money(value: Decimal | None) -> str | None:
        return None if value is None else str(value)

    return {
        "metal_type": request.metal_type,
        "metal_weight": str(request.metal_weight),
        "metal_spot_price": money(request.metal_spot_price),
        "metal_wastage": str(request.metal_wastage),
        "metal_markup": str(request.metal_markup),
        "design_variations": [
            {
                "name": v.name,
                "enabled": v.enabled,
                "metal_type": v.metal_type,
                "metal_weight": str(v.weight),
                "metal_wastage": str(v.wastage),
                "metal_markup": str(v.markup),
            }
            for v in request.design_variations
        ],
        "stone_categories": [
            {
                "type": s.stone_type,
                "setting_style": s.setting_style,
                "size_category": s.size_category,
                "count": s.count,
                "cost_per_stone": money(s.cost_per_stone),
                "setting_cost": money(s.setting_cost),
            }
            for s in request.stone_categories
        ],
        "stone_markup": str(request.stone_markup),
        "cad_hours": str(request.cad_hours),
        "cad_base_rate": str(request.cad_base_rate),
        "cad_revisions": request.cad_revisions,
        "cad_rendering_cost": str(request.cad_rendering_cost),
        "include_rendering_cost": request.include_rendering_cost,
        "cad_technical_cost": str(request.cad_technical_cost),
        "include_technical_cost": request.include_technical_cost,
        "cad_markup": str(request.cad_markup),
        "manufacturing_technique": request.manufacturing_technique,
        "manufacturing_hours": str(request.manufacturing_hours),
        "manufacturing_base_rate": str(request.manufacturing_base_rate),
        "manufacturing_markup": str(request.manufacturing_markup),
        "finishing_cost": str(request.finishing_cost),
        "plating_cost": str(request.plating_cost),
        "include_plating_cost": request.include_plating_cost,
        "finishing_markup": str(request.finishing_markup),
        "findings": [{"name": f.name, "cost": str(f.cost)} for f in request.findings],
        "findings_markup": str(request.findings_markup),
    }
