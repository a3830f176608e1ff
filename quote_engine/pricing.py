import logging
from collections.abc import Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from quote_engine.inputs import parse_quote_request
from quote_engine.models import (
    ZERO,
    Calculation,
    CalculationResult,
    DesignVariation,
    MetalBreakdown,
    QuoteRequest,
    RateSnapshot,
    SectionBreakdown,
    StoneBreakdown,
    StoneLine,
    Totals,
    UnresolvedMetalRate,
    VariationLine,
)

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")


def round_money(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def apply_markup(cost: Decimal, markup_pct: Decimal) -> Decimal:
    return round_money(cost * (1 + markup_pct / HUNDRED))


def _priced(cost: Decimal, markup_pct: Decimal) -> SectionBreakdown:
    cost = round_money(cost)
    return SectionBreakdown(cost=cost, price=apply_markup(cost, markup_pct))


def metal_cost(weight: Decimal, spot_price: Decimal, wastage_pct: Decimal) -> Decimal:
    return round_money(weight * spot_price * (1 + wastage_pct / HUNDRED))


def _calculate_single_metal(request: QuoteRequest, rates: RateSnapshot) -> MetalBreakdown | UnresolvedMetalRate:
    if request.metal_type is None:
        return MetalBreakdown()

    spot_price = rates.metal_price(request.metal_type)
    if spot_price is None:
        logger.warning("No spot price for metal type %r", request.metal_type)
        return UnresolvedMetalRate(metal_type=request.metal_type)

    if request.metal_spot_price is not None and request.metal_spot_price != spot_price:
        logger.info(
            "Ignoring client spot price %s for %s; using %s",
            request.metal_spot_price,
            request.metal_type,
            spot_price,
        )

    cost = metal_cost(request.metal_weight, spot_price, request.metal_wastage)
    return MetalBreakdown(
        cost=cost,
        price=apply_markup(cost, request.metal_markup),
        spot_price=spot_price,
    )


def _price_variation(variation: DesignVariation, rates: RateSnapshot) -> VariationLine | UnresolvedMetalRate:
    if not variation.enabled or variation.metal_type is None:
        spot_price = None if variation.metal_type is None else rates.metal_price(variation.metal_type)
        return VariationLine(
            name=variation.name,
            metal_type=variation.metal_type,
            enabled=variation.enabled,
            spot_price=spot_price,
            cost=ZERO,
            price=ZERO,
        )

    spot_price = rates.metal_price(variation.metal_type)
    if spot_price is None:
        logger.warning("No spot price for metal type %r in %s", variation.metal_type, variation.name)
        return UnresolvedMetalRate(metal_type=variation.metal_type, variation=variation.name)

    cost = metal_cost(variation.weight, spot_price, variation.wastage)
    return VariationLine(
        name=variation.name,
        metal_type=variation.metal_type,
        enabled=True,
        spot_price=spot_price,
        cost=cost,
        price=apply_markup(cost, variation.markup),
    )


def _calculate_collection(request: QuoteRequest, rates: RateSnapshot) -> MetalBreakdown | UnresolvedMetalRate:
    lines: list[VariationLine] = []
    for variation in request.design_variations:
        line = _price_variation(variation, rates)
        if isinstance(line, UnresolvedMetalRate):
            return line
        lines.append(line)

    # The persisted spot price is the first priced variation's; collections can mix metals.
    spot_price = next((line.spot_price for line in lines if line.enabled and line.spot_price is not None), None)
    return MetalBreakdown(
        cost=sum((line.cost for line in lines), ZERO),
        price=sum((line.price for line in lines), ZERO),
        spot_price=spot_price,
        lines=tuple(lines),
    )


def calculate_metal(request: QuoteRequest, rates: RateSnapshot) -> MetalBreakdown | UnresolvedMetalRate:
    if request.is_collection:
        return _calculate_collection(request, rates)
    return _calculate_single_metal(request, rates)


def calculate_stones(request: QuoteRequest, rates: RateSnapshot) -> StoneBreakdown:
    lines: list[StoneLine] = []
    for entry in request.stone_categories:
        if entry.cost_per_stone is not None:
            unit_cost, source = entry.cost_per_stone, "override"
        elif entry.setting_cost is not None:
            unit_cost, source = entry.setting_cost, "setting_override"
        else:
            resolved = rates.setting_cost(entry.stone_type, entry.setting_style, entry.size_category)
            if resolved is None:
                logger.warning(
                    "No setting cost for %s / %s / %s; pricing entry at 0",
                    entry.stone_type,
                    entry.setting_style,
                    entry.size_category,
                )
                unit_cost, source = ZERO, "missing"
            else:
                unit_cost, source = resolved, "rate_table"

        lines.append(
            StoneLine(
                stone_type=entry.stone_type,
                setting_style=entry.setting_style,
                size_category=entry.size_category,
                count=entry.count,
                unit_cost=unit_cost,
                rate_source=source,
                cost=round_money(entry.count * unit_cost),
            )
        )

    cost = sum((line.cost for line in lines), ZERO)
    return StoneBreakdown(cost=cost, price=apply_markup(cost, request.stone_markup), lines=tuple(lines))


def calculate_cad(request: QuoteRequest) -> SectionBreakdown:
    # cad_revisions is deliberately not part of the cost.
    cost = request.cad_hours * request.cad_base_rate
    if request.include_rendering_cost:
        cost += request.cad_rendering_cost
    if request.include_technical_cost:
        cost += request.cad_technical_cost
    return _priced(cost, request.cad_markup)


def calculate_manufacturing(request: QuoteRequest) -> SectionBreakdown:
    return _priced(request.manufacturing_hours * request.manufacturing_base_rate, request.manufacturing_markup)


def calculate_finishing(request: QuoteRequest) -> SectionBreakdown:
    cost = request.finishing_cost
    if request.include_plating_cost:
        cost += request.plating_cost
    return _priced(cost, request.finishing_markup)


def calculate_findings(request: QuoteRequest) -> SectionBreakdown:
    return _priced(sum((item.cost for item in request.findings), ZERO), request.findings_markup)


def calculate_totals(sections: list[SectionBreakdown]) -> Totals:
    subtotal_cost = sum((section.cost for section in sections), ZERO)
    total_price = max(sum((section.price for section in sections), ZERO), ZERO)
    # No overhead rate exists yet; the whole markup is reported as profit.
    overhead = round_money(ZERO)
    profit = total_price - subtotal_cost - overhead
    margin = round_money(profit / total_price * HUNDRED) if total_price > 0 else round_money(ZERO)
    return Totals(
        subtotal_cost=subtotal_cost,
        overhead=overhead,
        profit=profit,
        total_price=total_price,
        margin=margin,
    )


def calculate(request: QuoteRequest, rates: RateSnapshot) -> Calculation:
    """
    Prices every section of a quote against a rate snapshot.

    Returns an UnresolvedMetalRate instead of a result when a requested metal type
    has no spot price; nothing else aborts the calculation.
    """
    metal = calculate_metal(request, rates)
    if isinstance(metal, UnresolvedMetalRate):
        return metal

    stones = calculate_stones(request, rates)
    cad = calculate_cad(request)
    manufacturing = calculate_manufacturing(request)
    finishing = calculate_finishing(request)
    findings = calculate_findings(request)

    totals = calculate_totals([metal, stones, cad, manufacturing, finishing, findings])
    logger.debug(
        "Calculated quote: subtotal=%s total=%s margin=%s",
        totals.subtotal_cost,
        totals.total_price,
        totals.margin,
    )
    return CalculationResult(
        metal=metal,
        stones=stones,
        cad=cad,
        manufacturing=manufacturing,
        finishing=finishing,
        findings=findings,
        totals=totals,
    )


def calculate_from_payload(payload: Mapping[str, Any], rates: RateSnapshot) -> Calculation:
    return calculate(parse_quote_request(payload), rates)
