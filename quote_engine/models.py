from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Union

ZERO = Decimal("0")
DEFAULT_WASTAGE_PCT = Decimal("10")


def format_money(value: Decimal) -> str:
    return f"{value:.2f}"


@dataclass(frozen=True)
class DesignVariation:
    enabled: bool = True
    metal_type: Optional[str] = None
    weight: Decimal = ZERO
    wastage: Decimal = DEFAULT_WASTAGE_PCT
    markup: Decimal = ZERO
    name: str = ""


@dataclass(frozen=True)
class StoneCategory:
    stone_type: str = ""
    setting_style: str = ""
    size_category: str = ""
    count: int = 0
    cost_per_stone: Optional[Decimal] = None
    setting_cost: Optional[Decimal] = None


@dataclass(frozen=True)
class Finding:
    name: str = ""
    cost: Decimal = ZERO


@dataclass(frozen=True)
class QuoteRequest:
    """
    Fully-defaulted quote input.

    `metal_spot_price` is whatever the caller sent and is never used for pricing.
    `cad_revisions` is carried through untouched and does not enter any formula.
    """

    metal_type: Optional[str] = None
    metal_weight: Decimal = ZERO
    metal_spot_price: Optional[Decimal] = None
    metal_wastage: Decimal = DEFAULT_WASTAGE_PCT
    metal_markup: Decimal = ZERO
    design_variations: tuple[DesignVariation, ...] = ()

    stone_categories: tuple[StoneCategory, ...] = ()
    stone_markup: Decimal = ZERO

    cad_hours: Decimal = ZERO
    cad_base_rate: Decimal = ZERO
    cad_revisions: int = 0
    cad_rendering_cost: Decimal = ZERO
    include_rendering_cost: bool = False
    cad_technical_cost: Decimal = ZERO
    include_technical_cost: bool = False
    cad_markup: Decimal = ZERO

    manufacturing_technique: str = ""
    manufacturing_hours: Decimal = ZERO
    manufacturing_base_rate: Decimal = ZERO
    manufacturing_markup: Decimal = ZERO

    finishing_cost: Decimal = ZERO
    plating_cost: Decimal = ZERO
    include_plating_cost: bool = False
    finishing_markup: Decimal = ZERO

    findings: tuple[Finding, ...] = ()
    findings_markup: Decimal = ZERO

    @property
    def is_collection(self) -> bool:
        return len(self.design_variations) > 0


@dataclass(frozen=True)
class StonePrice:
    stone_type: str
    setting_style: str
    size_category: str
    cost: Decimal


@dataclass(frozen=True)
class RateSnapshot:
    metal_prices: dict[str, Decimal] = field(default_factory=dict)
    stone_prices: tuple[StonePrice, ...] = ()

    def metal_price(self, metal_type: str) -> Decimal | None:
        return self.metal_prices.get(metal_type)

    def setting_cost(self, stone_type: str, setting_style: str, size_category: str) -> Decimal | None:
        for entry in self.stone_prices:
            if (
                entry.stone_type == stone_type
                and entry.setting_style == setting_style
                and entry.size_category == size_category
            ):
                return entry.cost
        return None


@dataclass(frozen=True)
class SectionBreakdown:
    cost: Decimal = ZERO
    price: Decimal = ZERO

    @property
    def markup_amount(self) -> Decimal:
        return self.price - self.cost

    def to_dict(self) -> dict[str, Any]:
        return {"cost": format_money(self.cost), "price": format_money(self.price)}


@dataclass(frozen=True)
class VariationLine:
    name: str
    metal_type: Optional[str]
    enabled: bool
    spot_price: Optional[Decimal]
    cost: Decimal
    price: Decimal


@dataclass(frozen=True)
class MetalBreakdown(SectionBreakdown):
    spot_price: Optional[Decimal] = None
    lines: tuple[VariationLine, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["spot_price"] = None if self.spot_price is None else format_money(self.spot_price)
        payload["variations"] = [
            {
                "name": line.name,
                "metal_type": line.metal_type,
                "enabled": line.enabled,
                "spot_price": None if line.spot_price is None else format_money(line.spot_price),
                "cost": format_money(line.cost),
                "price": format_money(line.price),
            }
            for line in self.lines
        ]
        return payload


@dataclass(frozen=True)
class StoneLine:
    stone_type: str
    setting_style: str
    size_category: str
    count: int
    unit_cost: Decimal
    rate_source: str
    cost: Decimal


@dataclass(frozen=True)
class StoneBreakdown(SectionBreakdown):
    lines: tuple[StoneLine, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["lines"] = [
            {
                "stone_type": line.stone_type,
                "setting_style": line.setting_style,
                "size_category": line.size_category,
                "count": line.count,
                "unit_cost": format_money(line.unit_cost),
                "rate_source": line.rate_source,
                "cost": format_money(line.cost),
            }
            for line in self.lines
        ]
        return payload


@dataclass(frozen=True)
class Totals:
    subtotal_cost: Decimal
    overhead: Decimal
    profit: Decimal
    total_price: Decimal
    margin: Decimal

    def to_dict(self) -> dict[str, str]:
        return {
            "subtotal_cost": format_money(self.subtotal_cost),
            "overhead": format_money(self.overhead),
            "profit": format_money(self.profit),
            "total_price": format_money(self.total_price),
            "margin": format_money(self.margin),
        }


@dataclass(frozen=True)
class CalculationResult:
    metal: MetalBreakdown
    stones: StoneBreakdown
    cad: SectionBreakdown
    manufacturing: SectionBreakdown
    finishing: SectionBreakdown
    findings: SectionBreakdown
    totals: Totals

    ok = True

    def sections(self) -> dict[str, SectionBreakdown]:
        return {
            "metal": self.metal,
            "stones": self.stones,
            "cad": self.cad,
            "manufacturing": self.manufacturing,
            "finishing": self.finishing,
            "findings": self.findings,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "sections": {name: section.to_dict() for name, section in self.sections().items()},
            "totals": self.totals.to_dict(),
        }

    def summary(self) -> dict[str, Decimal | None]:
        """Scalars stored on the quote record; the full breakdown is never persisted."""
        return {
            "subtotal": self.totals.subtotal_cost,
            "overhead": self.totals.overhead,
            "profit": self.totals.profit,
            "total": self.totals.total_price,
            "metal_spot_price": self.metal.spot_price,
        }


@dataclass(frozen=True)
class UnresolvedMetalRate:
    metal_type: str
    variation: Optional[str] = None

    ok = False

    @property
    def message(self) -> str:
        where = f" (design variation '{self.variation}')" if self.variation else ""
        return (
            f"No current spot price for metal type '{self.metal_type}'{where}. "
            "Add it to the metal rate table or choose another metal."
        )


Calculation = Union[CalculationResult, UnresolvedMetalRate]
