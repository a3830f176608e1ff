"""
Boundary defaults: every optional field resolves to one documented default and
malformed values never raise.
"""

import json
from decimal import Decimal

import pytest

from quote_engine.inputs import (
    MAX_AMOUNT,
    MAX_COUNT,
    MAX_MARKUP,
    MAX_WEIGHT,
    parse_quote_request,
    request_to_payload,
    to_bool,
    to_decimal,
)


def test_empty_payload_uses_documented_defaults():
    request = parse_quote_request({})
    assert request.metal_type is None
    assert request.metal_weight == 0
    assert request.metal_wastage == Decimal("10")
    assert request.metal_markup == 0
    assert request.metal_spot_price is None
    assert request.design_variations == ()
    assert request.stone_categories == ()
    assert request.findings == ()
    assert request.include_rendering_cost is False
    assert request.include_technical_cost is False
    assert request.include_plating_cost is False
    assert request.is_collection is False


@pytest.mark.parametrize("raw", ["abc", "", None, "NaN", "Infinity", True, [1, 2]])
def test_malformed_numbers_fall_back_to_default(raw):
    assert to_decimal(raw) == 0
    assert to_decimal(raw, Decimal("10")) == Decimal("10")


def test_negative_numbers_are_clamped_to_zero():
    request = parse_quote_request({"metal_weight": -5, "cad_hours": "-2", "metal_wastage": -1})
    assert request.metal_weight == 0
    assert request.cad_hours == 0
    assert request.metal_wastage == 0


def test_oversized_numbers_are_clamped_to_field_maximum():
    request = parse_quote_request(
        {
            "metal_weight": "1e30",
            "metal_markup": "9" * 40,
            "finishing_cost": "1e30",
            "cad_revisions": "1e30",
            "stone_categories": [{"type": "Diamond", "count": "1e30", "cost_per_stone": "1e30"}],
        }
    )
    assert request.metal_weight == MAX_WEIGHT
    assert request.metal_markup == MAX_MARKUP
    assert request.finishing_cost == MAX_AMOUNT
    assert request.cad_revisions == int(MAX_COUNT)
    assert request.stone_categories[0].count == int(MAX_COUNT)
    assert request.stone_categories[0].cost_per_stone == MAX_AMOUNT


def test_malformed_wastage_keeps_ten_percent_default():
    assert parse_quote_request({"metal_wastage": "junk"}).metal_wastage == Decimal("10")


def test_percentages_and_money_are_rounded_to_two_places():
    request = parse_quote_request({"metal_markup": "12.345", "finishing_cost": 10.005})
    assert request.metal_markup == Decimal("12.35")
    assert request.finishing_cost == Decimal("10.01")


def test_blank_metal_type_is_absent():
    assert parse_quote_request({"metal_type": "   "}).metal_type is None


@pytest.mark.parametrize(
    "raw, expected",
    [(True, True), (False, False), ("true", True), ("FALSE", False), ("yes", True), (0, False), (1, True), ("maybe", False)],
)
def test_toggle_parsing(raw, expected):
    assert to_bool(raw) is expected


@pytest.mark.parametrize("raw, expected", [(None, True), (True, True), (False, False), ("false", False), (0, False)])
def test_variation_enabled_defaults_to_true(raw, expected):
    payload = {"design_variations": [{"metal_type": "sterling_silver", "enabled": raw}]}
    assert parse_quote_request(payload).design_variations[0].enabled is expected


def test_list_fields_accept_json_strings():
    payload = {
        "design_variations": json.dumps([{"metal_type": "platinum_950", "weight": "5"}]),
        "stone_categories": json.dumps([{"type": "Diamond", "count": "3"}]),
        "findings": json.dumps([{"name": "Clasp", "cost": "4.5"}]),
    }
    request = parse_quote_request(payload)
    assert request.design_variations[0].weight == Decimal("5")
    assert request.design_variations[0].name == "Variation 1"
    assert request.stone_categories[0].stone_type == "Diamond"
    assert request.stone_categories[0].count == 3
    assert request.findings[0].cost == Decimal("4.50")


def test_unparseable_lists_and_non_dict_entries_are_dropped():
    payload = {
        "design_variations": "{not json",
        "stone_categories": ["Diamond", {"stone_type": "Precious", "count": 2}],
        "findings": 42,
    }
    request = parse_quote_request(payload)
    assert request.design_variations == ()
    assert len(request.stone_categories) == 1
    assert request.stone_categories[0].stone_type == "Precious"
    assert request.findings == ()


def test_stone_override_fields_are_optional():
    stone = parse_quote_request(
        {"stone_categories": [{"type": "Diamond", "count": 2.9, "cost_per_stone": "", "setting_cost": "15"}]}
    ).stone_categories[0]
    assert stone.count == 2
    assert stone.cost_per_stone is None
    assert stone.setting_cost == Decimal("15.00")


def test_revisions_and_technique_pass_through():
    request = parse_quote_request({"cad_revisions": "3", "manufacturing_technique": " Hand fabricated "})
    assert request.cad_revisions == 3
    assert request.manufacturing_technique == "Hand fabricated"


def test_stored_payload_parses_back_to_same_request():
    payload = {
        "metal_type": "18ct_yellow_gold",
        "metal_weight": "4.2",
        "design_variations": [{"name": "Rose", "metal_type": "18ct_rose_gold", "metal_weight": 3, "enabled": False}],
        "stone_categories": [{"type": "Diamond", "setting_style": "Claw", "size_category": "Smalls", "count": 6}],
        "include_plating_cost": True,
        "findings": [{"name": "Clasp", "cost": 9}],
    }
    request = parse_quote_request(payload)
    stored = json.loads(json.dumps(request_to_payload(request)))
    assert parse_quote_request(stored) == request
