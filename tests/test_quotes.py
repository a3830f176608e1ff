"""
Create/update flow: rates fetched per call, validated spot price persisted,
unresolvable metals rejected before anything is written.
"""

import json
from decimal import Decimal

import pytest

from quote_engine.db import get_quote, list_quotes
from quote_engine.models import RateSnapshot
from quote_engine.providers.base import RateProvider
from quote_engine.providers.rates import SqliteRateProvider, StaticRateProvider
from quote_engine.quotes import MetalRateUnavailable, QuoteNotFound, create_quote, price_payload, update_quote
from quote_engine.ui.quotes import _load_existing


class CountingProvider(RateProvider):
    def __init__(self, snapshot: RateSnapshot):
        self.snapshot = snapshot
        self.calls = 0

    def get_rates(self) -> RateSnapshot:
        self.calls += 1
        return self.snapshot


SILVER_RING = {
    "metal_type": "sterling_silver",
    "metal_weight": 20,
    "metal_wastage": 10,
    "metal_markup": 5,
    "metal_spot_price": 1,
}


def test_create_quote_persists_scalars_and_validated_spot(conn, rates):
    row, result = create_quote(conn, SILVER_RING, StaticRateProvider(rates), client_name="A. Client")

    assert row["quote_number"].startswith("Q-")
    assert row["status"] == "draft"
    assert row["client_name"] == "A. Client"
    assert row["subtotal"] == "264.00"
    assert row["total"] == "277.20"
    assert row["overhead"] == "0.00"
    assert row["profit"] == "13.20"
    assert row["metal_spot_price"] == "12.00"
    assert json.loads(row["request_json"])["metal_spot_price"] == "12"
    assert result.totals.total_price == Decimal("277.20")


def test_create_quote_rejects_unknown_metal_without_saving(conn, rates):
    with pytest.raises(MetalRateUnavailable) as excinfo:
        create_quote(conn, {"metal_type": "unobtainium", "metal_weight": 3}, StaticRateProvider(rates))

    assert excinfo.value.metal_type == "unobtainium"
    assert "unobtainium" in str(excinfo.value)
    assert isinstance(excinfo.value, ValueError)
    assert list_quotes(conn) == []


def test_rates_are_fetched_on_every_call(conn, rates):
    provider = CountingProvider(rates)
    row, _ = create_quote(conn, SILVER_RING, provider)
    update_quote(conn, row["id"], {**SILVER_RING, "metal_weight": 10}, provider)
    price_payload(SILVER_RING, provider)
    assert provider.calls == 3


def test_update_quote_recomputes_from_scratch(conn, rates):
    provider = StaticRateProvider(rates)
    row, _ = create_quote(conn, SILVER_RING, provider)

    updated, result = update_quote(
        conn,
        row["id"],
        {**SILVER_RING, "findings": [{"name": "Clasp", "cost": 10}], "findings_markup": 50},
        provider,
        status="approved",
    )
    assert updated["quote_number"] == row["quote_number"]
    assert updated["status"] == "approved"
    assert updated["subtotal"] == "274.00"
    assert updated["total"] == "292.20"
    assert result.findings.price == Decimal("15.00")


def test_update_with_same_inputs_is_stable(conn, rates):
    provider = StaticRateProvider(rates)
    row, first = create_quote(conn, SILVER_RING, provider)
    updated, second = update_quote(conn, row["id"], SILVER_RING, provider)
    assert first.to_dict() == second.to_dict()
    assert updated["total"] == row["total"]


def test_update_missing_quote_raises(conn, rates):
    with pytest.raises(QuoteNotFound):
        update_quote(conn, 999, SILVER_RING, StaticRateProvider(rates))


def test_update_rejects_unknown_status(conn, rates):
    provider = StaticRateProvider(rates)
    row, _ = create_quote(conn, SILVER_RING, provider)
    with pytest.raises(ValueError, match="Unknown quote status"):
        update_quote(conn, row["id"], SILVER_RING, provider, status="shipped")
    assert get_quote(conn, row["id"])["status"] == "draft"


def test_update_changes_client_fields_and_status_together(conn, rates):
    provider = StaticRateProvider(rates)
    row, _ = create_quote(conn, SILVER_RING, provider, client_name="A. Client", piece_category="Ring")
    updated, _ = update_quote(
        conn,
        row["id"],
        SILVER_RING,
        provider,
        status="pending_approval",
        client_name="B. Client",
        piece_category="Pendant",
    )
    assert updated["client_name"] == "B. Client"
    assert updated["piece_category"] == "Pendant"
    assert updated["status"] == "pending_approval"

    kept, _ = update_quote(conn, row["id"], SILVER_RING, provider)
    assert kept["client_name"] == "B. Client"
    assert kept["piece_category"] == "Pendant"
    assert kept["status"] == "pending_approval"


def test_create_quote_with_status(conn, rates):
    provider = StaticRateProvider(rates)
    row, _ = create_quote(conn, SILVER_RING, provider, status="approved")
    assert row["status"] == "approved"
    with pytest.raises(ValueError, match="Unknown quote status"):
        create_quote(conn, SILVER_RING, provider, status="shipped")
    assert len(list_quotes(conn)) == 1


def test_builder_finds_quote_with_empty_stored_request(conn, rates):
    row, _ = create_quote(conn, SILVER_RING, StaticRateProvider(rates))
    conn.execute("UPDATE quotes SET request_json = ? WHERE id = ?", ("{}", row["id"]))
    conn.commit()

    stored_row, payload = _load_existing(conn, row["id"])
    assert stored_row is not None
    assert stored_row["id"] == row["id"]
    assert payload == {}
    assert _load_existing(conn, 999) == (None, {})


def test_update_rejected_metal_leaves_quote_untouched(conn, rates):
    provider = StaticRateProvider(rates)
    row, _ = create_quote(conn, SILVER_RING, provider)
    with pytest.raises(MetalRateUnavailable):
        update_quote(conn, row["id"], {**SILVER_RING, "metal_type": "unobtainium"}, provider)
    assert get_quote(conn, row["id"])["total"] == "277.20"


def test_collection_quote_against_seeded_database(conn):
    payload = {
        "metal_type": "sterling_silver",
        "design_variations": [
            {"name": "Yellow", "metal_type": "18ct_yellow_gold", "metal_weight": 5},
            {"name": "White", "metal_type": "18ct_white_gold", "metal_weight": 3, "metal_wastage": 0, "metal_markup": 20},
        ],
    }
    row, result = create_quote(conn, payload, SqliteRateProvider(conn))
    assert row["is_collection"] == 1
    assert row["subtotal"] == "7225.00"
    assert row["total"] == "7735.00"
    assert row["metal_spot_price"] == "850.00"
    assert [line.name for line in result.metal.lines] == ["Yellow", "White"]
