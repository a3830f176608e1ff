"""
Create/update flow around the calculator: fetch rates, price, persist scalars.

Rates are fetched from the provider on every call. The stored spot price is always
the one the calculator used, never one sent by the client.
"""

import logging
import sqlite3
from collections.abc import Mapping
from typing import Any

from quote_engine import db
from quote_engine.inputs import parse_quote_request, request_to_payload
from quote_engine.models import CalculationResult, UnresolvedMetalRate
from quote_engine.pricing import calculate
from quote_engine.providers.base import RateProvider

logger = logging.getLogger(__name__)


class MetalRateUnavailable(ValueError):
    def __init__(self, failure: UnresolvedMetalRate):
        super().__init__(failure.message)
        self.metal_type = failure.metal_type
        self.variation = failure.variation


class QuoteNotFound(LookupError):
    pass


def _validate_status(status: str | None) -> None:
    if status is not None and status not in db.QUOTE_STATUSES:
        raise ValueError(f"Unknown quote status '{status}'. Use one of: {', '.join(db.QUOTE_STATUSES)}.")


def price_payload(
    payload: Mapping[str, Any],
    provider: RateProvider,
) -> tuple[dict[str, Any], CalculationResult]:
    """Returns (normalized request payload, result) or raises MetalRateUnavailable."""
    request = parse_quote_request(payload)
    outcome = calculate(request, provider.get_rates())
    if isinstance(outcome, UnresolvedMetalRate):
        raise MetalRateUnavailable(outcome)

    stored = request_to_payload(request)
    stored["metal_spot_price"] = None if outcome.metal.spot_price is None else str(outcome.metal.spot_price)
    return stored, outcome


def create_quote(
    conn: sqlite3.Connection,
    payload: Mapping[str, Any],
    provider: RateProvider,
    client_name: str | None = None,
    piece_category: str | None = None,
    status: str = "draft",
) -> tuple[sqlite3.Row, CalculationResult]:
    _validate_status(status)
    stored, result = price_payload(payload, provider)
    quote_id = db.save_quote(
        conn,
        request_payload=stored,
        summary=result.summary(),
        client_name=client_name,
        piece_category=piece_category,
        status=status,
    )
    row = db.get_quote(conn, quote_id)
    logger.info("Created quote %s total=%s", row["quote_number"], row["total"])
    return row, result


def update_quote(
    conn: sqlite3.Connection,
    quote_id: int,
    payload: Mapping[str, Any],
    provider: RateProvider,
    status: str | None = None,
    client_name: str | None = None,
    piece_category: str | None = None,
) -> tuple[sqlite3.Row, CalculationResult]:
    """Reprices an existing quote. Metadata arguments left as None keep their stored values."""
    _validate_status(status)
    if db.get_quote(conn, quote_id) is None:
        raise QuoteNotFound(f"Quote {quote_id} not found")

    stored, result = price_payload(payload, provider)
    db.update_quote(
        conn,
        quote_id,
        request_payload=stored,
        summary=result.summary(),
        status=status,
        client_name=client_name,
        piece_category=piece_category,
    )
    row = db.get_quote(conn, quote_id)
    logger.info("Updated quote %s total=%s", row["quote_number"], row["total"])
    return row, result
