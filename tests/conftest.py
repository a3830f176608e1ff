"""
Shared test fixtures: in-memory SQLite database and a fixed rate snapshot.
"""

from decimal import Decimal

import pytest

from quote_engine.db import get_connection, init_db, seed_reference_rates
from quote_engine.models import RateSnapshot, StonePrice


@pytest.fixture
def conn():
    """Fresh in-memory database with tables, default settings and seeded rates."""
    connection = get_connection(":memory:")
    init_db(connection)
    seed_reference_rates(connection)
    try:
        yield connection
    finally:
        connection.close()


@pytest.fixture
def rates():
    return RateSnapshot(
        metal_prices={
            "18ct_yellow_gold": Decimal("850"),
            "platinum_950": Decimal("1200"),
            "sterling_silver": Decimal("12"),
        },
        stone_prices=(
            StonePrice("Diamond", "Claw", "Smalls", Decimal("75")),
            StonePrice("Diamond", "Bezel", "Center", Decimal("600")),
            StonePrice("Organic", "Flush", "Medium", Decimal("112")),
        ),
    )
