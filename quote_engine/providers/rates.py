import logging
import sqlite3
import time
from collections.abc import Callable

from quote_engine.db import list_metal_prices, list_stone_prices, to_decimal_or_none
from quote_engine.inputs import MAX_AMOUNT
from quote_engine.models import RateSnapshot, StonePrice
from quote_engine.providers.base import RateProvider

logger = logging.getLogger(__name__)


class SqliteRateProvider(RateProvider):
    """
    Reads active rows from the metal_prices and stone_prices tables.

    Every call hits the database so a freshly edited rate is used by the next quote.
    A missing table yields an empty part of the snapshot instead of an error.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    @staticmethod
    def _usable(value) -> bool:
        return value is not None and 0 <= value <= MAX_AMOUNT

    def _metal_prices(self) -> dict:
        try:
            rows = list_metal_prices(self.conn, active_only=True)
        except sqlite3.OperationalError as exc:
            logger.warning("Metal prices table unavailable: %s", exc)
            return {}

        prices = {}
        for row in rows:
            price = to_decimal_or_none(row["price"])
            if not self._usable(price):
                logger.warning("Skipping unusable price for %s: %r", row["metal_type"], row["price"])
                continue
            prices[row["metal_type"]] = price
        return prices

    def _stone_prices(self) -> tuple[StonePrice, ...]:
        try:
            rows = list_stone_prices(self.conn, active_only=True)
        except sqlite3.OperationalError as exc:
            logger.warning("Stone prices table unavailable: %s", exc)
            return ()

        stones = []
        for row in rows:
            cost = to_decimal_or_none(row["cost"])
            if not self._usable(cost):
                continue
            stones.append(
                StonePrice(
                    stone_type=row["stone_type"],
                    setting_style=row["setting_style"],
                    size_category=row["size_category"],
                    cost=cost,
                )
            )
        return tuple(stones)

    def get_rates(self) -> RateSnapshot:
        return RateSnapshot(metal_prices=self._metal_prices(), stone_prices=self._stone_prices())


class StaticRateProvider(RateProvider):
    def __init__(self, snapshot: RateSnapshot):
        self.snapshot = snapshot

    def get_rates(self) -> RateSnapshot:
        return self.snapshot


class CachedRateProvider(RateProvider):
    """Keeps the wrapped provider's last snapshot for `ttl_seconds`."""

    def __init__(
        self,
        inner: RateProvider,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.inner = inner
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._snapshot: RateSnapshot | None = None
        self._fetched_at = 0.0

    def invalidate(self) -> None:
        self._snapshot = None

    def get_rates(self) -> RateSnapshot:
        now = self.clock()
        if self._snapshot is None or now - self._fetched_at > self.ttl_seconds:
            self._snapshot = self.inner.get_rates()
            self._fetched_at = now
            logger.debug("Rate snapshot refreshed")
        return self._snapshot
