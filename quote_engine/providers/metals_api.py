import logging
import math
import os
import sqlite3
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from quote_engine.db import get_all_settings, is_price_fresh, list_metal_prices, upsert_metal_price
from quote_engine.providers.base import MetalPriceProvider

logger = logging.getLogger(__name__)

# metal_type -> (spot symbol, fineness)
METAL_SPOT_SOURCES: dict[str, tuple[str, Decimal]] = {
    "18ct_yellow_gold": ("XAU", Decimal("0.750")),
    "18ct_white_gold": ("XAU", Decimal("0.750")),
    "18ct_rose_gold": ("XAU", Decimal("0.750")),
    "14ct_yellow_gold": ("XAU", Decimal("0.585")),
    "9ct_yellow_gold": ("XAU", Decimal("0.375")),
    "platinum_950": ("XPT", Decimal("0.950")),
    "sterling_silver": ("XAG", Decimal("0.925")),
    "fine_silver": ("XAG", Decimal("0.999")),
}


class GoldAPIProvider(MetalPriceProvider):
    """
    Provider implementation for gold-api.com.

    Expected endpoint pattern:
    GET https://api.gold-api.com/price/{symbol}

    Expected response to include a numeric `price` per troy ounce. If a currency
    field is present and does not match the configured currency, the value is
    rejected to avoid silent mispricing.
    """

    provider_name = "goldapi"
    endpoint_base = "https://api.gold-api.com/price"

    def __init__(
        self,
        api_key: str | None = None,
        currency: str | None = None,
        timeout_seconds: int = 10,
        session: requests.Session | None = None,
    ):
        self.api_key = api_key or os.getenv("GOLDAPI_KEY", "")
        self.currency = (currency or os.getenv("PRICE_CURRENCY", "ZAR")).strip().upper()
        self.timeout_seconds = timeout_seconds
        override_base = os.getenv("GOLDAPI_BASE_URL", "").strip()
        base_urls = [override_base] if override_base else [self.endpoint_base]

        fallback_raw = os.getenv("GOLDAPI_FALLBACK_BASE_URLS", "").strip()
        if fallback_raw:
            base_urls.extend(url.strip() for url in fallback_raw.split(",") if url.strip())

        self.base_urls: list[str] = []
        for base_url in base_urls:
            cleaned = base_url.rstrip("/")
            if cleaned and cleaned not in self.base_urls:
                self.base_urls.append(cleaned)

        if session is None:
            session = requests.Session()
            retry = Retry(
                total=2,
                connect=2,
                read=2,
                backoff_factor=0.5,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["GET"],
            )
            adapter = HTTPAdapter(max_retries=retry)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self.session = session

    def _fetch_payload(self, symbol: str, headers: dict[str, str]) -> dict[str, Any]:
        last_error: Exception | None = None
        for base_url in self.base_urls:
            try:
                response = self.session.get(
                    f"{base_url}/{symbol}",
                    headers=headers,
                    timeout=self.timeout_seconds,
                )
                response.raise_for_status()
                return response.json()
            except (requests.RequestException, ValueError) as exc:
                logger.info("Spot request for %s via %s failed: %s", symbol, base_url, exc)
                last_error = exc

        raise RuntimeError(
            f"Gold API request failed for {symbol} across configured URLs. Last error: {last_error}"
        )

    def fetch_latest_per_oz(self, symbols: list[str]) -> dict[str, float]:
        headers: dict[str, str] = {}
        if self.api_key:
            headers["x-access-token"] = self.api_key

        result: dict[str, float] = {}
        for symbol in symbols:
            payload = self._fetch_payload(symbol, headers)

            if not isinstance(payload, dict) or "price" not in payload:
                raise RuntimeError(f"Missing price field for {symbol} from Gold API")

            currency = str(payload.get("currency", self.currency)).upper()
            if currency != self.currency:
                raise RuntimeError(
                    f"Gold API returned {currency} for {symbol}. Expected {self.currency} pricing."
                )

            try:
                price_value = float(payload["price"])
            except (TypeError, ValueError):
                raise RuntimeError(f"Unreadable {symbol} price from Gold API: {payload['price']!r}") from None
            if not math.isfinite(price_value) or price_value <= 0:
                raise RuntimeError(f"Invalid {symbol} price from Gold API")

            result[symbol] = price_value

        return result


def _build_provider_from_env() -> MetalPriceProvider:
    provider_name = os.getenv("PRICE_PROVIDER", "goldapi").strip().lower()
    if provider_name == "goldapi":
        return GoldAPIProvider()
    raise RuntimeError("Unsupported PRICE_PROVIDER. Use 'goldapi'.")


def price_per_gram(price_per_oz: float, fineness: Decimal, troy_oz_to_grams: float) -> Decimal:
    per_gram = Decimal(str(price_per_oz)) / Decimal(str(troy_oz_to_grams)) * fineness
    return per_gram.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def refresh_metal_prices(
    conn: sqlite3.Connection,
    force_refresh: bool = False,
    provider: MetalPriceProvider | None = None,
) -> str | None:
    """
    Updates feed-backed metal types in metal_prices from the live spot feed.

    Only metal types listed in METAL_SPOT_SOURCES and already present in the table
    are touched. Prices younger than the settings TTL are kept unless forced. If the
    feed fails, stored prices stay as they are and a warning message is returned.
    """
    settings = get_all_settings(conn)
    ttl = settings["price_cache_ttl_minutes"]
    rows = {row["metal_type"]: row for row in list_metal_prices(conn)}
    tracked = [metal_type for metal_type in METAL_SPOT_SOURCES if metal_type in rows]
    if not tracked:
        return None

    need_refresh = force_refresh or any(
        not is_price_fresh(rows[metal_type]["updated_at"], ttl) for metal_type in tracked
    )
    if not need_refresh:
        return None

    symbols = sorted({METAL_SPOT_SOURCES[metal_type][0] for metal_type in tracked})
    try:
        provider = provider or _build_provider_from_env()
        spot = provider.fetch_latest_per_oz(symbols)
    except RuntimeError as exc:
        logger.warning("Spot feed unavailable: %s", exc)
        return f"Spot price feed unavailable. Using stored metal prices. Details: {exc}"

    updated = 0
    for metal_type in tracked:
        symbol, fineness = METAL_SPOT_SOURCES[metal_type]
        value = spot.get(symbol)
        if value is None or not math.isfinite(value) or value <= 0:
            continue
        upsert_metal_price(
            conn,
            metal_type,
            price_per_gram(value, fineness, settings["troy_oz_to_grams"]),
            source=provider.provider_name,
        )
        updated += 1

    logger.info("Refreshed %s metal prices from %s", updated, provider.provider_name)
    return None
