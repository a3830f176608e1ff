import json
import logging
import os
import secrets
import sqlite3
import string
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parents[1] / "data"
DB_PATH = DATA_DIR / "quotes.db"

QUOTE_STATUSES = ("draft", "pending_approval", "approved", "completed")

DEFAULT_SETTINGS: dict[str, str] = {
    "price_cache_ttl_minutes": "60",
    "troy_oz_to_grams": "31.1034768",
    "currency_symbol": "R",
}

DEFAULT_METAL_PRICES: list[tuple[str, str, str]] = [
    ("18ct_yellow_gold", "850", "75% Au, 12.5% Ag, 12.5% Cu"),
    ("18ct_white_gold", "850", "75% Au, 10% Pd, 15% Ag"),
    ("18ct_rose_gold", "850", "75% Au, 5% Ag, 20% Cu"),
    ("14ct_yellow_gold", "650", "58.5% Au, 41.5% Ag/Cu"),
    ("platinum_950", "1200", "95% Pt, 5% Ru/Ir"),
    ("sterling_silver", "12", "92.5% Ag, 7.5% Cu"),
]

STONE_TYPES = ["Diamond", "Precious", "Semi Precious", "Organic"]
SETTING_STYLES = ["Claw", "Bezel", "Micro Pave", "Flush", "Channel"]
SIZE_CATEGORIES = ["Smalls", "Medium", "Center"]

_SETTING_BASE_RATES = {"Claw": 50, "Bezel": 80, "Micro Pave": 60, "Flush": 70, "Channel": 90}
_SIZE_MULTIPLIERS = {"Smalls": 1, "Medium": 2, "Center": 5}
_TYPE_MULTIPLIERS = {"Diamond": 1.5, "Precious": 1.2, "Semi Precious": 1, "Organic": 0.8}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_decimal_or_none(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def default_db_path() -> Path:
    override = os.getenv("QUOTE_DB_PATH", "").strip()
    return Path(override) if override else DB_PATH


def get_connection(db_path: Path | str | None = None) -> sqlite3.Connection:
    if db_path == ":memory:":
        conn = sqlite3.connect(":memory:")
    else:
        target = Path(db_path) if db_path else default_db_path()
        target.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(target)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    cursor = conn.cursor()

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS metal_prices (
            metal_type TEXT PRIMARY KEY,
            price TEXT NOT NULL,
            alloy_composition TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            source TEXT NOT NULL DEFAULT 'manual',
            updated_at TEXT NOT NULL
        )
        """
    )

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS stone_prices (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            stone_type TEXT NOT NULL,
            setting_style TEXT NOT NULL,
            size_category TEXT NOT NULL,
            cost TEXT NOT NULL DEFAULT '0',
            is_active INTEGER NOT NULL DEFAULT 1,
            updated_at TEXT NOT NULL,
            UNIQUE (stone_type, setting_style, size_category)
        )
        """
    )

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS quotes (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            quote_number TEXT NOT NULL UNIQUE,
            client_name TEXT,
            piece_category TEXT,
            status TEXT NOT NULL DEFAULT 'draft',
            metal_type TEXT,
            metal_spot_price TEXT,
            is_collection INTEGER NOT NULL DEFAULT 0,
            request_json TEXT NOT NULL,
            subtotal TEXT NOT NULL,
            overhead TEXT NOT NULL,
            profit TEXT NOT NULL,
            total TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )

    for key, value in DEFAULT_SETTINGS.items():
        cursor.execute(
            """
            INSERT OR IGNORE INTO settings (key, value, updated_at)
            VALUES (?, ?, ?)
            """,
            (key, value, utc_now_iso()),
        )

    conn.commit()


def seed_reference_rates(conn: sqlite3.Connection) -> int:
    """Inserts default metal and stone rates; existing rows are left untouched."""
    now = utc_now_iso()
    inserted = 0
    for metal_type, price, alloy in DEFAULT_METAL_PRICES:
        cursor = conn.execute(
            """
            INSERT OR IGNORE INTO metal_prices (metal_type, price, alloy_composition, is_active, source, updated_at)
            VALUES (?, ?, ?, 1, 'seed', ?)
            """,
            (metal_type, price, alloy, now),
        )
        inserted += cursor.rowcount

    for stone_type in STONE_TYPES:
        for style in SETTING_STYLES:
            for size in SIZE_CATEGORIES:
                cost = round(_SETTING_BASE_RATES[style] * _SIZE_MULTIPLIERS[size] * _TYPE_MULTIPLIERS[stone_type])
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO stone_prices (stone_type, setting_style, size_category, cost, is_active, updated_at)
                    VALUES (?, ?, ?, ?, 1, ?)
                    """,
                    (stone_type, style, size, str(cost), now),
                )
                inserted += cursor.rowcount

    conn.commit()
    logger.info("Seeded %s reference rate rows", inserted)
    return inserted


def get_all_settings(conn: sqlite3.Connection) -> dict[str, Any]:
    rows = conn.execute("SELECT key, value FROM settings").fetchall()
    raw = {row["key"]: row["value"] for row in rows}

    def get_float(key: str) -> float:
        try:
            return float(raw.get(key, DEFAULT_SETTINGS[key]))
        except (TypeError, ValueError):
            return float(DEFAULT_SETTINGS[key])

    return {
        "price_cache_ttl_minutes": int(get_float("price_cache_ttl_minutes")),
        "troy_oz_to_grams": get_float("troy_oz_to_grams"),
        "currency_symbol": raw.get("currency_symbol") or DEFAULT_SETTINGS["currency_symbol"],
    }


def save_settings(conn: sqlite3.Connection, settings: dict[str, Any]) -> None:
    now = utc_now_iso()
    payload = {
        "price_cache_ttl_minutes": str(settings["price_cache_ttl_minutes"]),
        "troy_oz_to_grams": str(settings["troy_oz_to_grams"]),
        "currency_symbol": str(settings["currency_symbol"]),
    }

    for key, value in payload.items():
        conn.execute(
            """
            INSERT INTO settings (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, value, now),
        )
    conn.commit()


def list_metal_prices(conn: sqlite3.Connection, active_only: bool = False) -> list[sqlite3.Row]:
    query = "SELECT * FROM metal_prices"
    if active_only:
        query += " WHERE is_active = 1"
    return conn.execute(query + " ORDER BY metal_type").fetchall()


def upsert_metal_price(
    conn: sqlite3.Connection,
    metal_type: str,
    price: Decimal,
    alloy_composition: str | None = None,
    source: str = "manual",
) -> None:
    conn.execute(
        """
        INSERT INTO metal_prices (metal_type, price, alloy_composition, is_active, source, updated_at)
        VALUES (?, ?, ?, 1, ?, ?)
        ON CONFLICT(metal_type)
        DO UPDATE SET
            price = excluded.price,
            alloy_composition = COALESCE(excluded.alloy_composition, metal_prices.alloy_composition),
            source = excluded.source,
            updated_at = excluded.updated_at
        """,
        (metal_type.strip(), str(price), alloy_composition, source, utc_now_iso()),
    )
    conn.commit()


def set_metal_active(conn: sqlite3.Connection, metal_type: str, is_active: bool) -> None:
    conn.execute(
        "UPDATE metal_prices SET is_active = ?, updated_at = ? WHERE metal_type = ?",
        (1 if is_active else 0, utc_now_iso(), metal_type),
    )
    conn.commit()


def is_price_fresh(updated_at_iso: str, max_age_minutes: int) -> bool:
    try:
        updated_at = datetime.fromisoformat(updated_at_iso)
    except ValueError:
        return False
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc) - updated_at <= timedelta(minutes=max_age_minutes)


def list_stone_prices(conn: sqlite3.Connection, active_only: bool = False) -> list[sqlite3.Row]:
    query = "SELECT * FROM stone_prices"
    if active_only:
        query += " WHERE is_active = 1"
    return conn.execute(query + " ORDER BY stone_type, setting_style, size_category").fetchall()


def upsert_stone_price(
    conn: sqlite3.Connection,
    stone_type: str,
    setting_style: str,
    size_category: str,
    cost: Decimal,
) -> None:
    conn.execute(
        """
        INSERT INTO stone_prices (stone_type, setting_style, size_category, cost, is_active, updated_at)
        VALUES (?, ?, ?, ?, 1, ?)
        ON CONFLICT(stone_type, setting_style, size_category)
        DO UPDATE SET cost = excluded.cost, is_active = 1, updated_at = excluded.updated_at
        """,
        (stone_type.strip(), setting_style.strip(), size_category.strip(), str(cost), utc_now_iso()),
    )
    conn.commit()


def update_stone_costs(conn: sqlite3.Connection, costs: dict[int, Decimal]) -> None:
    """Applies {stone_price_id: cost} in one transaction."""
    now = utc_now_iso()
    with conn:
        for stone_price_id, cost in costs.items():
            conn.execute(
                "UPDATE stone_prices SET cost = ?, updated_at = ? WHERE id = ?",
                (str(cost), now, stone_price_id),
            )


def generate_quote_number(now: datetime | None = None) -> str:
    year = (now or datetime.now(timezone.utc)).year
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(9))
    return f"Q-{year}-{suffix}"


def _money_text(value: Decimal | None) -> str | None:
    return None if value is None else f"{value:.2f}"


def save_quote(
    conn: sqlite3.Connection,
    *,
    request_payload: dict[str, Any],
    summary: dict[str, Decimal | None],
    client_name: str | None = None,
    piece_category: str | None = None,
    status: str = "draft",
) -> int:
    now = utc_now_iso()
    cursor = conn.execute(
        """
        INSERT INTO quotes
        (quote_number, client_name, piece_category, status, metal_type, metal_spot_price, is_collection,
         request_json, subtotal, overhead, profit, total, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            generate_quote_number(),
            client_name,
            piece_category,
            status,
            request_payload.get("metal_type"),
            _money_text(summary["metal_spot_price"]),
            1 if request_payload.get("design_variations") else 0,
            json.dumps(request_payload),
            _money_text(summary["subtotal"]),
            _money_text(summary["overhead"]),
            _money_text(summary["profit"]),
            _money_text(summary["total"]),
            now,
            now,
        ),
    )
    conn.commit()
    return int(cursor.lastrowid)


def update_quote(
    conn: sqlite3.Connection,
    quote_id: int,
    *,
    request_payload: dict[str, Any],
    summary: dict[str, Decimal | None],
    status: str | None = None,
    client_name: str | None = None,
    piece_category: str | None = None,
) -> bool:
    # None leaves the stored status, client name and piece category unchanged.
    cursor = conn.execute(
        """
        UPDATE quotes SET
            metal_type = ?,
            metal_spot_price = ?,
            is_collection = ?,
            request_json = ?,
            subtotal = ?,
            overhead = ?,
            profit = ?,
            total = ?,
            status = COALESCE(?, status),
            client_name = COALESCE(?, client_name),
            piece_category = COALESCE(?, piece_category),
            updated_at = ?
        WHERE id = ?
        """,
        (
            request_payload.get("metal_type"),
            _money_text(summary["metal_spot_price"]),
            1 if request_payload.get("design_variations") else 0,
            json.dumps(request_payload),
            _money_text(summary["subtotal"]),
            _money_text(summary["overhead"]),
            _money_text(summary["profit"]),
            _money_text(summary["total"]),
            status,
            client_name,
            piece_category,
            utc_now_iso(),
            quote_id,
        ),
    )
    conn.commit()
    return cursor.rowcount > 0


def get_quote(conn: sqlite3.Connection, quote_id: int) -> sqlite3.Row | None:
    return conn.execute("SELECT * FROM quotes WHERE id = ?", (quote_id,)).fetchone()


def list_quotes(conn: sqlite3.Connection, limit: int = 100) -> list[sqlite3.Row]:
    return conn.execute(
        """
        SELECT id, quote_number, client_name, piece_category, status, metal_type,
               metal_spot_price, subtotal, total, created_at, updated_at
        FROM quotes
        ORDER BY id DESC
        LIMIT ?
        """,
        (limit,),
    ).fetchall()
