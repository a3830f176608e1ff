"""
Initialises the local SQLite database, default settings and reference rates.
Run this once before first use, or anytime to repair missing tables.
Existing metal and stone rates are never overwritten.
"""

import logging
import os

from dotenv import load_dotenv

from quote_engine.db import get_connection, init_db, seed_reference_rates


def main() -> None:
    load_dotenv()
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    conn = get_connection()
    init_db(conn)
    inserted = seed_reference_rates(conn)
    print(f"Database initialised successfully ({inserted} rate rows added).")


if __name__ == "__main__":
    main()
