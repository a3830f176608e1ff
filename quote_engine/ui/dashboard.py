import sqlite3
from datetime import UTC, datetime

import pandas as pd
import streamlit as st

from quote_engine.db import get_all_settings, list_metal_prices
from quote_engine.providers.metals_api import METAL_SPOT_SOURCES, refresh_metal_prices


def _format_gmt_timestamp(timestamp_iso: str) -> str:
    try:
        parsed = datetime.fromisoformat(timestamp_iso)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S GMT")
    except ValueError:
        return timestamp_iso


def render(conn: sqlite3.Connection) -> None:
    st.subheader("Dashboard")
    currency = get_all_settings(conn)["currency_symbol"]
    st.caption(f"Current metal prices used for quoting ({currency} per gram)")

    refresh_now = st.button("Refresh prices from spot feed", type="primary")
    if refresh_now:
        warning = refresh_metal_prices(conn, force_refresh=True)
        if warning:
            st.warning(warning)
        else:
            st.success("Metal prices refreshed.")

    rows = list_metal_prices(conn)
    if not rows:
        st.info("No metal prices yet. Add them on the Rates page or run scripts/seed.py.")
        return

    df = pd.DataFrame(
        [
            {
                "Metal": row["metal_type"],
                f"Price ({currency}/g)": f"{currency}{float(row['price']):,.2f}",
                "Active": bool(row["is_active"]),
                "Spot linked": row["metal_type"] in METAL_SPOT_SOURCES,
                "Source": row["source"],
                "Updated (GMT)": _format_gmt_timestamp(row["updated_at"]),
            }
            for row in rows
        ]
    )
    st.dataframe(df, width="stretch", hide_index=True)

    st.info(
        "Spot-linked metals can be refreshed from the live feed. If the feed fails, "
        "the stored prices are used. Set the refresh age in Settings."
    )
