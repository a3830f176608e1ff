import sqlite3

import streamlit as st

from quote_engine.db import get_all_settings, save_settings


def render(conn: sqlite3.Connection) -> None:
    st.subheader("Settings")

    current = get_all_settings(conn)

    with st.form("settings_form"):
        col1, col2 = st.columns(2)
        with col1:
            currency_symbol = st.text_input("Currency symbol", value=current["currency_symbol"], max_chars=4)
            cache_ttl = st.number_input(
                "Spot price refresh age (minutes)",
                min_value=1,
                max_value=1440,
                value=int(current["price_cache_ttl_minutes"]),
                step=1,
            )
        with col2:
            troy_oz_to_grams = st.number_input(
                "Troy oz to grams conversion",
                min_value=0.0001,
                value=float(current["troy_oz_to_grams"]),
                step=0.0001,
                format="%.7f",
            )

        submitted = st.form_submit_button("Save settings", type="primary")

    if submitted:
        save_settings(
            conn,
            {
                "currency_symbol": currency_symbol.strip() or current["currency_symbol"],
                "price_cache_ttl_minutes": cache_ttl,
                "troy_oz_to_grams": troy_oz_to_grams,
            },
        )
        st.success("Settings saved.")
