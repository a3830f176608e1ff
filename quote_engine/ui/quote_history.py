import json
import sqlite3
from datetime import UTC, datetime, timedelta

import pandas as pd
import streamlit as st

from quote_engine.db import QUOTE_STATUSES, get_quote, list_quotes


def _parse_json(payload: str | None) -> dict:
    if not payload:
        return {}
    try:
        parsed = json.loads(payload)
        return parsed if isinstance(parsed, dict) else {}
    except json.JSONDecodeError:
        return {}


def render(conn: sqlite3.Connection) -> None:
    st.subheader("Quote History")
    st.caption("Saved quotes with the totals and spot price they were priced at.")

    rows = list_quotes(conn, limit=5000)
    if not rows:
        st.info("No saved quotes yet.")
        return

    quotes_df = pd.DataFrame([dict(row) for row in rows])
    quotes_df["created_at"] = pd.to_datetime(quotes_df["created_at"], errors="coerce", utc=True)

    col1, col2, col3 = st.columns([2, 2, 1])
    with col1:
        search_text = st.text_input("Search client / metal / quote number")
    with col2:
        status_filter = st.selectbox("Status", options=["All", *QUOTE_STATUSES])
    with col3:
        range_filter = st.selectbox("Range", options=["All", "7 days", "30 days", "90 days"], index=2)

    filtered_df = quotes_df.copy()

    if search_text.strip():
        search_term = search_text.strip().lower()
        client = filtered_df["client_name"].fillna("").str.lower()
        metal = filtered_df["metal_type"].fillna("").str.lower()
        number = filtered_df["quote_number"].str.lower()
        filtered_df = filtered_df[
            client.str.contains(search_term, regex=False)
            | metal.str.contains(search_term, regex=False)
            | number.str.contains(search_term, regex=False)
        ]

    if status_filter != "All":
        filtered_df = filtered_df[filtered_df["status"] == status_filter]

    days_map = {"7 days": 7, "30 days": 30, "90 days": 90}
    if range_filter in days_map:
        cutoff = datetime.now(UTC) - timedelta(days=days_map[range_filter])
        filtered_df = filtered_df[filtered_df["created_at"] >= cutoff]

    filtered_df = filtered_df.sort_values("created_at", ascending=False)
    filtered_df["created_at"] = filtered_df["created_at"].dt.strftime("%Y-%m-%d %H:%M:%S UTC")

    if filtered_df.empty:
        st.caption("No quotes match the current filters.")
        return

    st.download_button(
        "Export filtered quotes CSV",
        data=filtered_df.to_csv(index=False).encode("utf-8"),
        file_name="quotes.csv",
        mime="text/csv",
    )
    st.dataframe(filtered_df, width="stretch", hide_index=True)

    selected_id = st.selectbox(
        "Inspect quote",
        options=[int(value) for value in filtered_df["id"]],
        format_func=lambda qid: f"#{qid} - {filtered_df.loc[filtered_df['id'] == qid, 'quote_number'].iloc[0]}",
    )
    selected = get_quote(conn, selected_id)
    if selected is not None:
        st.json(_parse_json(selected["request_json"]))
