import sqlite3

import pandas as pd
import streamlit as st

from quote_engine.db import (
    list_metal_prices,
    list_stone_prices,
    set_metal_active,
    update_stone_costs,
    upsert_metal_price,
    upsert_stone_price,
)
from quote_engine.inputs import to_money


def _render_metals(conn: sqlite3.Connection) -> None:
    rows = list_metal_prices(conn)
    if rows:
        df = pd.DataFrame(
            [
                {
                    "metal_type": row["metal_type"],
                    "price": float(row["price"]),
                    "alloy_composition": row["alloy_composition"] or "",
                    "is_active": bool(row["is_active"]),
                }
                for row in rows
            ]
        )
        edited = st.data_editor(
            df,
            disabled=["metal_type"],
            hide_index=True,
            width="stretch",
            key="metal_prices_editor",
        )
        if st.button("Save metal prices", type="primary"):
            originals = {row["metal_type"]: row for row in rows}
            for record in edited.to_dict(orient="records"):
                original = originals[record["metal_type"]]
                if float(original["price"]) != float(record["price"]) or (
                    original["alloy_composition"] or ""
                ) != record["alloy_composition"]:
                    upsert_metal_price(
                        conn,
                        record["metal_type"],
                        to_money(record["price"]),
                        alloy_composition=record["alloy_composition"] or None,
                    )
                if bool(original["is_active"]) != bool(record["is_active"]):
                    set_metal_active(conn, record["metal_type"], bool(record["is_active"]))
            st.success("Metal prices saved.")
    else:
        st.info("No metal prices yet.")

    with st.form("add_metal_form"):
        col1, col2, col3 = st.columns(3)
        with col1:
            metal_type = st.text_input("Metal type key", placeholder="e.g. 9ct_yellow_gold")
        with col2:
            price = st.number_input("Price per gram", min_value=0.0, value=0.0)
        with col3:
            alloy = st.text_input("Alloy composition")
        if st.form_submit_button("Add / replace metal"):
            if not metal_type.strip():
                st.error("Metal type key is required.")
            else:
                upsert_metal_price(conn, metal_type, to_money(price), alloy_composition=alloy.strip() or None)
                st.success(f"Saved {metal_type.strip()}.")


def _render_stones(conn: sqlite3.Connection) -> None:
    rows = list_stone_prices(conn)
    if rows:
        df = pd.DataFrame(
            [
                {
                    "id": int(row["id"]),
                    "stone_type": row["stone_type"],
                    "setting_style": row["setting_style"],
                    "size_category": row["size_category"],
                    "cost": float(row["cost"]),
                }
                for row in rows
            ]
        )
        edited = st.data_editor(
            df,
            disabled=["id", "stone_type", "setting_style", "size_category"],
            hide_index=True,
            width="stretch",
            key="stone_prices_editor",
        )
        if st.button("Save setting costs", type="primary"):
            originals = {int(row["id"]): float(row["cost"]) for row in rows}
            changed = {
                int(record["id"]): to_money(record["cost"])
                for record in edited.to_dict(orient="records")
                if originals[int(record["id"])] != float(record["cost"])
            }
            update_stone_costs(conn, changed)
            st.success(f"Updated {len(changed)} setting costs.")
    else:
        st.info("No stone setting costs yet.")

    with st.form("add_stone_price_form"):
        col1, col2, col3, col4 = st.columns(4)
        with col1:
            stone_type = st.text_input("Stone type")
        with col2:
            setting_style = st.text_input("Setting style")
        with col3:
            size_category = st.text_input("Size category")
        with col4:
            cost = st.number_input("Setting cost", min_value=0.0, value=0.0)
        if st.form_submit_button("Add / replace setting cost"):
            if not (stone_type.strip() and setting_style.strip() and size_category.strip()):
                st.error("Stone type, setting style and size category are all required.")
            else:
                upsert_stone_price(conn, stone_type, setting_style, size_category, to_money(cost))
                st.success("Setting cost saved.")


def render(conn: sqlite3.Connection) -> None:
    st.subheader("Rates")

    tab1, tab2 = st.tabs(["Metal prices", "Stone setting costs"])
    with tab1:
        _render_metals(conn)
    with tab2:
        _render_stones(conn)
