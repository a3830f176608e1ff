import json
import sqlite3
from typing import Any

import pandas as pd
import streamlit as st

from quote_engine.db import (
    QUOTE_STATUSES,
    SETTING_STYLES,
    SIZE_CATEGORIES,
    STONE_TYPES,
    get_all_settings,
    get_quote,
    list_metal_prices,
)
from quote_engine.models import CalculationResult
from quote_engine.providers.rates import SqliteRateProvider
from quote_engine.quotes import MetalRateUnavailable, create_quote, price_payload, update_quote

NO_METAL = "(none)"


def _records(df: pd.DataFrame) -> list[dict[str, Any]]:
    cleaned = df.dropna(how="all")
    return [
        {key: (None if pd.isna(value) else value) for key, value in row.items()}
        for row in cleaned.to_dict(orient="records")
    ]


def _breakdown_table(result: CalculationResult) -> pd.DataFrame:
    rows = [
        [name.capitalize(), float(section.cost), float(section.markup_amount), float(section.price)]
        for name, section in result.sections().items()
    ]
    rows.append(["Total", float(result.totals.subtotal_cost), float(result.totals.profit), float(result.totals.total_price)])
    return pd.DataFrame(rows, columns=["Section", "Cost", "Markup", "Price"])


def _load_existing(conn: sqlite3.Connection, quote_id: int | None) -> tuple[sqlite3.Row | None, dict[str, Any]]:
    """Returns (stored row, stored request payload); the row is None when there is no such quote."""
    if not quote_id:
        return None, {}
    row = get_quote(conn, quote_id)
    if row is None:
        return None, {}
    try:
        payload = json.loads(row["request_json"] or "{}")
    except json.JSONDecodeError:
        payload = {}
    return row, payload if isinstance(payload, dict) else {}


def render(conn: sqlite3.Connection) -> None:
    st.subheader("Quote Builder")

    settings = get_all_settings(conn)
    currency = settings["currency_symbol"]
    metal_types = [row["metal_type"] for row in list_metal_prices(conn, active_only=True)]

    editing_id = st.number_input("Edit existing quote ID (0 for a new quote)", min_value=0, value=0, step=1)
    stored_row, existing = _load_existing(conn, int(editing_id))
    if editing_id and stored_row is None:
        st.warning(f"Quote #{int(editing_id)} not found. A new quote will be created.")

    with st.form("quote_form"):
        client_name = st.text_input(
            "Client name (optional)", value=(stored_row["client_name"] if stored_row else None) or ""
        )
        piece_category = st.text_input(
            "Piece category", value=(stored_row["piece_category"] if stored_row else None) or ""
        )
        current_status = stored_row["status"] if stored_row else "draft"
        status = st.selectbox(
            "Status",
            QUOTE_STATUSES,
            index=QUOTE_STATUSES.index(current_status) if current_status in QUOTE_STATUSES else 0,
        )

        st.markdown("#### Metal")
        col1, col2 = st.columns(2)
        with col1:
            metal_options = [NO_METAL] + metal_types
            current_metal = existing.get("metal_type") or NO_METAL
            metal_type = st.selectbox(
                "Metal type",
                metal_options,
                index=metal_options.index(current_metal) if current_metal in metal_options else 0,
            )
            metal_weight = st.number_input(
                "Weight (g)", min_value=0.0, value=float(existing.get("metal_weight") or 0), step=0.1
            )
        with col2:
            metal_wastage = st.number_input(
                "Wastage (%)", min_value=0.0, max_value=50.0, value=float(existing.get("metal_wastage") or 10)
            )
            metal_markup = st.number_input(
                "Metal markup (%)", min_value=0.0, max_value=200.0, value=float(existing.get("metal_markup") or 0)
            )

        st.caption("Design variations (collection mode). When any rows exist the single metal above is ignored.")
        variations_df = st.data_editor(
            pd.DataFrame(
                existing.get("design_variations") or [],
                columns=["name", "enabled", "metal_type", "metal_weight", "metal_wastage", "metal_markup"],
            ),
            num_rows="dynamic",
            key="variations_editor",
            column_config={
                "enabled": st.column_config.CheckboxColumn("Enabled", default=True),
                "metal_type": st.column_config.SelectboxColumn("Metal type", options=metal_types),
            },
        )

        st.markdown("#### Stones")
        stones_df = st.data_editor(
            pd.DataFrame(
                existing.get("stone_categories") or [],
                columns=["type", "setting_style", "size_category", "count", "cost_per_stone", "setting_cost"],
            ),
            num_rows="dynamic",
            key="stones_editor",
            column_config={
                "type": st.column_config.SelectboxColumn("Stone type", options=STONE_TYPES),
                "setting_style": st.column_config.SelectboxColumn("Setting style", options=SETTING_STYLES),
                "size_category": st.column_config.SelectboxColumn("Size", options=SIZE_CATEGORIES),
            },
        )
        stone_markup = st.number_input("Stone markup (%)", min_value=0.0, value=float(existing.get("stone_markup") or 0))

        st.markdown("#### CAD")
        col1, col2 = st.columns(2)
        with col1:
            cad_hours = st.number_input("CAD hours", min_value=0.0, value=float(existing.get("cad_hours") or 0))
            cad_base_rate = st.number_input(
                "CAD base rate", min_value=0.0, value=float(existing.get("cad_base_rate") or 0)
            )
            cad_revisions = st.number_input(
                "Revisions", min_value=0, value=int(existing.get("cad_revisions") or 0), step=1
            )
            cad_markup = st.number_input("CAD markup (%)", min_value=0.0, value=float(existing.get("cad_markup") or 0))
        with col2:
            cad_rendering_cost = st.number_input(
                "Rendering cost", min_value=0.0, value=float(existing.get("cad_rendering_cost") or 0)
            )
            include_rendering_cost = st.checkbox(
                "Include rendering", value=bool(existing.get("include_rendering_cost"))
            )
            cad_technical_cost = st.number_input(
                "Technical drawing cost", min_value=0.0, value=float(existing.get("cad_technical_cost") or 0)
            )
            include_technical_cost = st.checkbox(
                "Include technical drawing", value=bool(existing.get("include_technical_cost"))
            )

        st.markdown("#### Manufacturing")
        col1, col2 = st.columns(2)
        with col1:
            manufacturing_technique = st.text_input(
                "Technique", value=existing.get("manufacturing_technique") or ""
            )
            manufacturing_hours = st.number_input(
                "Manufacturing hours", min_value=0.0, value=float(existing.get("manufacturing_hours") or 0)
            )
        with col2:
            manufacturing_base_rate = st.number_input(
                "Manufacturing base rate", min_value=0.0, value=float(existing.get("manufacturing_base_rate") or 0)
            )
            manufacturing_markup = st.number_input(
                "Manufacturing markup (%)", min_value=0.0, value=float(existing.get("manufacturing_markup") or 0)
            )

        st.markdown("#### Finishing & findings")
        col1, col2 = st.columns(2)
        with col1:
            finishing_cost = st.number_input(
                "Finishing cost", min_value=0.0, value=float(existing.get("finishing_cost") or 0)
            )
            plating_cost = st.number_input("Plating cost", min_value=0.0, value=float(existing.get("plating_cost") or 0))
            include_plating_cost = st.checkbox("Include plating", value=bool(existing.get("include_plating_cost")))
            finishing_markup = st.number_input(
                "Finishing markup (%)", min_value=0.0, value=float(existing.get("finishing_markup") or 0)
            )
        with col2:
            findings_df = st.data_editor(
                pd.DataFrame(existing.get("findings") or [], columns=["name", "cost"]),
                num_rows="dynamic",
                key="findings_editor",
            )
            findings_markup = st.number_input(
                "Findings markup (%)", min_value=0.0, value=float(existing.get("findings_markup") or 0)
            )

        col1, col2 = st.columns(2)
        with col1:
            preview = st.form_submit_button("Calculate", type="primary")
        with col2:
            save = st.form_submit_button("Save quote")

    if not (preview or save):
        return

    payload = {
        "metal_type": None if metal_type == NO_METAL else metal_type,
        "metal_weight": metal_weight,
        "metal_wastage": metal_wastage,
        "metal_markup": metal_markup,
        "design_variations": _records(variations_df),
        "stone_categories": _records(stones_df),
        "stone_markup": stone_markup,
        "cad_hours": cad_hours,
        "cad_base_rate": cad_base_rate,
        "cad_revisions": cad_revisions,
        "cad_rendering_cost": cad_rendering_cost,
        "include_rendering_cost": include_rendering_cost,
        "cad_technical_cost": cad_technical_cost,
        "include_technical_cost": include_technical_cost,
        "cad_markup": cad_markup,
        "manufacturing_technique": manufacturing_technique,
        "manufacturing_hours": manufacturing_hours,
        "manufacturing_base_rate": manufacturing_base_rate,
        "manufacturing_markup": manufacturing_markup,
        "finishing_cost": finishing_cost,
        "plating_cost": plating_cost,
        "include_plating_cost": include_plating_cost,
        "finishing_markup": finishing_markup,
        "findings": _records(findings_df),
        "findings_markup": findings_markup,
    }

    provider = SqliteRateProvider(conn)
    try:
        if save and stored_row is not None:
            row, result = update_quote(
                conn,
                int(editing_id),
                payload,
                provider,
                status=status,
                client_name=client_name.strip() or None,
                piece_category=piece_category.strip() or None,
            )
            st.success(f"Quote {row['quote_number']} updated.")
        elif save:
            row, result = create_quote(
                conn,
                payload,
                provider,
                client_name=client_name.strip() or None,
                piece_category=piece_category.strip() or None,
                status=status,
            )
            st.success(f"Quote {row['quote_number']} saved with ID #{row['id']}.")
        else:
            _, result = price_payload(payload, provider)
    except MetalRateUnavailable as exc:
        st.error(str(exc))
        return

    totals = result.totals
    st.success(f"Total price: {currency}{totals.total_price:,.2f}")
    st.info(
        f"Cost: {currency}{totals.subtotal_cost:,.2f} | "
        f"Profit: {currency}{totals.profit:,.2f} | Margin: {totals.margin:.2f}%"
    )
    if result.metal.spot_price is not None:
        st.caption(f"Spot price used: {currency}{result.metal.spot_price:,.2f} per gram")
    st.dataframe(_breakdown_table(result), width="stretch", hide_index=True)

    if result.stones.lines:
        st.markdown("##### Stone lines")
        st.dataframe(pd.DataFrame(result.stones.to_dict()["lines"]), width="stretch", hide_index=True)
    if result.metal.lines:
        st.markdown("##### Design variations")
        st.dataframe(pd.DataFrame(result.metal.to_dict()["variations"]), width="stretch", hide_index=True)

    st.download_button(
        "Download breakdown (JSON)",
        data=json.dumps(result.to_dict(), indent=2).encode("utf-8"),
        file_name="quote_breakdown.json",
        mime="application/json",
    )
