import logging
import os
from pathlib import Path

import streamlit as st
from dotenv import load_dotenv

from quote_engine.db import get_connection, init_db
from quote_engine.ui import dashboard, quote_history, quotes, rates, settings


# Load environment variables from local .env file.
load_dotenv(dotenv_path=Path(__file__).parent / ".env")

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


st.set_page_config(page_title="Jewellery Quotes", page_icon="💍", layout="wide")


def main() -> None:
    st.title("💍 Jewellery Quote Engine")
    st.caption("Itemised manufacturing quotes priced against current metal and setting rates")

    conn = get_connection()
    init_db(conn)

    page = st.sidebar.radio(
        "Navigate",
        [
            "Dashboard",
            "Quote Builder",
            "Quote History",
            "Rates",
            "Settings",
        ],
    )

    if page == "Dashboard":
        dashboard.render(conn)
    elif page == "Quote Builder":
        quotes.render(conn)
    elif page == "Quote History":
        quote_history.render(conn)
    elif page == "Rates":
        rates.render(conn)
    elif page == "Settings":
        settings.render(conn)


if __name__ == "__main__":
    main()
