from __future__ import annotations

import streamlit as st

from autoparts.config import get_settings
from autoparts.db import get_conn
from autoparts.services.demo_data import upsert_reference_data
from autoparts.services.inventory import low_stock_products, stock_discrepancies

st.set_page_config(page_title="Auto Parts Inventory", page_icon="🔧", layout="wide")

st.title("🔧 Auto Parts Inventory")
st.caption("Batch-based stock with FIFO cost accounting, per-sale profit and monthly rollover.")

settings = get_settings()
conn = get_conn(settings.db_path, settings.busy_timeout_ms)
upsert_reference_data(conn)

with st.sidebar:
    st.subheader("Environment")
    st.write(f"**Data directory:** `{settings.data_dir}`")
    st.write(f"**Database:** `{settings.db_path.name}`")
    st.write(f"**Currency:** {settings.currency}")

low = low_stock_products(conn)
if low:
    st.warning(f"{len(low)} product(s) at or below their minimum stock level: " + ", ".join(p.sku for p in low))

if stock_discrepancies(conn):
    st.error("Some product stock counters disagree with their batches. Use **📦 Inventory → Stock** to rebuild them.")

st.info(
    "Use the left sidebar navigation. Start with **🧪 Data Management** to load demo data, then try "
    "**Stock In**, **Sales** and **Monthly Rollover**.",
    icon="ℹ️",
)
