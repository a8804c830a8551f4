from __future__ import annotations

import os
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parent
SRC = ROOT / "src"
if SRC.exists() and str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import streamlit as st

import checklist_tracking
from checklist_tracking.data.db import connect, init_db
from checklist_tracking.app.pages import (
    alerts,
    matrix,
    settings,
    todolists,
)

st.set_page_config(page_title="checklists", layout="wide")

# --- DB init (once per app start) ---
DATA_DIR = Path(os.getenv("CHECKLIST_TRACKING_DATA_DIR", "./data"))
DB_PATH = Path(os.getenv("CHECKLIST_TRACKING_DB_PATH", DATA_DIR / "app.db"))

con = connect(DB_PATH)
init_db(con)

# --- Sidebar navigation ---
st.sidebar.title("Checklist tracking")

build_number = (
    os.getenv("APP_BUILD")
    or os.getenv("BUILD_NUMBER")
    or checklist_tracking.__version__
)
st.sidebar.markdown(
    f"""
    <style>
    [data-testid="stSidebar"] .build-info {{
        position: fixed;
        bottom: 0.5rem;
        left: 1rem;
        color: #6c757d;
        font-size: 0.75rem;
    }}
    </style>
    <div class="build-info">Build: {build_number}</div>
    """,
    unsafe_allow_html=True,
)

PAGES = {
    "Checklists": lambda: todolists.render(con),
    "Matrix": lambda: matrix.render(con),
    "Alerts": lambda: alerts.render(con),
    "Settings": lambda: settings.render(con),
}

params = st.query_params
page_param = params.get("page")
if isinstance(page_param, list):
    page_param = page_param[0] if page_param else None

page_labels = list(PAGES.keys())
default_index = page_labels.index(page_param) if page_param in PAGES else 0

selected = st.sidebar.radio("Pages", page_labels, index=default_index, key="sidebar_page")

# --- Render selected page ---
PAGES[selected]()
