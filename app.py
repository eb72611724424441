import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import pandas as pd
import streamlit as st

from incidents.data import (
    EXPORT_COLUMNS,
    dataset_source,
    export_csv,
    format_int,
    prepare_context,
    search_options,
)
from incidents.filters import DIMENSIONS, SEVERITY_CEILING, SEVERITY_FLOOR, IncidentFilters
from incidents.metrics_distribution import compute_distribution
from incidents.metrics_geo import compute_map
from incidents.metrics_overview import compute_overview
from incidents.metrics_response import compute_response
from incidents.metrics_table import PAGE_SIZES, TABLE_COLUMNS, compute_table
from incidents.metrics_trend import compute_trend
from incidents.session import DashboardSession

logger = logging.getLogger(__name__)

EXPORT_NAME = "dashboard-insiden.csv"
FILTER_WIDGET_KEYS = [f"flt_{key}" for key in DIMENSIONS] + ["flt_severity", "flt_search"]


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-header {display: flex;justify-content: space-between;align-items: center;margin-bottom: 8px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;}
        .card-actions {font-size: 0.9rem;color: #2563eb;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        .stat-sub {color: #6b7280;font-size: 0.85rem;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str, actions: Optional[str] = None):
    container = st.container()
    container.markdown(
        f"""
        <div class="card">
          <div class="card-header">
            <div class="card-title">{title}</div>
            <div class="card-actions">{actions or ""}</div>
          </div>
        """,
        unsafe_allow_html=True,
    )
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


@contextmanager
def panel(title: str, actions: Optional[str] = None):
    """A card whose failures stay inside it."""
    with card(title, actions) as body:
        try:
            yield body
        except Exception:
            logger.exception("panel %r failed", title)
            st.warning("Panel ini gagal dimuat. Coba ubah filter atau muat ulang data.")


def format_filter_summary(filters: IncidentFilters) -> str:
    chips: List[str] = []
    for key, dim in DIMENSIONS.items():
        values = dim.selected(filters)
        chips.append(f"{dim.label}: {', '.join(str(v) for v in values)}" if values else f"{dim.label}: Semua")
    chips.append(f"Severity: {filters.severity_min}–{filters.severity_max}")
    if filters.search:
        chips.append(f"Cari: {filters.search}")
    return "".join([f"<span class='chip'>{txt}</span>" for txt in chips])


def render_page_header(title: str, breadcrumb: str, filter_summary_html: str, export_rows: Optional[pd.DataFrame] = None):
    inject_base_styles()
    top = st.container()
    c1, c2 = top.columns([7, 3])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>{breadcrumb}</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        btn_cols = st.columns(2)
        if btn_cols[0].button("Muat ulang"):
            session.load(dataset_source())
            st.rerun()
        if export_rows is not None and not export_rows.empty:
            btn_cols[1].download_button(
                "Export CSV",
                data=export_csv(export_rows).encode("utf-8"),
                file_name=EXPORT_NAME,
                mime="text/csv",
            )
    st.markdown(f"<div class='chip-row'>{filter_summary_html}</div>", unsafe_allow_html=True)


def reset_filters():
    session.reset()
    for key in FILTER_WIDGET_KEYS:
        st.session_state.pop(key, None)


def get_session() -> DashboardSession:
    if "dashboard_session" not in st.session_state:
        s = DashboardSession()
        s.load(dataset_source())
        st.session_state["dashboard_session"] = s
    return st.session_state["dashboard_session"]


# ---------- UI setup ----------
st.set_page_config(page_title="Dashboard Insiden Pendidikan", layout="wide")
inject_base_styles()
st.title("Dashboard Insiden Kekerasan di Satuan Pendidikan")
st.caption("Ringkasan, distribusi, tren dan sebaran geografis insiden berdasarkan filter aktif.")

session = get_session()
if session.error:
    st.error(f"Gagal memuat dataset: {session.error}")

options = session.options()

# ----- Sidebar: filters -----
with st.sidebar:
    st.markdown("### Filter")
    selections: Dict[str, list] = {}
    for key, dim in DIMENSIONS.items():
        opts = options.get(key, [])
        current = [v for v in dim.selected(session.filters) if v in opts]
        selections[key] = st.multiselect(dim.label, options=opts, default=current, key=f"flt_{key}")

    severity = st.slider(
        "Tingkat keparahan",
        min_value=SEVERITY_FLOOR,
        max_value=SEVERITY_CEILING,
        value=(session.filters.severity_min, session.filters.severity_max),
        step=1,
        key="flt_severity",
    )
    search_text = st.text_input(
        "Cari jenis insiden, pelaku atau lokasi",
        value=session.filters.search,
        key="flt_search",
    )

    with st.expander("Cari opsi provinsi", expanded=False):
        q = st.text_input("Nama provinsi", "", key="province_lookup")
        if q:
            st.write(search_options(options.get("province", []), q) or "Tidak ada provinsi yang cocok.")

    st.markdown("---")
    st.button("Reset filter", on_click=reset_filters)

session.update({**selections, "severity_min": severity[0], "severity_max": severity[1]})

# st.text_input reruns the script only on Enter or blur, so this holds the
# committed value for a fixed quiet window before applying it.
if search_text.strip() != session.filters.search:
    session.type_search(search_text)
if session.search.pending:
    time.sleep(session.search.remaining())
    session.tick()

data_ctx = {"rows": session.rows, "error": session.error}
ctx = prepare_context(session.filters, data_ctx)
filters = ctx["filters"]
filtered_rows: pd.DataFrame = ctx["filtered_rows"]


# ----- Page renderers -----
def render_stat_cards():
    overview = compute_overview(filters, ctx)
    cols = st.columns(len(overview["cards"]))
    for col, stat in zip(cols, overview["cards"]):
        with col:
            st.metric(stat["label"], stat["value"])
            st.progress(stat["progress"], text=stat["progress_label"])
            st.markdown(f"<div class='stat-sub'>{stat['sub']}</div>", unsafe_allow_html=True)


def render_distribution():
    computed: Dict[str, Dict[str, Any]] = {}

    def _charts() -> Dict[str, Any]:
        if "charts" not in computed:
            computed["charts"] = compute_distribution(filters, ctx)["charts"]
        return computed["charts"]

    left, right = st.columns(2)
    with left:
        with panel("Distribusi Tingkat Keparahan"):
            charts = _charts()
            if "severity_histogram" in charts:
                st.vega_lite_chart(charts["severity_histogram"], use_container_width=True)
            else:
                st.info("Tidak ada data keparahan untuk filter ini.")
    with right:
        with panel("Status Kasus"):
            charts = _charts()
            if "status_pie" in charts:
                st.vega_lite_chart(charts["status_pie"], use_container_width=True)
            else:
                st.info("Tidak ada data status.")
    left, right = st.columns(2)
    with left:
        with panel("Insiden per Sektor"):
            charts = _charts()
            if "by_sector" in charts:
                st.vega_lite_chart(charts["by_sector"], use_container_width=True)
            else:
                st.info("Tidak ada data sektor.")
    with right:
        with panel("Insiden per Provinsi"):
            charts = _charts()
            if "by_province" in charts:
                st.vega_lite_chart(charts["by_province"], use_container_width=True)
            else:
                st.info("Tidak ada data provinsi.")


def render_trend_and_response():
    left, right = st.columns(2)
    with left:
        with panel("Tren Bulanan"):
            trend = compute_trend(filters, ctx)
            if "monthly_trend" in trend["charts"]:
                st.vega_lite_chart(trend["charts"]["monthly_trend"], use_container_width=True)
            else:
                st.info("Belum ada tanggal insiden yang valid.")
    with right:
        with panel("Waktu Respon vs Penyelesaian"):
            resp = compute_response(filters, ctx)
            summary = resp["summary"]
            if "response_resolution" in resp["charts"]:
                st.vega_lite_chart(resp["charts"]["response_resolution"], use_container_width=True)
                st.caption(
                    f"{format_int(summary['count'])} insiden; rata-rata respon {summary['mean_response']:.1f} jam, "
                    f"penyelesaian {summary['mean_resolution']:.1f} hari."
                )
            else:
                st.info("Tidak ada insiden dengan waktu respon dan penyelesaian.")


def render_map():
    with panel("Sebaran Geografis"):
        geo = compute_map(filters, ctx)
        if "map" in geo["charts"]:
            st.vega_lite_chart(geo["charts"]["map"], use_container_width=True)
        else:
            st.info("Tidak ada koordinat yang dapat dipetakan.")
        counts = geo["counts"]
        if counts["dropped"]:
            st.caption(f"{format_int(counts['dropped'])} insiden tanpa lokasi tidak ditampilkan.")


def render_table():
    with panel("Daftar Insiden"):
        labels = dict(EXPORT_COLUMNS)
        ctl = st.columns(4)
        sort_key = ctl[0].selectbox("Urutkan", TABLE_COLUMNS, format_func=lambda c: labels.get(c, c), key="tbl_sort")
        direction = ctl[1].radio("Arah", ["desc", "asc"], horizontal=True, key="tbl_dir")
        page_size = ctl[2].selectbox("Baris per halaman", PAGE_SIZES, key="tbl_size")
        page = ctl[3].number_input("Halaman", min_value=1, value=1, step=1, key="tbl_page")
        table = compute_table(filters, ctx, sort_key=sort_key, direction=direction, page=int(page), page_size=int(page_size))
        if not table["rows"]:
            st.info("Tidak ada insiden yang cocok dengan filter.")
            return
        display = pd.DataFrame(table["rows"]).rename(columns={c["key"]: c["label"] for c in table["columns"]})
        st.dataframe(display.drop(columns=["incident_id"], errors="ignore"), use_container_width=True, hide_index=True)
        st.caption(f"Halaman {table['page']} dari {table['total_pages']} ({format_int(table['total_rows'])} baris)")


filter_summary_html = format_filter_summary(filters)
render_page_header("Ringkasan Insiden", "Beranda / Ringkasan", filter_summary_html, export_rows=filtered_rows)
st.caption(
    f"{format_int(len(filtered_rows))} dari {format_int(ctx['raw_row_count'])} insiden · "
    f"{ctx['applied_filter_count']} filter aktif · "
    f"data terakhir {ctx['last_updated'] or '-'}"
)

with panel("Statistik Utama"):
    render_stat_cards()
render_distribution()
render_trend_and_response()
render_map()
render_table()
