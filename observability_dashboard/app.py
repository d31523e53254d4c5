from typing import List

import altair as alt
import streamlit as st

from opsboard.logs.service_panel import CATEGORY_META, group_services
from opsboard.models import LayoutMode, LogLevel
from opsboard.runtime import DashboardRuntime
from opsboard.settings import Settings
from opsboard.views.frames import graph_chart, level_chart, logs_frame, service_activity_chart, services_frame

st.set_page_config(page_title="opsboard", layout="wide")

st.markdown(
    """
    <style>
    .kpi-card {
        background: linear-gradient(135deg, #0f172a 0%, #111827 100%);
        border: 1px solid #1f2937;
        border-radius: 14px;
        padding: 16px 18px;
    }
    .kpi-label {
        font-size: 12px;
        color: #93c5fd;
        letter-spacing: 0.4px;
        text-transform: uppercase;
        margin-bottom: 6px;
    }
    .kpi-value {
        font-size: 26px;
        font-weight: 700;
        color: #f8fafc;
    }
    .kpi-sub {
        font-size: 12px;
        color: #cbd5f5;
    }
    </style>
    """,
    unsafe_allow_html=True,
)


def opsboard_theme():
    return {
        "config": {
            "background": "#0b1220",
            "view": {"stroke": "#0b1220"},
            "axis": {
                "labelColor": "#cbd5f5",
                "titleColor": "#cbd5f5",
                "gridColor": "#1f2937",
                "domainColor": "#1f2937",
            },
            "legend": {"labelColor": "#cbd5f5", "titleColor": "#94a3b8"},
        }
    }


alt.themes.register("opsboard", opsboard_theme)
alt.themes.enable("opsboard")


@st.cache_resource
def get_runtime() -> DashboardRuntime:
    rt = DashboardRuntime(Settings())
    rt.refresh()
    rt.start()
    return rt


def kpi(col, label: str, value: str, sub: str) -> None:
    col.markdown(
        f"<div class='kpi-card'><div class='kpi-label'>{label}</div>"
        f"<div class='kpi-value'>{value}</div>"
        f"<div class='kpi-sub'>{sub}</div></div>",
        unsafe_allow_html=True,
    )


rt = get_runtime()
prefs = rt.preferences.current

# ---------- sidebar ----------
st.sidebar.header("opsboard")
views: List[str] = ["overview", "services", "graph", "logs"]
chosen_view = st.sidebar.radio("View", views, index=views.index(prefs.active_view))
if chosen_view != prefs.active_view:
    prefs = rt.preferences.set_active_view(chosen_view)
if st.sidebar.button(f"Theme: {prefs.theme}"):
    prefs = rt.preferences.cycle_theme()
    st.rerun()
if st.sidebar.button("Refresh now"):
    rt.refresh()

live = st.sidebar.toggle("Live feed", value=rt.pipeline.live)
if live != rt.pipeline.live:
    rt.set_live(live)

cards = rt.health_cards()
if cards.using_mock_data:
    st.sidebar.warning(f"Backend unreachable at {rt.settings.api_base_url}; showing last known data.")

# ---------- views ----------
if prefs.active_view == "overview":
    st.markdown("<h1 style='margin-bottom:0'>Operations Overview</h1>", unsafe_allow_html=True)
    stats = rt.overview()
    c1, c2, c3, c4 = st.columns(4)
    kpi(c1, "Log Entries", str(stats.total_logs), "backend total" if stats.is_real_stats else "fetched")
    kpi(c2, "Errors", str(stats.error_count), "ERROR + FATAL")
    kpi(c3, "Services", f"{stats.healthy_services}/{stats.total_services}", "healthy")
    kpi(c4, "Entities", str(stats.entity_count), f"{stats.relation_count} relations")
    st.subheader("Service health")
    for card in cards.services:
        cols = st.columns([3, 1, 1, 1])
        cols[0].markdown(f"**{card.name}**  \n{card.url or ''}")
        cols[1].write(card.status)
        cols[2].write(f"{card.uptime:.1f}% up")
        if cols[3].button("Check", key=f"check-{card.id}"):
            rt.refresh_service(card.id)
            st.rerun()
    st.altair_chart(level_chart(rt.store.logs), use_container_width=True)

elif prefs.active_view == "services":
    st.subheader("Services")
    services = rt.pipeline.services()
    panel = rt.pipeline.panel.with_search(st.text_input("Search services", value=rt.pipeline.panel.search))
    rt.pipeline.panel = panel
    for category, items in group_services(services, panel).items():
        label = CATEGORY_META[items[0].category].label if items else category
        st.markdown(f"**{label}** ({len(items)})")
        st.dataframe(services_frame(items), hide_index=True)
    st.altair_chart(service_activity_chart(services), use_container_width=True)

elif prefs.active_view == "graph":
    st.subheader("Knowledge graph")
    graph = rt.graph
    c1, c2, c3 = st.columns([3, 2, 2])
    graph.set_search(c1.text_input("Search nodes", value=graph.search))
    modes = [m.value for m in LayoutMode]
    mode = c2.selectbox("Layout", modes, index=modes.index(graph.layout_mode.value))
    if mode != graph.layout_mode.value:
        graph.choose_layout(mode)
    types = c3.multiselect("Types", graph.entity_types(), default=sorted(graph.selected_types))
    if set(types) != graph.selected_types:
        graph.clear_types()
        for t in types:
            graph.toggle_type(t)
    view = graph.view()
    st.caption(
        f"{len(view.nodes)}/{view.total_entities} nodes, {len(view.edges)} edges"
        + (f", {view.skipped_relations} relations skipped" if view.skipped_relations else "")
    )
    st.altair_chart(graph_chart(view), use_container_width=True)

else:
    st.subheader("Logs")
    pipeline = rt.pipeline
    c1, c2, c3 = st.columns([3, 2, 3])
    search = c1.text_input("Search messages", value=pipeline.filter.search)
    levels = c2.multiselect(
        "Levels",
        [lvl.value for lvl in LogLevel],
        default=sorted(lvl.value for lvl in pipeline.filter.levels),
    )
    service_options = [s.service_name for s in pipeline.services()]
    services = c3.multiselect(
        "Services",
        service_options,
        default=sorted(s for s in pipeline.filter.services if s in service_options),
    )
    pipeline.set_search(search)
    pipeline.set_levels(levels)
    pipeline.set_services(services)
    log_view = pipeline.view()
    st.caption(f"Showing {log_view.visible_count} of {log_view.filtered_count} ({log_view.total_count} total)")
    st.dataframe(logs_frame(log_view.entries), hide_index=True, use_container_width=True)
    if log_view.has_more and st.button("Load more"):
        pipeline.load_more()
        st.rerun()
