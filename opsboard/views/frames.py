from __future__ import annotations

from typing import Iterable

import altair as alt
import pandas as pd

from opsboard.graph.controller import GraphView
from opsboard.models import LogEntry, LogLevel, ServiceInfo


LEVEL_COLORS = {
    LogLevel.DEBUG.value: "#6b7280",
    LogLevel.INFO.value: "#3b82f6",
    LogLevel.WARN.value: "#f59e0b",
    LogLevel.ERROR.value: "#ef4444",
    LogLevel.FATAL.value: "#7f1d1d",
}

_NODE_COLUMNS = ["id", "label", "type", "kind", "x", "y", "color", "preview"]
_EDGE_COLUMNS = ["id", "source", "target", "label", "x", "y", "x2", "y2"]
_LOG_COLUMNS = ["id", "timestamp", "level", "service", "component", "message"]


def nodes_frame(view: GraphView) -> pd.DataFrame:
    rows = [
        {
            "id": n.id,
            "label": n.label,
            "type": n.type,
            "kind": n.kind.value,
            "x": n.position.x,
            "y": n.position.y,
            "color": n.style.color,
            "preview": ", ".join(f"{k}: {v}" for k, v in n.preview),
        }
        for n in view.nodes
    ]
    return pd.DataFrame(rows, columns=_NODE_COLUMNS)


def edges_frame(view: GraphView) -> pd.DataFrame:
    """
    One row per visible edge with both endpoint coordinates, ready for a rule mark.
    """
    pos = {n.id: n.position for n in view.nodes}
    rows = [
        {
            "id": e.id,
            "source": e.source,
            "target": e.target,
            "label": e.label,
            "x": pos[e.source].x,
            "y": pos[e.source].y,
            "x2": pos[e.target].x,
            "y2": pos[e.target].y,
        }
        for e in view.edges
    ]
    return pd.DataFrame(rows, columns=_EDGE_COLUMNS)


def graph_chart(view: GraphView, *, height: int = 600) -> alt.LayerChart:
    nodes = nodes_frame(view)
    edges = edges_frame(view)
    # Screen coordinates: y grows downwards.
    x_scale = alt.Scale(zero=False)
    y_scale = alt.Scale(zero=False, reverse=True)
    edge_layer = (
        alt.Chart(edges)
        .mark_rule(color="#94a3b8", opacity=0.6)
        .encode(
            x=alt.X("x:Q", scale=x_scale, axis=None),
            y=alt.Y("y:Q", scale=y_scale, axis=None),
            x2="x2:Q",
            y2="y2:Q",
            tooltip=["label:N", "source:N", "target:N"],
        )
    )
    node_layer = (
        alt.Chart(nodes)
        .mark_circle(size=600, opacity=0.9)
        .encode(
            x=alt.X("x:Q", scale=x_scale, axis=None),
            y=alt.Y("y:Q", scale=y_scale, axis=None),
            color=alt.Color("color:N", scale=None),
            tooltip=["label:N", "type:N", "preview:N"],
        )
    )
    label_layer = node_layer.mark_text(dy=22, color="#e2e8f0").encode(text="label:N")
    return alt.layer(edge_layer, node_layer, label_layer).properties(height=height)


def logs_frame(entries: Iterable[LogEntry]) -> pd.DataFrame:
    rows = [
        {
            "id": e.id,
            "timestamp": e.timestamp,
            "level": e.level.value,
            "service": e.service,
            "component": e.component or "",
            "message": e.message,
        }
        for e in entries
    ]
    df = pd.DataFrame(rows, columns=_LOG_COLUMNS)
    if not df.empty:
        df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    return df


def level_counts(entries: Iterable[LogEntry]) -> pd.DataFrame:
    df = logs_frame(entries)
    counts = df.groupby("level").size() if not df.empty else pd.Series(dtype="int64")
    order = [lvl.value for lvl in sorted(LogLevel, key=lambda lvl: lvl.rank)]
    return pd.DataFrame({"level": order, "count": [int(counts.get(lvl, 0)) for lvl in order]})


def level_chart(entries: Iterable[LogEntry]) -> alt.Chart:
    counts = level_counts(entries)
    return (
        alt.Chart(counts)
        .mark_bar()
        .encode(
            x=alt.X("level:N", sort=list(counts["level"]), title="Level"),
            y=alt.Y("count:Q", title="Entries"),
            color=alt.Color(
                "level:N",
                scale=alt.Scale(domain=list(LEVEL_COLORS), range=list(LEVEL_COLORS.values())),
                legend=None,
            ),
            tooltip=["level:N", "count:Q"],
        )
    )


def services_frame(services: Iterable[ServiceInfo]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "service": s.service_name,
                "display_name": s.display_name,
                "category": s.category.value,
                "log_count": s.log_count,
                "active": s.is_active,
                "last_activity": s.last_activity,
            }
            for s in services
        ],
        columns=["service", "display_name", "category", "log_count", "active", "last_activity"],
    )


def service_activity_chart(services: Iterable[ServiceInfo]) -> alt.Chart:
    df = services_frame(services)
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("log_count:Q", title="Log entries"),
            y=alt.Y("display_name:N", sort="-x", title="Service"),
            color=alt.Color("category:N", scale=alt.Scale(scheme="tableau10")),
            tooltip=["display_name:N", "category:N", "log_count:Q", "active:N"],
        )
    )
