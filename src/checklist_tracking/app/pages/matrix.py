from __future__ import annotations

from datetime import date, datetime, timedelta
import sqlite3

import altair as alt
import pandas as pd
import streamlit as st

from checklist_tracking.data.repositories import DeviceRepository
from checklist_tracking.domain.constants import (
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_LABELS,
    STATUS_OVERDUE,
    STATUS_PENDING,
)
from checklist_tracking.domain.errors import Forbidden, InvalidRequest
from checklist_tracking.services.access import resolve_role
from checklist_tracking.services.export import (
    aggregated_to_frame,
    matrix_to_frame,
    to_csv_bytes,
    to_xlsx_bytes,
    todolists_to_frame,
)
from checklist_tracking.services.matrix import AggregatedGroup
from checklist_tracking.services.metrics import percent
from checklist_tracking.services.reports import load_device_metrics, load_matrix, load_todolists

STATUS_COLORS = {
    STATUS_LABELS[STATUS_PENDING]: "#F2A541",
    STATUS_LABELS[STATUS_IN_PROGRESS]: "#4C78A8",
    STATUS_LABELS[STATUS_COMPLETED]: "#54A24B",
}
METRIC_COLORS = {
    **STATUS_COLORS,
    STATUS_LABELS[STATUS_OVERDUE]: "#E45756",
}


def _status_chart_frame(rows: list[AggregatedGroup]) -> pd.DataFrame:
    data = []
    for row in rows:
        for status in (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED):
            data.append(
                {
                    "control": row.label,
                    "status": STATUS_LABELS[status],
                    "count": row.status_counts.get(status, 0),
                }
            )
    return pd.DataFrame(data, columns=["control", "status", "count"])


def _render_device_metrics(
    con: sqlite3.Connection,
    date_from: date,
    date_to: date,
    now: datetime,
) -> None:
    st.subheader("Control point metrics")
    devices = DeviceRepository(con).list_devices()
    if not devices:
        st.info("No control points defined.")
        return
    device_labels = {device.id: device.name for device in devices}
    device_id = st.selectbox(
        "Control point",
        options=list(device_labels.keys()),
        format_func=lambda value: device_labels.get(value, value),
        key="metrics_device",
    )
    try:
        metrics = load_device_metrics(con, device_id, date_from, date_to, now)
    except InvalidRequest as exc:
        st.warning(str(exc))
        return
    if not metrics.total:
        st.info("No checklists for this control point in the selected range.")
        return

    cols = st.columns(4)
    cols[0].metric("Checklists", metrics.total)
    cols[1].metric("Completed", metrics.completed, f"{metrics.completion_rate}%")
    cols[2].metric("Open", metrics.pending + metrics.in_progress)
    cols[3].metric("Overdue", metrics.overdue, f"{metrics.overdue_rate}%", delta_color="inverse")

    share_df = pd.DataFrame(
        [
            {
                "status": STATUS_LABELS[status],
                "count": count,
                "percent": percent(count, metrics.total),
            }
            for status, count in metrics.counts().items()
            if count
        ]
    )
    pie = (
        alt.Chart(share_df)
        .mark_arc(innerRadius=50)
        .encode(
            theta=alt.Theta("count:Q"),
            color=alt.Color(
                "status:N",
                scale=alt.Scale(
                    domain=list(METRIC_COLORS.keys()),
                    range=list(METRIC_COLORS.values()),
                ),
                legend=alt.Legend(title=None),
            ),
            tooltip=[
                alt.Tooltip("status:N", title="Status"),
                alt.Tooltip("count:Q", title="Count"),
                alt.Tooltip("percent:Q", title="%"),
            ],
        )
    )
    st.altair_chart(pie, use_container_width=True)


def render(con: sqlite3.Connection) -> None:
    st.header("Scheduling matrix")
    st.caption("Scheduled checklists grouped by control and control point.")

    role = resolve_role(con)
    today = date.today()
    col_from, col_to = st.columns(2)
    date_from = col_from.date_input("From", value=today - timedelta(days=30))
    date_to = col_to.date_input("To", value=today + timedelta(days=30))

    now = datetime.now()
    try:
        matrix = load_matrix(con, date_from, date_to, role, now)
    except Forbidden as exc:
        st.error(str(exc))
        return
    except InvalidRequest as exc:
        st.warning(str(exc))
        return

    if not matrix.groups:
        st.info("No checklists scheduled in the selected range.")
        return

    totals = {
        "scheduled": sum(row.total_scheduled_count for row in matrix.aggregated),
        "remaining": sum(row.future_remaining_count for row in matrix.aggregated),
        "completed": sum(row.status_counts.get(STATUS_COMPLETED, 0) for row in matrix.aggregated),
    }
    metric_cols = st.columns(3)
    metric_cols[0].metric("Scheduled", totals["scheduled"])
    metric_cols[1].metric("Still to run", totals["remaining"])
    metric_cols[2].metric("Completed", totals["completed"])

    st.subheader("By control")
    aggregated_df = aggregated_to_frame(matrix.aggregated)
    st.dataframe(aggregated_df, use_container_width=True, hide_index=True)

    chart_df = _status_chart_frame(matrix.aggregated)
    chart = (
        alt.Chart(chart_df)
        .mark_bar()
        .encode(
            x=alt.X("count:Q", title="Checklists", stack="zero"),
            y=alt.Y("control:N", title=None, sort=[row.label for row in matrix.aggregated]),
            color=alt.Color(
                "status:N",
                scale=alt.Scale(
                    domain=list(STATUS_COLORS.keys()),
                    range=list(STATUS_COLORS.values()),
                ),
                legend=alt.Legend(title=None),
            ),
            tooltip=[
                alt.Tooltip("control:N", title="Control"),
                alt.Tooltip("status:N", title="Status"),
                alt.Tooltip("count:Q", title="Count"),
            ],
        )
        .properties(height=max(160, 28 * len(matrix.aggregated)))
    )
    st.altair_chart(chart, use_container_width=True)

    st.subheader("By control point")
    groups_df = matrix_to_frame(matrix.groups)
    for row in matrix.aggregated:
        if row.device_count < 2:
            continue
        with st.expander(f"{row.label} ({row.device_count} control points)"):
            st.dataframe(
                matrix_to_frame(row.device_breakdown),
                use_container_width=True,
                hide_index=True,
            )
    st.dataframe(groups_df, use_container_width=True, hide_index=True)

    _render_device_metrics(con, date_from, date_to, now)

    suffix = f"{date_from.isoformat()}_{date_to.isoformat()}"
    download_cols = st.columns(2)
    download_cols[0].download_button(
        "Download CSV",
        data=to_csv_bytes(groups_df),
        file_name=f"checklist_matrix_{suffix}.csv",
        mime="text/csv",
    )
    download_cols[1].download_button(
        "Download Excel",
        data=to_xlsx_bytes(
            {
                "Matrix": groups_df,
                "By control": aggregated_df,
                "Checklists": todolists_to_frame(load_todolists(con, date_from, date_to), now),
            }
        ),
        file_name=f"checklist_matrix_{suffix}.xlsx",
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
