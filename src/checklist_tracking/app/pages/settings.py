from __future__ import annotations

import sqlite3

import pandas as pd
import streamlit as st

from checklist_tracking.data.repositories import (
    DeviceRepository,
    KpiRepository,
    TodolistAlertRepository,
)
from checklist_tracking.domain.constants import (
    FIELD_TYPES,
    STANDARD_SLOT_HOURS,
    STANDARD_SLOT_LABELS,
    TOLERANCE_HOURS,
)
from checklist_tracking.domain.models import TimeSlot
from checklist_tracking.integrations.email_sender import notifications_enabled, smtp_config_status
from checklist_tracking.services.deadlines import compute_deadline


def _render_email(con: sqlite3.Connection) -> None:
    st.subheader("Email notifications")

    enabled_flag = notifications_enabled()
    st.checkbox(
        "Scheduled overdue notices enabled (env)",
        value=enabled_flag,
        disabled=True,
        help="Set CHECKLIST_TRACKING_EMAIL_NOTIFICATIONS_ENABLED in the environment.",
    )

    status = smtp_config_status()
    if status.get("configured"):
        smtp_config = status.get("config") or {}
        masked_user = (smtp_config.get("user") or "").replace("@", " [at] ")
        masked_from = (smtp_config.get("from_address") or "").replace("@", " [at] ")
        st.success("SMTP configured.")
        st.markdown(
            "\n".join(
                [
                    f"- Host: {smtp_config.get('host')}",
                    f"- Port: {smtp_config.get('port')}",
                    f"- TLS: {smtp_config.get('tls')}",
                    f"- User: {masked_user or 'none'}",
                    f"- From: {masked_from or 'none'}",
                ]
            )
        )
    else:
        missing = ", ".join(status.get("missing") or [])
        st.warning(f"SMTP is not configured. Missing: {missing or 'unknown'}")

    logs = TodolistAlertRepository(con).list_logs(limit=50)
    if logs:
        logs_df = pd.DataFrame(logs)
        cols = ["sent_at", "device_name", "scheduled_execution", "email", "error_message"]
        logs_df = logs_df[[c for c in cols if c in logs_df.columns]].rename(
            columns={
                "sent_at": "Sent",
                "device_name": "Control point",
                "scheduled_execution": "Scheduled",
                "email": "Recipient",
                "error_message": "Error",
            }
        )
        st.dataframe(logs_df, use_container_width=True, hide_index=True)
    else:
        st.caption("No overdue notices sent yet.")


def _render_slots() -> None:
    st.subheader("Time slots")
    st.caption(f"Deadlines allow {TOLERANCE_HOURS} hours after the end of the slot.")
    sample_day = pd.Timestamp.today().date()
    rows = []
    for name, (start, end) in STANDARD_SLOT_HOURS.items():
        deadline = compute_deadline(sample_day, TimeSlot.standard(name))
        rows.append(
            {
                "Slot": STANDARD_SLOT_LABELS[name],
                "Key": name,
                "Start": f"{start:02d}:00",
                "End": f"{end:02d}:00",
                "Deadline (today)": deadline.strftime("%d/%m %H:%M"),
            }
        )
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)


def _render_devices(con: sqlite3.Connection) -> None:
    st.subheader("Control points")
    repo = DeviceRepository(con)
    devices = repo.list_devices()
    if devices:
        st.dataframe(
            pd.DataFrame([{"Name": d.name, "Location": d.location} for d in devices]),
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.info("No control points defined.")

    with st.form("add_device"):
        name = st.text_input("Name")
        location = st.text_input("Location")
        submitted = st.form_submit_button("Add control point")
        if submitted:
            try:
                repo.create_device(name, location.strip() or None)
                st.success("Control point added.")
                st.rerun()
            except (ValueError, sqlite3.Error) as exc:
                st.error(str(exc))


def _render_kpis(con: sqlite3.Connection) -> None:
    st.subheader("Controls")
    repo = KpiRepository(con)
    kpis = repo.list_kpis()
    if kpis:
        st.dataframe(
            pd.DataFrame(
                [
                    {
                        "Name": kpi.name,
                        "Description": kpi.description,
                        "Fields": ", ".join(f"{f.name} ({f.type})" for f in kpi.fields),
                    }
                    for kpi in kpis
                ]
            ),
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.info("No controls defined.")

    st.caption("Define fields with the editor below; options are comma separated.")
    fields_df = st.data_editor(
        pd.DataFrame(
            [{"name": "value", "type": "number", "required": True, "min": None, "max": None, "options": ""}]
        ),
        num_rows="dynamic",
        column_config={
            "type": st.column_config.SelectboxColumn("type", options=list(FIELD_TYPES)),
        },
        key="kpi_fields_editor",
    )
    with st.form("add_kpi"):
        name = st.text_input("Control name")
        description = st.text_area("Description", max_chars=250)
        submitted = st.form_submit_button("Add control")
        if submitted:
            fields = []
            for row in fields_df.to_dict("records"):
                if not str(row.get("name") or "").strip():
                    continue
                fields.append(
                    {
                        "name": str(row["name"]).strip(),
                        "type": row.get("type") or "text",
                        "required": bool(row.get("required")),
                        "min": None if pd.isna(row.get("min")) else row.get("min"),
                        "max": None if pd.isna(row.get("max")) else row.get("max"),
                        "options": [
                            item.strip()
                            for item in str(row.get("options") or "").split(",")
                            if item.strip()
                        ],
                    }
                )
            try:
                repo.create_kpi(name, description.strip() or None, fields)
                st.success("Control added.")
                st.rerun()
            except (ValueError, sqlite3.Error) as exc:
                st.error(str(exc))


def render(con: sqlite3.Connection) -> None:
    st.header("Settings")
    st.caption("Control points, controls, time slots and email delivery.")

    _render_email(con)
    st.divider()
    _render_slots()
    st.divider()
    _render_devices(con)
    st.divider()
    _render_kpis(con)
