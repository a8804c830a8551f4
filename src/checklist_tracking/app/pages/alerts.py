from __future__ import annotations

import sqlite3

import pandas as pd
import streamlit as st

from checklist_tracking.data.repositories import (
    DeviceRepository,
    KpiAlertRepository,
    KpiRepository,
)
from checklist_tracking.domain.constants import (
    CONDITION_BOOLEAN,
    CONDITION_NUMERIC,
    CONDITION_SELECT,
    CONDITION_TEXT,
)
from checklist_tracking.domain.models import AlertCondition
from checklist_tracking.services.alerts import describe_condition

# Condition types offered per KPI field type.
_CONDITIONS_BY_FIELD = {
    "number": CONDITION_NUMERIC,
    "decimal": CONDITION_NUMERIC,
    "text": CONDITION_TEXT,
    "textarea": CONDITION_TEXT,
    "boolean": CONDITION_BOOLEAN,
    "select": CONDITION_SELECT,
}


def render(con: sqlite3.Connection) -> None:
    st.header("Control alerts")
    st.caption("Email a recipient when a recorded value meets an alert condition.")

    kpi_repo = KpiRepository(con)
    device_repo = DeviceRepository(con)
    alert_repo = KpiAlertRepository(con)

    kpis = kpi_repo.list_kpis()
    devices = device_repo.list_devices()
    if not kpis or not devices:
        st.info("Add control points and controls in Settings first.")
        return

    kpi_by_id = {kpi.id: kpi for kpi in kpis}
    device_by_id = {device.id: device for device in devices}

    st.subheader("New alert")
    kpi_id = st.selectbox(
        "Control",
        list(kpi_by_id.keys()),
        format_func=lambda value: kpi_by_id[value].name,
    )
    kpi = kpi_by_id[kpi_id]
    alertable = [field for field in kpi.fields if field.type in _CONDITIONS_BY_FIELD]
    if not alertable:
        st.caption("This control has no fields that support alerts.")
    else:
        field_ids = {field.id: field for field in alertable}
        field_id = st.selectbox(
            "Field",
            list(field_ids.keys()),
            format_func=lambda value: field_ids[value].name,
        )
        field = field_ids[field_id]
        condition_type = _CONDITIONS_BY_FIELD[field.type]
        with st.form("new_kpi_alert"):
            device_id = st.selectbox(
                "Control point",
                list(device_by_id.keys()),
                format_func=lambda value: device_by_id[value].name,
            )
            col_min, col_max = st.columns(2)
            min_value = col_min.text_input("Minimum (numeric)")
            max_value = col_max.text_input("Maximum (numeric)")
            match_text = st.text_input("Text contains")
            expected = st.selectbox("Expected value (yes/no)", ["Yes", "No"])
            match_values = st.multiselect("Alert on options", list(field.options))
            email = st.text_input("Recipient email")
            submitted = st.form_submit_button("Create alert")

        if submitted:
            try:
                condition = AlertCondition.from_dict(
                    {
                        "field_id": field.id,
                        "type": condition_type,
                        "min": min_value.strip().replace(",", ".") or None,
                        "max": max_value.strip().replace(",", ".") or None,
                        "match_text": match_text.strip() or None,
                        "boolean_value": expected == "Yes",
                        "match_values": match_values,
                    }
                )
                alert_repo.create_alert(kpi.id, device_id, email, [condition])
                st.success("Alert created.")
                st.rerun()
            except (ValueError, sqlite3.Error) as exc:
                st.error(str(exc))

    st.divider()
    st.subheader("Configured alerts")
    alerts = alert_repo.list_alerts()
    if not alerts:
        st.caption("No alerts configured.")
    else:
        rows = []
        for alert in alerts:
            rows.append(
                {
                    "Control": kpi_by_id[alert.kpi_id].name if alert.kpi_id in kpi_by_id else alert.kpi_id,
                    "Control point": (
                        device_by_id[alert.device_id].name
                        if alert.device_id in device_by_id
                        else alert.device_id
                    ),
                    "Email": alert.email,
                    "Conditions": "; ".join(describe_condition(item) for item in alert.conditions),
                    "Active": alert.is_active,
                }
            )
        st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

        alert_labels = {
            alert.id: f"{rows[index]['Control']} / {rows[index]['Control point']} -> {alert.email}"
            for index, alert in enumerate(alerts)
        }
        selected = st.selectbox(
            "Alert",
            list(alert_labels.keys()),
            format_func=lambda value: alert_labels[value],
        )
        selected_alert = next(alert for alert in alerts if alert.id == selected)
        label = "Deactivate" if selected_alert.is_active else "Activate"
        if st.button(label):
            alert_repo.set_active(selected_alert.id, not selected_alert.is_active)
            st.rerun()

    st.divider()
    st.subheader("Alert history")
    logs = alert_repo.list_logs(limit=100)
    if not logs:
        st.caption("No alerts triggered yet.")
        return
    logs_df = pd.DataFrame(logs)
    cols = ["triggered_at", "kpi_name", "device_name", "email", "email_sent", "error_message"]
    logs_df = logs_df[[c for c in cols if c in logs_df.columns]].rename(
        columns={
            "triggered_at": "Triggered",
            "kpi_name": "Control",
            "device_name": "Control point",
            "email": "Email",
            "email_sent": "Sent",
            "error_message": "Error",
        }
    )
    st.dataframe(logs_df, use_container_width=True, hide_index=True)
