from __future__ import annotations

from datetime import date, datetime, timedelta
import sqlite3
from typing import Any

import streamlit as st

from checklist_tracking.data.repositories import (
    DeviceRepository,
    KpiRepository,
    TodolistAlertRepository,
    TodolistRepository,
)
from checklist_tracking.domain.constants import STANDARD_SLOT_HOURS, STANDARD_SLOT_LABELS
from checklist_tracking.domain.errors import InvalidRequest, InvalidTimeSlot
from checklist_tracking.domain.models import ChecklistInstance, KpiField, TimeSlot
from checklist_tracking.integrations.email_sender import EmailNotifier
from checklist_tracking.services.export import todolists_to_frame
from checklist_tracking.services.kpi_alerts import submit_task_value
from checklist_tracking.services.overdue_alerts import process_overdue_instances
from checklist_tracking.services.reports import load_overdue_with_alerts, load_todolists
from checklist_tracking.services.time_slots import format_time_slot


def _date_series(start: date, end: date, every_days: int) -> list[date]:
    dates = []
    current = start
    while current <= end:
        dates.append(current)
        current += timedelta(days=every_days)
    return dates


def _field_input(field: KpiField, key: str) -> Any:
    label = f"{field.name}{' *' if field.required else ''}"
    if field.type in ("number", "decimal"):
        return st.number_input(
            label,
            min_value=field.min,
            max_value=field.max,
            value=None,
            step=0.01 if field.type == "decimal" else 1.0,
            key=key,
        )
    if field.type == "boolean":
        return st.checkbox(label, key=key)
    if field.type == "select":
        return st.selectbox(label, [""] + list(field.options), key=key) or None
    if field.type == "date":
        picked = st.date_input(label, value=None, key=key)
        return picked.isoformat() if picked else None
    if field.type == "textarea":
        return st.text_area(label, key=key) or None
    return st.text_input(label, key=key) or None


def _render_schedule(con: sqlite3.Connection) -> None:
    st.subheader("Schedule checklists")
    devices = DeviceRepository(con).list_devices()
    kpis = KpiRepository(con).list_kpis()
    if not devices or not kpis:
        st.info("Add control points and controls in Settings first.")
        return

    device_labels = {device.id: device.name for device in devices}
    kpi_labels = {kpi.id: kpi.name for kpi in kpis}

    with st.form("schedule_todolists"):
        device_ids = st.multiselect(
            "Control points",
            list(device_labels.keys()),
            format_func=lambda value: device_labels[value],
        )
        kpi_ids = st.multiselect(
            "Controls",
            list(kpi_labels.keys()),
            format_func=lambda value: kpi_labels[value],
        )
        col_start, col_end, col_every = st.columns(3)
        start = col_start.date_input("First date", value=date.today())
        end = col_end.date_input("Last date", value=date.today())
        every_days = col_every.number_input("Every N days", min_value=1, step=1, value=1)

        slot_mode = st.radio("Time slot", ["Standard", "Custom"], horizontal=True)
        standard_names = st.multiselect(
            "Standard slots",
            list(STANDARD_SLOT_HOURS.keys()),
            default=["morning"],
            format_func=lambda value: STANDARD_SLOT_LABELS[value],
        )
        col_slot_start, col_slot_end = st.columns(2)
        custom_start = col_slot_start.number_input("Custom start hour", min_value=0, max_value=23, value=8)
        custom_end = col_slot_end.number_input("Custom end hour", min_value=0, max_value=23, value=14)

        category = st.text_input("Category")
        alert_email = st.text_input("Overdue alert email")
        submitted = st.form_submit_button("Schedule")

    if not submitted:
        return
    try:
        if slot_mode == "Custom":
            slots = [TimeSlot.custom(int(custom_start), int(custom_end))]
        else:
            slots = [TimeSlot.standard(name) for name in standard_names]
        created = TodolistRepository(con).schedule_todolists(
            device_ids,
            _date_series(start, end, int(every_days)),
            slots,
            kpi_ids,
            category=category.strip() or None,
            alert_email=alert_email.strip() or None,
        )
        st.success(f"Scheduled {len(created)} checklists.")
    except (InvalidTimeSlot, ValueError, sqlite3.Error) as exc:
        st.error(str(exc))


def _render_overdue(con: sqlite3.Connection, now: datetime) -> None:
    st.subheader("Overdue with alert")
    overdue = load_overdue_with_alerts(con, now)
    if not overdue:
        st.caption("No overdue checklists waiting for a notice.")
        return

    st.dataframe(todolists_to_frame(overdue, now), use_container_width=True, hide_index=True)
    if st.button("Send notices now"):
        result = process_overdue_instances(
            overdue,
            EmailNotifier(),
            TodolistAlertRepository(con),
            datetime.now(),
        )
        sent = result.processed_count - result.error_count
        if sent:
            st.success(f"Sent {sent} of {result.processed_count} notices.")
        for detail in result.details:
            if detail["error"]:
                st.error(f"{detail['todolist_id']} ({detail['email']}): {detail['error']}")


def _render_record(con: sqlite3.Connection, instances: list[ChecklistInstance]) -> None:
    st.subheader("Record values")
    open_instances = [instance for instance in instances if any(not t.is_completed for t in instance.tasks)]
    if not open_instances:
        st.caption("No open checklists in the selected range.")
        return

    labels = {
        instance.id: (
            f"{instance.device_name or instance.device_id} | "
            f"{instance.scheduled_date.isoformat()} | {format_time_slot(instance.time_slot)}"
        )
        for instance in open_instances
    }
    selected_id = st.selectbox(
        "Checklist",
        list(labels.keys()),
        format_func=lambda value: labels[value],
    )
    instance = next(item for item in open_instances if item.id == selected_id)
    pending = [task for task in instance.tasks if not task.is_completed]
    task_labels = {task.id: task.kpi_name or task.kpi_id for task in pending}
    task_id = st.selectbox(
        "Control",
        list(task_labels.keys()),
        format_func=lambda value: task_labels[value],
    )
    task = next(item for item in pending if item.id == task_id)
    kpi = KpiRepository(con).get_kpi(task.kpi_id)
    if kpi is None:
        st.warning("This control no longer exists.")
        return

    with st.form(f"record_{task.id}"):
        values = [
            {"id": field.id, "name": field.name, "value": _field_input(field, f"{task.id}_{field.id}")}
            for field in kpi.fields
        ]
        submitted = st.form_submit_button("Save")

    if not submitted:
        return
    missing = [item["name"] for field, item in zip(kpi.fields, values) if field.required and item["value"] in (None, "")]
    if missing:
        st.error("Required fields missing: " + ", ".join(missing))
        return
    try:
        updated, outcomes = submit_task_value(con, task.id, values, EmailNotifier(), datetime.now())
    except (InvalidRequest, ValueError, sqlite3.Error) as exc:
        st.error(str(exc))
        return
    st.success(f"Saved. Checklist status: {updated.status}.")
    for outcome in outcomes:
        if outcome.get("error"):
            st.warning(f"Alert triggered but notice failed: {outcome['error']}")
        elif outcome.get("triggered"):
            st.info("Alert triggered and notified.")


def render(con: sqlite3.Connection) -> None:
    st.header("Checklists")
    now = datetime.now()

    _render_schedule(con)
    st.divider()

    st.subheader("Scheduled")
    col_from, col_to = st.columns(2)
    date_from = col_from.date_input("From", value=date.today() - timedelta(days=7), key="todolists_from")
    date_to = col_to.date_input("To", value=date.today() + timedelta(days=7), key="todolists_to")
    try:
        instances = load_todolists(con, date_from, date_to)
    except InvalidRequest as exc:
        st.warning(str(exc))
        return
    if instances:
        st.dataframe(todolists_to_frame(instances, now), use_container_width=True, hide_index=True)
    else:
        st.info("No checklists in the selected range.")

    st.divider()
    _render_overdue(con, now)
    st.divider()
    _render_record(con, instances)
