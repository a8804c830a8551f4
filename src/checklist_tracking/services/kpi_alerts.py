from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
import logging
import sqlite3
from typing import Any

from checklist_tracking.data.repositories import (
    DeviceRepository,
    KpiAlertRepository,
    KpiRepository,
    TodolistRepository,
)
from checklist_tracking.domain.errors import InvalidRequest
from checklist_tracking.domain.models import ChecklistInstance, Device, Kpi, KpiAlert
from checklist_tracking.services.alerts import evaluate

LOGGER = logging.getLogger(__name__)


def check_kpi_alerts(
    kpi: Kpi,
    device: Device,
    recorded_value: Any,
    alerts: Iterable[KpiAlert],
    notifier: Any,
    log_store: Any,
    now: datetime,
) -> list[dict[str, Any]]:
    """Evaluate the active alerts of one KPI on one device against a recorded value.

    Every triggered alert gets a notice and a log row; failures are logged and
    reported in the returned outcomes, never raised.
    """
    outcomes: list[dict[str, Any]] = []
    for alert in alerts:
        if not alert.is_active or alert.kpi_id != kpi.id or alert.device_id != device.id:
            continue
        try:
            triggered = evaluate(recorded_value, kpi.fields, alert.conditions)
        except Exception as exc:
            LOGGER.error("Evaluating alert %s failed: %s", alert.id, exc)
            outcomes.append({"alert_id": alert.id, "triggered": False, "email_sent": False, "error": str(exc)})
            continue
        if not triggered:
            continue

        email_sent = False
        error_message = None
        LOGGER.info("Alert %s triggered on %s / %s", alert.id, kpi.name, device.name)
        try:
            notifier.send_alert_notice(
                alert.email,
                kpi.name,
                kpi.description,
                device.name,
                device.location,
                recorded_value,
                triggered,
            )
            email_sent = True
        except Exception as exc:
            error_message = str(exc)
            LOGGER.error("Alert notice %s to %s failed: %s", alert.id, alert.email, exc)

        try:
            log_store.log_trigger(
                alert.id,
                kpi.id,
                device.id,
                recorded_value,
                now,
                email_sent,
                now if email_sent else None,
                error_message,
            )
        except Exception as exc:
            LOGGER.error("Could not write alert log for %s: %s", alert.id, exc)

        outcomes.append(
            {
                "alert_id": alert.id,
                "triggered": True,
                "conditions": triggered,
                "email_sent": email_sent,
                "error": error_message,
            }
        )
    return outcomes


def submit_task_value(
    con: sqlite3.Connection,
    task_id: str,
    value: Any,
    notifier: Any,
    now: datetime,
) -> tuple[ChecklistInstance, list[dict[str, Any]]]:
    todolist_repo = TodolistRepository(con)
    task = todolist_repo.get_task(task_id)
    if not task:
        raise InvalidRequest(f"Unknown task: {task_id}")

    instance = todolist_repo.record_task_value(task_id, value, now)

    try:
        kpi = KpiRepository(con).get_kpi(task["kpi_id"])
        device = DeviceRepository(con).get_device(task["device_id"])
    except (sqlite3.Error, ValueError) as exc:
        LOGGER.error("Could not load control for task %s: %s", task_id, exc)
        return instance, []
    if kpi is None or device is None:
        LOGGER.warning("Skipping alert checks for task %s: control or control point missing", task_id)
        return instance, []

    alert_repo = KpiAlertRepository(con)
    try:
        alerts = alert_repo.list_alerts(kpi_id=kpi.id, device_id=device.id, active_only=True)
    except (sqlite3.Error, ValueError) as exc:
        LOGGER.error("Could not load alerts for task %s: %s", task_id, exc)
        return instance, []
    outcomes = check_kpi_alerts(kpi, device, value, alerts, notifier, alert_repo, now)
    return instance, outcomes
