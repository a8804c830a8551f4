from __future__ import annotations

from datetime import date, datetime
from typing import Any

from checklist_tracking.domain.constants import STATUS_COMPLETED
from checklist_tracking.domain.models import TaskItem, TriggeredCondition
from checklist_tracking.services.alerts import describe_trigger


def _format_when(value: date | datetime | str | None) -> str:
    if value is None or value == "":
        return "n/a"
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y %H:%M")
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    return str(value)


def _format_task_line(task: TaskItem) -> str:
    name = task.kpi_name or task.kpi_id or "(unnamed control)"
    line = f"- {name} | Status: {task.status}"
    if task.kpi_description:
        line += f" | {task.kpi_description}"
    return line


def build_overdue_notice(
    device_name: str,
    device_location: str | None,
    scheduled_execution: date | datetime | str,
    tasks: list[TaskItem],
    deadline: datetime | None = None,
    todolist_id: str | None = None,
) -> tuple[str, str]:
    subject = f"Checklist overdue: {device_name}"
    pending = [task for task in tasks if task.status != STATUS_COMPLETED]
    completed = [task for task in tasks if task.status == STATUS_COMPLETED]

    lines = ["The following checklist was not completed in time.", ""]
    if todolist_id:
        lines.append(f"Checklist: {todolist_id}")
    lines.append(f"Control point: {device_name}")
    if device_location:
        lines.append(f"Location: {device_location}")
    lines.append(f"Scheduled: {_format_when(scheduled_execution)}")
    if deadline is not None:
        lines.append(f"Deadline: {_format_when(deadline)}")
    lines.append("")

    if pending:
        lines.append(f"Pending controls ({len(pending)}):")
        lines.extend(_format_task_line(task) for task in pending)
    else:
        lines.append("Pending controls: none.")

    if completed:
        lines.append("")
        lines.append(f"Completed controls ({len(completed)}):")
        lines.extend(_format_task_line(task) for task in completed)

    lines.append("")
    lines.append("Please complete the pending controls as soon as possible.")
    return subject, "\n".join(lines)


def build_alert_notice(
    kpi_name: str,
    kpi_description: str | None,
    device_name: str,
    device_location: str | None,
    triggered_value: Any,
    conditions: list[TriggeredCondition],
) -> tuple[str, str]:
    subject = f"Alert: {kpi_name} - {device_name}"
    lines = ["An alert condition was met on a recorded control.", ""]
    lines.append(f"Control: {kpi_name}")
    if kpi_description:
        lines.append(f"Description: {kpi_description}")
    lines.append(f"Control point: {device_name}")
    if device_location:
        lines.append(f"Location: {device_location}")
    lines.append(f"Recorded value: {triggered_value}")
    lines.append("")
    lines.append("Conditions met:")
    if conditions:
        lines.extend(f"- {describe_trigger(item)}" for item in conditions)
    else:
        lines.append("- none")
    lines.append("")
    lines.append("This alert was generated automatically.")
    return subject, "\n".join(lines)
