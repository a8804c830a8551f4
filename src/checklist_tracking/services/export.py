from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
import io

import pandas as pd

from checklist_tracking.domain.constants import (
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_LABELS,
    STATUS_PENDING,
    TOLERANCE_HOURS,
)
from checklist_tracking.domain.models import ChecklistInstance
from checklist_tracking.services.matrix import AggregatedGroup, MatrixGroup
from checklist_tracking.services.overdue import classify, effective_status, instance_deadline
from checklist_tracking.services.time_slots import format_time_slot

MATRIX_COLUMNS = [
    "control",
    "group_type",
    "control_point",
    "total_scheduled",
    "future_remaining",
    "pending",
    "in_progress",
    "completed",
    "first_scheduled",
    "last_scheduled",
    "next_scheduled",
    "frequency_days",
    "time_slot_kinds",
    "custom_window",
    "last_deadline",
    "categories",
]

AGGREGATED_COLUMNS = [
    "control",
    "group_type",
    "control_points",
    "total_scheduled",
    "future_remaining",
    "pending",
    "in_progress",
    "completed",
    "first_scheduled",
    "last_scheduled",
    "next_scheduled",
    "frequency_days",
    "time_slot_kinds",
    "custom_window",
    "last_deadline",
    "categories",
]

TODOLIST_COLUMNS = [
    "todolist_id",
    "control_point",
    "location",
    "scheduled",
    "time_slot",
    "deadline",
    "status",
    "classification",
    "completed_tasks",
    "total_tasks",
    "category",
    "alert_email",
]


def _custom_window(start: int | None, end: int | None) -> str | None:
    if start is None or end is None:
        return None
    return f"{start:02d}:00-{end:02d}:00"


def _statistics(item: MatrixGroup | AggregatedGroup) -> dict[str, object]:
    return {
        "total_scheduled": item.total_scheduled_count,
        "future_remaining": item.future_remaining_count,
        "pending": item.status_counts.get(STATUS_PENDING, 0),
        "in_progress": item.status_counts.get(STATUS_IN_PROGRESS, 0),
        "completed": item.status_counts.get(STATUS_COMPLETED, 0),
        "first_scheduled": item.first_scheduled_execution,
        "last_scheduled": item.last_scheduled_execution,
        "next_scheduled": item.next_scheduled_execution,
        "frequency_days": (
            round(item.frequency_days, 2) if item.frequency_days is not None else None
        ),
        "time_slot_kinds": ", ".join(item.time_slot_kinds),
        "custom_window": _custom_window(item.custom_min_start, item.custom_max_end),
        "last_deadline": item.last_end_day_time,
        "categories": ", ".join(item.categories),
    }


def matrix_to_frame(groups: Iterable[MatrixGroup]) -> pd.DataFrame:
    rows = [
        {
            "control": group.label,
            "group_type": group.group_type,
            "control_point": group.device_name,
            **_statistics(group),
        }
        for group in groups
    ]
    return pd.DataFrame(rows, columns=MATRIX_COLUMNS)


def aggregated_to_frame(rows: Iterable[AggregatedGroup]) -> pd.DataFrame:
    data = [
        {
            "control": row.label,
            "group_type": row.group_type,
            "control_points": row.device_count,
            **_statistics(row),
        }
        for row in rows
    ]
    return pd.DataFrame(data, columns=AGGREGATED_COLUMNS)


def todolists_to_frame(
    instances: Iterable[ChecklistInstance],
    now: datetime,
    tolerance_hours: int = TOLERANCE_HOURS,
) -> pd.DataFrame:
    rows = []
    for instance in instances:
        rows.append(
            {
                "todolist_id": instance.id,
                "control_point": instance.device_name or instance.device_id,
                "location": instance.device_location,
                "scheduled": instance.scheduled_date,
                "time_slot": format_time_slot(instance.time_slot),
                "deadline": instance_deadline(instance, tolerance_hours),
                "status": STATUS_LABELS.get(effective_status(instance), effective_status(instance)),
                "classification": classify(instance, now, tolerance_hours),
                "completed_tasks": sum(1 for task in instance.tasks if task.is_completed),
                "total_tasks": len(instance.tasks),
                "category": instance.category,
                "alert_email": instance.alert.email if instance.alert else None,
            }
        )
    return pd.DataFrame(rows, columns=TODOLIST_COLUMNS)


def to_csv_bytes(df: pd.DataFrame) -> bytes:
    return df.to_csv(index=False).encode("utf-8")


def to_xlsx_bytes(sheets: dict[str, pd.DataFrame]) -> bytes:
    """One worksheet per entry; sheet names are cut to Excel's 31 characters."""
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for name, df in sheets.items():
            df.to_excel(writer, sheet_name=name[:31] or "Sheet", index=False)
    return buffer.getvalue()
