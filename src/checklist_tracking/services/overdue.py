from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from checklist_tracking.domain.constants import (
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_OVERDUE,
    STATUS_PENDING,
    TOLERANCE_HOURS,
)
from checklist_tracking.domain.models import ChecklistInstance, TaskItem
from checklist_tracking.services.deadlines import compute_deadline


def derive_status(tasks: Iterable[TaskItem]) -> str:
    items = list(tasks)
    completed = sum(1 for task in items if task.is_completed)
    if completed == len(items):
        return STATUS_COMPLETED
    if completed > 0:
        return STATUS_IN_PROGRESS
    return STATUS_PENDING


def effective_status(instance: ChecklistInstance) -> str:
    """Status derived from the tasks; the stored status when no tasks are loaded."""
    if instance.tasks:
        return derive_status(instance.tasks)
    return instance.status


def instance_deadline(
    instance: ChecklistInstance,
    tolerance_hours: int = TOLERANCE_HOURS,
) -> datetime:
    return compute_deadline(instance.scheduled_date, instance.time_slot, tolerance_hours)


def is_overdue(
    instance: ChecklistInstance,
    now: datetime,
    tolerance_hours: int = TOLERANCE_HOURS,
) -> bool:
    if effective_status(instance) == STATUS_COMPLETED:
        return False
    return now > instance_deadline(instance, tolerance_hours)


def classify(
    instance: ChecklistInstance,
    now: datetime,
    tolerance_hours: int = TOLERANCE_HOURS,
) -> str:
    status = effective_status(instance)
    if status == STATUS_COMPLETED:
        return STATUS_COMPLETED
    if is_overdue(instance, now, tolerance_hours):
        return STATUS_OVERDUE
    if status == STATUS_IN_PROGRESS:
        return STATUS_IN_PROGRESS
    return STATUS_PENDING


def has_alert_recipient(instance: ChecklistInstance) -> bool:
    alert = instance.alert
    return bool(alert and alert.is_active and (alert.email or "").strip())


def find_overdue_with_alerts(
    instances: Iterable[ChecklistInstance],
    now: datetime,
    tolerance_hours: int = TOLERANCE_HOURS,
) -> list[ChecklistInstance]:
    return [
        instance
        for instance in instances
        if has_alert_recipient(instance)
        and effective_status(instance) != STATUS_COMPLETED
        and is_overdue(instance, now, tolerance_hours)
    ]
