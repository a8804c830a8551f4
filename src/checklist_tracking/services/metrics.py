from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime

from checklist_tracking.domain.constants import (
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_OVERDUE,
    STATUS_PENDING,
    TOLERANCE_HOURS,
)
from checklist_tracking.domain.errors import InvalidRequest
from checklist_tracking.domain.models import ChecklistInstance
from checklist_tracking.services.matrix import validate_range
from checklist_tracking.services.overdue import classify


def percent(part: int, total: int) -> int:
    """Whole percent, halves rounded up; 0 when there is nothing to count."""
    if total <= 0:
        return 0
    return int(part * 100 / total + 0.5)


@dataclass
class DeviceMetrics:
    device_id: str
    date_from: date
    date_to: date
    total: int = 0
    completed: int = 0
    in_progress: int = 0
    pending: int = 0
    overdue: int = 0

    @property
    def completion_rate(self) -> int:
        return percent(self.completed, self.total)

    @property
    def overdue_rate(self) -> int:
        return percent(self.overdue, self.total)

    def counts(self) -> dict[str, int]:
        return {
            STATUS_COMPLETED: self.completed,
            STATUS_IN_PROGRESS: self.in_progress,
            STATUS_PENDING: self.pending,
            STATUS_OVERDUE: self.overdue,
        }


def _count_into(
    metrics: DeviceMetrics,
    instances: Iterable[ChecklistInstance],
    now: datetime,
    tolerance_hours: int,
) -> None:
    for instance in instances:
        metrics.total += 1
        status = classify(instance, now, tolerance_hours)
        if status == STATUS_COMPLETED:
            metrics.completed += 1
        elif status == STATUS_OVERDUE:
            metrics.overdue += 1
        elif status == STATUS_IN_PROGRESS:
            metrics.in_progress += 1
        else:
            metrics.pending += 1


def device_metrics(
    instances: Iterable[ChecklistInstance],
    device_id: str | None,
    date_from: date | None,
    date_to: date | None,
    now: datetime,
    tolerance_hours: int = TOLERANCE_HOURS,
) -> DeviceMetrics:
    """Completion and overdue counters of one control point over ``[date_from, date_to]``.

    Each instance lands in exactly one bucket of ``classify``, so the buckets
    always sum to ``total``. Instances of other control points or outside the
    range are ignored.
    """
    if not (device_id or "").strip():
        raise InvalidRequest("device_id is required.")
    validate_range(date_from, date_to)

    selected = [
        instance
        for instance in instances
        if instance.device_id == device_id
        and date_from <= instance.scheduled_date <= date_to
    ]
    metrics = DeviceMetrics(device_id=device_id, date_from=date_from, date_to=date_to)
    _count_into(metrics, selected, now, tolerance_hours)
    return metrics
