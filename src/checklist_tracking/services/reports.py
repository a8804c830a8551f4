from __future__ import annotations

from datetime import date, datetime
import logging
import sqlite3

from checklist_tracking.data.repositories import (
    DeviceRepository,
    KpiRepository,
    TodolistRepository,
)
from checklist_tracking.domain.constants import TOLERANCE_HOURS
from checklist_tracking.domain.errors import InvalidRequest
from checklist_tracking.domain.models import ChecklistInstance
from checklist_tracking.services.access import require_admin
from checklist_tracking.services.matrix import MatrixResult, build_matrix, validate_range
from checklist_tracking.services.metrics import DeviceMetrics, device_metrics
from checklist_tracking.services.overdue import find_overdue_with_alerts

LOGGER = logging.getLogger(__name__)


def load_matrix(
    con: sqlite3.Connection,
    date_from: date | None,
    date_to: date | None,
    caller_role: str | None,
    now: datetime,
) -> MatrixResult:
    """Admin-only scheduling matrix for ``[date_from, date_to]``."""
    require_admin(caller_role)
    validate_range(date_from, date_to)

    instances = TodolistRepository(con).list_in_range(date_from, date_to)
    kpi_ids = {kpi_id for instance in instances for kpi_id in instance.kpi_ids}
    device_ids = {instance.device_id for instance in instances}
    result = build_matrix(
        instances,
        date_from,
        date_to,
        now,
        kpi_names=KpiRepository(con).names_by_id(kpi_ids),
        device_names=DeviceRepository(con).names_by_id(device_ids),
    )
    LOGGER.info(
        "Matrix %s..%s: %s instances, %s groups",
        date_from,
        date_to,
        len(instances),
        len(result.groups),
    )
    return result


def load_todolists(
    con: sqlite3.Connection,
    date_from: date | None,
    date_to: date | None,
) -> list[ChecklistInstance]:
    validate_range(date_from, date_to)
    return TodolistRepository(con).list_in_range(date_from, date_to)


def load_overdue_with_alerts(
    con: sqlite3.Connection,
    now: datetime,
    tolerance_hours: int = TOLERANCE_HOURS,
) -> list[ChecklistInstance]:
    candidates = TodolistRepository(con).list_overdue_candidates(now)
    return find_overdue_with_alerts(candidates, now, tolerance_hours)


def load_device_metrics(
    con: sqlite3.Connection,
    device_id: str | None,
    date_from: date | None,
    date_to: date | None,
    now: datetime,
    tolerance_hours: int = TOLERANCE_HOURS,
) -> DeviceMetrics:
    if not (device_id or "").strip():
        raise InvalidRequest("device_id is required.")
    validate_range(date_from, date_to)
    instances = TodolistRepository(con).list_in_range(date_from, date_to)
    return device_metrics(instances, device_id, date_from, date_to, now, tolerance_hours)
