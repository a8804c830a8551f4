from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
import logging
from typing import Any

from checklist_tracking.domain.constants import TOLERANCE_HOURS
from checklist_tracking.domain.models import ChecklistInstance, OverdueRunResult
from checklist_tracking.services.overdue import instance_deadline

LOGGER = logging.getLogger(__name__)


def _write_log(
    log_store: Any,
    instance: ChecklistInstance,
    now: datetime,
    error_message: str | None,
) -> None:
    alert = instance.alert
    try:
        log_store.log_sent(
            instance.id,
            alert.id if alert else None,
            alert.email if alert else "",
            now,
            error_message,
        )
    except Exception as exc:  # log storage must not break the batch
        LOGGER.error("Could not write overdue alert log for %s: %s", instance.id, exc)


def send_overdue_notification(
    instance: ChecklistInstance,
    notifier: Any,
    log_store: Any,
    now: datetime,
    tolerance_hours: int = TOLERANCE_HOURS,
) -> None:
    """Send the overdue notice for one instance and record the attempt.

    A successful send deactivates the alert so the next run skips it. A failed
    send is logged with its error message and then re-raised.
    """
    alert = instance.alert
    if alert is None or not (alert.email or "").strip():
        raise ValueError(f"Checklist {instance.id} has no alert recipient.")

    LOGGER.info("Sending overdue notice for %s to %s", instance.id, alert.email)
    try:
        notifier.send_overdue_notice(
            alert.email,
            instance.device_name or instance.device_id,
            instance.device_location,
            instance.scheduled_date,
            list(instance.tasks),
            deadline=instance_deadline(instance, tolerance_hours),
            todolist_id=instance.id,
        )
    except Exception as exc:
        LOGGER.error("Overdue notice for %s to %s failed: %s", instance.id, alert.email, exc)
        _write_log(log_store, instance, now, str(exc))
        raise

    _write_log(log_store, instance, now, None)
    try:
        log_store.deactivate(alert.id)
    except Exception as exc:
        LOGGER.error("Could not deactivate alert %s: %s", alert.id, exc)


def process_overdue_instances(
    instances: Iterable[ChecklistInstance],
    notifier: Any,
    log_store: Any,
    now: datetime,
    tolerance_hours: int = TOLERANCE_HOURS,
) -> OverdueRunResult:
    result = OverdueRunResult()
    for instance in instances:
        result.processed_count += 1
        try:
            send_overdue_notification(instance, notifier, log_store, now, tolerance_hours)
        except Exception as exc:
            result.error_count += 1
            result.details.append(
                {
                    "todolist_id": instance.id,
                    "email": instance.alert.email if instance.alert else None,
                    "error": str(exc),
                }
            )
        else:
            result.details.append(
                {
                    "todolist_id": instance.id,
                    "email": instance.alert.email if instance.alert else None,
                    "error": None,
                }
            )
    LOGGER.info(
        "Overdue run: %s processed, %s errors",
        result.processed_count,
        result.error_count,
    )
    return result
