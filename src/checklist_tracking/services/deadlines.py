from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any

from checklist_tracking.domain.constants import TOLERANCE_HOURS
from checklist_tracking.services.time_slots import hour_range, parse


def compute_deadline(
    scheduled_date: date,
    slot: Any,
    tolerance_hours: int = TOLERANCE_HOURS,
) -> datetime:
    """Deadline of a slot on ``scheduled_date``: slot end plus the tolerance.

    The day rolls over only when the wrapped hour lands below the slot's own end
    hour, so a night slot ending at 06:00 resolves to 09:00 of the scheduled day.
    Naive local wall-clock arithmetic, no timezone conversion.
    """
    if isinstance(scheduled_date, datetime):
        scheduled_date = scheduled_date.date()
    _, end_hour = hour_range(parse(slot))
    new_hour = end_hour + int(tolerance_hours)
    wrapped_hour = new_hour % 24
    deadline_date = scheduled_date
    if wrapped_hour < end_hour:
        deadline_date = scheduled_date + timedelta(days=1)
    return datetime.combine(deadline_date, time(hour=wrapped_hour))
