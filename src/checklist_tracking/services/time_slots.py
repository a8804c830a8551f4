from __future__ import annotations

from collections.abc import Mapping
import re
from typing import Any

from checklist_tracking.domain.constants import (
    SLOT_KIND_CUSTOM,
    SLOT_KIND_STANDARD,
    STANDARD_SLOT_ALIASES,
    STANDARD_SLOT_HOURS,
    STANDARD_SLOT_LABELS,
)
from checklist_tracking.domain.errors import InvalidTimeSlot
from checklist_tracking.domain.models import TimeSlot

_CUSTOM_RANGE_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})\s*$")


def _standard_name(value: str) -> str | None:
    key = value.strip().lower()
    key = STANDARD_SLOT_ALIASES.get(key, key)
    return key if key in STANDARD_SLOT_HOURS else None


def _to_hour(value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidTimeSlot(f"Invalid hour: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise InvalidTimeSlot(f"Invalid hour: {value!r}")


def _parse_custom_range(text: str) -> TimeSlot | None:
    match = _CUSTOM_RANGE_RE.match(text)
    if not match:
        return None
    start_hour, start_min, end_hour, end_min = match.groups()
    if start_min != "00" or end_min != "00":
        raise InvalidTimeSlot(f"Custom time slots are whole hours, got {text!r}")
    return TimeSlot.custom(int(start_hour), int(end_hour))


def _parse_mapping(raw: Mapping[str, Any]) -> TimeSlot:
    kind = raw.get("time_slot_type") or raw.get("kind")
    start = raw.get("startHour", raw.get("start_hour", raw.get("time_slot_start")))
    end = raw.get("endHour", raw.get("end_hour", raw.get("time_slot_end")))
    name = raw.get("name") or raw.get("time_slot")

    if kind == SLOT_KIND_STANDARD or (kind is None and name and start is None and end is None):
        if not isinstance(name, str):
            raise InvalidTimeSlot(f"Standard time slot without a name: {dict(raw)!r}")
        return parse(name)
    if kind not in (None, SLOT_KIND_CUSTOM):
        raise InvalidTimeSlot(f"Unknown time slot kind: {kind!r}")
    if start is None or end is None:
        raise InvalidTimeSlot(f"Custom time slot requires start and end hours: {dict(raw)!r}")
    return TimeSlot.custom(_to_hour(start), _to_hour(end))


def parse(raw: Any) -> TimeSlot:
    """Parse a standard slot name, an ``HH:MM-HH:MM`` range or a start/end mapping."""
    if isinstance(raw, TimeSlot):
        return raw
    if isinstance(raw, Mapping):
        return _parse_mapping(raw)
    if isinstance(raw, str):
        name = _standard_name(raw)
        if name:
            return TimeSlot.standard(name)
        custom = _parse_custom_range(raw)
        if custom:
            return custom
    raise InvalidTimeSlot(f"Unrecognized time slot: {raw!r}")


def is_standard(slot: TimeSlot) -> bool:
    return slot.kind == SLOT_KIND_STANDARD


def is_custom(slot: TimeSlot) -> bool:
    return slot.kind == SLOT_KIND_CUSTOM


def hour_range(
    slot: TimeSlot,
    table: Mapping[str, tuple[int, int]] = STANDARD_SLOT_HOURS,
) -> tuple[int, int]:
    if is_custom(slot):
        return slot.start_hour, slot.end_hour
    try:
        return table[slot.name]
    except KeyError as exc:
        raise InvalidTimeSlot(f"No hour range configured for slot {slot.name!r}") from exc


def _hh(hour: int) -> str:
    return f"{hour:02d}:00"


def format_time_slot(slot: TimeSlot) -> str:
    start_hour, end_hour = hour_range(slot)
    if is_custom(slot):
        return f"Custom ({_hh(start_hour)}-{_hh(end_hour)})"
    label = STANDARD_SLOT_LABELS.get(slot.name, slot.name.title())
    return f"{label} (until {_hh(end_hour)})"


def to_row(slot: TimeSlot) -> dict[str, Any]:
    if is_custom(slot):
        return {
            "time_slot_type": SLOT_KIND_CUSTOM,
            "time_slot": None,
            "time_slot_start": slot.start_hour,
            "time_slot_end": slot.end_hour,
        }
    return {
        "time_slot_type": SLOT_KIND_STANDARD,
        "time_slot": slot.name,
        "time_slot_start": None,
        "time_slot_end": None,
    }
