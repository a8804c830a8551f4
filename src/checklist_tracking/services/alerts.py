from __future__ import annotations

from collections.abc import Iterable, Mapping
import math
from typing import Any

from checklist_tracking.domain.constants import (
    CONDITION_BOOLEAN,
    CONDITION_NUMERIC,
    CONDITION_SELECT,
    CONDITION_TEXT,
)
from checklist_tracking.domain.models import AlertCondition, KpiField, TriggeredCondition

_TRUE_STRINGS = {"true", "1", "yes", "y", "si", "sì", "on"}


def _find_field_entry(entries: list[Any], field_id: str) -> Any:
    for entry in entries:
        if isinstance(entry, Mapping) and entry.get("id") == field_id:
            return entry
    # Older task values carry only the field name; match on the trailing id segment.
    field_name = field_id.split("-")[-1].lower()
    if not field_name:
        return None
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        name = str(entry.get("name") or "").lower()
        entry_id = str(entry.get("id") or "").lower()
        if name == field_name or (entry_id and entry_id.endswith(field_name)):
            return entry
    return None


def extract_field_value(recorded_value: Any, field_id: str) -> Any:
    """Locate the value recorded for ``field_id`` inside a task value."""
    if recorded_value is None:
        return None
    if isinstance(recorded_value, list):
        entry = _find_field_entry(recorded_value, field_id)
        return entry.get("value") if isinstance(entry, Mapping) else None
    if isinstance(recorded_value, Mapping):
        if recorded_value.get("id") == field_id:
            return recorded_value.get("value")
        if field_id in recorded_value and "value" not in recorded_value:
            return recorded_value[field_id]
        if "value" in recorded_value:
            return recorded_value["value"]
        return None
    return recorded_value


def to_number(value: Any) -> float | None:
    if isinstance(value, bool) or value in (None, ""):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", ".")
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def _numeric_triggered(condition: AlertCondition, value: Any) -> tuple[bool, Any]:
    number = to_number(value)
    if number is None:
        return False, value
    below = condition.min is not None and number < condition.min
    above = condition.max is not None and number > condition.max
    return below or above, number


def _text_triggered(condition: AlertCondition, value: Any) -> tuple[bool, Any]:
    if not condition.match_text:
        return False, value
    return condition.match_text in str(value), value


def _boolean_triggered(condition: AlertCondition, value: Any) -> tuple[bool, Any]:
    if condition.expected is None:
        return False, value
    actual = to_bool(value)
    return actual != condition.expected, actual


def _select_triggered(condition: AlertCondition, value: Any) -> tuple[bool, Any]:
    if not condition.match_values:
        return False, value
    selected = value if isinstance(value, (list, tuple, set)) else [value]
    return any(str(item) in condition.match_values for item in selected), value


_CHECKS = {
    CONDITION_NUMERIC: _numeric_triggered,
    CONDITION_TEXT: _text_triggered,
    CONDITION_BOOLEAN: _boolean_triggered,
    CONDITION_SELECT: _select_triggered,
}


def evaluate(
    recorded_value: Any,
    field_schema: Iterable[KpiField],
    conditions: Iterable[AlertCondition],
) -> list[TriggeredCondition]:
    """Return every condition met by ``recorded_value``; empty means no alert.

    Numeric conditions fire outside ``[min, max]``, text conditions when the
    watched substring is present, boolean conditions when the recorded value
    differs from the expected one, select conditions on membership.
    """
    names = {item.id: item.name for item in field_schema}
    triggered: list[TriggeredCondition] = []
    for condition in conditions:
        value = extract_field_value(recorded_value, condition.field_id)
        if value is None:
            continue
        fired, normalized = _CHECKS[condition.type](condition, value)
        if fired:
            triggered.append(
                TriggeredCondition(
                    condition=condition,
                    field_value=normalized,
                    field_name=names.get(condition.field_id, condition.field_id),
                )
            )
    return triggered


def describe_condition(condition: AlertCondition) -> str:
    if condition.type == CONDITION_NUMERIC:
        if condition.min is not None and condition.max is not None:
            return f"Value outside {condition.min:g}-{condition.max:g}"
        if condition.min is not None:
            return f"Value below {condition.min:g}"
        if condition.max is not None:
            return f"Value above {condition.max:g}"
        return "Numeric value"
    if condition.type == CONDITION_TEXT:
        return f'Text contains "{condition.match_text}"'
    if condition.type == CONDITION_BOOLEAN:
        return f"Expected: {'Yes' if condition.expected else 'No'}"
    return "Value in: " + ", ".join(condition.match_values)


def describe_trigger(item: TriggeredCondition) -> str:
    if item.condition.type == CONDITION_BOOLEAN:
        actual = "Yes" if item.field_value else "No"
        expected = "Yes" if item.expected else "No"
        return f"{item.field_name}: {actual} (expected {expected})"
    return f"{item.field_name}: {item.field_value} ({describe_condition(item.condition)})"
