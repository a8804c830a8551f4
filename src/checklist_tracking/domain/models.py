from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from checklist_tracking.domain.constants import (
    CONDITION_BOOLEAN,
    CONDITION_NUMERIC,
    CONDITION_SELECT,
    CONDITION_TEXT,
    CONDITION_TYPES,
    FIELD_TYPES,
    SLOT_KIND_CUSTOM,
    SLOT_KIND_STANDARD,
    STANDARD_SLOT_HOURS,
    STATUS_COMPLETED,
    STATUS_PENDING,
)
from checklist_tracking.domain.errors import InvalidTimeSlot


def _optional_float(value: Any) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid numeric bound: {value!r}") from exc


@dataclass(frozen=True)
class TimeSlot:
    kind: str
    name: str | None = None
    start_hour: int | None = None
    end_hour: int | None = None

    def __post_init__(self) -> None:
        if self.kind == SLOT_KIND_STANDARD:
            if self.name not in STANDARD_SLOT_HOURS:
                raise InvalidTimeSlot(f"Unknown standard time slot: {self.name!r}")
            if self.start_hour is not None or self.end_hour is not None:
                raise InvalidTimeSlot("Standard time slots take their hours from the slot table.")
            return
        if self.kind == SLOT_KIND_CUSTOM:
            if self.name is not None:
                raise InvalidTimeSlot("Custom time slots have no name.")
            for hour in (self.start_hour, self.end_hour):
                if not isinstance(hour, int) or isinstance(hour, bool) or not 0 <= hour <= 23:
                    raise InvalidTimeSlot(
                        f"Custom time slot hours must be integers in 0-23, got "
                        f"{self.start_hour!r}-{self.end_hour!r}"
                    )
            return
        raise InvalidTimeSlot(f"Unknown time slot kind: {self.kind!r}")

    @classmethod
    def standard(cls, name: str) -> TimeSlot:
        return cls(kind=SLOT_KIND_STANDARD, name=name)

    @classmethod
    def custom(cls, start_hour: int, end_hour: int) -> TimeSlot:
        return cls(kind=SLOT_KIND_CUSTOM, start_hour=start_hour, end_hour=end_hour)


@dataclass(frozen=True)
class Device:
    id: str
    name: str
    location: str | None = None


@dataclass(frozen=True)
class KpiField:
    id: str
    name: str
    type: str = "text"
    required: bool = False
    min: float | None = None
    max: float | None = None
    options: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> KpiField:
        field_type = (payload.get("type") or "text").strip().lower()
        if field_type not in FIELD_TYPES:
            raise ValueError(f"Unsupported field type: {field_type!r}")
        name = (payload.get("name") or "").strip()
        field_id = (payload.get("id") or name).strip()
        if not field_id:
            raise ValueError("Field requires an id or a name.")
        return cls(
            id=field_id,
            name=name or field_id,
            type=field_type,
            required=bool(payload.get("required")),
            min=_optional_float(payload.get("min")),
            max=_optional_float(payload.get("max")),
            options=tuple(str(option) for option in payload.get("options") or ()),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "required": self.required,
        }
        if self.min is not None:
            payload["min"] = self.min
        if self.max is not None:
            payload["max"] = self.max
        if self.options:
            payload["options"] = list(self.options)
        return payload


@dataclass(frozen=True)
class Kpi:
    id: str
    name: str
    description: str | None = None
    fields: tuple[KpiField, ...] = ()


@dataclass(frozen=True)
class TaskItem:
    id: str
    kpi_id: str
    status: str = STATUS_PENDING
    recorded_value: Any = None
    completed_at: datetime | None = None
    kpi_name: str | None = None
    kpi_description: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == STATUS_COMPLETED


@dataclass(frozen=True)
class TodolistAlert:
    id: str
    email: str
    is_active: bool = True


@dataclass(frozen=True)
class ChecklistInstance:
    id: str
    device_id: str
    scheduled_date: date
    time_slot: TimeSlot
    status: str = STATUS_PENDING
    completion_date: datetime | None = None
    category: str | None = None
    end_day_time: datetime | None = None
    tasks: tuple[TaskItem, ...] = ()
    device_name: str | None = None
    device_location: str | None = None
    alert: TodolistAlert | None = None

    @property
    def kpi_ids(self) -> list[str]:
        return list(dict.fromkeys(task.kpi_id for task in self.tasks if task.kpi_id))


@dataclass(frozen=True)
class AlertCondition:
    field_id: str
    type: str
    min: float | None = None
    max: float | None = None
    match_text: str | None = None
    expected: bool | None = None
    match_values: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.type not in CONDITION_TYPES:
            raise ValueError(f"Unsupported alert condition type: {self.type!r}")
        if not self.field_id:
            raise ValueError("Alert condition requires a field_id.")

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> AlertCondition:
        condition_type = (payload.get("type") or "").strip().lower()
        expected = payload.get("boolean_value", payload.get("expected"))
        return cls(
            field_id=str(payload.get("field_id") or ""),
            type=condition_type,
            min=_optional_float(payload.get("min")),
            max=_optional_float(payload.get("max")),
            match_text=payload.get("match_text") or None,
            expected=None if expected is None else bool(expected),
            match_values=tuple(str(value) for value in payload.get("match_values") or ()),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"field_id": self.field_id, "type": self.type}
        if self.type == CONDITION_NUMERIC:
            if self.min is not None:
                payload["min"] = self.min
            if self.max is not None:
                payload["max"] = self.max
        elif self.type == CONDITION_TEXT:
            payload["match_text"] = self.match_text
        elif self.type == CONDITION_BOOLEAN:
            payload["boolean_value"] = self.expected
        elif self.type == CONDITION_SELECT:
            payload["match_values"] = list(self.match_values)
        return payload


@dataclass(frozen=True)
class KpiAlert:
    id: str
    kpi_id: str
    device_id: str
    email: str
    conditions: tuple[AlertCondition, ...] = ()
    is_active: bool = True


@dataclass(frozen=True)
class TriggeredCondition:
    condition: AlertCondition
    field_value: Any
    field_name: str

    @property
    def expected(self) -> Any:
        if self.condition.type == CONDITION_BOOLEAN:
            return self.condition.expected
        return None


@dataclass
class OverdueRunResult:
    processed_count: int = 0
    error_count: int = 0
    details: list[dict[str, Any]] = field(default_factory=list)
