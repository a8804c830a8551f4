from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time

from checklist_tracking.domain.constants import (
    GROUP_COMPOSITE,
    GROUP_SINGLE,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
)
from checklist_tracking.domain.errors import InvalidRequest
from checklist_tracking.domain.models import ChecklistInstance
from checklist_tracking.services.time_slots import is_custom


def _empty_status_counts() -> dict[str, int]:
    return {STATUS_PENDING: 0, STATUS_IN_PROGRESS: 0, STATUS_COMPLETED: 0}


@dataclass
class MatrixGroup:
    device_id: str
    device_name: str
    group_type: str
    kpi_ids: tuple[str, ...]
    kpi_names: tuple[str, ...]
    total_scheduled_count: int = 0
    future_remaining_count: int = 0
    status_counts: dict[str, int] = field(default_factory=_empty_status_counts)
    time_slot_kinds: list[str] = field(default_factory=list)
    custom_min_start: int | None = None
    custom_max_end: int | None = None
    first_scheduled_execution: date | None = None
    last_scheduled_execution: date | None = None
    next_scheduled_execution: date | None = None
    last_end_day_time: datetime | None = None
    categories: list[str] = field(default_factory=list)
    frequency_days: float | None = None
    dates: list[date] = field(default_factory=list, repr=False)

    @property
    def composite_key(self) -> str:
        return "+".join(self.kpi_ids)

    @property
    def base_key(self) -> str:
        if self.group_type == GROUP_SINGLE:
            return f"{GROUP_SINGLE}|{self.kpi_ids[0]}"
        return f"{GROUP_COMPOSITE}|{self.composite_key}"

    @property
    def label(self) -> str:
        if self.kpi_names:
            return ", ".join(self.kpi_names)
        return self.composite_key or "-"


@dataclass
class AggregatedGroup:
    base_key: str
    label: str
    group_type: str
    kpi_ids: tuple[str, ...]
    device_count: int = 0
    device_breakdown: list[MatrixGroup] = field(default_factory=list)
    total_scheduled_count: int = 0
    future_remaining_count: int = 0
    status_counts: dict[str, int] = field(default_factory=_empty_status_counts)
    time_slot_kinds: list[str] = field(default_factory=list)
    custom_min_start: int | None = None
    custom_max_end: int | None = None
    first_scheduled_execution: date | None = None
    last_scheduled_execution: date | None = None
    next_scheduled_execution: date | None = None
    last_end_day_time: datetime | None = None
    categories: list[str] = field(default_factory=list)
    frequency_days: float | None = None


@dataclass
class MatrixResult:
    date_from: date
    date_to: date
    groups: list[MatrixGroup]
    aggregated: list[AggregatedGroup]


def _as_datetime(value: date) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def _is_future(value: date, now: datetime) -> bool:
    return _as_datetime(value) > now


def _min_optional(left, right):
    if left is None:
        return right
    if right is None:
        return left
    return min(left, right)


def _max_optional(left, right):
    if left is None:
        return right
    if right is None:
        return left
    return max(left, right)


def _mean_gap_days(sorted_dates: list[date]) -> float | None:
    if len(sorted_dates) < 2:
        return None
    gaps = [
        (_as_datetime(later) - _as_datetime(earlier)).total_seconds() / 86400
        for earlier, later in zip(sorted_dates, sorted_dates[1:])
    ]
    return sum(gaps) / len(gaps)


def _group_key(instance: ChecklistInstance) -> tuple[str, str, tuple[str, ...]] | None:
    kpi_ids = instance.kpi_ids
    if not kpi_ids:
        return None
    if len(kpi_ids) == 1:
        return instance.device_id, GROUP_SINGLE, (kpi_ids[0],)
    return instance.device_id, GROUP_COMPOSITE, tuple(sorted(kpi_ids))


def _accumulate(group: MatrixGroup, instance: ChecklistInstance, now: datetime) -> None:
    group.total_scheduled_count += 1
    if _is_future(instance.scheduled_date, now) and instance.status != STATUS_COMPLETED:
        group.future_remaining_count += 1
    if instance.status in group.status_counts:
        group.status_counts[instance.status] += 1

    slot_kind = instance.time_slot.kind
    if slot_kind not in group.time_slot_kinds:
        group.time_slot_kinds.append(slot_kind)
    if is_custom(instance.time_slot):
        group.custom_min_start = _min_optional(group.custom_min_start, instance.time_slot.start_hour)
        group.custom_max_end = _max_optional(group.custom_max_end, instance.time_slot.end_hour)

    group.dates.append(instance.scheduled_date)
    group.last_end_day_time = _max_optional(group.last_end_day_time, instance.end_day_time)
    if instance.category and instance.category not in group.categories:
        group.categories.append(instance.category)


def _finalize(group: MatrixGroup, now: datetime) -> None:
    group.dates.sort()
    if not group.dates:
        return
    group.first_scheduled_execution = group.dates[0]
    group.last_scheduled_execution = group.dates[-1]
    group.next_scheduled_execution = next(
        (value for value in group.dates if _is_future(value, now)),
        None,
    )
    group.frequency_days = _mean_gap_days(group.dates)


def validate_range(date_from: date | None, date_to: date | None) -> None:
    if date_from is None or date_to is None:
        raise InvalidRequest("date_from and date_to are required.")
    if date_from > date_to:
        raise InvalidRequest(
            f"date_from ({date_from.isoformat()}) is after date_to ({date_to.isoformat()})."
        )


def build_groups(
    instances: Iterable[ChecklistInstance],
    now: datetime,
    kpi_names: Mapping[str, str] | None = None,
    device_names: Mapping[str, str] | None = None,
) -> list[MatrixGroup]:
    kpi_names = kpi_names or {}
    device_names = device_names or {}
    groups: dict[tuple[str, str, tuple[str, ...]], MatrixGroup] = {}

    for instance in instances:
        key = _group_key(instance)
        if key is None:
            continue
        group = groups.get(key)
        if group is None:
            device_id, group_type, kpi_ids = key
            group = MatrixGroup(
                device_id=device_id,
                device_name=(
                    device_names.get(device_id) or instance.device_name or device_id
                ),
                group_type=group_type,
                kpi_ids=kpi_ids,
                kpi_names=tuple(kpi_names.get(kpi_id) or kpi_id for kpi_id in kpi_ids),
            )
            groups[key] = group
        _accumulate(group, instance, now)

    for group in groups.values():
        _finalize(group, now)
    return sorted(groups.values(), key=lambda g: (g.label, g.device_name))


def aggregate_across_devices(groups: Iterable[MatrixGroup], now: datetime) -> list[AggregatedGroup]:
    """Collapse per-device groups sharing the same KPI set into one row.

    ``frequency_days`` is a running pairwise mean: each further device is averaged
    50/50 with the accumulated value, so the result depends on input order.
    """
    aggregated: dict[str, AggregatedGroup] = {}
    for group in groups:
        agg = aggregated.get(group.base_key)
        if agg is None:
            agg = AggregatedGroup(
                base_key=group.base_key,
                label=group.label,
                group_type=group.group_type,
                kpi_ids=group.kpi_ids,
            )
            aggregated[group.base_key] = agg

        agg.device_count += 1
        agg.device_breakdown.append(group)
        agg.total_scheduled_count += group.total_scheduled_count
        agg.future_remaining_count += group.future_remaining_count
        for status, count in group.status_counts.items():
            agg.status_counts[status] = agg.status_counts.get(status, 0) + count

        agg.first_scheduled_execution = _min_optional(
            agg.first_scheduled_execution, group.first_scheduled_execution
        )
        agg.last_scheduled_execution = _max_optional(
            agg.last_scheduled_execution, group.last_scheduled_execution
        )
        future_candidates = [
            value
            for value in (agg.next_scheduled_execution, group.next_scheduled_execution)
            if value is not None and _is_future(value, now)
        ]
        if future_candidates:
            agg.next_scheduled_execution = min(future_candidates)
        elif agg.next_scheduled_execution is None:
            agg.next_scheduled_execution = group.next_scheduled_execution

        for kind in group.time_slot_kinds:
            if kind not in agg.time_slot_kinds:
                agg.time_slot_kinds.append(kind)
        agg.custom_min_start = _min_optional(agg.custom_min_start, group.custom_min_start)
        agg.custom_max_end = _max_optional(agg.custom_max_end, group.custom_max_end)
        agg.last_end_day_time = _max_optional(agg.last_end_day_time, group.last_end_day_time)
        for category in group.categories:
            if category not in agg.categories:
                agg.categories.append(category)

        if agg.frequency_days is None:
            agg.frequency_days = group.frequency_days
        elif group.frequency_days is not None:
            agg.frequency_days = (agg.frequency_days + group.frequency_days) / 2

    return sorted(aggregated.values(), key=lambda a: a.label)


def build_matrix(
    instances: Iterable[ChecklistInstance],
    date_from: date | None,
    date_to: date | None,
    now: datetime,
    kpi_names: Mapping[str, str] | None = None,
    device_names: Mapping[str, str] | None = None,
) -> MatrixResult:
    validate_range(date_from, date_to)
    in_range = [
        instance
        for instance in instances
        if date_from <= instance.scheduled_date <= date_to
    ]
    groups = build_groups(in_range, now, kpi_names, device_names)
    return MatrixResult(
        date_from=date_from,
        date_to=date_to,
        groups=groups,
        aggregated=aggregate_across_devices(groups, now),
    )

