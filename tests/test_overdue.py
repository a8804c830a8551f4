import sys
import unittest
from datetime import date, datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from checklist_tracking.domain.models import (
    ChecklistInstance,
    TaskItem,
    TimeSlot,
    TodolistAlert,
)
from checklist_tracking.services import overdue


def _instance(
    instance_id: str,
    statuses: list[str],
    alert: TodolistAlert | None = None,
    stored_status: str = "pending",
) -> ChecklistInstance:
    return ChecklistInstance(
        id=instance_id,
        device_id="d1",
        scheduled_date=date(2024, 1, 10),
        time_slot=TimeSlot.standard("morning"),
        status=stored_status,
        tasks=tuple(
            TaskItem(id=f"{instance_id}-{i}", kpi_id=f"k{i}", status=status)
            for i, status in enumerate(statuses)
        ),
        alert=alert,
    )


class DeriveStatusTests(unittest.TestCase):
    def test_derive_status(self) -> None:
        tasks = [TaskItem(id="a", kpi_id="k1"), TaskItem(id="b", kpi_id="k2")]
        self.assertEqual(overdue.derive_status(tasks), "pending")
        tasks[0] = TaskItem(id="a", kpi_id="k1", status="completed")
        self.assertEqual(overdue.derive_status(tasks), "in_progress")
        tasks[1] = TaskItem(id="b", kpi_id="k2", status="completed")
        self.assertEqual(overdue.derive_status(tasks), "completed")

    def test_effective_status_without_tasks_uses_stored(self) -> None:
        instance = _instance("t1", [], stored_status="in_progress")
        self.assertEqual(overdue.effective_status(instance), "in_progress")


class ClassifyTests(unittest.TestCase):
    def setUp(self) -> None:
        self.late = datetime(2024, 1, 10, 16, 0)
        self.early = datetime(2024, 1, 10, 14, 0)

    def test_completed_never_overdue(self) -> None:
        instance = _instance("t1", ["completed", "completed"], stored_status="pending")
        self.assertFalse(overdue.is_overdue(instance, self.late))
        self.assertEqual(overdue.classify(instance, self.late), "completed")

    def test_partial_completion_overdue_after_deadline(self) -> None:
        instance = _instance("t1", ["completed", "pending"])
        self.assertEqual(overdue.classify(instance, self.late), "overdue")
        self.assertEqual(overdue.classify(instance, self.early), "in_progress")

    def test_pending_before_deadline(self) -> None:
        instance = _instance("t1", ["pending"])
        self.assertEqual(overdue.classify(instance, self.early), "pending")

    def test_exact_deadline_not_overdue(self) -> None:
        instance = _instance("t1", ["pending"])
        self.assertFalse(overdue.is_overdue(instance, datetime(2024, 1, 10, 15, 0)))


class FindOverdueWithAlertsTests(unittest.TestCase):
    def test_filters_and_preserves_order(self) -> None:
        alert = TodolistAlert(id="a1", email="qa@example.com")
        instances = [
            _instance("t3", ["pending"], alert=alert),
            _instance("t1", ["pending"]),
            _instance("t2", ["completed"], alert=alert),
            _instance("t4", ["pending"], alert=TodolistAlert(id="a2", email="  ")),
            _instance("t5", ["pending"], alert=TodolistAlert(id="a3", email="x@y", is_active=False)),
            _instance("t0", ["completed", "pending"], alert=alert),
        ]
        found = overdue.find_overdue_with_alerts(instances, datetime(2024, 1, 11, 8, 0))
        self.assertEqual([item.id for item in found], ["t3", "t0"])

    def test_nothing_overdue_yet(self) -> None:
        alert = TodolistAlert(id="a1", email="qa@example.com")
        instances = [_instance("t1", ["pending"], alert=alert)]
        self.assertEqual(overdue.find_overdue_with_alerts(instances, datetime(2024, 1, 10, 9, 0)), [])


if __name__ == "__main__":
    unittest.main()
