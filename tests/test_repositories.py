import sys
import unittest
from datetime import date, datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from checklist_tracking.data.db import SCHEMA_VERSION, connect, init_db, table_count
from checklist_tracking.data.repositories import (
    DeviceRepository,
    KpiAlertRepository,
    KpiRepository,
    ProfileRepository,
    TodolistAlertRepository,
    TodolistRepository,
)
from checklist_tracking.domain.models import AlertCondition, TimeSlot


def _memory_db():
    con = connect(Path(":memory:"))
    init_db(con)
    return con


class SchemaTests(unittest.TestCase):
    def test_init_db_idempotent(self) -> None:
        con = _memory_db()
        init_db(con)
        self.assertEqual(table_count(con, "todolists"), 0)
        version = con.execute("PRAGMA user_version;").fetchone()[0]
        self.assertEqual(version, SCHEMA_VERSION)


class TodolistRepositoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.con = _memory_db()
        devices = DeviceRepository(self.con)
        kpis = KpiRepository(self.con)
        self.d1 = devices.create_device("Press 1", "Hall A")
        self.d2 = devices.create_device("Press 2", "Hall B")
        self.k1 = kpis.create_kpi("Oil level", "Check the gauge", [{"name": "level", "type": "number"}])
        self.k2 = kpis.create_kpi("Guard", None, [{"name": "closed", "type": "boolean"}])
        self.repo = TodolistRepository(self.con)

    def test_schedule_creates_product_of_inputs(self) -> None:
        created = self.repo.schedule_todolists(
            [self.d1, self.d2],
            [date(2024, 1, 10), date(2024, 1, 11)],
            ["morning"],
            [self.k1, self.k2],
            category="Daily",
            alert_email="qa@example.com",
        )
        self.assertEqual(len(created), 4)
        self.assertEqual(table_count(self.con, "tasks"), 8)
        self.assertEqual(table_count(self.con, "todolist_alerts"), 4)

        instances = self.repo.list_in_range(date(2024, 1, 10), date(2024, 1, 10))
        self.assertEqual(len(instances), 2)
        instance = instances[0]
        self.assertEqual(instance.time_slot, TimeSlot.standard("morning"))
        self.assertEqual(instance.end_day_time, datetime(2024, 1, 10, 15, 0))
        self.assertEqual(instance.category, "Daily")
        self.assertEqual(sorted(instance.kpi_ids), sorted([self.k1, self.k2]))
        self.assertEqual({task.kpi_name for task in instance.tasks}, {"Oil level", "Guard"})
        self.assertIn(instance.device_name, {"Press 1", "Press 2"})
        self.assertEqual(instance.alert.email, "qa@example.com")

    def test_schedule_requires_inputs(self) -> None:
        with self.assertRaises(ValueError):
            self.repo.schedule_todolists([self.d1], [date(2024, 1, 10)], ["morning"], [])
        with self.assertRaises(ValueError):
            self.repo.schedule_todolists([self.d1], [date(2024, 1, 10)], ["brunch"], [self.k1])

    def test_custom_slot_round_trip(self) -> None:
        (todolist_id,) = self.repo.schedule_todolists(
            [self.d1], [date(2024, 1, 10)], [TimeSlot.custom(20, 23)], [self.k1]
        )
        instance = self.repo.get_todolist(todolist_id)
        self.assertEqual(instance.time_slot, TimeSlot.custom(20, 23))
        self.assertEqual(instance.end_day_time, datetime(2024, 1, 11, 2, 0))
        self.assertIsNone(instance.alert)

    def test_record_task_value_updates_status(self) -> None:
        (todolist_id,) = self.repo.schedule_todolists(
            [self.d1], [date(2024, 1, 10)], ["morning"], [self.k1, self.k2]
        )
        first, second = self.repo.get_todolist(todolist_id).tasks
        done_at = datetime(2024, 1, 10, 9, 30)

        updated = self.repo.record_task_value(first.id, [{"id": "level", "value": 4}], done_at)
        self.assertEqual(updated.status, "in_progress")
        self.assertIsNone(updated.completion_date)

        updated = self.repo.record_task_value(second.id, [{"id": "closed", "value": True}], done_at)
        self.assertEqual(updated.status, "completed")
        self.assertEqual(updated.completion_date, done_at)
        values = {task.id: task.recorded_value for task in updated.tasks}
        self.assertEqual(values[first.id], [{"id": "level", "value": 4}])

    def test_overdue_candidates(self) -> None:
        with_alert = self.repo.schedule_todolists(
            [self.d1], [date(2024, 1, 10)], ["morning"], [self.k1], alert_email="qa@example.com"
        )
        self.repo.schedule_todolists([self.d2], [date(2024, 1, 10)], ["morning"], [self.k1])
        self.repo.schedule_todolists(
            [self.d1], [date(2024, 1, 20)], ["morning"], [self.k1], alert_email="qa@example.com"
        )
        candidates = self.repo.list_overdue_candidates(datetime(2024, 1, 11, 8, 0))
        self.assertEqual([item.id for item in candidates], with_alert)

        alert_repo = TodolistAlertRepository(self.con)
        alert_repo.deactivate(candidates[0].alert.id)
        self.assertEqual(self.repo.list_overdue_candidates(datetime(2024, 1, 11, 8, 0)), [])


class AlertRepositoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.con = _memory_db()
        self.device_id = DeviceRepository(self.con).create_device("Press 1")
        self.kpi_id = KpiRepository(self.con).create_kpi(
            "Temperature", None, [{"id": "temp", "name": "Temp", "type": "number"}]
        )

    def test_todolist_alert_logs(self) -> None:
        (todolist_id,) = TodolistRepository(self.con).schedule_todolists(
            [self.device_id], [date(2024, 1, 10)], ["night"], [self.kpi_id]
        )
        repo = TodolistAlertRepository(self.con)
        alert_id = repo.set_alert(todolist_id, "ops@example.com")
        self.assertEqual(repo.set_alert(todolist_id, "lead@example.com"), alert_id)
        repo.log_sent(todolist_id, alert_id, "lead@example.com", datetime(2024, 1, 10, 10, 0))
        repo.log_sent(todolist_id, alert_id, "lead@example.com", datetime(2024, 1, 10, 11, 0), "timeout")
        logs = repo.list_logs(todolist_id)
        self.assertEqual(len(logs), 2)
        self.assertEqual(logs[0]["error_message"], "timeout")
        self.assertEqual(logs[0]["device_name"], "Press 1")

    def test_kpi_alerts_and_logs(self) -> None:
        repo = KpiAlertRepository(self.con)
        alert_id = repo.create_alert(
            self.kpi_id,
            self.device_id,
            "ops@example.com",
            [{"field_id": "temp", "type": "numeric", "max": 80}],
        )
        alerts = repo.list_alerts(kpi_id=self.kpi_id, device_id=self.device_id, active_only=True)
        self.assertEqual([alert.id for alert in alerts], [alert_id])
        self.assertEqual(alerts[0].conditions, (AlertCondition(field_id="temp", type="numeric", max=80.0),))

        repo.log_trigger(alert_id, self.kpi_id, self.device_id, [{"id": "temp", "value": 95}], datetime(2024, 1, 10, 9, 0), True, datetime(2024, 1, 10, 9, 0))
        logs = repo.list_logs(kpi_id=self.kpi_id)
        self.assertEqual(logs[0]["triggered_value"], [{"id": "temp", "value": 95}])
        self.assertTrue(logs[0]["email_sent"])
        self.assertEqual(logs[0]["kpi_name"], "Temperature")

        repo.set_active(alert_id, False)
        self.assertEqual(repo.list_alerts(kpi_id=self.kpi_id, active_only=True), [])

    def test_kpi_alert_requires_condition(self) -> None:
        with self.assertRaises(ValueError):
            KpiAlertRepository(self.con).create_alert(self.kpi_id, self.device_id, "ops@example.com", [])


class ProfileRepositoryTests(unittest.TestCase):
    def test_roles(self) -> None:
        repo = ProfileRepository(_memory_db())
        repo.create_profile("Admin@Example.com", "Admin", role="admin")
        self.assertEqual(repo.get_role("admin@example.com"), "admin")
        self.assertIsNone(repo.get_role("nobody@example.com"))
        with self.assertRaises(ValueError):
            repo.create_profile("x@example.com", role="root")


if __name__ == "__main__":
    unittest.main()
