import contextlib
import io
import os
import sys
import tempfile
import unittest
from datetime import date, datetime
from pathlib import Path
from unittest import mock

import pandas as pd

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from checklist_tracking.cli.main import main as cli_main
from checklist_tracking.data.db import connect, init_db
from checklist_tracking.data.repositories import (
    DeviceRepository,
    KpiRepository,
    ProfileRepository,
    TodolistRepository,
)
from checklist_tracking.domain.errors import EmailDeliveryError, Forbidden, InvalidRequest
from checklist_tracking.services.access import is_admin, require_admin, resolve_role
from checklist_tracking.services.export import (
    AGGREGATED_COLUMNS,
    MATRIX_COLUMNS,
    aggregated_to_frame,
    matrix_to_frame,
    to_csv_bytes,
    to_xlsx_bytes,
    todolists_to_frame,
)
from checklist_tracking.services.reports import load_matrix, load_overdue_with_alerts


def _seed(con) -> None:
    devices = DeviceRepository(con)
    kpis = KpiRepository(con)
    d1 = devices.create_device("Press 1")
    d2 = devices.create_device("Press 2")
    k1 = kpis.create_kpi("Oil level", None, [{"name": "level", "type": "number"}])
    k2 = kpis.create_kpi("Guard", None, [{"name": "closed", "type": "boolean"}])
    repo = TodolistRepository(con)
    repo.schedule_todolists([d1, d2], [date(2024, 1, 1), date(2024, 1, 11)], ["morning"], [k1])
    repo.schedule_todolists(
        [d1], [date(2024, 1, 5)], ["night"], [k1, k2], alert_email="qa@example.com"
    )


class AccessTests(unittest.TestCase):
    def test_roles(self) -> None:
        self.assertTrue(is_admin("admin"))
        self.assertTrue(is_admin(" Admin "))
        self.assertFalse(is_admin("operator"))
        self.assertFalse(is_admin(None))
        with self.assertRaises(Forbidden):
            require_admin("operator")

    def test_resolve_role_prefers_profile(self) -> None:
        con = connect(Path(":memory:"))
        init_db(con)
        ProfileRepository(con).create_profile("Ops@Example.com")
        env = {
            "CHECKLIST_TRACKING_USER_EMAIL": "ops@example.com",
            "CHECKLIST_TRACKING_ROLE": "admin",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            self.assertEqual(resolve_role(con), "operator")
        with mock.patch.dict(os.environ, {}, clear=True):
            self.assertEqual(resolve_role(con), "admin")


class LoadMatrixTests(unittest.TestCase):
    def setUp(self) -> None:
        self.con = connect(Path(":memory:"))
        init_db(self.con)
        _seed(self.con)
        self.now = datetime(2024, 1, 2, 12, 0)

    def test_non_admin_forbidden(self) -> None:
        with self.assertRaises(Forbidden):
            load_matrix(self.con, date(2024, 1, 1), date(2024, 1, 31), "operator", self.now)

    def test_invalid_range(self) -> None:
        with self.assertRaises(InvalidRequest):
            load_matrix(self.con, date(2024, 2, 1), date(2024, 1, 1), "admin", self.now)

    def test_admin_matrix(self) -> None:
        result = load_matrix(self.con, date(2024, 1, 1), date(2024, 1, 31), "admin", self.now)
        singles = [g for g in result.groups if g.group_type == "single"]
        composites = [g for g in result.groups if g.group_type == "composite"]
        self.assertEqual([g.device_name for g in singles], ["Press 1", "Press 2"])
        self.assertEqual({g.label for g in singles}, {"Oil level"})
        self.assertEqual(len(composites), 1)
        self.assertEqual(sorted(composites[0].kpi_names), ["Guard", "Oil level"])

        self.assertEqual(len(result.aggregated), 2)
        single_row = next(row for row in result.aggregated if row.group_type == "single")
        self.assertEqual(single_row.device_count, 2)
        self.assertEqual(single_row.frequency_days, 10.0)
        self.assertEqual(single_row.next_scheduled_execution, date(2024, 1, 11))

    def test_overdue_with_alerts(self) -> None:
        found = load_overdue_with_alerts(self.con, datetime(2024, 1, 5, 10, 0))
        self.assertEqual(len(found), 1)
        self.assertEqual(found[0].alert.email, "qa@example.com")
        self.assertEqual(load_overdue_with_alerts(self.con, datetime(2024, 1, 5, 8, 0)), [])


class ExportTests(unittest.TestCase):
    def setUp(self) -> None:
        self.con = connect(Path(":memory:"))
        init_db(self.con)
        _seed(self.con)
        self.now = datetime(2024, 1, 2, 12, 0)
        self.matrix = load_matrix(self.con, date(2024, 1, 1), date(2024, 1, 31), "admin", self.now)

    def test_frames(self) -> None:
        groups_df = matrix_to_frame(self.matrix.groups)
        self.assertEqual(list(groups_df.columns), MATRIX_COLUMNS)
        self.assertEqual(len(groups_df), 3)
        aggregated_df = aggregated_to_frame(self.matrix.aggregated)
        self.assertEqual(list(aggregated_df.columns), AGGREGATED_COLUMNS)
        self.assertEqual(aggregated_df["total_scheduled"].sum(), 5)

    def test_empty_frames_keep_columns(self) -> None:
        self.assertEqual(list(matrix_to_frame([]).columns), MATRIX_COLUMNS)
        self.assertTrue(todolists_to_frame([], self.now).empty)

    def test_todolist_frame_classification(self) -> None:
        instances = TodolistRepository(self.con).list_in_range(date(2024, 1, 1), date(2024, 1, 31))
        df = todolists_to_frame(instances, datetime(2024, 1, 6, 12, 0))
        self.assertEqual(len(df), 5)
        self.assertEqual(
            sorted(df["classification"].tolist()),
            ["overdue", "overdue", "overdue", "pending", "pending"],
        )

    def test_csv_and_xlsx_bytes(self) -> None:
        groups_df = matrix_to_frame(self.matrix.groups)
        csv_bytes = to_csv_bytes(groups_df)
        self.assertTrue(csv_bytes.startswith(b"control,group_type"))
        xlsx_bytes = to_xlsx_bytes({"Matrix": groups_df})
        round_trip = pd.read_excel(io.BytesIO(xlsx_bytes), sheet_name="Matrix")
        self.assertEqual(len(round_trip), 3)


class CliExportTests(unittest.TestCase):
    def test_export_csv(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            db_path = Path(tmp) / "app.db"
            con = connect(db_path)
            init_db(con)
            _seed(con)
            con.close()
            output = Path(tmp) / "matrix.csv"
            env = {"CHECKLIST_TRACKING_DB_PATH": str(db_path), "CHECKLIST_TRACKING_ROLE": "admin"}
            with mock.patch.dict(os.environ, env):
                code = cli_main(
                    ["export", "--from", "2024-01-01", "--to", "2024-01-31", "--output", str(output)]
                )
            self.assertEqual(code, 0)
            self.assertEqual(len(pd.read_csv(output)), 3)

    def test_export_forbidden_for_operator(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            env = {
                "CHECKLIST_TRACKING_DB_PATH": str(Path(tmp) / "app.db"),
                "CHECKLIST_TRACKING_ROLE": "operator",
            }
            with mock.patch.dict(os.environ, env):
                code = cli_main(
                    ["export", "--from", "2024-01-01", "--to", "2024-01-31", "--output", str(Path(tmp) / "x.csv")]
                )
            self.assertEqual(code, 2)


class CliOverdueTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.db_path = Path(self._tmp.name) / "app.db"
        con = connect(self.db_path)
        init_db(con)
        _seed(con)
        con.close()
        self.env = {
            "CHECKLIST_TRACKING_DB_PATH": str(self.db_path),
            "CHECKLIST_TRACKING_EMAIL_NOTIFICATIONS_ENABLED": "true",
            "CHECKLIST_TRACKING_SMTP_HOST": "smtp.example.com",
            "CHECKLIST_TRACKING_SMTP_FROM": "checklists@example.com",
        }

    def _run(self, *extra: str) -> tuple[int, list[str]]:
        with mock.patch.dict(os.environ, self.env):
            with self.assertLogs("checklist_tracking.cli.main", level="INFO") as logs:
                code = cli_main(["overdue", "--now", "2024-01-06T12:00", *extra])
        return code, logs.output

    def test_disabled_switch_skips_run(self) -> None:
        self.env["CHECKLIST_TRACKING_EMAIL_NOTIFICATIONS_ENABLED"] = "false"
        with mock.patch("checklist_tracking.cli.main.EmailNotifier") as notifier_cls:
            code, _ = self._run()
        self.assertEqual(code, 0)
        notifier_cls.assert_not_called()

    def test_dry_run_prints_without_sending(self) -> None:
        stdout = io.StringIO()
        with mock.patch("checklist_tracking.cli.main.EmailNotifier") as notifier_cls:
            with contextlib.redirect_stdout(stdout):
                code, output = self._run("--dry-run")
        self.assertEqual(code, 0)
        notifier_cls.assert_not_called()
        self.assertIn("--- qa@example.com ---", stdout.getvalue())
        self.assertIn("'dry_run': 1", output[-1])

    def test_send_counts_and_deactivates(self) -> None:
        with mock.patch("checklist_tracking.cli.main.EmailNotifier") as notifier_cls:
            code, output = self._run()
            self.assertEqual(code, 0)
            self.assertEqual(notifier_cls.return_value.send_overdue_notice.call_count, 1)
            self.assertIn("'processed': 1, 'errors': 0", output[-1])

            code, output = self._run()
        self.assertEqual(code, 0)
        self.assertIn("'processed': 0, 'errors': 0", output[-1])

    def test_send_failure_exit_code(self) -> None:
        with mock.patch("checklist_tracking.cli.main.EmailNotifier") as notifier_cls:
            notifier_cls.return_value.send_overdue_notice.side_effect = EmailDeliveryError("refused")
            with self.assertLogs("checklist_tracking.services.overdue_alerts", level="ERROR"):
                code, output = self._run()
        self.assertEqual(code, 1)
        self.assertIn("'processed': 1, 'errors': 1", output[-1])


if __name__ == "__main__":
    unittest.main()
